from __future__ import annotations

import threading
import time

import httpx
import pytest

from chat_backend.context import ContextWindowBuilder
from chat_backend.errors import ProviderFailure, ValidationError
from chat_backend.llm import FALLBACK_TEMPLATES, FallbackProvider, RemoteProvider, ResponseProvider
from chat_backend.models import ContextWindow, Provenance, ProviderReply, Role
from chat_backend.orchestrator import ConversationOrchestrator
from chat_backend.store import MessageStore


class SpyProvider(ResponseProvider):
    """Spy provider that records every window it received."""

    def __init__(self, reply: str = "ok"):
        self.reply = reply
        self.windows: list[ContextWindow] = []

    def respond(self, window: ContextWindow) -> ProviderReply:
        self.windows.append(window)
        return ProviderReply(text=self.reply, provenance=Provenance.REMOTE)


class BrokenRemote(RemoteProvider):
    def __init__(self):
        super().__init__("key")

    def _generate(self, window: ContextWindow) -> str:
        raise ProviderFailure("simulated outage")


def test_submit_on_empty_store_yields_two_turns(store: MessageStore):
    orch = ConversationOrchestrator(store, SpyProvider("Hi!"))
    history = orch.submit("Hello")

    assert len(history) == 2
    user, assistant = history
    assert (user.role, user.content) == (Role.USER, "Hello")
    assert assistant.role is Role.ASSISTANT
    assert assistant.content == "Hi!"
    assert assistant.timestamp >= user.timestamp


def test_two_submissions_alternate_roles(store: MessageStore):
    orch = ConversationOrchestrator(store, SpyProvider())
    orch.submit("one")
    history = orch.submit("two")

    assert [t.id for t in history] == [1, 2, 3, 4]
    assert [t.role for t in history] == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]


@pytest.mark.parametrize("text", ["", "   "])
def test_blank_submission_leaves_store_untouched(store: MessageStore, text: str):
    spy = SpyProvider()
    orch = ConversationOrchestrator(store, spy)
    with pytest.raises(ValidationError):
        orch.submit(text)
    assert store.count() == 0
    assert spy.windows == []


def test_provider_sees_pending_message_once(store: MessageStore):
    spy = SpyProvider("reply")
    orch = ConversationOrchestrator(store, spy)
    orch.submit("first")
    orch.submit("second")

    window = spy.windows[-1]
    assert window.pending == "second"
    assert window.history == ((Role.USER, "first"), (Role.ASSISTANT, "reply"))
    assert [c for _, c in window.messages()].count("second") == 1


def test_window_excludes_pending_and_stays_bounded(store: MessageStore):
    spy = SpyProvider()
    orch = ConversationOrchestrator(store, spy, ContextWindowBuilder(window_size=4))
    for i in range(6):
        orch.submit(f"q{i}")

    window = spy.windows[-1]
    assert len(window.history) == 4
    assert window.history[-1] == (Role.ASSISTANT, "ok")
    assert window.history[-2] == (Role.USER, "q4")
    assert window.pending == "q5"


def test_remote_failure_still_returns_fallback_turn(store: MessageStore):
    orch = ConversationOrchestrator(store, BrokenRemote())
    history = orch.submit("Hello")

    expected = {t.replace("{message}", "Hello") for t in FALLBACK_TEMPLATES}
    assert len(history) == 2
    assert history[-1].content in expected


def test_submit_with_reply_reports_provenance(store: MessageStore):
    orch = ConversationOrchestrator(store, FallbackProvider())
    result = orch.submit_with_reply("ping")
    assert result.reply.provenance is Provenance.FALLBACK
    assert result.messages[-1].content == result.reply.text


class SlowEchoProvider(ResponseProvider):
    """Sleeps like a remote call, then answers with a reply tied to the message."""

    def respond(self, window: ContextWindow) -> ProviderReply:
        time.sleep(0.05)
        return ProviderReply(text=f"re: {window.pending}", provenance=Provenance.REMOTE)


def test_concurrent_submissions_keep_each_pair_ordered(store: MessageStore):
    orch = ConversationOrchestrator(store, SlowEchoProvider())
    errors: list[Exception] = []

    def worker(n: int) -> None:
        try:
            orch.submit(f"msg-{n}")
        except Exception as e:  # pragma: no cover - reported below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    started = time.monotonic()
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    elapsed = time.monotonic() - started

    assert errors == []
    history = store.read_all()
    assert len(history) == 16
    assert len({t.id for t in history}) == 16

    user_ids = {t.content: t.id for t in history if t.role is Role.USER}
    for turn in history:
        if turn.role is Role.ASSISTANT:
            pending = turn.content[len("re: "):]
            assert turn.id > user_ids[pending]
    # Provider calls overlapped, so no store lock was held across them.
    assert elapsed < 8 * 0.05


def test_misconfigured_remote_still_records_fallback_turn(store: MessageStore):
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never reached
        return httpx.Response(200, json={})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    orch = ConversationOrchestrator(store, RemoteProvider("kéy“", client=client))
    history = orch.submit("Hello")

    expected = {t.replace("{message}", "Hello") for t in FALLBACK_TEMPLATES}
    assert [t.role for t in history] == [Role.USER, Role.ASSISTANT]
    assert history[-1].content in expected
