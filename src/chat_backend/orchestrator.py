"""Submit-message pipeline: persist, build context, reply, persist, return."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from .context import ContextWindowBuilder
from .errors import ValidationError
from .llm import ResponseProvider
from .models import ProviderReply, Role, Turn
from .store import MessageStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmitResult:
    messages: List[Turn]
    reply: ProviderReply


class ConversationOrchestrator:
    def __init__(
        self,
        store: MessageStore,
        provider: ResponseProvider,
        builder: ContextWindowBuilder | None = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.builder = builder or ContextWindowBuilder()

    def submit(self, message_text: str) -> List[Turn]:
        """Return the full history after recording ``message_text`` and its reply."""
        return self.submit_with_reply(message_text).messages

    def submit_with_reply(self, message_text: str) -> SubmitResult:
        if not isinstance(message_text, str) or not message_text.strip():
            raise ValidationError("Message is required")

        user_id = self.store.append(Role.USER, message_text)

        # The provider gets the pending message once, via build(); drop our own
        # user turn from the history it sees. One extra row covers that drop.
        tail = self.store.read_last(self.builder.window_size + 1)
        prior = [t for t in tail if t.id != user_id]
        window = self.builder.build(prior, message_text)

        # No store lock is held while the provider runs.
        reply = self.provider.respond(window)
        logger.debug("Reply for turn %d from %s provider", user_id, reply.provenance.value)

        self.store.append(Role.ASSISTANT, reply.text)
        return SubmitResult(messages=self.store.read_all(), reply=reply)
