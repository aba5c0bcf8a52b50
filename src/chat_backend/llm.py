"""Reply providers: a remote Gemini client that degrades to a local fallback."""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .config import Settings
from .errors import ProviderFailure
from .models import ContextWindow, Provenance, ProviderReply, Role

logger = logging.getLogger(__name__)


# -----------------------------
# Types & defaults
# -----------------------------

@dataclass(frozen=True)
class GenerationConfig:
    max_output_tokens: int = 500
    temperature: float = 0.7

    def to_request(self) -> Dict[str, Any]:
        return {"temperature": self.temperature, "maxOutputTokens": self.max_output_tokens}


FALLBACK_TEMPLATES: Sequence[str] = (
    'I received your message: "{message}". This is a mock response since no AI API key is configured.',
    'That\'s interesting! You said: "{message}". Please configure your AI API key for real responses.',
    'Thanks for your message about "{message}". I\'m currently in demo mode - set GEMINI_API_KEY to enable real AI responses.',
)

_SPEAKER = {Role.USER: "User", Role.ASSISTANT: "Assistant"}


def render_transcript(window: ContextWindow) -> str:
    """Render the window as a plain transcript ending with an assistant cue."""
    lines: List[str] = []
    for role, content in window.messages():
        lines.append(f"{_SPEAKER[role]}: {content}")
    lines.append("Assistant:")
    return "\n".join(lines)


# -----------------------------
# Providers
# -----------------------------

class ResponseProvider(ABC):
    """Turns a context window into a reply."""

    @property
    def kind(self) -> Provenance:
        """Where replies from this provider normally come from."""
        return Provenance.REMOTE

    @abstractmethod
    def respond(self, window: ContextWindow) -> ProviderReply:
        ...


class FallbackProvider(ResponseProvider):
    """Offline acknowledgement generator. Never fails."""

    def __init__(
        self,
        templates: Sequence[str] = FALLBACK_TEMPLATES,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not templates:
            raise ValueError("FallbackProvider needs at least one template")
        self.templates = tuple(templates)
        self._rng = rng or random.Random()

    @property
    def kind(self) -> Provenance:
        return Provenance.FALLBACK

    def respond(self, window: ContextWindow) -> ProviderReply:
        template = self._rng.choice(self.templates)
        return ProviderReply(
            text=template.replace("{message}", window.pending),
            provenance=Provenance.FALLBACK,
        )


class RemoteProvider(ResponseProvider):
    """Gemini ``generateContent`` client.

    One POST per call, no retries. Any failure (no key, unusable key or URL,
    non-2xx status, unexpected body, timeout, connection error) is logged and answered by
    ``fallback`` so callers only ever see a :class:`ProviderReply`.
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "gemini-pro",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30.0,
        generation: Optional[GenerationConfig] = None,
        fallback: Optional[FallbackProvider] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout)
        self.generation = generation or GenerationConfig()
        self.fallback = fallback or FallbackProvider()
        # Injected clients are owned by the caller.
        self._client = client

    @property
    def kind(self) -> Provenance:
        return Provenance.REMOTE if self.api_key else Provenance.FALLBACK

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def respond(self, window: ContextWindow) -> ProviderReply:
        try:
            text = self._generate(window)
        except ProviderFailure as e:
            logger.warning("Remote provider failed, using fallback reply: %s", e)
            return self.fallback.respond(window)
        return ProviderReply(text=text, provenance=Provenance.REMOTE)

    # -------------------------
    # Internals
    # -------------------------
    def build_payload(self, window: ContextWindow) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": render_transcript(window)}]}],
            "generationConfig": self.generation.to_request(),
        }

    def _generate(self, window: ContextWindow) -> str:
        if not self.api_key:
            raise ProviderFailure("no API key configured")

        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}
        payload = self.build_payload(window)
        try:
            if self._client is not None:
                r = self._client.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    r = client.post(self.endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderFailure(f"request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderFailure(f"transport error: {e.__class__.__name__}: {e}") from e
        except (httpx.InvalidURL, UnicodeError, ValueError) as e:
            # Bad base_url, or a key httpx cannot put in a header.
            raise ProviderFailure(f"invalid request: {e.__class__.__name__}") from e

        if not r.is_success:
            logger.error("Gemini API error %s: %s", r.status_code, r.text[:500])
            raise ProviderFailure(f"Gemini API returned status {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            raise ProviderFailure("reply body is not JSON") from e
        return self._extract_text(data)

    @staticmethod
    def _extract_text(data: Any) -> str:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderFailure("Invalid response format from Gemini API") from e
        if not isinstance(text, str) or not text.strip():
            raise ProviderFailure("Gemini API returned an empty reply")
        return text


# -----------------------------
# Convenience factory
# -----------------------------

def create_from_settings(
    settings: Settings,
    *,
    client: Optional[httpx.Client] = None,
) -> ResponseProvider:
    """Pick the provider once: remote when a key is set, otherwise fallback."""
    fallback = FallbackProvider()
    if not settings.has_credentials:
        logger.warning("No GEMINI_API_KEY found. Using fallback AI responses.")
        return fallback
    logger.info("Using Gemini model %s", settings.model)
    return RemoteProvider(
        settings.api_key,
        model=settings.model,
        base_url=settings.provider_base_url,
        timeout=settings.provider_timeout,
        generation=GenerationConfig(
            max_output_tokens=settings.max_output_tokens,
            temperature=settings.temperature,
        ),
        fallback=fallback,
        client=client,
    )
