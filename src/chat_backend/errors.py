"""Error types shared by the store, providers and HTTP layer."""
from __future__ import annotations


class ChatBackendError(Exception):
    """Base class for errors raised by the chat backend."""


class ValidationError(ChatBackendError):
    """A submitted message was empty or blank. Raised before any write."""


class PersistenceError(ChatBackendError):
    """The message store could not read or write the conversation log."""


class ProviderFailure(ChatBackendError):
    """The remote provider could not produce a reply.

    Never leaves :mod:`chat_backend.llm`; the remote provider catches it and
    answers from the fallback instead.
    """
