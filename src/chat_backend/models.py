"""Value types passed between the store, window builder and providers."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Tuple


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Provenance(str, Enum):
    REMOTE = "remote"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Turn:
    """One persisted chat message. Created by :class:`MessageStore` only."""

    id: int
    role: Role
    content: str
    timestamp: str  # ISO-8601, UTC

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ContextWindow:
    """Recent (role, content) pairs plus the pending user message."""

    history: Tuple[Tuple[Role, str], ...]
    pending: str

    def messages(self) -> Tuple[Tuple[Role, str], ...]:
        """All entries oldest-first, the pending user turn last."""
        return self.history + ((Role.USER, self.pending),)


@dataclass(frozen=True)
class ProviderReply:
    text: str
    provenance: Provenance
