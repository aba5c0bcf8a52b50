"""Bounded prompt context built from the tail of the conversation log."""
from __future__ import annotations

from typing import Sequence

from .models import ContextWindow, Turn

DEFAULT_WINDOW_SIZE = 10


class ContextWindowBuilder:
    """Stateless: same history, message and size always give the same window."""

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE) -> None:
        self.window_size = max(0, int(window_size))

    def build(
        self,
        history: Sequence[Turn],
        current_message: str,
        window_size: int | None = None,
    ) -> ContextWindow:
        """Take the last ``window_size`` turns and queue ``current_message``.

        ``history`` must already exclude the pending message; it is never
        mutated.
        """
        size = self.window_size if window_size is None else max(0, int(window_size))
        recent = list(history)[-size:] if size else []
        return ContextWindow(
            history=tuple((t.role, t.content) for t in recent),
            pending=current_message,
        )
