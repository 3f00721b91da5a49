"""Bounded text buffer holding normalized terminal output for matching."""

import re
from threading import Lock
from typing import Callable, Optional


class TextBuffer:
    """Thread-safe bounded FIFO buffer of escape-stripped text.

    When the buffer exceeds max_size characters, the oldest characters
    are evicted first.
    """

    def __init__(self, max_size: int = 4096):
        """Initialize the buffer.

        Args:
            max_size: Maximum number of characters kept (default 4096).
        """
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._text = ""
        self._evicted = 0
        self._lock = Lock()

    @property
    def max_size(self) -> int:
        """Maximum number of characters kept."""
        return self._max_size

    @property
    def evicted(self) -> int:
        """Total number of characters dropped by eviction."""
        with self._lock:
            return self._evicted

    @property
    def text(self) -> str:
        """Current buffer contents."""
        with self._lock:
            return self._text

    def __len__(self) -> int:
        with self._lock:
            return len(self._text)

    def append(self, text: str) -> int:
        """Append text, evicting the oldest content if over the limit.

        Args:
            text: Normalized text to append.

        Returns:
            Number of characters evicted by this append.
        """
        if not text:
            return 0
        with self._lock:
            combined = self._text + text
            overflow = len(combined) - self._max_size
            if overflow > 0:
                combined = combined[overflow:]
                self._evicted += overflow
            else:
                overflow = 0
            self._text = combined
            return overflow

    def consume_match(
        self, search: Callable[[str], Optional[re.Match]]
    ) -> Optional[re.Match]:
        """Search the contents and remove the matched span atomically.

        The lock is held across search and removal so a concurrent append
        cannot shift the span between the two.

        Args:
            search: Called with the current text; returns a match or None.

        Returns:
            The match (offsets refer to the text before removal), or None.
        """
        with self._lock:
            match = search(self._text)
            if match is not None:
                self._text = self._text[:match.start()] + self._text[match.end():]
            return match

    def clear(self) -> None:
        """Clear the buffer."""
        with self._lock:
            self._text = ""
