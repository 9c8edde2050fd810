"""
Bounded undo/redo history of full-buffer snapshots.
"""

from typing import List, Optional

import numpy as np

from .config import HistoryConfig
from .logger import LoggerMixin
from .raster import RasterBuffer


class HistoryManager(LoggerMixin):
    """
    Linear undo/redo stack.

    Entry 0 is the oldest retained state; ``index`` points at the entry that
    matches the live buffer. Pushing after an undo discards the redo branch.
    """

    def __init__(self, buffer: RasterBuffer, config: Optional[HistoryConfig] = None):
        """
        Initialize history.

        Args:
            buffer: Live buffer restored on undo/redo
            config: History configuration
        """
        self.buffer = buffer
        self.config = config or HistoryConfig()
        if self.config.max_entries < 1:
            raise ValueError("History must keep at least one entry")
        self._entries: List[np.ndarray] = []
        self._index = -1

    @property
    def index(self) -> int:
        return self._index

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def push(self, snapshot: Optional[np.ndarray] = None) -> None:
        """
        Record a new state.

        Args:
            snapshot: State to record; a copy of the live buffer when omitted
        """
        if snapshot is None:
            snapshot = self.buffer.snapshot()
        else:
            snapshot = snapshot.copy()

        # New edit: drop the redo branch
        if self._index < len(self._entries) - 1:
            del self._entries[self._index + 1:]

        self._entries.append(snapshot)
        self._index = len(self._entries) - 1

        if len(self._entries) > self.config.max_entries:
            self._entries.pop(0)
            self._index -= 1
            self.log_debug("History full, evicted oldest entry")

        self.log_debug(f"History push: index={self._index}, entries={len(self._entries)}")

    def undo(self) -> bool:
        """Step back one state. Returns False if already at the oldest entry."""
        if not self.can_undo:
            return False
        self._index -= 1
        self.buffer.restore(self._entries[self._index])
        self.log_debug(f"Undo to index {self._index}")
        return True

    def redo(self) -> bool:
        """Step forward one state. Returns False if already at the newest entry."""
        if not self.can_redo:
            return False
        self._index += 1
        self.buffer.restore(self._entries[self._index])
        self.log_debug(f"Redo to index {self._index}")
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._index = -1
