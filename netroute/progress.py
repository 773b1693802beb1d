"""Transfer progress tracking for HTTP requests and responses."""

from __future__ import annotations

import math
import time
from typing import Callable

UNKNOWN_CONTENT_LENGTH = -1


class Progress:
    """Tracks how many bytes of a transfer have moved and how fast."""

    UNKNOWN_CONTENT_LENGTH = UNKNOWN_CONTENT_LENGTH

    def __init__(
        self,
        total_bytes: int = UNKNOWN_CONTENT_LENGTH,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._total_bytes = total_bytes
        self._total_bytes_transferred = 0
        now = clock()
        self._start_time = now
        self._last_update_time = now

    @property
    def total_bytes(self) -> int:
        """The expected size of the transfer, or UNKNOWN_CONTENT_LENGTH."""
        return self._total_bytes

    @total_bytes.setter
    def total_bytes(self, value: int) -> None:
        self._start_time = self._clock()
        self._total_bytes = value

    @property
    def total_bytes_transferred(self) -> int:
        """The number of bytes transferred so far."""
        return self._total_bytes_transferred

    @total_bytes_transferred.setter
    def total_bytes_transferred(self, value: int) -> None:
        self._last_update_time = self._clock()
        self._total_bytes_transferred = value

    @property
    def start_time(self) -> float:
        """Clock reading when the transfer (re)started."""
        return self._start_time

    @property
    def last_update_time(self) -> float:
        """Clock reading of the last transferred-bytes update."""
        return self._last_update_time

    def progress(self) -> float:
        """Fraction complete, 1.0 for empty transfers, -1.0 if the size is unknown."""
        if self._total_bytes == 0:
            return 1.0
        if self._total_bytes > 0:
            return float(self._total_bytes_transferred) / float(self._total_bytes)
        return float(UNKNOWN_CONTENT_LENGTH)

    def bytes_per_second(self) -> float:
        """Average transfer rate since the start time."""
        elapsed = self._clock() - self._start_time
        if elapsed <= 0:
            return 0.0 if self._total_bytes_transferred == 0 else math.inf
        return self._total_bytes_transferred / elapsed