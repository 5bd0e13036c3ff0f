"""
Thread-safe ring buffer of outbound API calls.

The HTTP client appends one entry per request (and the SSH runner one per
session); the debug view reads a copy of the buffer while rendering.

Architecture:
- DebugLogEntry: immutable record of one exchange
- DebugLogger: fixed-capacity FIFO guarded by a Lock
"""

import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_CAPACITY = 100


@dataclass(frozen=True)
class DebugLogEntry:
    """One recorded request/response exchange."""
    method: str
    url: str
    query_string: str = ""
    status_code: Optional[int] = None
    request_id: str = ""
    duration: float = 0.0  # seconds
    error: str = ""
    timestamp: float = field(default_factory=time.time)

    def format(self) -> str:
        clock = time.strftime("%H:%M:%S", time.localtime(self.timestamp))
        target = self.url
        if self.query_string:
            target = f"{target}?{self.query_string}"
        status = "ERR" if self.error or self.status_code is None else str(self.status_code)
        request_id = self.request_id or "-"
        line = (
            f"[{clock}] {self.method} {target} → {status} "
            f"({self.duration * 1000:.0f}ms) RequestID: {request_id}"
        )
        if self.error:
            line += f" Error: {self.error}"
        return line


class DebugLogger:
    """Fixed-capacity log of API calls, oldest entries evicted first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: List[DebugLogEntry] = []
        self._lock = threading.Lock()

    def add_entry(self, entry: DebugLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)
            overflow = len(self._entries) - self.capacity
            if overflow > 0:
                del self._entries[:overflow]

    def get_entries(self) -> List[DebugLogEntry]:
        """Return a copy so callers can iterate without holding the lock."""
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
