"""
Rolling log capture for supervised phases.

Each phase (preflight, main service) gets one RollingLogBuffer that keeps the
most recent output of its subprocess. The buffer is bounded in bytes and
drops the oldest bytes first, so the tail of a crash log is always kept.

Usage:
    from gateway_supervisor.log_buffer import RollingLogBuffer

    buffer = RollingLogBuffer(max_bytes=200 * 1024)
    buffer.append(b"starting...\\n")
    print(buffer.snapshot())
"""

from __future__ import annotations

from typing import Union

NO_OUTPUT_PLACEHOLDER = "no output captured"

DEFAULT_MAX_LOG_BYTES = 200 * 1024


class RollingLogBuffer:
    """Append-only byte buffer with tail retention.

    Only ever touched from the event loop thread (stream pump tasks append,
    request handlers read), so no locking is needed.
    """

    def __init__(self, max_bytes: int = DEFAULT_MAX_LOG_BYTES) -> None:
        if max_bytes <= 0:
            raise ValueError(f"max_bytes must be positive, got {max_bytes}")
        self._max_bytes = max_bytes
        self._content = bytearray()

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def append(self, chunk: Union[bytes, bytearray, str]) -> None:
        """Append a chunk, then trim from the front down to max_bytes."""
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        if not chunk:
            return

        self._content += chunk
        overflow = len(self._content) - self._max_bytes
        if overflow > 0:
            del self._content[:overflow]

    def snapshot(self) -> str:
        """Return the captured text, or a placeholder when nothing arrived."""
        if not self._content:
            return NO_OUTPUT_PLACEHOLDER
        # Tail retention can cut a multi-byte character in half
        return self._content.decode("utf-8", errors="replace")

    def raw(self) -> bytes:
        return bytes(self._content)

    def __len__(self) -> int:
        return len(self._content)

    def __repr__(self) -> str:
        return f"RollingLogBuffer(size={len(self._content)}, max_bytes={self._max_bytes})"
