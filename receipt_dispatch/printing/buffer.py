"""
Output buffer that batches encoded ESC/POS bytes between physical writes.
"""

from __future__ import annotations

import logging
import threading

from receipt_dispatch.printing.transport import Transport

logger = logging.getLogger(__name__)


class OutputBuffer:
    """
    Append-only byte accumulator scoped to one transport session.

    write() never touches the device; flush_to() is the only path to a
    transport write, so one command is never split across two writes.
    """

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self._lock = threading.Lock()

    def write(self, data: bytes) -> None:
        if data:
            with self._lock:
                self._chunks.append(bytes(data))

    def flush(self) -> bytes:
        """
        Remove and return everything accumulated so far, leaving the buffer empty.
        """
        with self._lock:
            data = b"".join(self._chunks)
            self._chunks = []
        return data

    def flush_to(self, transport: Transport, drain: bool = False) -> int:
        """
        Flush into a single transport write, optionally waiting for the device
        to drain. Returns the number of bytes written.
        """
        data = self.flush()
        if data:
            transport.write(data)
            logger.debug("Flushed %d bytes to %s", len(data), transport.describe())
        if drain:
            transport.drain()
        return len(data)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(c) for c in self._chunks)


__all__ = ["OutputBuffer"]
