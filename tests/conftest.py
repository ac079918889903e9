# Ensure the repository root is on sys.path so `receipt_dispatch` can be imported in tests.

import sys
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional


def _ensure_repo_root_on_syspath() -> None:
    # This file lives at: <repo_root>/tests/conftest.py
    here = Path(__file__).resolve()
    repo_root = here.parent.parent
    repo_str = str(repo_root)
    if repo_str not in sys.path:
        sys.path.insert(0, repo_str)


_ensure_repo_root_on_syspath()

import pytest  # noqa: E402

from receipt_dispatch.printing.transport import Transport  # noqa: E402


class SessionTracker:
    """Counts how many fake sessions are open at once across threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.opened: List[str] = []

    def enter(self, name: str) -> None:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.opened.append(name)

    def leave(self) -> None:
        with self._lock:
            self.active -= 1


class RecordingTransport(Transport):
    """
    In-memory transport that records every open/write/drain/close.

    fail_open: exception raised from open
    fail_write_on: 1-based index of the write that raises (simulated unplug)
    fail_close: raise from the device close
    write_delay: seconds to sleep in each write (widens race windows)
    """

    kind = "fake"

    def __init__(
        self,
        name: str = "fake0",
        fail_open: Optional[BaseException] = None,
        fail_write_on: Optional[int] = None,
        fail_close: bool = False,
        write_delay: float = 0.0,
        tracker: Optional[SessionTracker] = None,
    ) -> None:
        super().__init__()
        self.name = name
        self.fail_open = fail_open
        self.fail_write_on = fail_write_on
        self.fail_close = fail_close
        self.write_delay = write_delay
        self.tracker = tracker
        self.writes: List[bytes] = []
        self.events: List[Any] = []
        self._write_calls = 0

    def describe(self) -> str:
        return f"fake:{self.name}"

    @property
    def output(self) -> bytes:
        return b"".join(self.writes)

    def close(self) -> None:
        self.events.append("close_called")
        super().close()

    def _open_device(self) -> Any:
        if self.fail_open is not None:
            raise self.fail_open
        if self.tracker is not None:
            self.tracker.enter(self.name)
        self.events.append("open")
        return object()

    def _write(self, device: Any, data: bytes) -> None:
        self._write_calls += 1
        if self.fail_write_on is not None and self._write_calls >= self.fail_write_on:
            raise OSError("device unplugged")
        if self.write_delay:
            time.sleep(self.write_delay)
        self.writes.append(data)
        self.events.append(("write", data))

    def _drain(self, device: Any) -> None:
        self.events.append("drain")

    def _close_device(self, device: Any) -> None:
        self.events.append("close")
        if self.tracker is not None:
            self.tracker.leave()
        if self.fail_close:
            raise OSError("close failed")

    def _release_lost_device(self, device: Any) -> None:
        self.events.append("released")
        if self.tracker is not None:
            self.tracker.leave()


class TransportFactory:
    """Hands out RecordingTransports, remembering each one by target."""

    def __init__(self, **defaults: Any) -> None:
        self.defaults = defaults
        self.per_target: Dict[Any, Dict[str, Any]] = {}
        self.created: List[RecordingTransport] = []

    def __call__(self, target) -> RecordingTransport:
        opts = dict(self.defaults)
        opts.update(self.per_target.get(target, {}))
        t = RecordingTransport(name=target.describe(), **opts)
        self.created.append(t)
        return t


@pytest.fixture
def transport_factory() -> TransportFactory:
    return TransportFactory()


@pytest.fixture
def sleeps() -> List[float]:
    """Cooldown delays requested by a scheduler built with sleep=sleeps.append."""
    return []
