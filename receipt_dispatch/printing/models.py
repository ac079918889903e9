"""
Job and result types shared by the executor, scheduler, and web layer.
"""

from __future__ import annotations

import uuid
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from receipt_dispatch.printing.receipt import ReceiptContent
from receipt_dispatch.printing.transport import PrintTarget


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PrintMode(str, Enum):
    SIMPLE = "simple"
    FULL = "full"


class JobState(str, Enum):
    QUEUED = "queued"
    OPENING = "opening"
    RENDERING = "rendering"
    COMPLETING = "completing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class JobResult:
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    # False when the device never opened; the scheduler uses a shorter cooldown then
    opened: bool = True

    @classmethod
    def ok(cls, message: str) -> "JobResult":
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, error: str, opened: bool = True) -> "JobResult":
        return cls(success=False, error=error, opened=opened)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.success:
            if self.message:
                out["message"] = self.message
        else:
            out["error"] = self.error or "unknown error"
        return out


@dataclass(frozen=True)
class PrintJob:
    """
    One print request. Immutable once enqueued; `future` is the completion
    handle and resolves with a JobResult exactly once.
    """

    target: PrintTarget
    mode: PrintMode = PrintMode.FULL
    content: ReceiptContent = field(default_factory=ReceiptContent)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=_utc_now_iso)
    future: "Future[JobResult]" = field(default_factory=Future, compare=False, repr=False)

    def describe(self) -> str:
        return f"{self.id} ({self.mode.value} -> {self.target.describe()})"


__all__ = ["JobResult", "JobState", "PrintJob", "PrintMode"]
