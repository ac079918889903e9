from __future__ import annotations

"""
Health endpoints for Receipt Dispatch.

This blueprint exposes `/healthz`, reporting:
- Overall status ("ok" or "degraded")
- Scheduler state: idle/busy, current job, queue size, counters
- USB capability (pyusb importable)

The printer itself is not probed: opening it here would contend with the
job currently holding the device.
"""

from typing import Any, Dict

from flask import Blueprint

from receipt_dispatch.printing.transport import usb_supported
from .state import get_scheduler

health_bp = Blueprint("health", __name__)


@health_bp.get("/healthz")
def healthz():
    status: Dict[str, Any] = {"status": "ok"}
    sched = get_scheduler().state()
    status.update(sched)
    status["usb_supported"] = usb_supported()
    if not sched.get("accepting", True):
        status["status"] = "degraded"
        status["reason"] = "scheduler_shutdown"
    return status, 200
