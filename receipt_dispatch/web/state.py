"""
Access to the per-app dispatcher objects stored in app.extensions.
"""

from __future__ import annotations

from flask import current_app

from receipt_dispatch.core.config import Settings
from receipt_dispatch.printing.scheduler import PrintScheduler

EXTENSION_KEY = "receipt_dispatch"


def get_scheduler() -> PrintScheduler:
    return current_app.extensions[EXTENSION_KEY]["scheduler"]


def get_settings() -> Settings:
    return current_app.extensions[EXTENSION_KEY]["settings"]
