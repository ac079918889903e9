"""
Receipt Dispatch package

Serializes print jobs onto a single ESC/POS thermal printer. This module
provides the wiring:
- build_scheduler(): executor + scheduler configured from Settings
- create_app(): Flask application factory that owns one scheduler for the
  process lifetime and registers the JSON API and health blueprints
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Optional

from flask import Flask

from receipt_dispatch.core.config import Settings, get_settings
from receipt_dispatch.core.logging import configure_logging
from receipt_dispatch.printing.executor import JobExecutor
from receipt_dispatch.printing.scheduler import PrintScheduler
from receipt_dispatch.printing.transport import open_transport, usb_supported

logger = logging.getLogger(__name__)


def build_scheduler(settings: Settings, executor: Optional[JobExecutor] = None) -> PrintScheduler:
    """
    Create the process' scheduler. USB support is a soft capability: when
    pyusb is missing, USB jobs fail at open time and serial printing still works.
    """
    if not usb_supported():
        logger.warning("pyusb not available; USB printers are disabled")
    return PrintScheduler(
        executor
        or JobExecutor(
            transport_factory=partial(open_transport, write_timeout=settings.write_timeout),
            text_encoding=settings.text_encoding,
        ),
        open_failure_cooldown=settings.open_failure_cooldown,
        job_cooldown=settings.job_cooldown,
    )


def create_app(
    settings: Optional[Settings] = None,
    scheduler: Optional[PrintScheduler] = None,
    config_overrides: Optional[dict] = None,
    configure_logs: bool = True,
) -> Flask:
    """
    Application factory.

    Parameters:
    - settings: dispatcher settings; loaded from config file + env when None
    - scheduler: an existing scheduler (tests inject one with fakes)
    - config_overrides: values to inject into app.config
    - configure_logs: set up root logging (disable when embedding)

    Returns:
    - Flask app instance
    """
    if configure_logs:
        configure_logging()

    settings = settings or get_settings()
    scheduler = scheduler or build_scheduler(settings)

    app = Flask("receipt_dispatch")
    app.config["MAX_CONTENT_LENGTH"] = 256 * 1024
    app.url_map.strict_slashes = False
    app.extensions["receipt_dispatch"] = {"settings": settings, "scheduler": scheduler}

    from receipt_dispatch.web import api_bp, health_bp

    app.register_blueprint(api_bp)
    app.register_blueprint(health_bp)
    app.logger.info("Receipt Dispatch app created")

    if config_overrides:
        app.config.update(config_overrides)

    return app


__all__ = ["build_scheduler", "create_app"]
