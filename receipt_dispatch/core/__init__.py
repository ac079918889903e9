"""
Core utilities for Receipt Dispatch.

This package groups helpers used across the dispatcher:
- config: config path resolution, JSON load/save, merged Settings
- logging: job-id aware logging filter/formatters and root logger config
- errors: the print pipeline's exception taxonomy
"""

from .config import (
    Settings,
    default_config_path,
    get_config_path,
    get_settings,
    load_config,
    save_config,
    write_default_config,
)
from .errors import (
    CloseError,
    DeviceNotOpen,
    EncodingError,
    ImageLoadError,
    PrintError,
    TransportError,
    TransportOpenError,
    TransportWriteError,
)
from .logging import JobIdFilter, JsonFormatter, configure_logging, job_context

__all__ = [
    # config
    "Settings",
    "default_config_path",
    "get_config_path",
    "get_settings",
    "load_config",
    "save_config",
    "write_default_config",
    # errors
    "CloseError",
    "DeviceNotOpen",
    "EncodingError",
    "ImageLoadError",
    "PrintError",
    "TransportError",
    "TransportOpenError",
    "TransportWriteError",
    # logging
    "JobIdFilter",
    "JsonFormatter",
    "configure_logging",
    "job_context",
]
