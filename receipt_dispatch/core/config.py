"""
Config utilities for Receipt Dispatch.

Responsibilities:
- Resolve the config path with environment and XDG support
- Provide JSON load/save helpers for the dispatcher's config file
- Merge defaults, the config file, and RECEIPT_DISPATCH_* environment
  overrides into a validated Settings object
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "RECEIPT_DISPATCH_"

# Widest raster a 58mm head can take; wider logos are clamped to this.
MAX_LOGO_WIDTH = 384


def default_config_path() -> str:
    """
    Resolve the default config path using:
    1) $XDG_CONFIG_HOME/receipt-dispatch/config.json
    2) ~/.config/receipt-dispatch/config.json
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return str(Path(xdg) / "receipt-dispatch" / "config.json")
    return str(Path.home() / ".config" / "receipt-dispatch" / "config.json")


def get_config_path() -> str:
    """
    Return the config path honoring RECEIPT_DISPATCH_CONFIG_PATH override.
    """
    return os.environ.get(ENV_PREFIX + "CONFIG_PATH", default_config_path())


def load_config(path: Optional[str] = None) -> Optional[dict[str, Any]]:
    """
    Load the JSON config if it exists; return None if missing.

    Raises:
        json.JSONDecodeError if the file exists but contains invalid JSON.
        OSError for I/O errors other than missing file.
    """
    cfg_path = Path(path or get_config_path())
    if not cfg_path.exists():
        return None
    with cfg_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_config(data: dict[str, Any], path: Optional[str] = None) -> None:
    """
    Save the JSON config, creating parent directories as needed.

    Writes atomically by using a temporary file and os.replace().
    Raises OSError on I/O failures.
    """
    cfg_path = Path(path or get_config_path())
    cfg_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = cfg_path.with_suffix(cfg_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, cfg_path)


class Settings(BaseModel):
    """Runtime settings for the dispatcher."""

    default_baudrate: int = Field(default=115200, gt=0)
    open_failure_cooldown: float = Field(default=0.5, ge=0)
    job_cooldown: float = Field(default=1.0, ge=0)
    print_timeout: float = Field(default=120.0, gt=0)
    write_timeout: Optional[float] = Field(default=10.0, gt=0)

    usb_vendor_id: int = 0x0416
    usb_product_id: int = 0x5011

    text_encoding: str = "cp437"
    logo_path: Optional[str] = None
    logo_width: int = Field(default=300, gt=0)

    header_text: str = "=== RECEIPT ==="
    items: List[Tuple[str, Union[int, float]]] = Field(default_factory=list)
    barcode_payload: Optional[str] = None
    barcode_symbology: str = "EAN13"
    qr_payload: Optional[str] = None
    footer_text: str = "--- THANK YOU ---"

    @field_validator("usb_vendor_id", "usb_product_id", mode="before")
    @classmethod
    def _hex_ids(cls, v: Any) -> Any:
        # Accept "0x0416" style strings as found in hand-written config files
        if isinstance(v, str):
            return int(v, 16) if v.lower().startswith("0x") else int(v)
        return v

    @field_validator("logo_width")
    @classmethod
    def _clamp_logo_width(cls, v: int) -> int:
        return min(v, MAX_LOGO_WIDTH)

    @field_validator("text_encoding")
    @classmethod
    def _known_encoding(cls, v: str) -> str:
        import codecs

        try:
            codecs.lookup(v)
        except LookupError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def _encodable_defaults(self) -> "Settings":
        from receipt_dispatch.core.errors import EncodingError
        from receipt_dispatch.printing import commands

        try:
            if self.barcode_payload:
                commands.barcode(self.barcode_payload, self.barcode_symbology)
            if self.qr_payload:
                commands.qr_native(self.qr_payload)
        except EncodingError as e:
            raise ValueError(str(e)) from e
        return self


_ENV_KEYS: Dict[str, str] = {
    "DEFAULT_BAUDRATE": "default_baudrate",
    "OPEN_FAILURE_COOLDOWN": "open_failure_cooldown",
    "JOB_COOLDOWN": "job_cooldown",
    "PRINT_TIMEOUT": "print_timeout",
    "WRITE_TIMEOUT": "write_timeout",
    "USB_VENDOR_ID": "usb_vendor_id",
    "USB_PRODUCT_ID": "usb_product_id",
    "TEXT_ENCODING": "text_encoding",
    "LOGO_PATH": "logo_path",
    "LOGO_WIDTH": "logo_width",
    "HEADER_TEXT": "header_text",
    "BARCODE_PAYLOAD": "barcode_payload",
    "BARCODE_SYMBOLOGY": "barcode_symbology",
    "QR_PAYLOAD": "qr_payload",
    "FOOTER_TEXT": "footer_text",
}


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for suffix, key in _ENV_KEYS.items():
        val = environ.get(ENV_PREFIX + suffix)
        if val is not None and val != "":
            out[key] = val
    return out


def write_default_config(path: Optional[str] = None, overwrite: bool = False) -> str:
    """
    Write a config file holding every Settings default, for hand editing.

    Leaves an existing file untouched unless overwrite is set. Returns the path.
    """
    cfg_path = path or get_config_path()
    if Path(cfg_path).exists() and not overwrite:
        return cfg_path
    save_config(Settings().model_dump(mode="json"), path=cfg_path)
    return cfg_path


def get_settings(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from defaults, then the JSON config file, then environment.

    Raises pydantic.ValidationError when a value cannot be coerced.
    """
    merged: Dict[str, Any] = {}
    cfg = load_config(path)
    if cfg:
        merged.update(cfg)
    merged.update(_env_overrides(os.environ if environ is None else environ))
    return Settings.model_validate(merged)


__all__ = [
    "ENV_PREFIX",
    "MAX_LOGO_WIDTH",
    "Settings",
    "default_config_path",
    "get_config_path",
    "get_settings",
    "load_config",
    "save_config",
    "write_default_config",
]
