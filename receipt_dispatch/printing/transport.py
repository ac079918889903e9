"""
Transport adapters for Receipt Dispatch.

A transport is a uniform byte channel to the printer with four operations:
open, write, drain, and close. Two adapters are provided:

- SerialTransport: USB-serial adapters and RFCOMM-bound Bluetooth ports via
  pyserial. Hardware flow control (RTS/CTS) is always enabled; printers on
  these links silently drop or garble data when the host ignores CTS.
- UsbTransport: direct USB printers via python-escpos' Usb printer class.

Targets are described by the tagged PrintTarget variant (UsbTarget or
SerialTarget) so the choice of adapter is made once, at submission time.
"""

from __future__ import annotations

import errno
import importlib.util
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

import serial
from serial.tools import list_ports

from receipt_dispatch.core.errors import (
    CloseError,
    DeviceNotOpen,
    TransportOpenError,
    TransportWriteError,
)

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 115200
DEFAULT_USB_VENDOR_ID = 0x0416
DEFAULT_USB_PRODUCT_ID = 0x5011
DEFAULT_WRITE_TIMEOUT = 10.0

DisconnectListener = Callable[["Transport", Optional[BaseException]], None]


@dataclass(frozen=True)
class UsbTarget:
    vendor_id: int = DEFAULT_USB_VENDOR_ID
    product_id: int = DEFAULT_USB_PRODUCT_ID

    kind = "usb"

    def describe(self) -> str:
        return f"usb:{self.vendor_id:04x}:{self.product_id:04x}"


@dataclass(frozen=True)
class SerialTarget:
    path: str
    baudrate: int = DEFAULT_BAUDRATE

    kind = "serial"

    def describe(self) -> str:
        return f"serial:{self.path}@{self.baudrate}"


PrintTarget = Union[UsbTarget, SerialTarget]

_SERIAL_HINTS = ("tty", "rfcomm")
_USB_ID_RE = re.compile(r"^(?:usb:)?(?:0x)?([0-9a-fA-F]{1,4}):(?:0x)?([0-9a-fA-F]{1,4})$")


def looks_like_serial(identifier: str) -> bool:
    """
    Serial port naming heuristic: COMx on Windows, /dev/tty* and /dev/rfcomm* on Unix.
    """
    return "COM" in identifier.upper() or any(h in identifier for h in _SERIAL_HINTS)


def target_from_identifier(
    identifier: Optional[str],
    baudrate: Optional[int] = None,
    *,
    default_baudrate: int = DEFAULT_BAUDRATE,
    usb_vendor_id: int = DEFAULT_USB_VENDOR_ID,
    usb_product_id: int = DEFAULT_USB_PRODUCT_ID,
) -> PrintTarget:
    """
    Build a PrintTarget for callers that only hold a device identifier string.

    Serial-looking identifiers select SerialTarget; "usb:VVVV:PPPP" (or
    "VVVV:PPPP") selects that USB device; anything else falls back to the
    configured USB vendor/product ids.
    """
    ident = (identifier or "").strip()
    if ident and looks_like_serial(ident):
        return SerialTarget(path=ident, baudrate=int(baudrate or default_baudrate))
    m = _USB_ID_RE.match(ident)
    if m:
        return UsbTarget(vendor_id=int(m.group(1), 16), product_id=int(m.group(2), 16))
    return UsbTarget(vendor_id=usb_vendor_id, product_id=usb_product_id)


def usb_supported() -> bool:
    """
    Soft capability flag: True when pyusb (python-escpos' USB backend) is importable.
    """
    return importlib.util.find_spec("usb") is not None


def _classify_open_error(exc: BaseException) -> str:
    code = getattr(exc, "errno", None)
    if code in (errno.ENOENT, errno.ENODEV, errno.ENXIO):
        return TransportOpenError.NOT_FOUND
    if code in (errno.EACCES, errno.EPERM):
        return TransportOpenError.PERMISSION_DENIED
    if code == errno.EBUSY:
        return TransportOpenError.BUSY
    # Windows and libusb report through messages and class names instead of errno
    msg = f"{type(exc).__name__} {exc}".lower()
    if "notfound" in msg or "not found" in msg or "no such" in msg or "cannot find" in msg:
        return TransportOpenError.NOT_FOUND
    if "permission" in msg or "access is denied" in msg or "access denied" in msg:
        return TransportOpenError.PERMISSION_DENIED
    if "busy" in msg or "in use" in msg:
        return TransportOpenError.BUSY
    return TransportOpenError.UNKNOWN


class Transport:
    """
    Base class for printer byte channels.

    Subclasses implement _open_device, _write, _drain, and _close_device.
    A transport owns at most one device handle; close() is idempotent.
    """

    kind = "abstract"

    def __init__(self) -> None:
        self._device: Any = None
        self._listeners: List[DisconnectListener] = []

    # Public API
    @property
    def is_open(self) -> bool:
        return self._device is not None

    def describe(self) -> str:
        return self.kind

    def add_disconnect_listener(self, listener: DisconnectListener) -> None:
        self._listeners.append(listener)

    def open(self) -> None:
        if self._device is not None:
            return
        try:
            self._device = self._open_device()
        except TransportOpenError:
            raise
        except Exception as e:
            raise TransportOpenError(
                f"Cannot open {self.describe()}: {e}",
                reason=_classify_open_error(e),
                device=self.describe(),
            ) from e
        logger.info("Opened %s", self.describe())

    def write(self, data: bytes) -> None:
        device = self._require_device()
        try:
            self._write(device, data)
        except Exception as e:
            self._handle_disconnect(e)
            raise TransportWriteError(f"Write to {self.describe()} failed: {e}") from e

    def drain(self) -> None:
        """
        Block until all previously written bytes have left the local buffer.
        """
        device = self._require_device()
        try:
            self._drain(device)
        except Exception as e:
            self._handle_disconnect(e)
            raise TransportWriteError(f"Drain on {self.describe()} failed: {e}") from e

    def close(self) -> None:
        """
        Drain and release the device. Safe to call when closed or never opened.
        """
        device, self._device = self._device, None
        if device is None:
            return
        try:
            self._close_device(device)
        except Exception as e:
            raise CloseError(f"Close of {self.describe()} failed: {e}") from e
        logger.info("Closed %s", self.describe())

    # Hooks
    def _open_device(self) -> Any:
        raise NotImplementedError

    def _write(self, device: Any, data: bytes) -> None:
        raise NotImplementedError

    def _drain(self, device: Any) -> None:
        raise NotImplementedError

    def _close_device(self, device: Any) -> None:
        raise NotImplementedError

    def _release_lost_device(self, device: Any) -> None:
        """Best-effort release of a device that already failed; errors are expected here."""

    # Internals
    def _require_device(self) -> Any:
        if self._device is None:
            raise DeviceNotOpen(f"Device not open: {self.describe()}")
        return self._device

    def _handle_disconnect(self, exc: Optional[BaseException]) -> None:
        device, self._device = self._device, None
        if device is None:
            return
        logger.warning("Lost connection to %s: %s", self.describe(), exc)
        self._release_lost_device(device)
        for listener in list(self._listeners):
            try:
                listener(self, exc)
            except Exception:
                logger.exception("Disconnect listener failed for %s", self.describe())


class SerialTransport(Transport):
    """
    pyserial-backed transport with RTS/CTS flow control always enabled.
    """

    kind = "serial"

    def __init__(self, path: str, baudrate: int = DEFAULT_BAUDRATE, write_timeout: Optional[float] = None) -> None:
        super().__init__()
        self.path = path
        self.baudrate = int(baudrate or DEFAULT_BAUDRATE)
        self.write_timeout = write_timeout

    def describe(self) -> str:
        return f"serial:{self.path}@{self.baudrate}"

    def _open_device(self) -> serial.Serial:
        logger.info("Opening serial port %s at %d baud (RTS/CTS)", self.path, self.baudrate)
        # Construct unopened so the port is only touched once fully configured
        device = serial.Serial(
            port=None,
            baudrate=self.baudrate,
            rtscts=True,
            timeout=1,
            write_timeout=self.write_timeout,
        )
        device.port = self.path
        device.open()
        return device

    def _write(self, device: serial.Serial, data: bytes) -> None:
        device.write(data)

    def _drain(self, device: serial.Serial) -> None:
        if self.write_timeout is None:
            device.flush()
            return
        # tcdrain ignores write_timeout; poll the output queue against a deadline instead
        deadline = time.monotonic() + self.write_timeout
        while device.out_waiting:
            if time.monotonic() >= deadline:
                raise serial.SerialTimeoutException(
                    f"{device.out_waiting} bytes still queued after {self.write_timeout}s (CTS held low?)"
                )
            time.sleep(0.01)

    def _close_device(self, device: serial.Serial) -> None:
        if not device.is_open:
            return
        try:
            self._drain(device)
        finally:
            device.close()

    def _release_lost_device(self, device: serial.Serial) -> None:
        try:
            device.close()
        except (serial.SerialException, OSError) as e:
            logger.debug("Ignoring close error on lost port %s: %s", self.path, e)


class UsbTransport(Transport):
    """
    Direct USB transport using python-escpos' Usb printer class as the handle.

    USB bulk writes complete synchronously, so drain() has nothing to wait for.
    """

    kind = "usb"

    def __init__(self, vendor_id: int, product_id: int, timeout: int = 0) -> None:
        super().__init__()
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.timeout = timeout

    def describe(self) -> str:
        return f"usb:{self.vendor_id:04x}:{self.product_id:04x}"

    def _open_device(self) -> Any:
        if not usb_supported():
            raise TransportOpenError(
                "USB support unavailable: install pyusb to print over USB",
                reason=TransportOpenError.UNSUPPORTED,
                device=self.describe(),
            )
        from escpos.printer import Usb

        printer = Usb(self.vendor_id, self.product_id, timeout=self.timeout)
        printer.open()
        return printer

    def _write(self, device: Any, data: bytes) -> None:
        device._raw(data)

    def _drain(self, device: Any) -> None:
        return None

    def _close_device(self, device: Any) -> None:
        device.close()

    def _release_lost_device(self, device: Any) -> None:
        try:
            device.close()
        except Exception as e:
            logger.debug("Ignoring close error on lost USB device: %s", e)


def open_transport(target: PrintTarget, write_timeout: Optional[float] = DEFAULT_WRITE_TIMEOUT) -> Transport:
    """
    Build (but do not open) the transport adapter for a target.

    write_timeout bounds serial writes and drains so a printer that never
    raises CTS fails the job instead of stalling the queue.
    """
    if isinstance(target, SerialTarget):
        return SerialTransport(target.path, baudrate=target.baudrate, write_timeout=write_timeout)
    if isinstance(target, UsbTarget):
        return UsbTransport(target.vendor_id, target.product_id)
    raise TypeError(f"Unsupported print target: {target!r}")


def list_serial_devices() -> List[Dict[str, Optional[str]]]:
    """
    Enumerate serial-like ports for selection in a UI.

    Reachability is not checked here; an unusable id only fails at open time.
    """
    devices: List[Dict[str, Optional[str]]] = []
    try:
        ports = list_ports.comports()
    except Exception as e:
        logger.error("Failed to scan serial ports: %s", e)
        return devices
    for p in sorted(ports, key=lambda p: p.device):
        desc = p.description if p.description and p.description != "n/a" else None
        devices.append({"id": p.device, "name": desc or p.device, "manufacturer": p.manufacturer})
    return devices


__all__ = [
    "DEFAULT_BAUDRATE",
    "DEFAULT_WRITE_TIMEOUT",
    "PrintTarget",
    "SerialTarget",
    "SerialTransport",
    "Transport",
    "UsbTarget",
    "UsbTransport",
    "list_serial_devices",
    "looks_like_serial",
    "open_transport",
    "target_from_identifier",
    "usb_supported",
]
