"""
ESC/POS command encoding for Receipt Dispatch.

Pure functions that turn printing intents into the exact byte sequences the
printer expects. Nothing here performs I/O; callers write the returned bytes
into an OutputBuffer.

Three subprotocols are encoded by hand because their bytes are part of the
wire contract with the printer:
- GS v 0 raster images
- GS k barcodes (function A, NUL terminated)
- GS ( k native QR codes (model 2)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from escpos.constants import ESC, GS, HW_INIT, PAPER_FULL_CUT, PAPER_PART_CUT

from receipt_dispatch.core.errors import EncodingError

LF = b"\n"

RASTER_HEADER = GS + b"v0\x00"  # 1D 76 30 00, normal density

_ALIGN: Dict[str, bytes] = {
    "left": ESC + b"a\x00",
    "center": ESC + b"a\x01",
    "right": ESC + b"a\x02",
}

# GS ( k function block prefix
QR_PREFIX = GS + b"(k"
QR_MAX_PAYLOAD = 7089
QR_ERROR_CORRECTION: Dict[str, int] = {"L": 0x30, "M": 0x31, "Q": 0x32, "H": 0x33}

# GS k m values for function A symbologies
BARCODE_TYPES: Dict[str, int] = {
    "UPC-A": 0,
    "EAN13": 2,
    "EAN8": 3,
    "CODE39": 4,
}

_CODE39_CHARS = set("0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ -.$/+%")


def split_u16(value: int) -> bytes:
    """
    Split a 16-bit value into (value mod 256, value div 256), low byte first.
    """
    if not 0 <= value <= 0xFFFF:
        raise EncodingError(f"value {value} does not fit in two bytes")
    return bytes([value % 256, value // 256])


def initialize() -> bytes:
    return HW_INIT


def align(position: str) -> bytes:
    try:
        return _ALIGN[position]
    except KeyError:
        raise EncodingError(f"unknown alignment: {position!r}") from None


def feed(lines: int = 1) -> bytes:
    if lines < 0:
        raise EncodingError("feed lines must be >= 0")
    return LF * lines


def text(content: str, encoding: str = "cp437") -> bytes:
    """
    Encode a text run followed by a line feed.

    No length limit is applied; the printer firmware wraps long lines.
    Characters missing from the code page are replaced with '?'.
    """
    return content.encode(encoding, errors="replace") + LF


def cut(partial: bool = False) -> bytes:
    return PAPER_PART_CUT if partial else PAPER_FULL_CUT


@dataclass(frozen=True)
class Raster:
    """
    Packed monochrome pixel data ready for GS v 0.

    width is the row width in bytes (8 dots per byte, MSB first), height is
    the number of dot rows, and data holds width * height bytes.
    """

    width: int
    height: int
    data: bytes


def raster_image(raster: Raster) -> bytes:
    """
    Encode a raster image: header, xL xH yL yH, then the pixel bytes verbatim.

    The encoder never resizes; callers reduce the image to a print-safe width first.
    """
    if raster.width <= 0 or raster.height <= 0:
        raise EncodingError("raster dimensions must be positive")
    if len(raster.data) != raster.width * raster.height:
        raise EncodingError(
            f"raster data length {len(raster.data)} != {raster.width} x {raster.height}",
        )
    return RASTER_HEADER + split_u16(raster.width) + split_u16(raster.height) + bytes(raster.data)


def _ean_check_digit(digits: str) -> int:
    # Weights alternate 3,1 starting from the rightmost data digit
    total = sum(int(d) * (3 if i % 2 == 0 else 1) for i, d in enumerate(reversed(digits)))
    return (10 - total % 10) % 10


def _validate_barcode(payload: str, symbology: str) -> str:
    if symbology in ("EAN13", "EAN8", "UPC-A"):
        data_len = {"EAN13": 12, "EAN8": 7, "UPC-A": 11}[symbology]
        if not payload.isdigit() or len(payload) not in (data_len, data_len + 1):
            raise EncodingError(f"{symbology} needs {data_len} or {data_len + 1} digits, got {payload!r}")
        if len(payload) == data_len + 1:
            if _ean_check_digit(payload[:-1]) != int(payload[-1]):
                raise EncodingError(f"{symbology} check digit mismatch in {payload!r}")
            # The printer computes the check digit itself
            payload = payload[:-1]
        return payload
    if symbology == "CODE39":
        if not payload or not set(payload) <= _CODE39_CHARS:
            raise EncodingError(f"CODE39 payload has unsupported characters: {payload!r}")
        if len(payload) > 255:
            raise EncodingError("CODE39 payload too long")
        return payload
    raise EncodingError(f"unsupported barcode symbology: {symbology!r}")


def barcode(payload: str, symbology: str = "EAN13", width: int = 2, height: int = 50) -> bytes:
    """
    Encode a barcode with human-readable text printed below it.

    width is the module width multiplier (2..6), height the bar height in dots (1..255).
    """
    symbology = symbology.upper()
    if symbology not in BARCODE_TYPES:
        raise EncodingError(f"unsupported barcode symbology: {symbology!r}")
    if not 2 <= width <= 6:
        raise EncodingError("barcode width must be between 2 and 6")
    if not 1 <= height <= 255:
        raise EncodingError("barcode height must be between 1 and 255")
    data = _validate_barcode(payload, symbology)

    return (
        GS + b"h" + bytes([height])
        + GS + b"w" + bytes([width])
        + GS + b"H\x02"
        + GS + b"k" + bytes([BARCODE_TYPES[symbology]])
        + data.encode("ascii")
        + b"\x00"
    )


def qr_native(payload: str, module_size: int = 6, error_correction: str = "L") -> bytes:
    """
    Encode a QR code using the printer's native GS ( k function blocks.

    Emits model selection, module size, error correction level, a length
    prefixed data store, and the print trigger. The byte count grows with the
    payload length only; no bitmap is rendered.
    """
    data = payload.encode("utf-8")
    if not data:
        raise EncodingError("QR payload is empty")
    if len(data) > QR_MAX_PAYLOAD:
        raise EncodingError(f"QR payload too long ({len(data)} > {QR_MAX_PAYLOAD} bytes)")
    if not 1 <= module_size <= 16:
        raise EncodingError("QR module size must be between 1 and 16")
    try:
        ec = QR_ERROR_CORRECTION[error_correction.upper()]
    except KeyError:
        raise EncodingError(f"unknown QR error correction level: {error_correction!r}") from None

    model = QR_PREFIX + b"\x04\x00\x31\x41\x32\x00"
    size = QR_PREFIX + b"\x03\x00\x31\x43" + bytes([module_size])
    level = QR_PREFIX + b"\x03\x00\x31\x45" + bytes([ec])
    store = QR_PREFIX + split_u16(len(data) + 3) + b"\x31\x50\x30" + data
    trigger = QR_PREFIX + b"\x03\x00\x31\x51\x30"
    return model + size + level + store + trigger


__all__ = [
    "BARCODE_TYPES",
    "LF",
    "QR_ERROR_CORRECTION",
    "QR_MAX_PAYLOAD",
    "RASTER_HEADER",
    "Raster",
    "align",
    "barcode",
    "cut",
    "feed",
    "initialize",
    "qr_native",
    "raster_image",
    "split_u16",
    "text",
]
