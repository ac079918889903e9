"""
Receipt content model.

A receipt is an ordered sequence of typed segments that the executor renders
in order. ReceiptContent holds the variable parts of a receipt (header, logo,
line items, barcode, QR payload, footer); full_receipt() and simple_test()
template those into segment sequences.

Segments that carry a fallback_text are non-critical: when they cannot be
encoded the executor prints the fallback text instead and keeps going.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

Price = Union[int, float, str]


@dataclass(frozen=True)
class TextSegment:
    text: str
    align: str = "left"


@dataclass(frozen=True)
class FeedSegment:
    lines: int = 1


@dataclass(frozen=True)
class ImageSegment:
    source: Optional[str]
    width: int = 300
    align: str = "center"
    fallback_text: Optional[str] = None


@dataclass(frozen=True)
class BarcodeSegment:
    payload: str
    symbology: str = "EAN13"
    width: int = 2
    height: int = 50
    align: str = "center"
    fallback_text: Optional[str] = None


@dataclass(frozen=True)
class QRSegment:
    payload: str
    module_size: int = 6
    error_correction: str = "L"
    align: str = "center"
    fallback_text: Optional[str] = "QR Failed"


@dataclass(frozen=True)
class CutSegment:
    partial: bool = False
    feed: int = 3


Segment = Union[TextSegment, FeedSegment, ImageSegment, BarcodeSegment, QRSegment, CutSegment]


@dataclass(frozen=True)
class LineItem:
    name: str
    price: Price

    def render(self) -> str:
        return f"{self.name} - {self.price}"


@dataclass(frozen=True)
class ReceiptContent:
    header_text: str = "=== RECEIPT ==="
    logo_path: Optional[str] = None
    logo_width: int = 300
    items: Tuple[LineItem, ...] = ()
    barcode: Optional[str] = None
    barcode_symbology: str = "EAN13"
    qr_payload: Optional[str] = None
    footer_text: str = "--- THANK YOU ---"

    @classmethod
    def from_settings(cls, settings) -> "ReceiptContent":
        """Default receipt content taken from dispatcher Settings."""
        return cls(
            header_text=settings.header_text,
            logo_path=settings.logo_path,
            logo_width=settings.logo_width,
            items=tuple(LineItem(name, price) for name, price in settings.items),
            barcode=settings.barcode_payload,
            barcode_symbology=settings.barcode_symbology.upper(),
            qr_payload=settings.qr_payload,
            footer_text=settings.footer_text,
        )


TEST_BANNER = "--- TEST PRINT ---"
TEST_STATUS = "Connection OK!"


def simple_test() -> Tuple[Segment, ...]:
    return (
        TextSegment(TEST_BANNER, align="center"),
        FeedSegment(1),
        TextSegment(TEST_STATUS, align="center"),
        FeedSegment(2),
        CutSegment(),
    )


def full_receipt(content: ReceiptContent) -> Tuple[Segment, ...]:
    """
    Fixed receipt layout: logo (or header text), line items, barcode, QR,
    footer, cut. Barcode and QR are omitted when the content has no payload.
    """
    segments: list[Segment] = []
    if content.logo_path:
        segments.append(
            ImageSegment(content.logo_path, width=content.logo_width, fallback_text=content.header_text),
        )
    else:
        segments.append(TextSegment(content.header_text, align="center"))
    segments.append(FeedSegment(2))

    segments.extend(TextSegment(item.render(), align="left") for item in content.items)
    segments.append(FeedSegment(1))

    if content.barcode:
        segments.append(BarcodeSegment(content.barcode, symbology=content.barcode_symbology))
        segments.append(FeedSegment(1))

    if content.qr_payload:
        segments.append(QRSegment(content.qr_payload))
        segments.append(FeedSegment(1))

    segments.append(TextSegment(content.footer_text, align="center"))
    segments.append(CutSegment())
    return tuple(segments)


__all__ = [
    "BarcodeSegment",
    "CutSegment",
    "FeedSegment",
    "ImageSegment",
    "LineItem",
    "QRSegment",
    "ReceiptContent",
    "Segment",
    "TEST_BANNER",
    "TEST_STATUS",
    "TextSegment",
    "full_receipt",
    "simple_test",
]
