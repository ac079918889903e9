from __future__ import annotations

"""
Pydantic schemas for the Receipt Dispatch API (v1).

These models validate incoming print requests and convert them to PrintJob
values. Barcode and QR payloads are checked against the same encoders the
executor uses, so a request that validates here never fails encoding later.
"""

from typing import List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from receipt_dispatch.core.config import MAX_LOGO_WIDTH, Settings
from receipt_dispatch.core.errors import EncodingError
from receipt_dispatch.printing import commands
from receipt_dispatch.printing.models import PrintJob, PrintMode
from receipt_dispatch.printing.receipt import LineItem, ReceiptContent
from receipt_dispatch.printing.transport import SerialTarget, UsbTarget, target_from_identifier


def _has_control_chars(s: str) -> bool:
    return any((ord(c) < 32 and c not in "\n\r\t") or ord(c) == 127 for c in s)


class LineItemIn(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    price: Union[int, float, str]

    @field_validator("name")
    @classmethod
    def _no_control(cls, v: str) -> str:
        v = v.strip()
        if _has_control_chars(v):
            raise ValueError("control characters not allowed")
        return v


class ReceiptContentIn(BaseModel):
    """Receipt content; any field left out falls back to the configured default."""

    header_text: Optional[str] = Field(default=None, max_length=64)
    logo_path: Optional[str] = None
    logo_width: Optional[int] = Field(default=None, gt=0, le=MAX_LOGO_WIDTH)
    items: Optional[List[LineItemIn]] = Field(default=None, max_length=100)
    barcode: Optional[str] = None
    barcode_symbology: Optional[str] = None
    qr_payload: Optional[str] = None
    footer_text: Optional[str] = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def _encodable(self) -> "ReceiptContentIn":
        if self.barcode_symbology and self.barcode is None:
            raise ValueError("barcode_symbology requires barcode")
        try:
            if self.barcode:
                commands.barcode(self.barcode, self.barcode_symbology or "EAN13")
            if self.qr_payload:
                commands.qr_native(self.qr_payload)
        except EncodingError as e:
            raise ValueError(str(e)) from e
        return self

    def to_content(self, settings: Settings) -> ReceiptContent:
        base = ReceiptContent.from_settings(settings)
        if self.barcode is not None:
            barcode, symbology = self.barcode, (self.barcode_symbology or "EAN13").upper()
        else:
            barcode, symbology = base.barcode, base.barcode_symbology
        return ReceiptContent(
            header_text=self.header_text if self.header_text is not None else base.header_text,
            logo_path=self.logo_path if self.logo_path is not None else base.logo_path,
            logo_width=self.logo_width or base.logo_width,
            items=tuple(LineItem(i.name, i.price) for i in self.items) if self.items is not None else base.items,
            barcode=barcode,
            barcode_symbology=symbology,
            qr_payload=self.qr_payload if self.qr_payload is not None else base.qr_payload,
            footer_text=self.footer_text if self.footer_text is not None else base.footer_text,
        )


class PrintRequest(BaseModel):
    """
    A print submission. `printerId`, `baudRate` and `simpleMode` are accepted
    as aliases for clients written against the original JSON shape.
    """

    printer_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("printer_id", "printerId"),
        max_length=256,
    )
    baud_rate: Optional[int] = Field(default=None, gt=0, validation_alias=AliasChoices("baud_rate", "baudRate"))
    mode: Literal["simple", "full"] = "full"
    simple_mode: Optional[bool] = Field(default=None, validation_alias=AliasChoices("simple_mode", "simpleMode"))
    usb_vendor_id: Optional[str] = None
    usb_product_id: Optional[str] = None
    content: Optional[ReceiptContentIn] = None

    @field_validator("usb_vendor_id", "usb_product_id")
    @classmethod
    def _hex_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            value = int(v, 16)
        except ValueError:
            raise ValueError("USB ids must be hexadecimal") from None
        if not 0 <= value <= 0xFFFF:
            raise ValueError("USB ids must fit in 16 bits")
        return v

    @model_validator(mode="after")
    def _usb_pair(self) -> "PrintRequest":
        if bool(self.usb_vendor_id) != bool(self.usb_product_id):
            raise ValueError("usb_vendor_id and usb_product_id must be given together")
        return self

    @model_validator(mode="after")
    def _resolve_mode(self) -> "PrintRequest":
        if self.simple_mode:
            self.mode = "simple"
        return self

    def to_target(self, settings: Settings) -> Union[UsbTarget, SerialTarget]:
        if self.usb_vendor_id and self.usb_product_id:
            return UsbTarget(int(self.usb_vendor_id, 16), int(self.usb_product_id, 16))
        return target_from_identifier(
            self.printer_id,
            self.baud_rate,
            default_baudrate=settings.default_baudrate,
            usb_vendor_id=settings.usb_vendor_id,
            usb_product_id=settings.usb_product_id,
        )

    def to_job(self, settings: Settings) -> PrintJob:
        content = (self.content or ReceiptContentIn()).to_content(settings)
        return PrintJob(target=self.to_target(settings), mode=PrintMode(self.mode), content=content)


__all__ = ["LineItemIn", "PrintRequest", "ReceiptContentIn"]
