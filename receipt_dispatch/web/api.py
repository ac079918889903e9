from __future__ import annotations

"""
JSON API (v1) for Receipt Dispatch.

Endpoints:
- POST /api/v1/print    : Submit a print job and wait for its result
- GET  /api/v1/printers : List serial-like devices for selection

Payload shape (POST /api/v1/print):
{
  "printer_id": "/dev/rfcomm0" | "COM5" | "usb:0416:5011",
  "baud_rate": 115200,
  "mode": "simple" | "full",
  "content": {"header_text", "logo_path", "items": [{"name", "price"}], "barcode", "qr_payload", "footer_text"}
}

Responses mirror the job result: {"success": bool, "message"?: str, "error"?: str}.
"""

from concurrent.futures import TimeoutError as FuturesTimeout

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from receipt_dispatch.printing.scheduler import SchedulerShutdown
from receipt_dispatch.printing.transport import list_serial_devices, usb_supported
from . import schemas
from .state import get_scheduler, get_settings

api_bp = Blueprint("api", __name__, url_prefix="/api/v1")


def _json_error(msg: str, code: int = 400):
    return jsonify({"success": False, "error": msg}), code


@api_bp.post("/print")
def submit_print():
    """
    Validate a print request, enqueue it, and block until the job resolves
    (bounded by the configured print timeout).
    """
    if not request.is_json:
        return _json_error("Expected application/json body", 415)

    data = request.get_json(silent=True) or {}
    try:
        req = schemas.PrintRequest.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        msg = first.get("msg", "invalid request")
        return _json_error(f"{loc}: {msg}" if loc else msg, 400)

    settings = get_settings()
    job = req.to_job(settings)
    try:
        future = get_scheduler().submit(job)
    except SchedulerShutdown:
        return _json_error("Dispatcher is shutting down", 503)

    current_app.logger.info("POST /print queued job %s", job.describe())
    try:
        result = future.result(timeout=settings.print_timeout)
    except FuturesTimeout:
        current_app.logger.warning("POST /print timed out waiting for job %s", job.id)
        body = {"success": False, "error": "Timed out waiting for printer", "job_id": job.id}
        return jsonify(body), 504

    body = result.to_dict()
    body["job_id"] = job.id
    return jsonify(body)


@api_bp.get("/printers")
def printers():
    devices = list_serial_devices()
    current_app.logger.info("GET /printers count=%d", len(devices))
    return jsonify({"printers": devices, "usb_supported": usb_supported()})
