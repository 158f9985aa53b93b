from __future__ import annotations

"""
Health endpoint for Packs Print.

This blueprint exposes `/healthz`, reporting:
- Overall status ("ok" or "degraded")
- The outward status record (device status, availability, queue length, processing)
- Monitor liveness
"""

from typing import Any, Dict

from flask import Blueprint

from .api import get_print_service

health_bp = Blueprint("health", __name__)


@health_bp.get("/healthz")
def healthz():
    service = get_print_service()
    record = service.monitor.snapshot()
    status: Dict[str, Any] = {"status": "ok"}
    status.update(record.model_dump())
    status["monitor_alive"] = service.monitor.running

    if not record.available:
        status["status"] = "degraded"
        status["reason"] = "printer_unavailable"
    elif record.status != "ready":
        status["status"] = "degraded"
        status["reason"] = f"printer_{record.status}"
    return status, 200
