from __future__ import annotations

"""
JSON API (v1) for Packs Print.

Endpoints:
- POST /api/v1/jobs             : Submit a print job (async). Returns 202 + Location
- GET  /api/v1/jobs/<job_id>    : Fetch a job record
- GET  /api/v1/queue            : Queue status and queued jobs
- POST /api/v1/queue/pause      : Stop dequeuing after the current job
- POST /api/v1/queue/resume     : Restart dequeuing
- POST /api/v1/queue/clear      : Remove queued jobs (409 while a job is processing)
- GET  /api/v1/stats            : Lifetime totals and success rate
- GET  /api/v1/device           : Device tracker snapshot
- POST /api/v1/device/reconnect : Re-check the device

Payload shape (POST /api/v1/jobs):
{"template": str, "data": {field: value, ...}, "copies": int}
"""

import os
from concurrent.futures import TimeoutError as FuturesTimeout

from flask import Blueprint, current_app, jsonify, request, url_for
from pydantic import ValidationError

from packs_print import csrf
from packs_print.printing.errors import BusyError, InvalidJobError
from packs_print.printing.service import PrintService, ensure_service

from . import schemas

api_bp = Blueprint("api", __name__, url_prefix="/api/v1")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except Exception:
        return default


MAX_TEMPLATE_LEN = _env_int("PACKSPRINT_MAX_TEMPLATE_LEN", 100)
MAX_FIELDS = _env_int("PACKSPRINT_MAX_FIELDS", 100)
MAX_COPIES = _env_int("PACKSPRINT_MAX_COPIES", 100)
RECONNECT_TIMEOUT = _env_int("PACKSPRINT_RECONNECT_TIMEOUT", 10)


def _json_error(msg: str, code: int = 400):
    return jsonify({"error": msg}), code


def get_print_service() -> PrintService:
    """The service attached to this app, or the process-wide one."""
    service = current_app.extensions.get("packs_print")
    if service is None:
        service = ensure_service()
    return service


@csrf.exempt
@api_bp.post("/jobs")
def submit_job():
    """
    Validate a JSON job submission and enqueue it.
    Returns 202 Accepted with a Location header to the job resource.
    """
    if not request.is_json:
        return _json_error("Expected application/json body", 415)

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error("invalid JSON payload", 400)
    try:
        req = schemas.JobSubmitRequest.model_validate(
            data,
            context={
                "limits": {
                    "MAX_TEMPLATE_LEN": MAX_TEMPLATE_LEN,
                    "MAX_FIELDS": MAX_FIELDS,
                    "MAX_COPIES": MAX_COPIES,
                }
            },
        )
    except ValidationError as e:
        try:
            msg = e.errors()[0].get("msg") or str(e)
        except Exception:
            msg = str(e)
        return _json_error(msg, 400)

    service = get_print_service()
    try:
        job_id = service.queue.enqueue(req.model_dump())
    except InvalidJobError as e:
        return _json_error(str(e), 400)
    except BusyError as e:
        return _json_error(str(e), 503)

    current_app.logger.info("POST /api/v1/jobs queued id=%s template=%s", job_id, req.template)
    api_href = url_for("api.job_status", job_id=job_id)
    resp_model = schemas.JobAcceptedResponse(
        id=job_id, status="queued", links=schemas.Links(self=api_href, queue=url_for("api.queue_status"))
    )
    resp = jsonify(resp_model.model_dump())
    resp.status_code = 202
    resp.headers["Location"] = api_href
    return resp


@api_bp.get("/jobs/<job_id>")
def job_status(job_id: str):
    job = get_print_service().queue.get_job(job_id)
    if job is None:
        return _json_error("not_found", 404)
    return jsonify(job)


@api_bp.get("/queue")
def queue_status():
    queue = get_print_service().queue
    status = queue.get_queue_status()
    status["jobs"] = queue.get_queued_jobs()
    return jsonify(status)


@csrf.exempt
@api_bp.post("/queue/pause")
def queue_pause():
    queue = get_print_service().queue
    queue.pause()
    return jsonify(queue.get_queue_status())


@csrf.exempt
@api_bp.post("/queue/resume")
def queue_resume():
    queue = get_print_service().queue
    queue.resume()
    return jsonify(queue.get_queue_status())


@csrf.exempt
@api_bp.post("/queue/clear")
def queue_clear():
    try:
        cleared = get_print_service().queue.clear()
    except BusyError as e:
        return _json_error(str(e), 409)
    return jsonify(schemas.ClearResponse(cleared=cleared).model_dump())


@api_bp.get("/stats")
def stats():
    return jsonify(get_print_service().queue.get_stats())


@api_bp.get("/device")
def device_status():
    return jsonify(get_print_service().tracker.state.to_dict())


@csrf.exempt
@api_bp.post("/device/reconnect")
def device_reconnect():
    service = get_print_service()
    try:
        observation = service.monitor.request_reconnect(timeout=RECONNECT_TIMEOUT)
    except FuturesTimeout:
        return _json_error("reconnect attempt timed out", 504)
    except RuntimeError as e:
        return _json_error(str(e), 503)
    resp = schemas.ReconnectResponse(
        changed=observation.changed,
        status=observation.classified.value,
        available=service.tracker.available,
    )
    return jsonify(resp.model_dump())
