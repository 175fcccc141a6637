"""HTTP API router for Termfleet.

Endpoints (mounted under ``/api``):

  GET  /health                              — liveness + reconciler state and last tick report
  POST /workstations/register               — register or re-register
  GET  /workstations                        — list (status / sort / order)
  GET  /workstations/{name}                 — one workstation
  GET  /workstations/{name}/events          — audit trail, newest first
  GET  /workstations/{name}/propagation     — does the subdomain resolve yet?

Every response uses the same envelope: ``{"success": true, "data": ...}`` or
``{"success": false, "error": ..., "code": ..., "details": ...}``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from termfleet.reconciler import Reconciler
from termfleet.registrar import RegistrarCoordinator, RegistrationError, WorkstationNotFound
from termfleet.validation import InvalidInput

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_INPUT = "INVALID_INPUT"
NOT_FOUND = "NOT_FOUND"
DNS_REGISTRATION_FAILED = "DNS_REGISTRATION_FAILED"
INTERNAL_ERROR = "INTERNAL_ERROR"


# ── Envelope ──────────────────────────────────────────────────────

def success(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"success": True, "data": data}, status_code=status_code)


def error(message: str, code: str, status_code: int = 400, details: str | None = None) -> JSONResponse:
    logger.warning("API error response: %d %s %s%s", status_code, code, message,
                   f" ({details})" if details else "")
    body: dict[str, Any] = {"success": False, "error": message, "code": code}
    if details is not None:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


def install_error_handlers(app: FastAPI, *, expose_details: bool = False) -> None:
    """Map package exceptions onto the error envelope."""

    @app.exception_handler(InvalidInput)
    async def _invalid_input(_: Request, exc: InvalidInput):
        return error(str(exc), INVALID_INPUT, 400)

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(_: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = first.get("msg", "Invalid request")
        return error(f"{location}: {message}" if location else message, INVALID_INPUT, 400)

    @app.exception_handler(WorkstationNotFound)
    async def _not_found(_: Request, exc: WorkstationNotFound):
        return error("Workstation not found", NOT_FOUND, 404)

    @app.exception_handler(RegistrationError)
    async def _registration_failed(_: Request, exc: RegistrationError):
        return error("Failed to register DNS domain", DNS_REGISTRATION_FAILED, 500,
                     details=exc.workstation.dns_error)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return error("Internal server error", INTERNAL_ERROR, 500,
                     details=repr(exc) if expose_details else None)


# ── Dependencies ──────────────────────────────────────────────────

def get_registrar(request: Request) -> RegistrarCoordinator:
    return request.app.state.registrar


def get_reconciler(request: Request) -> Reconciler | None:
    return getattr(request.app.state, "reconciler", None)


# ── Models ────────────────────────────────────────────────────────

class RegisterRequest(BaseModel):
    name: str
    ip: str


# ── Endpoints ─────────────────────────────────────────────────────

@router.get("/health")
async def health(request: Request, reconciler: Reconciler | None = Depends(get_reconciler)):
    started = getattr(request.app.state, "started_monotonic", time.monotonic())
    scheduler: dict[str, Any] = {"running": False, "last_tick": None, "last_report": None}
    if reconciler is not None:
        scheduler["running"] = reconciler.running
        scheduler["last_tick"] = reconciler.last_tick.isoformat() if reconciler.last_tick else None
        if reconciler.last_report is not None:
            scheduler["last_report"] = asdict(reconciler.last_report)
    return success({
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - started, 3),
        "scheduler": scheduler,
    })


@router.post("/workstations/register")
async def register_workstation(
    req: RegisterRequest,
    registrar: RegistrarCoordinator = Depends(get_registrar),
):
    result = await registrar.register(req.name, req.ip)
    return success(result.workstation.to_view(), 201 if result.created else 200)


@router.get("/workstations")
async def list_workstations(
    status: str | None = Query(default=None),
    sort: str | None = Query(default=None),
    order: str | None = Query(default=None),
    registrar: RegistrarCoordinator = Depends(get_registrar),
):
    workstations = registrar.list(status=status, sort=sort, order=order)
    return success([ws.to_view() for ws in workstations])


@router.get("/workstations/{name}")
async def get_workstation(name: str, registrar: RegistrarCoordinator = Depends(get_registrar)):
    return success(registrar.get(name).to_view())


@router.get("/workstations/{name}/events")
async def workstation_events(
    name: str,
    limit: int = Query(default=50, ge=1, le=500),
    registrar: RegistrarCoordinator = Depends(get_registrar),
):
    return success([e.to_dict() for e in registrar.events(name, limit)])


@router.get("/workstations/{name}/propagation")
async def workstation_propagation(name: str, registrar: RegistrarCoordinator = Depends(get_registrar)):
    result = await registrar.check_propagation(name)
    return success(result.to_dict())
