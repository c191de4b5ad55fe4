"""
Wedlock — HTTP API for the wedding registry.

FastAPI application exposing every public registry operation one-to-one.
The calling principal is read from the `X-Principal` header; the transport
in front of this app is responsible for authenticating it.

Protocol rejections are returned with the reason string:
- 409 — wrong lifecycle state or outside the allowed time
- 403 — caller not authorized (reserved: no built-in operation raises it)
- 422 — invalid input (self-engagement, partner on guest list, ...)
- 502 — certificate registry failure
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from wedlock.integrations.certificates import CertificateRegistryError
from wedlock.protocol.errors import (
    AuthorizationViolation,
    InvariantViolation,
    PreconditionViolation,
    ProtocolViolation,
    TemporalViolation,
)
from wedlock.protocol.keys import derive_record_key

logger = logging.getLogger(__name__)


# ── Pydantic request models ───────────────────────────────────


class EngageRequest(BaseModel):
    partner: str
    wedding_date: int


class WeddingDateRequest(BaseModel):
    wedding_date: int


class GuestListRequest(BaseModel):
    guests: list[str]


class PartnerRequest(BaseModel):
    partner: str


class ApiState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.registry: Any = None


state = ApiState()

STATUS_CODES: dict[type[ProtocolViolation], int] = {
    PreconditionViolation: 409,
    TemporalViolation: 409,
    AuthorizationViolation: 403,
    InvariantViolation: 422,
}


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the registry from settings unless one was injected."""
    owned = None
    if state.registry is None:
        from wedlock.orchestrator import build_registry

        owned = state.registry = build_registry()
        logger.info("API registry built from settings")
    yield
    if owned is not None:
        owned.close()
        if state.registry is owned:
            state.registry = None
        logger.info("API registry closed")


app = FastAPI(
    title="Wedlock",
    description="Mutual-consent engagement, marriage and divorce registry",
    lifespan=lifespan,
)


@app.exception_handler(ProtocolViolation)
async def protocol_violation_handler(request: Request, exc: ProtocolViolation):
    return JSONResponse(
        status_code=STATUS_CODES.get(type(exc), 400),
        content={"detail": exc.reason, "error": type(exc).__name__},
    )


@app.exception_handler(CertificateRegistryError)
async def certificate_error_handler(request: Request, exc: CertificateRegistryError):
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


def _registry():
    if state.registry is None:
        raise HTTPException(status_code=503, detail="Registry not initialized")
    return state.registry


# ── Engagement ────────────────────────────────────────────────


@app.post("/api/engagements")
async def api_engage(req: EngageRequest, x_principal: str = Header()):
    record = _registry().engage(x_principal, req.partner, req.wedding_date)
    if record is None:
        return {"engaged": False, "record": None}
    return {"engaged": True, "record": record.model_dump()}


@app.put("/api/engagements/wedding-date")
async def api_change_wedding_date(req: WeddingDateRequest, x_principal: str = Header()):
    record = _registry().change_wedding_date(x_principal, req.wedding_date)
    return record.model_dump()


@app.delete("/api/engagements")
async def api_revoke(x_principal: str = Header()):
    dissolved = _registry().revoke_engagement(x_principal)
    return {"revoked": True, "record_key": dissolved.key}


@app.get("/api/engagements/{user}")
async def api_engagement_details(user: str):
    registry = _registry()
    record = registry.get_engagement_details(user)
    if record is None:
        raise HTTPException(status_code=404, detail=f"{user} has no active record")
    return record.model_dump()


@app.get("/api/lifecycle/{user}")
async def api_lifecycle(user: str):
    status = _registry().lifecycle_of(user)
    return {"user": user, "status": status.value if status else None}


# ── Guest List ────────────────────────────────────────────────


@app.post("/api/guest-list")
async def api_propose_guest_list(req: GuestListRequest, x_principal: str = Header()):
    return _registry().propose_guest_list(x_principal, req.guests).model_dump()


@app.post("/api/guest-list/confirm")
async def api_confirm_guest_list(x_principal: str = Header()):
    return _registry().confirm_guest_list(x_principal).model_dump()


@app.get("/api/guest-list/{user}")
async def api_confirmed_guest_list(user: str):
    return {"guests": _registry().get_confirmed_guest_list(user)}


@app.post("/api/veto")
async def api_vote_against_wedding(req: PartnerRequest, x_principal: str = Header()):
    return _registry().vote_against_wedding(x_principal, req.partner).model_dump()


# ── Marriage / Divorce ────────────────────────────────────────


@app.post("/api/marriage")
async def api_marry(x_principal: str = Header()):
    record = _registry().marry(x_principal)
    if record is None:
        return {"married": False, "record": None}
    return {"married": True, "record": record.model_dump()}


@app.post("/api/divorce")
async def api_divorce(req: PartnerRequest, x_principal: str = Header()):
    return _registry().divorce(x_principal, req.partner).model_dump()


# ── Journal ───────────────────────────────────────────────────


@app.get("/api/journal/{principal_a}/{principal_b}")
async def api_journal(principal_a: str, principal_b: str):
    """Journal entries of the Record shared by two principals."""
    registry = _registry()
    if registry.journal is None:
        raise HTTPException(status_code=404, detail="Event journal is disabled")
    key = derive_record_key(principal_a, principal_b)
    return {
        "record_key": key,
        "entries": [
            {
                "sequence_number": e.sequence_number,
                "event_type": e.event_type,
                "actor": e.actor,
                "recorded_at": e.recorded_at,
                "content": e.content,
                "entry_hash": e.entry_hash,
            }
            for e in registry.journal.get_entries_for_record(key)
        ],
    }


@app.get("/health")
async def health():
    registry = state.registry
    return {
        "status": "ok" if registry is not None else "starting",
        "arbiters": len(registry.roster) if registry is not None else 0,
        "journal": registry is not None and registry.journal is not None,
    }
