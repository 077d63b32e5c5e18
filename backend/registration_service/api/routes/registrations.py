"""Registration Routes — submission, point lookup and paged listing.

Invariants:
    - POST returns 202 once the record is staged and acknowledged by the relay;
      it never waits for persistence
    - Validation happens in the intake service, not in FastAPI's body parsing,
      so every failure names a single field
    - GET by email returns 404 for an absent key (not an error response class)
    - limit/offset out of range → 400 via the RequestValidationError handler

Design Decisions:
    - Body accepted as raw JSON (Any): the validator owns the schema
    - Thin routes: no business logic, only request/response mapping
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse

from registration_service.api.dependencies import get_intake, get_reader
from registration_service.core.domain_types import (
    DEFAULT_OFFSET, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE,
)
from registration_service.services.registration_intake import RegistrationIntake
from registration_service.services.registration_reader import RegistrationReader

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/registrations", tags=["registrations"])


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def submit_registration(
    payload: Any = Body(None),
    intake: RegistrationIntake = Depends(get_intake),
):
    """Submit user registration data."""
    receipt = await intake.submit(payload)
    return {
        "success": True,
        "message": "User registration submitted successfully",
        "data": receipt.model_dump(),
    }


@router.get("")
async def list_registrations(
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(DEFAULT_OFFSET, ge=0),
    reader: RegistrationReader = Depends(get_reader),
):
    """List persisted registrations, newest first."""
    rows = await reader.list_page(limit, offset)
    return {
        "success": True,
        "count": len(rows),
        "data": [r.model_dump(mode="json") for r in rows],
        "pagination": {"limit": limit, "offset": offset},
    }


@router.get("/{email}")
async def get_registration(
    email: str, reader: RegistrationReader = Depends(get_reader),
):
    """Get a registration by email (cache first)."""
    row = await reader.get_by_email(email)
    if row is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "error": "User not found"},
        )
    return {"success": True, "data": row.model_dump(mode="json")}
