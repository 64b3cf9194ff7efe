"""Service-level routes."""

from __future__ import annotations

from fastapi import APIRouter

from api.schemas import StatusResponse

router = APIRouter()


@router.get("/", response_model=StatusResponse)
async def index() -> StatusResponse:
    return StatusResponse(message="Server is running")
