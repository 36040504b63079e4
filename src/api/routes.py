"""Top-level API router."""

from __future__ import annotations

from fastapi import APIRouter

from api.schemas import HealthResponse
from api.stream_routes import router as stream_router
from api.twilio_routes import router as twilio_router

router = APIRouter()
router.include_router(stream_router)
router.include_router(twilio_router)


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()
