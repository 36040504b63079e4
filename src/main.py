"""Entry point for the phone call translation relay service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.dependencies import started_gateway
from api.routes import router as api_router
from config.settings import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    gateway = started_gateway()
    if gateway is not None:
        await gateway.shutdown()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Call Relay Translator",
    description="Relays phone call audio through transcription and translation into the other call leg.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
