"""
tginject Backend API
FastAPI application exposing the Telegram update inject endpoint.

The inject router only claims /telegram/inject; any other path falls through
to whatever else is mounted on the app.
"""

import logging
import os

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from tginject.routers import telegram_inject

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="tginject API",
    description="Inject externally-built Telegram updates into the bot pipeline",
    version="0.1.0",
)

# Include routers
app.include_router(telegram_inject.router, tags=["telegram"])
app.add_exception_handler(StarletteHTTPException, telegram_inject.inject_http_exception_handler)


@app.on_event("startup")
async def log_startup_url() -> None:
    """
    Log where the inject endpoint is reachable.

    The port is taken from ``HOST_PORT`` so Docker-mapped ports are reported
    correctly. Defaults to 8000.
    """
    host_port = os.getenv("HOST_PORT", "8000")
    logger.info(
        "tginject API running at:\n"
        "  Inject:  http://localhost:%s%s",
        host_port,
        telegram_inject.INJECT_PATH,
    )


@app.get("/")
async def root():
    return {"message": "tginject API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}
