# src/gmail_blade/backend/main.py
from __future__ import annotations

import logging
import threading

import uvicorn
from fastapi import FastAPI

from gmail_blade.backend.api.run import router as run_router

logger = logging.getLogger(__name__)

app = FastAPI(title="gmail-blade API")
app.include_router(run_router, prefix="/api")


def serve_in_background(port: int, host: str = "127.0.0.1") -> threading.Thread:
    """Serve the status API from a daemon thread; it dies with the process."""
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    # uvicorn leaves signal handling alone off the main thread.
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="status-api", daemon=True)
    thread.start()
    logger.info("Status API listening host=%s port=%s", host, port)
    return thread
