# src/gmail_blade/backend/api/run.py
from fastapi import APIRouter, HTTPException

from gmail_blade.backend.status import run_status_store

router = APIRouter()


@router.post("/run")
async def run_endpoint() -> dict:
    # The loop runs the cycle on its own thread; this only cuts its sleep short.
    if not run_status_store.request_run():
        raise HTTPException(status_code=409, detail="Server loop is not running")
    return {"ok": True, "status": run_status_store.snapshot()}


@router.get("/run/status")
async def run_status() -> dict:
    return {"ok": True, "status": run_status_store.snapshot()}
