"""routers/health.py - Liveness and database health checks."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from db import SessionLocal

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
def home():
    return {"message": "Flight tracker backend is running"}


@router.get("/health")
def health():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"[health] database check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "error", "database": "unreachable"})
    finally:
        db.close()
    return {"status": "ok", "database": "ok"}
