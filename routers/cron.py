"""routers/cron.py - Processing triggers for the external scheduler.

Every endpoint checks the shared CRON_API_KEY before doing any work. The key
is accepted as an x-api-key header or as an Authorization bearer token.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

import config
from schemas.tracking import TimeRange
from services.flight_processor import run_processing_cycle

logger = logging.getLogger(__name__)

router = APIRouter()


# =====================================================================
# SECTION: AUTH
# =====================================================================

def _supplied_key(request: Request) -> Optional[str]:
    api_key = request.headers.get("x-api-key")
    if api_key:
        return api_key.strip()

    auth = (request.headers.get("authorization") or "").strip()
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return None


def _authorize(request: Request) -> Optional[JSONResponse]:
    """None when the caller may proceed, otherwise the error response to return."""
    expected = config.CRON_API_KEY
    if not expected:
        logger.error("[cron] CRON_API_KEY is not set, refusing to process")
        return JSONResponse(status_code=500, content={"error": "Cron API key not configured"})

    supplied = _supplied_key(request)
    if not supplied or not hmac.compare_digest(supplied.encode(), expected.encode()):
        logger.warning(f"[cron] unauthorized call to {request.url.path}")
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    return None


# =====================================================================
# SECTION: TRIGGERS
# =====================================================================

def _run(time_range: Optional[TimeRange] = None, include_direct: bool = True, include_rules: bool = True):
    try:
        summary = run_processing_cycle(
            time_range=time_range,
            include_direct=include_direct,
            include_rules=include_rules,
        )
    except Exception as e:
        logger.exception(f"[cron] processing cycle failed: {e}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return {"success": True, "summary": summary.as_dict()}


@router.api_route("/api/cron/process", methods=["GET", "POST"])
def cron_process(request: Request):
    denied = _authorize(request)
    if denied is not None:
        return denied
    return _run()


@router.api_route("/api/cron/update-flights", methods=["GET", "POST"])
def cron_update_flights(request: Request, time_range: Optional[str] = None):
    denied = _authorize(request)
    if denied is not None:
        return denied

    parsed: Optional[TimeRange] = None
    if time_range:
        try:
            parsed = TimeRange(time_range)
        except ValueError:
            return JSONResponse(
                status_code=400,
                content={"error": f"Invalid time_range, expected one of {[t.value for t in TimeRange]}"},
            )

    return _run(time_range=parsed, include_rules=False)


@router.api_route("/api/cron/process-rules", methods=["GET", "POST"])
def cron_process_rules(request: Request):
    denied = _authorize(request)
    if denied is not None:
        return denied
    return _run(include_direct=False)
