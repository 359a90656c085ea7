"""
main.py

FastAPI application: logging, CORS, table creation and router wiring.
Processing itself is triggered over HTTP by the external scheduler
(routers/cron.py), this process runs no timers of its own.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import LOG_LEVEL
from db import Base, engine
import models  # noqa: F401
from routers.alerts import router as alerts_router
from routers.cron import router as cron_router
from routers.health import router as health_router
from routers.notifications import router as notifications_router
from routers.rules import router as rules_router
from routers.tracked_flights import router as tracked_flights_router
from routers.users import router as users_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

logger = logging.getLogger(__name__)


# =====================================================================
# SECTION START: FastAPI APP AND CORS
# =====================================================================

app = FastAPI()


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    logger.info("[startup] tables ensured")


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =====================================================================
# SECTION END: FastAPI APP AND CORS
# =====================================================================


# =====================================================================
# SECTION START: ROUTERS
# =====================================================================

app.include_router(health_router)
app.include_router(users_router)
app.include_router(tracked_flights_router)
app.include_router(alerts_router)
app.include_router(rules_router)
app.include_router(notifications_router)
app.include_router(cron_router)

# =====================================================================
# SECTION END: ROUTERS
# =====================================================================
