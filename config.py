"""
config.py

Single source of truth for:
- Environment variable reads
- Alert toggle logic
- Retry defaults for database writes

Nothing here should contain route handlers or business logic beyond config resolution.
"""

import os


# =====================================================================
# SECTION: ENV VARS
# =====================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Shared secret sent by the external scheduler on every trigger call
CRON_API_KEY = os.getenv("CRON_API_KEY")

# Flight data provider routing
# Set FLIGHT_PROVIDER=mock to run without hitting FlightAware.
FLIGHT_PROVIDER = os.getenv("FLIGHT_PROVIDER", "aeroapi").lower().strip()
AEROAPI_KEY = os.getenv("AEROAPI_KEY", "")
AEROAPI_BASE_URL = os.getenv("AEROAPI_BASE_URL", "https://aeroapi.flightaware.com/aeroapi")
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "20"))

# SMTP / alerts
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
ALERT_FROM_EMAIL = os.getenv("ALERT_FROM_EMAIL")

FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")

ALERTS_ENABLED = os.getenv("ALERTS_ENABLED", "true").lower() == "true"

# Database write retries
DB_RETRY_MAX_ATTEMPTS = int(os.getenv("DB_RETRY_MAX_ATTEMPTS", "3"))
DB_RETRY_BACKOFF_SECONDS = float(os.getenv("DB_RETRY_BACKOFF_SECONDS", "0.5"))

# Flights in these states are done, nothing left to alert on
TRACKING_FINISHED_STATUSES = ("landed", "arrived")


# =====================================================================
# SECTION: ALERT TOGGLE HELPERS
# =====================================================================

def master_alerts_enabled() -> bool:
    """Hard master switch controlled by ALERTS_ENABLED env var."""
    value = os.getenv("ALERTS_ENABLED", "true")
    return value.lower() == "true"


def smtp_configured() -> bool:
    return bool(SMTP_USERNAME and SMTP_PASSWORD and ALERT_FROM_EMAIL)


def user_allows_alerts(user) -> bool:
    """Per-user toggle, defaults to True if the column is missing."""
    if not hasattr(user, "email_alerts_enabled"):
        return True
    return bool(user.email_alerts_enabled)


def should_send_email(user) -> bool:
    """
    Combined logic:
    1. Environment master toggle must be ON
    2. User must have an email address
    3. User toggle must be ON
    """
    if not master_alerts_enabled():
        return False
    if not getattr(user, "email", None):
        return False
    if not user_allows_alerts(user):
        return False
    return True
