"""
config.py

Single source of truth for:
- Environment variable reads
- Plan entitlements (active flight limit, check cadence)
- Price check toggles

Nothing here should contain route handlers or business logic beyond config resolution.
"""

import os
from decimal import Decimal
from typing import Optional


# =====================================================================
# SECTION: ENV VARS
# =====================================================================

ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")

# Amadeus Self-Service (fare lookups)
# Use https://api.amadeus.com for production credentials.
AMADEUS_API_BASE = os.getenv("AMADEUS_API_BASE", "https://test.api.amadeus.com").rstrip("/")
AMADEUS_CLIENT_ID = os.getenv("AMADEUS_CLIENT_ID")
AMADEUS_CLIENT_SECRET = os.getenv("AMADEUS_CLIENT_SECRET")
AMADEUS_TIMEOUT_SECONDS = float(os.getenv("AMADEUS_TIMEOUT_SECONDS", "30"))

# Seconds shaved off the token lifetime so we refresh before Amadeus rejects it
AMADEUS_TOKEN_EXPIRY_MARGIN_SECONDS = 10

FARE_SEARCH_CURRENCY = os.getenv("FARE_SEARCH_CURRENCY", "USD")
# Candidate count when a preferred departure time has to be matched
FARE_SEARCH_MAX_CANDIDATES = int(os.getenv("FARE_SEARCH_MAX_CANDIDATES", "10"))
FARE_SEARCH_MIN_CANDIDATES = 1

# Alert when the new price is below baseline * ratio (0.90 = a 10% drop)
PRICE_DROP_THRESHOLD_RATIO = Decimal(os.getenv("PRICE_DROP_THRESHOLD_RATIO", "0.90"))

DEFAULT_CHECK_FREQUENCY_HOURS = int(os.getenv("DEFAULT_CHECK_FREQUENCY_HOURS", "24"))

# SMTP / alerts
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.sendgrid.net")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
ALERT_FROM_EMAIL = os.getenv("ALERT_FROM_EMAIL", "alerts@fareaware.app")
ALERT_FROM_NAME = os.getenv("ALERT_FROM_NAME", "FareAware Alerts")

FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:5173")


# =====================================================================
# SECTION: PLAN DEFAULTS
# Single source of truth for plan entitlements.
# Used by trip creation (limit, cadence) and the profile endpoint.
# =====================================================================

PLAN_DEFAULTS = {
    "free": {
        "plan": "free",
        "active_flight_limit": 2,
        "check_frequency_hours": 120,
    },
    "pro": {
        "plan": "pro",
        "active_flight_limit": 4,
        "check_frequency_hours": 72,
    },
    "max": {
        "plan": "max",
        "active_flight_limit": 8,
        "check_frequency_hours": 72,
    },
}

ALLOWED_PLANS = set(PLAN_DEFAULTS.keys())


def plan_for(subscription_plan: Optional[str]) -> dict:
    """Entitlements for a plan code, unknown or empty codes fall back to free."""
    code = (subscription_plan or "").strip().lower()
    return PLAN_DEFAULTS.get(code, PLAN_DEFAULTS["free"])


# =====================================================================
# SECTION: PRICE CHECK TOGGLE HELPERS
# =====================================================================

def price_checks_enabled() -> bool:
    """Hard master switch controlled by PRICE_CHECKS_ENABLED env var."""
    value = os.getenv("PRICE_CHECKS_ENABLED", "true")
    return value.strip().lower() == "true"


def user_allows_alerts(user) -> bool:
    """Per-user email toggle, defaults to True if the attribute is missing."""
    value = getattr(user, "email_alerts_enabled", None)
    if value is None:
        return True
    return bool(value)
