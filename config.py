"""
Configuration and constants for the veterinary front-desk appointment engine.

Contains environment variables, store/queue settings, and booking tuning knobs.
"""

from __future__ import annotations

import os
import logging
from typing import Optional

from dotenv import load_dotenv
from supabase import create_client, Client

# =============================================================================
# Load Environment
# =============================================================================

load_dotenv(".env.local")

# Mute noisy transport debug logs (reduces log-bloat in production)
logging.getLogger("hpack").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

# =============================================================================
# STRUCTURED LOGGER
# =============================================================================

logger = logging.getLogger("vet_front_desk")
logger.setLevel(logging.DEBUG)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S"
    ))
    logger.addHandler(handler)

# =============================================================================
# ENVIRONMENT & APPLICATION CONFIG
# =============================================================================

ENVIRONMENT = (os.getenv("ENVIRONMENT") or "development").strip().lower()

DEFAULT_TZ = os.getenv("DEFAULT_TIMEZONE", "America/Los_Angeles")
DEFAULT_PHONE_REGION = os.getenv("DEFAULT_PHONE_REGION", "US")

# =============================================================================
# SUPABASE CONFIGURATION
# =============================================================================

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

_supabase: Optional[Client] = None


def get_supabase() -> Client:
    """Return the shared service-role Supabase client, creating it on first use."""
    global _supabase
    if _supabase is None:
        if not SUPABASE_URL or not SUPABASE_SERVICE_ROLE_KEY:
            raise RuntimeError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY")
        _supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
    return _supabase

# =============================================================================
# DATABASE CONSTANTS
# =============================================================================

SYNCED_APPOINTMENTS_TABLE = "schedule_appointments"
PENDING_BOOKINGS_TABLE = "vapi_bookings"
AUDIT_LOG_TABLE = "appointment_audit_log"
CALL_RECORDS_TABLE = "inbound_vapi_calls"

# Rows in the synced table with these statuses are never offered to callers
INACTIVE_SYNCED_STATUSES = ["cancelled", "no_show"]

# Pending-local bookings that still count as a live appointment
ACTIVE_PENDING_STATUSES = ["pending", "pending_sync", "confirmed"]

# Status used to restore a cancelled row when no prior status was captured
RESTORED_STATUS_BY_SOURCE = {
    SYNCED_APPOINTMENTS_TABLE: "scheduled",
    PENDING_BOOKINGS_TABLE: "confirmed",
}

# Outcome tags shown on the call dashboard
CALL_OUTCOME_SCHEDULED = "Scheduled"
CALL_OUTCOME_CANCELLED = "Cancelled"
CALL_OUTCOME_RESCHEDULED = "Rescheduled"

AUDIT_PERFORMED_BY = "vapi"

# =============================================================================
# BOOKING SETTINGS
# =============================================================================

HOLD_EXPIRY_MINUTES = int(os.getenv("HOLD_EXPIRY_MINUTES", "5"))
MAX_BOOKING_ALTERNATIVES = 3
MAX_RESCHEDULE_ALTERNATIVES = 5
MAX_SPOKEN_SLOTS = int(os.getenv("MAX_SPOKEN_SLOTS", "5"))
MAX_RANGE_DAYS = 14
DEFAULT_RANGE_DAYS = 7
RANGE_FIRST_DAY_SLOT_CAP = 8
PMS_PATIENT_SEARCH_LIMIT = int(os.getenv("PMS_PATIENT_SEARCH_LIMIT", "5"))

# TUNING: Give up on a store read after this long. Writes are always awaited to completion.
STORE_READ_TIMEOUT_SEC = float(os.getenv("STORE_READ_TIMEOUT_SEC", "6.0"))

# =============================================================================
# BACKGROUND JOBS (QStash)
# =============================================================================

QSTASH_URL = os.getenv("QSTASH_URL", "https://qstash.upstash.io")
QSTASH_TOKEN = os.getenv("QSTASH_TOKEN")
QSTASH_RETRIES = int(os.getenv("QSTASH_RETRIES", "3"))
APP_BASE_URL = (os.getenv("APP_BASE_URL") or os.getenv("NEXT_PUBLIC_APP_URL") or "").rstrip("/")

# Upper bound on how long queue submission can delay the caller's result
QUEUE_SUBMIT_TIMEOUT_SEC = float(os.getenv("QUEUE_SUBMIT_TIMEOUT_SEC", "1.0"))

PMS_CANCEL_JOB_ENDPOINT = "/api/jobs/pms-cancel-appointment"
PMS_RESCHEDULE_JOB_ENDPOINT = "/api/jobs/pms-reschedule-appointment"

# =============================================================================
# PMS CONFIGURATION
# =============================================================================

PMS_BASE_URL = os.getenv("PMS_BASE_URL", "")
PMS_HTTP_TIMEOUT_SEC = float(os.getenv("PMS_HTTP_TIMEOUT_SEC", "15.0"))
