"""
Locating a caller's existing appointment.

Callers identify an appointment by owner name, pet name and date, all of which
arrive through speech recognition. Lookup is a case-insensitive substring
match on both names, searched in priority order:

1. Appointments synced from the clinic's PMS (`schedule_appointments`)
2. Bookings made through the assistant that haven't synced yet (`vapi_bookings`)

When several rows match, the earliest start time on that date wins.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from config import (
    logger,
    SYNCED_APPOINTMENTS_TABLE,
    PENDING_BOOKINGS_TABLE,
    INACTIVE_SYNCED_STATUSES,
    ACTIVE_PENDING_STATUSES,
)
from models.context import ToolContext
from models.results import (
    ToolResult,
    INVALID_DATE,
    MISSING_DETAILS,
    APPOINTMENT_NOT_FOUND,
    clinic_not_found,
    database_error,
)
from models.scheduling import VerifiedAppointment
from models.tool_args import VerifyAppointmentArgs
from services.database_service import read_store
from services.datetime_service import parse_date, format_time_12h, format_date_spoken
from supabase_scheduling_store import StoreError
from utils.formatting_utils import possessive


def _name_matches(value: Optional[str], fragment: str) -> bool:
    return fragment.strip().lower() in (value or "").lower()


def _first_match(
    rows: List[Dict[str, Any]],
    owner_name: str,
    patient_name: str,
    allowed_statuses: Optional[List[str]] = None,
    excluded_statuses: Optional[List[str]] = None,
) -> Optional[Dict[str, Any]]:
    candidates = []
    for row in rows or []:
        status = (row.get("status") or "").lower()
        if row.get("deleted_at"):
            continue
        if excluded_statuses and status in excluded_statuses:
            continue
        if allowed_statuses and status not in allowed_statuses:
            continue
        if not _name_matches(row.get("client_name"), owner_name):
            continue
        if not _name_matches(row.get("patient_name"), patient_name):
            continue
        candidates.append(row)
    candidates.sort(key=lambda r: str(r.get("start_time") or ""))
    return candidates[0] if candidates else None


def _to_verified(row: Dict[str, Any], source: str, day: date) -> VerifiedAppointment:
    start = str(row.get("start_time") or "")
    end = row.get("end_time")
    metadata = row.get("metadata") or {}
    return VerifiedAppointment(
        appointment_id=row.get("id"),
        source=source,
        date=day,
        appointment_time=start,
        appointment_time_end=str(end) if end else None,
        formatted_date=format_date_spoken(day),
        formatted_time=format_time_12h(start) if start else "",
        status=row.get("status"),
        external_id=row.get("neo_appointment_id") or metadata.get("external_appointment_id"),
        client_name=row.get("client_name"),
        client_phone=row.get("client_phone"),
        patient_name=row.get("patient_name"),
        provider_name=row.get("provider_name"),
        appointment_type=row.get("appointment_type"),
        room=row.get("room_id"),
        cancelled_at=row.get("cancelled_at"),
        cancelled_reason=row.get("cancelled_reason"),
        raw=row,
    )


async def resolve_appointment(
    ctx: ToolContext,
    owner_name: str,
    patient_name: str,
    day: date,
) -> Optional[VerifiedAppointment]:
    """Find one live appointment for owner + pet on `day`. Raises StoreError."""
    clinic_id = ctx.clinic.id
    day_iso = day.isoformat()

    synced = await read_store(ctx.store.find_synced_appointments, clinic_id, day_iso, owner_name, patient_name)
    row = _first_match(synced, owner_name, patient_name, excluded_statuses=INACTIVE_SYNCED_STATUSES)
    if row:
        logger.info(f"[VERIFY] Found synced appointment id={row.get('id')} date={day_iso}")
        return _to_verified(row, SYNCED_APPOINTMENTS_TABLE, day)

    pending = await read_store(ctx.store.find_pending_bookings, clinic_id, day_iso, owner_name, patient_name)
    row = _first_match(pending, owner_name, patient_name, allowed_statuses=ACTIVE_PENDING_STATUSES)
    if row:
        logger.info(f"[VERIFY] Found pending booking id={row.get('id')} date={day_iso}")
        return _to_verified(row, PENDING_BOOKINGS_TABLE, day)

    logger.info(f"[VERIFY] No appointment for patient='{patient_name}' on {day_iso} (clinic={clinic_id})")
    return None


async def verify_appointment(ctx: ToolContext, args: VerifyAppointmentArgs) -> ToolResult:
    """Tool form of `resolve_appointment`: FOUND details or NOT_FOUND."""
    if not ctx.clinic:
        return clinic_not_found()

    owner_name, patient_name = args.owner_name, args.patient_name
    appointment_date = args.appointment_date

    if not owner_name or not patient_name:
        return ToolResult.fail(
            MISSING_DETAILS,
            "To find the appointment, I'll need both your name and your pet's name.",
        )

    day = parse_date(appointment_date, ctx.today())
    if not day:
        return ToolResult.fail(
            INVALID_DATE,
            f'I couldn\'t understand the date "{appointment_date or ""}". '
            "Could you tell me which day the appointment is on?",
        )

    try:
        appt = await resolve_appointment(ctx, owner_name, patient_name, day)
    except StoreError as e:
        logger.error(f"[VERIFY] ❌ Lookup failed clinic={ctx.clinic.id}: {e}")
        return database_error(
            "I'm having trouble looking up appointments right now. Please try again in a moment."
        )

    if not appt:
        return ToolResult.fail(
            APPOINTMENT_NOT_FOUND,
            f"I don't see an appointment for {patient_name} on {format_date_spoken(day)}. "
            "Would you like me to check a different date, or schedule a new appointment?",
            data={"status": "NOT_FOUND", "date": day.isoformat()},
        )

    provider = f" with {appt.provider_name}" if appt.provider_name else ""
    return ToolResult.ok(
        f"I found {possessive(appt.patient_name or patient_name)} appointment on "
        f"{appt.formatted_date} at {appt.formatted_time}{provider}.",
        data=appt.to_dict(),
    )
