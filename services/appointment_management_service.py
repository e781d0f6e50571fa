"""
Appointment management service for cancellations.

Handles:
- Re-verifying the appointment on every call (names + date)
- Confirmation gating before any mutation
- Marking the row cancelled, audit logging, and queueing the PMS-side cancel
"""

from __future__ import annotations

from typing import Any, Dict

from config import (
    logger,
    CALL_OUTCOME_CANCELLED,
    PMS_CANCEL_JOB_ENDPOINT,
)
from models.context import ToolContext
from models.results import (
    ToolResult,
    INVALID_DATE,
    MISSING_DETAILS,
    APPOINTMENT_NOT_FOUND,
    REQUIRES_CONFIRMATION,
    ALREADY_CANCELLED,
    clinic_not_found,
    database_error,
    invalid_state,
)
from models.scheduling import VerifiedAppointment
from models.tool_args import CancelAppointmentArgs
from services.database_service import run_store, write_audit_entry, update_call_record, utc_now_iso
from services.datetime_service import parse_date, format_date_spoken
from services.task_queue import submit_background_job
from services.verification_service import resolve_appointment
from supabase_scheduling_store import StoreError


DEFAULT_CANCEL_REASON = "Cancelled via phone"


def _appointment_summary(appt: VerifiedAppointment) -> Dict[str, Any]:
    return {
        "appointment_id": appt.appointment_id,
        "source": appt.source,
        "date": appt.date.isoformat(),
        "formatted_date": appt.formatted_date,
        "time": appt.appointment_time,
        "formatted_time": appt.formatted_time,
        "patient_name": appt.patient_name,
        "client_name": appt.client_name,
        "provider_name": appt.provider_name,
    }


def build_cancel_job(ctx: ToolContext, appt: VerifiedAppointment, reason: str) -> Dict[str, Any]:
    return {
        "clinic_id": ctx.clinic.id,
        "appointment_id": appt.appointment_id,
        "source": appt.source,
        "neo_appointment_id": appt.external_id,
        "patient_name": appt.patient_name,
        "client_name": appt.client_name,
        "date": appt.date.isoformat(),
        "time": appt.appointment_time,
        "reason": reason,
        "vapi_call_id": ctx.call_id,
    }


async def cancel_appointment(ctx: ToolContext, args: CancelAppointmentArgs) -> ToolResult:
    """
    Two-phase cancel.

    Without `confirmed` the appointment is only looked up and read back to the
    caller. With `confirmed` it is looked up again and cancelled.
    """
    if not ctx.clinic:
        return clinic_not_found()

    if not args.owner_name or not args.patient_name:
        return ToolResult.fail(
            MISSING_DETAILS,
            "To cancel the appointment, I'll need both your name and your pet's name.",
        )

    day = parse_date(args.appointment_date, ctx.today())
    if not day:
        return ToolResult.fail(
            INVALID_DATE,
            f'I couldn\'t understand the date "{args.appointment_date or ""}". '
            "Which day is the appointment you'd like to cancel?",
        )

    try:
        appt = await resolve_appointment(ctx, args.owner_name, args.patient_name, day)
    except StoreError as e:
        logger.error(f"[CANCEL] ❌ Lookup failed clinic={ctx.clinic.id}: {e}")
        return database_error(
            "I'm having trouble looking up appointments right now. Please try again in a moment."
        )

    if not appt:
        return ToolResult.fail(
            APPOINTMENT_NOT_FOUND,
            f"I don't see an appointment for {args.patient_name} on {format_date_spoken(day)}. "
            "Could you double-check the date for me?",
            data={"status": "NOT_FOUND", "date": day.isoformat()},
        )

    summary = _appointment_summary(appt)

    if not args.confirmed:
        logger.info(f"[CANCEL] Awaiting confirmation appt={appt.appointment_id} source={appt.source}")
        return ToolResult.fail(
            REQUIRES_CONFIRMATION,
            f"I found {appt.patient_name}'s appointment on {appt.formatted_date} at {appt.formatted_time}. "
            "Are you sure you'd like to cancel it?",
            data={"appointment": summary},
        )

    if not appt.appointment_id:
        logger.error(f"[CANCEL] Resolved appointment has no id (source={appt.source})")
        return invalid_state(
            "I couldn't find the appointment record. Please call the office directly to cancel."
        )

    if (appt.status or "").lower() == "cancelled":
        logger.info(f"[CANCEL] Appointment {appt.appointment_id} already cancelled, nothing to do")
        return ToolResult.fail(
            ALREADY_CANCELLED,
            f"{appt.patient_name}'s appointment on {appt.formatted_date} has already been cancelled.",
            data={"appointment": summary},
        )

    reason = args.reason or DEFAULT_CANCEL_REASON
    try:
        await run_store(ctx.store.update_appointment, appt.source, appt.appointment_id, {
            "status": "cancelled",
            "cancelled_at": utc_now_iso(),
            "cancelled_reason": reason,
        })
    except StoreError as e:
        logger.error(f"[CANCEL] ❌ Failed to cancel appt={appt.appointment_id} source={appt.source}: {e}")
        return database_error(
            "I'm sorry, I wasn't able to cancel the appointment. It's still scheduled. "
            "Please try again or call the office directly."
        )

    logger.info(f"[CANCEL] ✅ Cancelled appt={appt.appointment_id} source={appt.source} clinic={ctx.clinic.id}")

    await write_audit_entry(
        ctx, "cancel", appointment_id=appt.appointment_id,
        external_id=appt.external_id,
        old_datetime=f"{appt.date.isoformat()} {appt.appointment_time}",
        reason=reason,
    )

    if appt.external_id:
        await submit_background_job(
            ctx.task_queue, build_cancel_job(ctx, appt, reason), PMS_CANCEL_JOB_ENDPOINT, tag="pms-cancel",
        )

    await update_call_record(ctx, {
        "outcome": CALL_OUTCOME_CANCELLED,
        "structured_data": {"appointment": {
            "date": appt.date.isoformat(),
            "time": appt.appointment_time,
            "client_name": appt.client_name,
            "patient_name": appt.patient_name,
            "cancelled_at": utc_now_iso(),
        }},
    })

    return ToolResult.ok(
        f"I've cancelled {appt.patient_name}'s appointment on {appt.formatted_date} at {appt.formatted_time}. "
        "Is there anything else I can help you with?",
        data={"cancelled": True, "appointment": summary},
    )
