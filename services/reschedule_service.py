"""
Rescheduling an existing appointment.

A reschedule is two local writes run as a small saga:

1. Cancel the original row            (inverse: restore its prior state)
2. Insert the replacement booking     (pending PMS sync)

If step 2 fails the inverse of step 1 runs, so the caller either keeps the
original appointment or gets the new one, never neither. The PMS-side
cancel+create is queued as a background job after both steps commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from config import (
    logger,
    MAX_RESCHEDULE_ALTERNATIVES,
    RESTORED_STATUS_BY_SOURCE,
    CALL_OUTCOME_RESCHEDULED,
    PMS_RESCHEDULE_JOB_ENDPOINT,
)
from models.context import ToolContext
from models.results import (
    ToolResult,
    INVALID_DATE,
    INVALID_TIME,
    INVALID_NEW_DATE,
    MISSING_DETAILS,
    PAST_DATE,
    APPOINTMENT_NOT_FOUND,
    SLOT_NOT_AVAILABLE,
    NO_AVAILABILITY,
    REQUIRES_CONFIRMATION,
    ROLLBACK_SUCCESS,
    ROLLBACK_FAILED,
    clinic_not_found,
    database_error,
    invalid_state,
)
from models.scheduling import SlotProjection, VerifiedAppointment
from models.tool_args import RescheduleAppointmentArgs
from services.availability_service import fetch_open_slots
from services.database_service import run_store, write_audit_entry, update_call_record, utc_now_iso
from services.datetime_service import parse_date, parse_time, format_time_12h, format_date_spoken
from services.task_queue import submit_background_job
from services.verification_service import resolve_appointment
from supabase_scheduling_store import StoreError
from utils.formatting_utils import spoken_list, possessive
from utils.phone_utils import normalize_phone_e164


class RollbackError(Exception):
    """The inverse of a committed saga step could not be applied."""


@dataclass
class RescheduleTarget:
    date: date
    slot: SlotProjection

    @property
    def time(self) -> str:
        return self.slot.slot_start

    @property
    def formatted_date(self) -> str:
        return format_date_spoken(self.date)

    @property
    def formatted_time(self) -> str:
        return format_time_12h(self.slot.slot_start)


@dataclass
class CancelOriginalStep:
    """Saga step 1. `snapshot` holds the row's pre-cancel state for `undo`."""

    appt: VerifiedAppointment
    target: RescheduleTarget
    snapshot: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.snapshot = {
            "status": self.appt.status or RESTORED_STATUS_BY_SOURCE.get(self.appt.source),
            "cancelled_at": self.appt.cancelled_at,
            "cancelled_reason": self.appt.cancelled_reason,
        }

    async def run(self, ctx: ToolContext) -> None:
        await run_store(ctx.store.update_appointment, self.appt.source, self.appt.appointment_id, {
            "status": "cancelled",
            "cancelled_at": utc_now_iso(),
            "cancelled_reason": f"Rescheduled to {self.target.date.isoformat()} {self.target.time}",
        })

    async def undo(self, ctx: ToolContext) -> None:
        try:
            await run_store(ctx.store.update_appointment, self.appt.source, self.appt.appointment_id, dict(self.snapshot))
        except StoreError as e:
            raise RollbackError(f"restore of {self.appt.source}/{self.appt.appointment_id} failed: {e}") from e


@dataclass
class InsertReplacementStep:
    """Saga step 2: the new booking row. Its inverse is never needed."""

    appt: VerifiedAppointment
    target: RescheduleTarget
    args: RescheduleAppointmentArgs
    created: Optional[Dict[str, Any]] = None

    def payload(self, ctx: ToolContext) -> Dict[str, Any]:
        appt = self.appt
        return {
            "clinic_id": ctx.clinic.id,
            "vapi_call_id": ctx.call_id,
            "client_name": appt.client_name or self.args.client_name,
            "client_phone": appt.client_phone or normalize_phone_e164(self.args.client_phone or ctx.caller_phone),
            "patient_name": appt.patient_name or self.args.pet_name,
            "date": self.target.date.isoformat(),
            "start_time": self.target.time,
            "end_time": self.target.slot.slot_end,
            "status": "pending_sync",
            "reason": self.args.reason or "Rescheduled appointment",
            "provider_name": appt.provider_name,
            "appointment_type": appt.appointment_type,
            "room_id": appt.room,
            "rescheduled_from_id": appt.appointment_id,
            "metadata": {
                "rescheduled_from": {
                    "id": appt.appointment_id,
                    "source": appt.source,
                    "external_id": appt.external_id,
                    "original_date": appt.date.isoformat(),
                    "original_time": appt.appointment_time,
                },
            },
        }

    async def run(self, ctx: ToolContext) -> None:
        self.created = await run_store(ctx.store.insert_booking, self.payload(ctx))


def _alternatives(open_slots: List[SlotProjection]) -> List[Dict[str, Any]]:
    return [
        {"time": s.slot_start, "formatted_time": format_time_12h(s.slot_start)}
        for s in open_slots[:MAX_RESCHEDULE_ALTERNATIVES]
    ]


def build_reschedule_job(
    ctx: ToolContext,
    appt: VerifiedAppointment,
    target: RescheduleTarget,
    new_booking_id: Optional[str],
    reason: Optional[str],
) -> Dict[str, Any]:
    return {
        "clinic_id": ctx.clinic.id,
        "cancel_neo_appointment_id": appt.external_id,
        "original_appointment_id": appt.appointment_id,
        "original_source": appt.source,
        "new_booking_id": new_booking_id,
        "new_date": target.date.isoformat(),
        "new_time": target.time,
        "patient_name": appt.patient_name,
        "client_name": appt.client_name,
        "client_phone": appt.client_phone,
        "provider_name": appt.provider_name,
        "appointment_type": appt.appointment_type,
        "room": appt.room,
        "reason": reason,
        "vapi_call_id": ctx.call_id,
    }


async def _choose_target(ctx: ToolContext, day: date, time_text: Optional[str]):
    """Return a RescheduleTarget, or a ToolResult explaining why none was chosen."""
    formatted_date = format_date_spoken(day)
    try:
        open_slots = await fetch_open_slots(ctx, day)
    except StoreError as e:
        logger.error(f"[RESCHEDULE] ❌ Slot lookup failed clinic={ctx.clinic.id} date={day}: {e}")
        return database_error(
            "I'm having trouble checking the schedule right now. Please try again in a moment."
        )

    if time_text:
        wanted = parse_time(time_text)
        if not wanted:
            return ToolResult.fail(
                INVALID_TIME,
                f'I couldn\'t understand the time "{time_text}". '
                'Could you say it again, like "9 AM" or "2:30 PM"?',
            )
        for slot in open_slots:
            if slot.slot_start == wanted:
                return RescheduleTarget(day, slot)

        alternatives = _alternatives(open_slots)
        if alternatives:
            times = spoken_list([a["formatted_time"] for a in alternatives], "or")
            message = (
                f"I'm sorry, {format_time_12h(wanted)} on {formatted_date} isn't available. "
                f"I have openings at {times}. Would one of those work?"
            )
        else:
            message = (
                f"I'm sorry, {format_time_12h(wanted)} on {formatted_date} isn't available, and that day "
                "is fully booked. Would you like to try a different day?"
            )
        return ToolResult.fail(
            SLOT_NOT_AVAILABLE,
            message,
            data={"date": day.isoformat(), "requested_time": wanted, "alternative_times": alternatives},
        )

    if not open_slots:
        return ToolResult.fail(
            NO_AVAILABILITY,
            f"I'm sorry, there are no openings on {formatted_date}. Would you like to try a different day?",
            data={"date": day.isoformat()},
        )
    return RescheduleTarget(day, open_slots[0])


async def reschedule_appointment(ctx: ToolContext, args: RescheduleAppointmentArgs) -> ToolResult:
    """Two-phase reschedule: read back old vs. new, then run the saga once confirmed."""
    if not ctx.clinic:
        return clinic_not_found()

    if not args.client_name or not args.pet_name:
        return ToolResult.fail(
            MISSING_DETAILS,
            "To reschedule, I'll need your name and your pet's name.",
        )

    today = ctx.today()
    original_day = parse_date(args.original_date, today)
    if not original_day:
        return ToolResult.fail(
            INVALID_DATE,
            f'I couldn\'t understand the date "{args.original_date or ""}". '
            "Which day is the appointment you'd like to move?",
        )

    try:
        appt = await resolve_appointment(ctx, args.client_name, args.pet_name, original_day)
    except StoreError as e:
        logger.error(f"[RESCHEDULE] ❌ Lookup failed clinic={ctx.clinic.id}: {e}")
        return database_error(
            "I'm having trouble looking up appointments right now. Please try again in a moment."
        )

    if not appt:
        return ToolResult.fail(
            APPOINTMENT_NOT_FOUND,
            f"I don't see an appointment for {args.pet_name} on {format_date_spoken(original_day)}. "
            "Could you double-check the date for me?",
            data={"status": "NOT_FOUND", "date": original_day.isoformat()},
        )

    new_day = parse_date(args.preferred_new_date, today)
    if not new_day:
        return ToolResult.fail(
            INVALID_NEW_DATE,
            f'I couldn\'t understand the new date "{args.preferred_new_date or ""}". '
            "What day would you like to move the appointment to?",
        )
    if new_day < today:
        return ToolResult.fail(
            PAST_DATE,
            f"{format_date_spoken(new_day)} has already passed. What upcoming date would work for you?",
        )

    target = await _choose_target(ctx, new_day, args.preferred_new_time)
    if isinstance(target, ToolResult):
        return target

    old_view = {
        "date": appt.date.isoformat(),
        "formatted_date": appt.formatted_date,
        "time": appt.appointment_time,
        "formatted_time": appt.formatted_time,
    }
    new_view = {
        "date": target.date.isoformat(),
        "formatted_date": target.formatted_date,
        "time": target.time,
        "formatted_time": target.formatted_time,
    }

    if not args.confirmed:
        return ToolResult.fail(
            REQUIRES_CONFIRMATION,
            f"Just to confirm, you'd like to move {possessive(appt.patient_name)} appointment from "
            f"{appt.formatted_date} at {appt.formatted_time} to {target.formatted_date} at "
            f"{target.formatted_time}. Is that right?",
            data={"old_datetime": old_view, "new_datetime": new_view},
        )

    if not appt.appointment_id:
        logger.error(f"[RESCHEDULE] Resolved appointment has no id (source={appt.source})")
        return invalid_state(
            "I couldn't find the appointment record. Please try again or call the office directly."
        )

    cancel_step = CancelOriginalStep(appt, target)
    insert_step = InsertReplacementStep(appt, target, args)

    try:
        await cancel_step.run(ctx)
    except StoreError as e:
        logger.error(f"[RESCHEDULE] ❌ Failed to cancel original appt={appt.appointment_id}: {e}")
        return database_error(
            "I apologize, but I couldn't complete the reschedule. Don't worry, your original "
            "appointment is still in place. Please call the office directly."
        )

    try:
        await insert_step.run(ctx)
    except StoreError as e:
        logger.error(f"[RESCHEDULE] ❌ Failed to create replacement booking, rolling back appt={appt.appointment_id}: {e}")
        try:
            await cancel_step.undo(ctx)
        except RollbackError as rb:
            logger.error(f"[RESCHEDULE] ❌❌ Rollback failed, original left cancelled: {rb}")
            return ToolResult.fail(
                ROLLBACK_FAILED,
                "I'm sorry, something went wrong while moving your appointment. "
                "Please call the office directly so they can make sure it's scheduled correctly.",
                data={"original_appointment_id": appt.appointment_id},
            )
        logger.info(f"[RESCHEDULE] Rolled back appt={appt.appointment_id} to status={cancel_step.snapshot['status']}")
        return ToolResult.fail(
            ROLLBACK_SUCCESS,
            "I apologize, but I couldn't complete the reschedule. Don't worry, your original appointment "
            f"at {appt.formatted_time} on {appt.formatted_date} is still in place.",
            data={"original_appointment_id": appt.appointment_id},
        )

    new_booking_id = (insert_step.created or {}).get("id")
    logger.info(
        f"[RESCHEDULE] ✅ Rescheduled appt={appt.appointment_id} → booking={new_booking_id} "
        f"{target.date} {target.time} clinic={ctx.clinic.id}"
    )

    await write_audit_entry(
        ctx, "reschedule", appointment_id=new_booking_id,
        old_appointment_id=appt.appointment_id,
        external_id=appt.external_id,
        old_datetime=f"{appt.date.isoformat()} {appt.appointment_time}",
        new_datetime=f"{target.date.isoformat()} {target.time}",
        reason=args.reason or "Rescheduled via phone",
    )

    if ctx.clinic.has_pms:
        await submit_background_job(
            ctx.task_queue,
            build_reschedule_job(ctx, appt, target, new_booking_id, args.reason),
            PMS_RESCHEDULE_JOB_ENDPOINT,
            tag="pms-reschedule",
        )

    await update_call_record(ctx, {
        "outcome": CALL_OUTCOME_RESCHEDULED,
        "structured_data": {"appointment": {
            "date": target.date.isoformat(),
            "time": target.time,
            "client_name": appt.client_name or args.client_name,
            "patient_name": appt.patient_name or args.pet_name,
            "original_date": appt.date.isoformat(),
            "original_time": appt.appointment_time,
            "rescheduled_at": utc_now_iso(),
        }},
    })

    return ToolResult.ok(
        f"Perfect! I've rescheduled {possessive(appt.patient_name)} appointment to {target.formatted_time} "
        f"on {target.formatted_date}. Is there anything else I can help you with?",
        data={
            "rescheduled": True,
            "original_appointment_id": appt.appointment_id,
            "new_booking_id": new_booking_id,
            "old_datetime": old_view,
            "new_datetime": new_view,
        },
    )
