"""
Booking new appointments.

A clinic's integration type decides how a booking is made:

- realtime_pms:  create the appointment directly in the clinic's PMS; if the
                 patient isn't found there or the PMS fails, fall back to
                 manual entry (with a call id) or a store-managed hold.
- no_api:        write the request onto the call record for staff to key in.
- store_managed: atomic hold-and-book in Supabase (`book_slot_with_hold`).

Each strategy implements `attempt(request) -> BookingOutcome`; the strategy
is picked once from `BOOKING_STRATEGIES` by `resolve_booking_strategy`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from config import (
    logger,
    HOLD_EXPIRY_MINUTES,
    MAX_BOOKING_ALTERNATIVES,
    PMS_PATIENT_SEARCH_LIMIT,
    CALL_OUTCOME_SCHEDULED,
)
from models.context import ToolContext
from models.results import (
    ToolResult,
    INVALID_DATE,
    INVALID_TIME,
    MISSING_DETAILS,
    PAST_DATE,
    SLOT_UNAVAILABLE,
    MISSING_CALL_ID,
    clinic_not_found,
    database_error,
)
from models.scheduling import IntegrationType
from models.tool_args import BookAppointmentArgs
from pms_client import pms_session
from services.database_service import run_store, update_call_record, write_audit_entry, utc_now_iso
from services.datetime_service import parse_date, parse_time, format_time_12h, format_date_spoken
from supabase_scheduling_store import StoreError
from utils.phone_utils import normalize_phone_e164, mask_phone
from utils.formatting_utils import spoken_list


@dataclass
class BookingRequest:
    """A validated booking: canonical date/time plus caller-supplied details."""

    date: date
    time: str
    client_name: str
    patient_name: str
    client_phone: Optional[str] = None
    species: Optional[str] = None
    breed: Optional[str] = None
    reason: Optional[str] = None
    is_new_client: bool = False

    @property
    def formatted_date(self) -> str:
        return format_date_spoken(self.date)

    @property
    def formatted_time(self) -> str:
        return format_time_12h(self.time)

    def appointment_view(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "formatted_date": self.formatted_date,
            "time": self.time,
            "formatted_time": self.formatted_time,
            "patient_name": self.patient_name,
            "client_name": self.client_name,
            "reason": self.reason,
        }


@dataclass
class BookingOutcome:
    """
    Result of one strategy attempt.

    `fall_back` is set only when the strategy made no change anywhere and the
    next strategy in line should try instead.
    """

    result: Optional[ToolResult] = None
    fall_back: bool = False
    reason: Optional[str] = None

    @classmethod
    def done(cls, result: ToolResult) -> "BookingOutcome":
        return cls(result=result)

    @classmethod
    def declined(cls, reason: str) -> "BookingOutcome":
        return cls(fall_back=True, reason=reason)


def _booking_failed_message() -> str:
    return "I'm having trouble booking your appointment right now. Please try again in a moment."


class StoreManagedBooking:
    """Atomic hold-and-book through the store. Never falls back."""

    name = "store_managed"

    def __init__(self, ctx: ToolContext):
        self.ctx = ctx

    async def attempt(self, req: BookingRequest) -> BookingOutcome:
        ctx = self.ctx
        try:
            result = await run_store(
                ctx.store.book_slot_with_hold,
                ctx.clinic.id,
                req.date.isoformat(),
                req.time,
                req.client_name,
                req.client_phone,
                req.patient_name,
                species=req.species,
                reason=req.reason,
                is_new_client=req.is_new_client,
                call_id=ctx.call_id,
            )
        except StoreError as e:
            logger.error(f"[BOOK] ❌ Hold-and-book failed clinic={ctx.clinic.id}: {e}")
            return BookingOutcome.done(database_error(_booking_failed_message()))

        if not result.get("success"):
            alternatives = (result.get("alternative_times") or [])[:MAX_BOOKING_ALTERNATIVES]
            times = [a.get("time") if isinstance(a, dict) else str(a) for a in alternatives]
            # RPC alternatives may be "HH:MM:SS" or already spoken ("10:30 AM")
            times = [format_time_12h(parse_time(t)) if parse_time(t) else t for t in times if t]
            alt_text = (
                f" I have availability at {spoken_list(times, 'or')}. Would any of those work for you?"
                if times else " Would you like me to check another day?"
            )
            logger.info(
                f"[BOOK] Slot unavailable clinic={ctx.clinic.id} date={req.date} "
                f"time={req.time} alternatives={len(times)}"
            )
            return BookingOutcome.done(ToolResult.fail(
                SLOT_UNAVAILABLE,
                f"I'm sorry, {req.formatted_time} on {req.formatted_date} is no longer available.{alt_text}",
                data={
                    "reason": result.get("error"),
                    "alternative_times": alternatives,
                },
            ))

        booking_id = result.get("booking_id")
        confirmation = result.get("confirmation_number")
        logger.info(
            f"[BOOK] ✅ Booked id={booking_id} confirmation={confirmation} "
            f"clinic={ctx.clinic.id} date={req.date} time={req.time}"
        )
        return BookingOutcome.done(ToolResult.ok(
            f"Great! I've booked your appointment for {req.patient_name} on {req.formatted_date} "
            f"at {req.formatted_time}. Your confirmation number is {confirmation}. "
            "Is there anything else I can help you with?",
            data={
                "booking_id": booking_id,
                "confirmation_number": confirmation,
                "appointment": req.appointment_view(),
                "clinic_name": ctx.clinic.name,
                "hold_info": {
                    "expires_in_minutes": HOLD_EXPIRY_MINUTES,
                    "note": (
                        f"This appointment is being held for {HOLD_EXPIRY_MINUTES} minutes "
                        "while we complete your booking."
                    ),
                },
            },
        ))


class ManualEntryBooking:
    """Record the booking on the call record for staff to enter by hand."""

    name = "no_api"

    def __init__(self, ctx: ToolContext):
        self.ctx = ctx

    async def attempt(self, req: BookingRequest) -> BookingOutcome:
        ctx = self.ctx
        if not ctx.call_id:
            logger.error(f"[BOOK] Manual-entry booking requires a call id (clinic={ctx.clinic.id})")
            return BookingOutcome.done(ToolResult.fail(
                MISSING_CALL_ID,
                "I'm having trouble booking your appointment right now. Please try again.",
            ))

        snapshot = {
            "date": req.date.isoformat(),
            "time": req.time,
            "client_name": req.client_name,
            "client_phone": req.client_phone,
            "patient_name": req.patient_name,
            "reason": req.reason,
            "species": req.species,
            "breed": req.breed,
            "is_new_client": req.is_new_client,
            "booked_at": utc_now_iso(),
        }
        try:
            await run_store(ctx.store.update_call_record, ctx.call_id, {
                "structured_data": {"appointment": snapshot},
                "call_analysis": {"outcome": "scheduled", "appointment_booked": True},
                "outcome": CALL_OUTCOME_SCHEDULED,
            })
        except StoreError as e:
            logger.error(f"[BOOK] ❌ Failed to store manual-entry booking call={ctx.call_id}: {e}")
            return BookingOutcome.done(database_error(_booking_failed_message()))

        logger.info(
            f"[BOOK] ✅ Manual-entry booking stored call={ctx.call_id} clinic={ctx.clinic.id} "
            f"date={req.date} time={req.time}"
        )
        await write_audit_entry(
            ctx, "book", appointment_id=None,
            new_datetime=f"{req.date.isoformat()} {req.time}",
            reason="Manual entry requested by phone",
        )
        return BookingOutcome.done(ToolResult.ok(
            f"Perfect! I've scheduled {req.patient_name} for {req.formatted_date} at {req.formatted_time}. "
            "Is there anything else I can help you with?",
            data={
                "appointment": req.appointment_view(),
                "clinic_name": ctx.clinic.name,
                "note": "Appointment will be entered into the practice management system by clinic staff",
            },
        ))


class RealtimePmsBooking:
    """
    Book straight into the clinic's PMS.

    Existing patients are matched by a patient search; new clients are created
    together with their appointment. Anything else declines so the
    fallback strategy handles the call.
    """

    name = "realtime_pms"

    def __init__(self, ctx: ToolContext):
        self.ctx = ctx

    def _book_in_pms(self, req: BookingRequest) -> Dict[str, Any]:
        """Blocking: one scoped PMS session. Returns a status dict, raises on PMS errors."""
        ctx = self.ctx
        with pms_session(ctx.pms_client_factory, ctx.clinic.pms_credentials) as client:
            if req.is_new_client:
                created = client.create_appointment_with_new_client(
                    client_name=req.client_name,
                    client_phone=req.client_phone,
                    patient_name=req.patient_name,
                    species=req.species,
                    date=req.date.isoformat(),
                    start_time=req.time,
                    reason=req.reason,
                )
            else:
                patients = client.search_patient(req.patient_name, limit=PMS_PATIENT_SEARCH_LIMIT)
                patient = _pick_patient(patients, req)
                if not patient:
                    return {"status": "patient_not_found", "candidates": len(patients)}

                created = client.create_appointment(
                    patient_id=str(patient.get("id") or patient.get("patientId")),
                    client_id=patient.get("clientId") or patient.get("client_id"),
                    date=req.date.isoformat(),
                    start_time=req.time,
                    reason=req.reason,
                )
            if not created.get("success"):
                return {"status": "create_failed", "error": created.get("error")}
            return {"status": "created", "appointment_id": created.get("appointmentId")}

    async def attempt(self, req: BookingRequest) -> BookingOutcome:
        ctx = self.ctx
        if ctx.pms_client_factory is None:
            return BookingOutcome.declined("no PMS client for this clinic")

        try:
            outcome = await asyncio.to_thread(self._book_in_pms, req)
        except Exception as e:
            logger.warning(f"[BOOK] ⚠️ PMS booking failed clinic={ctx.clinic.id}, falling back: {e!r}")
            return BookingOutcome.declined(f"pms error: {e}")

        if outcome["status"] != "created":
            logger.info(f"[BOOK] PMS booking not possible ({outcome}), falling back (clinic={ctx.clinic.id})")
            return BookingOutcome.declined(outcome["status"])

        external_id = outcome.get("appointment_id")
        logger.info(f"[BOOK] ✅ PMS appointment created external_id={external_id} clinic={ctx.clinic.id}")

        await update_call_record(ctx, {
            "structured_data": {"appointment": {
                **req.appointment_view(),
                "client_phone": req.client_phone,
                "species": req.species,
                "external_appointment_id": external_id,
                "booked_at": utc_now_iso(),
            }},
            "outcome": CALL_OUTCOME_SCHEDULED,
        })
        await write_audit_entry(
            ctx, "book", appointment_id=None, external_id=external_id,
            new_datetime=f"{req.date.isoformat()} {req.time}",
            reason="Booked in PMS by phone",
        )
        return BookingOutcome.done(ToolResult.ok(
            f"Perfect! I've booked {req.patient_name} for {req.formatted_date} at {req.formatted_time}. "
            "Is there anything else I can help you with?",
            data={
                "external_appointment_id": external_id,
                "appointment": req.appointment_view(),
                "clinic_name": ctx.clinic.name,
            },
        ))


def _pick_patient(patients: List[Dict[str, Any]], req: BookingRequest) -> Optional[Dict[str, Any]]:
    """First PMS patient whose name matches and, when known, whose owner matches."""
    pet = req.patient_name.strip().lower()
    owner = (req.client_name or "").strip().lower()
    for p in patients or []:
        name = str(p.get("name") or p.get("patientName") or "").lower()
        if pet not in name:
            continue
        owner_name = str(p.get("clientName") or p.get("client_name") or "").lower()
        if owner and owner_name and owner.split()[-1] not in owner_name:
            continue
        return p
    return None


# Capability lookup: integration type -> strategy chain (first entry tried first)
BOOKING_STRATEGIES: Dict[IntegrationType, Callable[[ToolContext], List[Any]]] = {
    IntegrationType.REALTIME_PMS: lambda ctx: [
        RealtimePmsBooking(ctx),
        ManualEntryBooking(ctx) if ctx.call_id else StoreManagedBooking(ctx),
    ],
    IntegrationType.NO_API: lambda ctx: [ManualEntryBooking(ctx)],
    IntegrationType.STORE_MANAGED: lambda ctx: [StoreManagedBooking(ctx)],
}


def resolve_booking_strategy(ctx: ToolContext) -> List[Any]:
    build = BOOKING_STRATEGIES.get(ctx.clinic.integration_type, BOOKING_STRATEGIES[IntegrationType.STORE_MANAGED])
    return build(ctx)


def validate_booking(ctx: ToolContext, args: BookAppointmentArgs):
    """Return a BookingRequest, or a ToolResult describing what to ask again."""
    if not args.client_name or not args.patient_name:
        return ToolResult.fail(
            MISSING_DETAILS,
            "To book the appointment, I'll need your name and your pet's name.",
        )

    today = ctx.today()
    day = parse_date(args.date, today)
    if not day:
        return ToolResult.fail(
            INVALID_DATE,
            f'I couldn\'t understand the date "{args.date or ""}". Could you please say it again?',
        )

    time_24 = parse_time(args.time)
    if not time_24:
        return ToolResult.fail(
            INVALID_TIME,
            f'I couldn\'t understand the time "{args.time or ""}". '
            'Could you please say it again, like "9 AM" or "2:30 PM"?',
        )

    if day < today:
        return ToolResult.fail(
            PAST_DATE,
            "I can only book appointments for today or future dates.",
        )

    return BookingRequest(
        date=day,
        time=time_24,
        client_name=args.client_name,
        patient_name=args.patient_name,
        client_phone=normalize_phone_e164(args.client_phone or ctx.caller_phone),
        species=args.species,
        breed=args.breed,
        reason=args.reason,
        is_new_client=bool(args.is_new_client),
    )


async def book_appointment(ctx: ToolContext, args: BookAppointmentArgs) -> ToolResult:
    """Validate, then run the clinic's strategy chain until one produces a result."""
    if not ctx.clinic:
        return clinic_not_found()

    req = validate_booking(ctx, args)
    if isinstance(req, ToolResult):
        return req

    logger.info(
        f"[BOOK] clinic={ctx.clinic.id} type={ctx.clinic.integration_type.value} "
        f"date={req.date} time={req.time} phone={mask_phone(req.client_phone)}"
    )

    for strategy in resolve_booking_strategy(ctx):
        outcome = await strategy.attempt(req)
        if outcome.result is not None:
            if outcome.result.data is not None:
                outcome.result.data.setdefault("booked_via", strategy.name)
            return outcome.result
        logger.info(f"[BOOK] Strategy {strategy.name} declined: {outcome.reason}")

    logger.error(f"[BOOK] No booking strategy produced a result (clinic={ctx.clinic.id})")
    return database_error(_booking_failed_message())
