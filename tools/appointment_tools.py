"""
Appointment tools exposed to the voice assistant.

Each tool takes the raw argument dict the voice platform sends (or an already
parsed args model), validates it with the matching pydantic model and hands it
to the service layer. Tools never raise: anything unexpected is logged and
reported as `invalid_state`.
"""

from __future__ import annotations

import traceback
from typing import Any, Dict, Type, Union

from pydantic import BaseModel, ValidationError

from config import logger
from models.context import ToolContext
from models.results import ToolResult, MISSING_DETAILS, invalid_state
from models.tool_args import (
    CheckAvailabilityArgs,
    CheckAvailabilityRangeArgs,
    BookAppointmentArgs,
    VerifyAppointmentArgs,
    CancelAppointmentArgs,
    RescheduleAppointmentArgs,
)
from services.availability_service import check_availability, check_availability_range
from services.booking_service import book_appointment
from services.verification_service import verify_appointment
from services.appointment_management_service import cancel_appointment
from services.reschedule_service import reschedule_appointment


RawArgs = Union[Dict[str, Any], BaseModel, None]


class AppointmentTools:
    """The assistant's scheduling tools, bound to one call's context."""

    def __init__(self, ctx: ToolContext):
        self.ctx = ctx
        self._handlers: Dict[str, tuple] = {
            "check_availability": (CheckAvailabilityArgs, self._check_availability),
            "check_availability_range": (CheckAvailabilityRangeArgs, self._check_availability_range),
            "book_appointment": (BookAppointmentArgs, self._book_appointment),
            "verify_appointment": (VerifyAppointmentArgs, self._verify_appointment),
            "cancel_appointment": (CancelAppointmentArgs, self._cancel_appointment),
            "reschedule_appointment": (RescheduleAppointmentArgs, self._reschedule_appointment),
        }

    @property
    def tool_names(self):
        return list(self._handlers)

    # ------------------------------------------------------------------ public

    async def check_availability(self, args: RawArgs = None) -> ToolResult:
        return await self.dispatch("check_availability", args)

    async def check_availability_range(self, args: RawArgs = None) -> ToolResult:
        return await self.dispatch("check_availability_range", args)

    async def book_appointment(self, args: RawArgs = None) -> ToolResult:
        return await self.dispatch("book_appointment", args)

    async def verify_appointment(self, args: RawArgs = None) -> ToolResult:
        return await self.dispatch("verify_appointment", args)

    async def cancel_appointment(self, args: RawArgs = None) -> ToolResult:
        return await self.dispatch("cancel_appointment", args)

    async def reschedule_appointment(self, args: RawArgs = None) -> ToolResult:
        return await self.dispatch("reschedule_appointment", args)

    async def dispatch(self, tool_name: str, args: RawArgs = None) -> ToolResult:
        """Validate `args` for `tool_name` and run it; always returns a ToolResult."""
        entry = self._handlers.get(tool_name)
        if entry is None:
            logger.error(f"[TOOL] Unknown tool '{tool_name}'")
            return invalid_state("I'm not able to do that right now.")

        model_cls, handler = entry
        call_id = self.ctx.call_id or "-"
        try:
            parsed = _parse_args(model_cls, args)
        except ValidationError as e:
            logger.warning(f"[TOOL] {tool_name} rejected arguments call={call_id}: {e.errors()}")
            return ToolResult.fail(
                MISSING_DETAILS,
                "I didn't quite catch all the details. Could you repeat that for me?",
            )

        logger.info(f"[TOOL] {tool_name} call={call_id}")
        try:
            result = await handler(parsed)
        except Exception as e:
            logger.error(f"[TOOL] ❌ {tool_name} failed call={call_id}: {e!r}")
            traceback.print_exc()
            return invalid_state()

        logger.info(f"[TOOL] {tool_name} → success={result.success} error={result.error}")
        return result

    # ---------------------------------------------------------------- handlers

    async def _check_availability(self, args: CheckAvailabilityArgs) -> ToolResult:
        return await check_availability(self.ctx, args.date)

    async def _check_availability_range(self, args: CheckAvailabilityRangeArgs) -> ToolResult:
        return await check_availability_range(self.ctx, args.start_date, args.days_ahead)

    async def _book_appointment(self, args: BookAppointmentArgs) -> ToolResult:
        return await book_appointment(self.ctx, args)

    async def _verify_appointment(self, args: VerifyAppointmentArgs) -> ToolResult:
        return await verify_appointment(self.ctx, args)

    async def _cancel_appointment(self, args: CancelAppointmentArgs) -> ToolResult:
        return await cancel_appointment(self.ctx, args)

    async def _reschedule_appointment(self, args: RescheduleAppointmentArgs) -> ToolResult:
        return await reschedule_appointment(self.ctx, args)


def _parse_args(model_cls: Type[BaseModel], args: RawArgs) -> BaseModel:
    if isinstance(args, model_cls):
        return args
    if isinstance(args, BaseModel):
        args = args.model_dump()
    return model_cls.model_validate(args or {})
