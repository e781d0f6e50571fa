"""
Uniform result returned by every appointment tool.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ToolResult(BaseModel):
    """
    What the routing layer relays back to the voice platform.

    `message` is always a sentence the assistant can speak as-is; `error` is the
    stable machine code the routing layer branches on.
    """

    success: bool
    message: str
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, message: str, data: Optional[Dict[str, Any]] = None) -> "ToolResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(
        cls,
        error: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> "ToolResult":
        return cls(success=False, error=error, message=message, data=data)


# Stable error codes
INVALID_DATE = "invalid_date"
INVALID_TIME = "invalid_time"
INVALID_NEW_DATE = "invalid_new_date"
MISSING_DETAILS = "missing_details"
PAST_DATE = "past_date"
CLINIC_NOT_FOUND = "clinic_not_found"
APPOINTMENT_NOT_FOUND = "appointment_not_found"
SLOT_UNAVAILABLE = "slot_unavailable"
SLOT_NOT_AVAILABLE = "slot_not_available"
NO_AVAILABILITY = "no_availability"
REQUIRES_CONFIRMATION = "requires_confirmation"
ALREADY_CANCELLED = "already_cancelled"
ROLLBACK_SUCCESS = "rollback_success"
ROLLBACK_FAILED = "rollback_failed"
DATABASE_ERROR = "database_error"
MISSING_CALL_ID = "missing_call_id"
INVALID_STATE = "invalid_state"


def clinic_not_found() -> ToolResult:
    return ToolResult.fail(
        CLINIC_NOT_FOUND,
        "I couldn't identify the clinic. Please try again later.",
    )


def database_error(message: Optional[str] = None) -> ToolResult:
    return ToolResult.fail(
        DATABASE_ERROR,
        message or "I'm having trouble reaching our scheduling system right now. Please try again in a moment.",
    )


def invalid_state(message: Optional[str] = None) -> ToolResult:
    return ToolResult.fail(
        INVALID_STATE,
        message or "Something went wrong on my side, so I didn't change anything. Please call the office directly.",
    )
