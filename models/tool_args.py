"""
Pydantic models for appointment tool arguments.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, field_validator


def _sanitize_tool_arg(value: Optional[str]) -> Optional[str]:
    """Sanitize tool arguments - removes None, empty strings, and 'null' literals."""
    if value is None:
        return None
    value = str(value).strip()
    if not value or value.lower() in ("null", "none", "undefined"):
        return None
    return value


class _ToolArgs(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def _clean_strings(cls, v):
        if isinstance(v, str):
            return _sanitize_tool_arg(v)
        return v


class CheckAvailabilityArgs(_ToolArgs):
    date: Optional[str] = None


class CheckAvailabilityRangeArgs(_ToolArgs):
    start_date: Optional[str] = None
    days_ahead: Optional[int] = None


class BookAppointmentArgs(_ToolArgs):
    date: Optional[str] = None
    time: Optional[str] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    patient_name: Optional[str] = None
    species: Optional[str] = None
    breed: Optional[str] = None
    reason: Optional[str] = None
    is_new_client: Optional[bool] = False


class VerifyAppointmentArgs(_ToolArgs):
    owner_name: Optional[str] = None
    patient_name: Optional[str] = None
    appointment_date: Optional[str] = None


class CancelAppointmentArgs(_ToolArgs):
    owner_name: Optional[str] = None
    patient_name: Optional[str] = None
    appointment_date: Optional[str] = None
    reason: Optional[str] = None
    confirmed: Optional[bool] = False


class RescheduleAppointmentArgs(_ToolArgs):
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    pet_name: Optional[str] = None
    original_date: Optional[str] = None
    preferred_new_date: Optional[str] = None
    preferred_new_time: Optional[str] = None
    reason: Optional[str] = None
    confirmed: Optional[bool] = False
