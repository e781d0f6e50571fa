"""
Data models for the veterinary front-desk scheduling tools.
"""

from .scheduling import (
    IntegrationType,
    Clinic,
    SlotProjection,
    VerifiedAppointment,
)
from .results import ToolResult
from .tool_args import (
    CheckAvailabilityArgs,
    CheckAvailabilityRangeArgs,
    BookAppointmentArgs,
    VerifyAppointmentArgs,
    CancelAppointmentArgs,
    RescheduleAppointmentArgs,
    _sanitize_tool_arg,
)

__all__ = [
    "IntegrationType",
    "Clinic",
    "SlotProjection",
    "VerifiedAppointment",
    "ToolResult",
    "CheckAvailabilityArgs",
    "CheckAvailabilityRangeArgs",
    "BookAppointmentArgs",
    "VerifyAppointmentArgs",
    "CancelAppointmentArgs",
    "RescheduleAppointmentArgs",
    "_sanitize_tool_arg",
]
