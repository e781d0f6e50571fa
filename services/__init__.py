"""
Service modules package.

This package contains business logic services for:
- Date/time normalization of spoken input
- Availability queries
- Appointment verification, booking, cancellation and rescheduling
- Background job submission
"""

from .availability_service import check_availability, check_availability_range
from .verification_service import resolve_appointment, verify_appointment
from .booking_service import book_appointment, resolve_booking_strategy
from .appointment_management_service import cancel_appointment
from .reschedule_service import reschedule_appointment

__all__ = [
    "check_availability",
    "check_availability_range",
    "resolve_appointment",
    "verify_appointment",
    "book_appointment",
    "resolve_booking_strategy",
    "cancel_appointment",
    "reschedule_appointment",
]
