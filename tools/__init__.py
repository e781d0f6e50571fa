"""
Assistant tools package.

`AppointmentTools` binds the scheduling tools to one call's `ToolContext`.
"""

from .appointment_tools import AppointmentTools

__all__ = ["AppointmentTools"]
