"""
Scheduling domain records: clinics, slot projections, verified appointments.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional

from config import DEFAULT_TZ


class IntegrationType(str, Enum):
    """How a clinic's bookings reach its system of record."""

    REALTIME_PMS = "realtime_pms"
    NO_API = "no_api"
    STORE_MANAGED = "store_managed"


@dataclass
class Clinic:
    id: str
    name: str = ""
    timezone: str = DEFAULT_TZ
    integration_type: IntegrationType = IntegrationType.STORE_MANAGED
    pms_type: Optional[str] = None
    pms_credentials: Optional[Dict[str, str]] = None
    capacity_override: Optional[int] = None

    @property
    def has_pms(self) -> bool:
        return bool(self.pms_type)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Clinic":
        """Build a Clinic from a `clinics` row (plus joined schedule config)."""
        raw_type = (row.get("integration_type") or "").strip().lower()
        try:
            integration_type = IntegrationType(raw_type)
        except ValueError:
            integration_type = IntegrationType.STORE_MANAGED

        override = row.get("capacity_override")
        if override is None:
            override = (row.get("schedule_config") or {}).get("capacity_override")
        try:
            override = int(override) if override is not None else None
        except (TypeError, ValueError):
            override = None

        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            timezone=row.get("timezone") or DEFAULT_TZ,
            integration_type=integration_type,
            pms_type=row.get("pims_type") or row.get("pms_type"),
            pms_credentials=row.get("pms_credentials"),
            capacity_override=override,
        )


@dataclass
class SlotProjection:
    """One row of the store's `get_available_slots` projection."""

    slot_start: str
    slot_end: str
    capacity: int = 0
    booked_count: int = 0
    available_count: int = 0
    is_blocked: bool = False
    block_reason: Optional[str] = None
    is_stale: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SlotProjection":
        return cls(
            slot_start=_as_time_str(row.get("slot_start") or row.get("start")),
            slot_end=_as_time_str(row.get("slot_end") or row.get("end")),
            capacity=int(row.get("capacity") or 0),
            booked_count=int(row.get("booked_count") or 0),
            available_count=int(row.get("available_count") or 0),
            is_blocked=bool(row.get("is_blocked")),
            block_reason=row.get("block_reason"),
            is_stale=bool(row.get("is_stale")),
        )

    @property
    def is_open(self) -> bool:
        return not self.is_blocked and self.available_count > 0


@dataclass
class VerifiedAppointment:
    """An existing appointment located by the verification resolver."""

    appointment_id: Optional[str]
    source: str
    date: date
    appointment_time: str
    appointment_time_end: Optional[str]
    formatted_date: str
    formatted_time: str
    status: Optional[str] = None
    external_id: Optional[str] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    patient_name: Optional[str] = None
    provider_name: Optional[str] = None
    appointment_type: Optional[str] = None
    room: Optional[str] = None
    cancelled_at: Optional[str] = None
    cancelled_reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("raw", None)
        data.pop("cancelled_at", None)
        data.pop("cancelled_reason", None)
        data["date"] = self.date.isoformat()
        data["status"] = "FOUND"
        data["record_status"] = self.status
        return data


def _as_time_str(value: Any) -> str:
    """Normalize a store time value to HH:MM:SS."""
    s = str(value or "").strip()
    if len(s) == 5:
        return f"{s}:00"
    return s[:8]
