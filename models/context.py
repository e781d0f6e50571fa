"""
Per-call context handed to every appointment tool.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from models.scheduling import Clinic
from pms_client import PmsClient, resolve_pms_client_factory


@dataclass
class ToolContext:
    """
    Everything one tool invocation needs: the resolved clinic, the call it
    belongs to, and the collaborators it may talk to.

    `pms_client_factory` is resolved once from the clinic's PMS type when the
    context is built; services never decide which PMS client to construct.
    `today_override` pins the clinic-local date (tests, replays).
    """

    clinic: Optional[Clinic]
    store: Any
    call_id: Optional[str] = None
    caller_phone: Optional[str] = None
    task_queue: Any = None
    pms_client_factory: Optional[Callable[[], PmsClient]] = None
    today_override: Optional[date] = None

    @classmethod
    def build(
        cls,
        clinic: Optional[Clinic],
        store: Any,
        call_id: Optional[str] = None,
        caller_phone: Optional[str] = None,
        task_queue: Any = None,
    ) -> "ToolContext":
        factory = resolve_pms_client_factory(clinic.pms_type) if clinic else None
        return cls(
            clinic=clinic,
            store=store,
            call_id=call_id,
            caller_phone=caller_phone,
            task_queue=task_queue,
            pms_client_factory=factory,
        )

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.clinic.timezone) if self.clinic else ZoneInfo("UTC")

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        """Today's date in the clinic's timezone, not the server's."""
        if self.today_override is not None:
            return self.today_override
        return self.now().date()
