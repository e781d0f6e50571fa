import time
from datetime import date
from typing import Any, Dict, List, Optional

import pytest

from config import SYNCED_APPOINTMENTS_TABLE, PENDING_BOOKINGS_TABLE, INACTIVE_SYNCED_STATUSES, ACTIVE_PENDING_STATUSES
from models.context import ToolContext
from models.scheduling import Clinic, IntegrationType
from pms_client import PmsError
from services.task_queue import TaskQueueError
from supabase_scheduling_store import StoreError

# Thursday; clinic-local "today" for every test context
TODAY = date(2026, 10, 15)
CLINIC_ID = "clinic-1"


def slot_row(start: str, capacity: int = 3, booked: int = 0, available: Optional[int] = None,
             blocked: bool = False, end: Optional[str] = None) -> Dict[str, Any]:
    if end is None:
        hour, minute = (int(p) for p in start.split(":")[:2])
        end = f"{hour:02d}:{minute + 30:02d}:00" if minute < 30 else f"{hour + 1:02d}:00:00"
    return {
        "slot_start": start,
        "slot_end": end,
        "capacity": capacity,
        "booked_count": booked,
        "available_count": capacity - booked if available is None else available,
        "is_blocked": blocked,
        "block_reason": "Lunch" if blocked else None,
        "is_stale": False,
    }


class FakeSchedulingStore:
    """In-memory store implementing the scheduling store contract."""

    def __init__(self):
        self.slots: Dict[str, List[Dict[str, Any]]] = {}
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            SYNCED_APPOINTMENTS_TABLE: [],
            PENDING_BOOKINGS_TABLE: [],
        }
        self.audit: List[Dict[str, Any]] = []
        self.call_records: Dict[str, Dict[str, Any]] = {}
        self.book_result: Dict[str, Any] = {
            "success": True, "booking_id": "b1", "confirmation_number": "ABC123",
        }
        self.calls: List[tuple] = []
        self._failures: Dict[str, Optional[int]] = {}
        self._delays: Dict[str, float] = {}
        self._counts: Dict[str, int] = {}

    # -- test controls

    def fail_on(self, method: str, call_number: Optional[int] = None):
        """Make `method` raise StoreError, always or only on its Nth call."""
        self._failures[method] = call_number

    def slow_on(self, method: str, seconds: float):
        """Make `method` block for `seconds` before it commits."""
        self._delays[method] = seconds

    def add_synced(self, **row) -> Dict[str, Any]:
        row.setdefault("clinic_id", CLINIC_ID)
        row.setdefault("status", "scheduled")
        row.setdefault("cancelled_at", None)
        row.setdefault("cancelled_reason", None)
        self.tables[SYNCED_APPOINTMENTS_TABLE].append(row)
        return row

    def add_pending(self, **row) -> Dict[str, Any]:
        row.setdefault("clinic_id", CLINIC_ID)
        row.setdefault("status", "confirmed")
        row.setdefault("cancelled_at", None)
        row.setdefault("cancelled_reason", None)
        self.tables[PENDING_BOOKINGS_TABLE].append(row)
        return row

    def row(self, source: str, appointment_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self.tables[source] if r.get("id") == appointment_id), None)

    def called(self, method: str) -> int:
        return self._counts.get(method, 0)

    @property
    def mutations(self) -> List[tuple]:
        writes = {"update_appointment", "insert_booking", "insert_audit_entry", "update_call_record", "book_slot_with_hold"}
        return [c for c in self.calls if c[0] in writes]

    def _record(self, method: str, *args):
        self.calls.append((method, args))
        self._counts[method] = self._counts.get(method, 0) + 1
        if method in self._failures:
            nth = self._failures[method]
            if nth is None or nth == self._counts[method]:
                raise StoreError(f"{method} failed (simulated)")
        if method in self._delays:
            time.sleep(self._delays[method])

    # -- store contract

    def get_available_slots(self, clinic_id, date_iso):
        self._record("get_available_slots", clinic_id, date_iso)
        return [dict(r) for r in self.slots.get(date_iso, [])]

    def book_slot_with_hold(self, clinic_id, date_iso, time_iso, client_name, client_phone, patient_name,
                            species=None, reason=None, is_new_client=False, call_id=None):
        self._record("book_slot_with_hold", clinic_id, date_iso, time_iso, client_name, client_phone,
                     patient_name, species, reason, is_new_client, call_id)
        return dict(self.book_result)

    def _find(self, source, clinic_id, date_iso, owner_name, patient_name):
        out = []
        for r in self.tables[source]:
            if r.get("clinic_id") != clinic_id or r.get("date") != date_iso:
                continue
            if owner_name.lower() not in (r.get("client_name") or "").lower():
                continue
            if patient_name.lower() not in (r.get("patient_name") or "").lower():
                continue
            out.append(dict(r))
        return sorted(out, key=lambda r: r.get("start_time") or "")

    def find_synced_appointments(self, clinic_id, date_iso, owner_name, patient_name):
        self._record("find_synced_appointments", clinic_id, date_iso, owner_name, patient_name)
        rows = self._find(SYNCED_APPOINTMENTS_TABLE, clinic_id, date_iso, owner_name, patient_name)
        return [r for r in rows if not r.get("deleted_at") and r.get("status") not in INACTIVE_SYNCED_STATUSES]

    def find_pending_bookings(self, clinic_id, date_iso, owner_name, patient_name):
        self._record("find_pending_bookings", clinic_id, date_iso, owner_name, patient_name)
        rows = self._find(PENDING_BOOKINGS_TABLE, clinic_id, date_iso, owner_name, patient_name)
        return [r for r in rows if r.get("status") in ACTIVE_PENDING_STATUSES]

    def update_appointment(self, source, appointment_id, fields):
        self._record("update_appointment", source, appointment_id, dict(fields))
        row = self.row(source, appointment_id)
        if row is None:
            raise StoreError(f"{source} update matched no row for id={appointment_id}")
        row.update(fields)
        return dict(row)

    def insert_booking(self, payload):
        self._record("insert_booking", dict(payload))
        row = {"id": f"new-{len(self.tables[PENDING_BOOKINGS_TABLE]) + 1}", **payload}
        self.tables[PENDING_BOOKINGS_TABLE].append(row)
        return dict(row)

    def insert_audit_entry(self, entry):
        self._record("insert_audit_entry", dict(entry))
        self.audit.append(dict(entry))

    def update_call_record(self, call_id, fields):
        self._record("update_call_record", call_id, dict(fields))
        self.call_records.setdefault(call_id, {}).update(fields)


class FakeTaskQueue:
    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.jobs: List[tuple] = []

    def publish(self, payload, endpoint):
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise TaskQueueError("queue unavailable (simulated)")
        self.jobs.append((endpoint, payload))
        return f"msg-{len(self.jobs)}"


class FakePmsClient:
    """PMS client double; every instance logs into the shared `events` list."""

    def __init__(self, events: List[str], patients=None, create_result=None, fail_on: Optional[str] = None):
        self.events = events
        self.patients = patients if patients is not None else []
        self.create_result = create_result or {"success": True, "appointmentId": "PMS-900"}
        self.fail_on = fail_on
        self.created: List[Dict[str, Any]] = []

    def _maybe_fail(self, step):
        if self.fail_on == step:
            raise PmsError(f"{step} failed (simulated)")

    def authenticate(self, credentials):
        self.events.append("authenticate")
        self._maybe_fail("authenticate")

    def search_patient(self, query, limit=5):
        self.events.append(f"search:{query}:{limit}")
        self._maybe_fail("search_patient")
        return self.patients[:limit]

    def create_appointment(self, patient_id, client_id, date, start_time, reason=None, provider_id=None):
        self.events.append("create_appointment")
        self._maybe_fail("create_appointment")
        self.created.append({"patient_id": patient_id, "client_id": client_id, "date": date, "start_time": start_time})
        return dict(self.create_result)

    def create_appointment_with_new_client(self, client_name, client_phone, patient_name, species, date,
                                           start_time, reason=None):
        self.events.append("create_with_client")
        self._maybe_fail("create_appointment_with_new_client")
        self.created.append({"client_name": client_name, "client_phone": client_phone,
                             "patient_name": patient_name, "date": date, "start_time": start_time})
        return dict(self.create_result)

    def close(self):
        self.events.append("close")


@pytest.fixture
def store():
    return FakeSchedulingStore()


@pytest.fixture
def task_queue():
    return FakeTaskQueue()


@pytest.fixture
def pms_events():
    return []


@pytest.fixture
def make_ctx(store, task_queue):
    def _make(
        integration_type: IntegrationType = IntegrationType.STORE_MANAGED,
        call_id: Optional[str] = "call-1",
        capacity_override: Optional[int] = None,
        pms_type: Optional[str] = None,
        pms_client_factory=None,
        today: date = TODAY,
        clinic: Any = "default",
    ) -> ToolContext:
        if clinic == "default":
            clinic = Clinic(
                id=CLINIC_ID,
                name="Happy Paws Veterinary",
                timezone="America/Los_Angeles",
                integration_type=integration_type,
                pms_type=pms_type,
                pms_credentials={"username": "front", "password": "desk"} if pms_type else None,
                capacity_override=capacity_override,
            )
        return ToolContext(
            clinic=clinic,
            store=store,
            call_id=call_id,
            caller_phone="+13105551234",
            task_queue=task_queue,
            pms_client_factory=pms_client_factory,
            today_override=today,
        )

    return _make
