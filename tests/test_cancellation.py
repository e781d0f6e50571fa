"""Tests for two-phase appointment cancellation."""

import time

import pytest

from config import (
    CALL_OUTCOME_CANCELLED,
    PENDING_BOOKINGS_TABLE,
    PMS_CANCEL_JOB_ENDPOINT,
    SYNCED_APPOINTMENTS_TABLE,
)
from models.results import (
    ALREADY_CANCELLED,
    APPOINTMENT_NOT_FOUND,
    DATABASE_ERROR,
    INVALID_STATE,
    REQUIRES_CONFIRMATION,
)
from models.scheduling import VerifiedAppointment
from models.tool_args import CancelAppointmentArgs
from services import appointment_management_service
from services.appointment_management_service import cancel_appointment

from conftest import FakeTaskQueue, TODAY


def _args(**overrides):
    values = {"owner_name": "Jane Smith", "patient_name": "Max", "appointment_date": "October 20"}
    values.update(overrides)
    return CancelAppointmentArgs(**values)


def _add_max(store, **extra):
    return store.add_synced(id="s1", date="2026-10-20", start_time="10:00:00", client_name="Jane Smith",
                            patient_name="Max", neo_appointment_id="NEO-77", **extra)


@pytest.mark.asyncio
class TestCancelConfirmationGate:
    """Tests that unconfirmed cancels never mutate anything."""

    @pytest.mark.parametrize("confirmed", [None, False, "false", ""])
    async def test_unconfirmed_never_mutates(self, make_ctx, store, task_queue, confirmed):
        _add_max(store)
        args = _args() if confirmed is None else _args(confirmed=confirmed)

        result = await cancel_appointment(make_ctx(), args)

        assert result.error == REQUIRES_CONFIRMATION
        assert result.data["appointment"]["appointment_id"] == "s1"
        assert store.mutations == []
        assert task_queue.jobs == []
        assert store.row(SYNCED_APPOINTMENTS_TABLE, "s1")["status"] == "scheduled"

    async def test_unconfirmed_and_missing(self, make_ctx, store):
        result = await cancel_appointment(make_ctx(), _args())

        assert result.error == APPOINTMENT_NOT_FOUND
        assert store.mutations == []


@pytest.mark.asyncio
class TestCancelConfirmed:
    """Tests for the confirmed cancel path."""

    async def test_cancels_and_queues_pms_job(self, make_ctx, store, task_queue):
        _add_max(store)

        result = await cancel_appointment(make_ctx(), _args(confirmed=True, reason="Feeling better"))

        assert result.success is True
        row = store.row(SYNCED_APPOINTMENTS_TABLE, "s1")
        assert row["status"] == "cancelled"
        assert row["cancelled_reason"] == "Feeling better"
        assert row["cancelled_at"]

        assert store.audit[0]["action"] == "cancel"
        assert store.audit[0]["idexx_appointment_id"] == "NEO-77"

        endpoint, payload = task_queue.jobs[0]
        assert endpoint == PMS_CANCEL_JOB_ENDPOINT
        assert payload["neo_appointment_id"] == "NEO-77"

        assert store.call_records["call-1"]["outcome"] == CALL_OUTCOME_CANCELLED

    async def test_pending_booking_without_external_id_skips_queue(self, make_ctx, store, task_queue):
        store.add_pending(id="p1", date="2026-10-20", start_time="11:00:00", client_name="Jane Smith",
                          patient_name="Max")

        result = await cancel_appointment(make_ctx(), _args(confirmed=True))

        assert result.success is True
        assert store.row(PENDING_BOOKINGS_TABLE, "p1")["status"] == "cancelled"
        assert task_queue.jobs == []

    async def test_second_cancel_finds_nothing(self, make_ctx, store):
        _add_max(store)
        await cancel_appointment(make_ctx(), _args(confirmed=True))

        result = await cancel_appointment(make_ctx(), _args(confirmed=True))
        assert result.error == APPOINTMENT_NOT_FOUND

    async def test_queue_failure_does_not_change_result(self, make_ctx, store):
        _add_max(store)
        ctx = make_ctx()
        ctx.task_queue = FakeTaskQueue(fail=True)

        result = await cancel_appointment(ctx, _args(confirmed=True))

        assert result.success is True
        assert store.row(SYNCED_APPOINTMENTS_TABLE, "s1")["status"] == "cancelled"

    async def test_stuck_queue_does_not_hold_the_result(self, make_ctx, store, monkeypatch):
        monkeypatch.setattr("services.task_queue.QUEUE_SUBMIT_TIMEOUT_SEC", 0.05)
        _add_max(store)
        ctx = make_ctx()
        ctx.task_queue = FakeTaskQueue(delay=0.3)

        started = time.monotonic()
        result = await cancel_appointment(ctx, _args(confirmed=True))

        assert time.monotonic() - started < 0.25
        assert result.success is True
        assert store.call_records["call-1"]["outcome"] == CALL_OUTCOME_CANCELLED

    async def test_update_failure_reports_still_scheduled(self, make_ctx, store, task_queue):
        _add_max(store)
        store.fail_on("update_appointment")

        result = await cancel_appointment(make_ctx(), _args(confirmed=True))

        assert result.error == DATABASE_ERROR
        assert "still scheduled" in result.message
        assert store.audit == []
        assert task_queue.jobs == []

    async def test_slow_update_reports_the_committed_cancel(self, make_ctx, store, task_queue, monkeypatch):
        """Test an update outlasting the read timeout is awaited, not reported as a failure."""
        monkeypatch.setattr("services.database_service.STORE_READ_TIMEOUT_SEC", 0.05)
        _add_max(store)
        store.slow_on("update_appointment", 0.2)

        result = await cancel_appointment(make_ctx(), _args(confirmed=True))

        assert result.success is True
        assert "still scheduled" not in result.message
        assert store.row(SYNCED_APPOINTMENTS_TABLE, "s1")["status"] == "cancelled"
        assert store.audit[0]["action"] == "cancel"
        assert len(task_queue.jobs) == 1


def _resolved(status="scheduled", appointment_id="s1"):
    return VerifiedAppointment(
        appointment_id=appointment_id,
        source=SYNCED_APPOINTMENTS_TABLE,
        date=TODAY,
        appointment_time="10:00:00",
        appointment_time_end=None,
        formatted_date="Thursday, October 15",
        formatted_time="10:00 AM",
        status=status,
        patient_name="Max",
    )


@pytest.mark.asyncio
class TestCancelResolvedState:
    """Tests for records the resolver hands back in an unexpected state."""

    async def test_already_cancelled(self, make_ctx, store, monkeypatch):
        async def _resolve(*_args, **_kwargs):
            return _resolved(status="cancelled")

        monkeypatch.setattr(appointment_management_service, "resolve_appointment", _resolve)
        result = await cancel_appointment(make_ctx(), _args(confirmed=True))

        assert result.error == ALREADY_CANCELLED
        assert store.mutations == []

    async def test_missing_id_is_invalid_state(self, make_ctx, store, monkeypatch):
        async def _resolve(*_args, **_kwargs):
            return _resolved(appointment_id=None)

        monkeypatch.setattr(appointment_management_service, "resolve_appointment", _resolve)
        result = await cancel_appointment(make_ctx(), _args(confirmed=True))

        assert result.error == INVALID_STATE
        assert store.mutations == []
