"""Tests for the assistant-facing tool entrypoints."""

import pytest

from models.results import INVALID_STATE, MISSING_DETAILS, REQUIRES_CONFIRMATION, ToolResult
from models.tool_args import BookAppointmentArgs, _sanitize_tool_arg
from tools import AppointmentTools

from conftest import slot_row


@pytest.mark.parametrize("value", [None, "", "  ", "null", "None", "undefined"])
def test_sanitize_tool_arg_empty_values(value):
    assert _sanitize_tool_arg(value) is None


def test_sanitize_tool_arg_keeps_text():
    assert _sanitize_tool_arg("  Max ") == "Max"


@pytest.mark.asyncio
class TestAppointmentTools:
    """Tests for AppointmentTools dispatch."""

    async def test_raw_dict_arguments(self, make_ctx, store):
        store.slots["2026-10-16"] = [slot_row("10:00:00")]
        tools = AppointmentTools(make_ctx())

        result = await tools.check_availability({"date": "tomorrow"})

        assert isinstance(result, ToolResult)
        assert result.success is True
        assert result.data["available_slots"][0]["time"] == "10:00:00"

    async def test_model_arguments(self, make_ctx):
        tools = AppointmentTools(make_ctx())
        args = BookAppointmentArgs(date="tomorrow", time="10am", client_name="Jane Smith", patient_name="Max")

        result = await tools.book_appointment(args)
        assert result.data["booking_id"] == "b1"

    async def test_range_days_as_string(self, make_ctx):
        result = await AppointmentTools(make_ctx()).check_availability_range({"days_ahead": "3"})
        assert len(result.data["days"]) == 3

    async def test_confirmed_flag_from_string(self, make_ctx, store):
        store.add_synced(id="s1", date="2026-10-20", start_time="10:00:00", client_name="Jane Smith",
                         patient_name="Max")
        tools = AppointmentTools(make_ctx())

        result = await tools.cancel_appointment({
            "owner_name": "Jane Smith", "patient_name": "Max", "appointment_date": "October 20", "confirmed": "null",
        })
        assert result.error == REQUIRES_CONFIRMATION

        result = await tools.cancel_appointment({
            "owner_name": "Jane Smith", "patient_name": "Max", "appointment_date": "October 20", "confirmed": "true",
        })
        assert result.success is True

    async def test_bad_argument_types(self, make_ctx):
        result = await AppointmentTools(make_ctx()).check_availability_range({"days_ahead": "a week"})
        assert result.error == MISSING_DETAILS

    async def test_unexpected_error_becomes_invalid_state(self, make_ctx):
        class _BrokenStore:
            def get_available_slots(self, clinic_id, date_iso):
                raise KeyError("slot_start")

        tools = AppointmentTools(make_ctx())
        tools.ctx.store = _BrokenStore()

        result = await tools.check_availability({"date": "tomorrow"})

        assert result.success is False
        assert result.error == INVALID_STATE

    async def test_unknown_tool(self, make_ctx):
        result = await AppointmentTools(make_ctx()).dispatch("transfer_call", {})
        assert result.error == INVALID_STATE

    async def test_tool_names(self, make_ctx):
        assert set(AppointmentTools(make_ctx()).tool_names) == {
            "check_availability",
            "check_availability_range",
            "book_appointment",
            "verify_appointment",
            "cancel_appointment",
            "reschedule_appointment",
        }
