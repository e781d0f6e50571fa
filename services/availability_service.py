"""
Availability queries over the store's slot projection.

Handles:
- Single-day availability (with past-date guard in clinic time)
- Multi-day availability summaries
- Blocked / zero-capacity filtering and per-clinic capacity overrides
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from config import (
    logger,
    MAX_SPOKEN_SLOTS,
    MAX_RANGE_DAYS,
    DEFAULT_RANGE_DAYS,
    RANGE_FIRST_DAY_SLOT_CAP,
)
from models.context import ToolContext
from models.results import (
    ToolResult,
    INVALID_DATE,
    PAST_DATE,
    clinic_not_found,
    database_error,
)
from models.scheduling import SlotProjection
from services.database_service import read_store
from services.datetime_service import (
    parse_date,
    format_time_12h,
    format_date_spoken,
    localize,
)
from supabase_scheduling_store import StoreError
from utils.formatting_utils import spoken_list


def apply_capacity_override(slots: List[SlotProjection], override: Optional[int]) -> List[SlotProjection]:
    """
    Recompute availability against a clinic-level capacity.

    Unblocked slots get `available_count = max(override - booked_count, 0)`;
    blocked slots are returned untouched.
    """
    if override is None:
        return list(slots)
    out = []
    for slot in slots:
        if slot.is_blocked:
            out.append(slot)
            continue
        out.append(replace(
            slot,
            capacity=override,
            available_count=max(override - slot.booked_count, 0),
        ))
    return out


def filter_open_slots(slots: List[SlotProjection]) -> List[SlotProjection]:
    """Keep unblocked slots with at least one opening, earliest first."""
    return sorted((s for s in slots if s.is_open), key=lambda s: s.slot_start)


async def fetch_open_slots(ctx: ToolContext, day: date) -> List[SlotProjection]:
    """Open slots for one clinic-local date. Raises StoreError."""
    rows = await read_store(ctx.store.get_available_slots, ctx.clinic.id, day.isoformat())
    slots = [SlotProjection.from_row(r) for r in rows or []]
    if any(s.is_stale for s in slots):
        logger.warning(f"[AVAIL] Slot data for {day} is stale (clinic={ctx.clinic.id})")
    slots = apply_capacity_override(slots, ctx.clinic.capacity_override)
    return filter_open_slots(slots)


def slot_view(slot: SlotProjection, day: Optional[date] = None, tz_name: Optional[str] = None) -> Dict[str, Any]:
    view = {
        "time": slot.slot_start,
        "formatted_time": format_time_12h(slot.slot_start),
        "end_time": slot.slot_end,
        "formatted_end_time": format_time_12h(slot.slot_end) if slot.slot_end else None,
        "available": slot.available_count,
    }
    if day is not None and tz_name:
        view["start_at"] = localize(day, slot.slot_start, tz_name).isoformat()
        if slot.slot_end:
            view["end_at"] = localize(day, slot.slot_end, tz_name).isoformat()
    return view


async def check_availability(ctx: ToolContext, date_text: Optional[str]) -> ToolResult:
    """Open appointment times for one spoken date."""
    if not ctx.clinic:
        return clinic_not_found()

    if not date_text:
        return ToolResult.fail(INVALID_DATE, "What date would you like me to check?")

    today = ctx.today()
    day = parse_date(date_text, today)
    if not day:
        return ToolResult.fail(
            INVALID_DATE,
            f'I couldn\'t understand the date "{date_text}". Could you please say it again?',
        )

    formatted_date = format_date_spoken(day)
    if day < today:
        return ToolResult.fail(
            PAST_DATE,
            f"{formatted_date} has already passed. What upcoming date would you like me to check?",
            data={"date": day.isoformat()},
        )

    try:
        open_slots = await fetch_open_slots(ctx, day)
    except StoreError as e:
        logger.error(f"[AVAIL] ❌ Slot lookup failed clinic={ctx.clinic.id} date={day}: {e}")
        return database_error(
            "I'm having trouble checking the schedule right now. Please try again in a moment."
        )

    views = [slot_view(s) for s in open_slots]
    logger.info(f"[AVAIL] clinic={ctx.clinic.id} date={day} open_slots={len(views)}")

    data = {
        "date": day.isoformat(),
        "formatted_date": formatted_date,
        "open": bool(views),
        "available_slots": views,
    }

    if not views:
        return ToolResult.ok(
            f"I'm sorry, I don't have any openings on {formatted_date}. "
            "Would you like me to check another day?",
            data=data,
        )

    spoken = [v["formatted_time"] for v in views[:MAX_SPOKEN_SLOTS]]
    more = " among other times" if len(views) > MAX_SPOKEN_SLOTS else ""
    return ToolResult.ok(
        f"On {formatted_date}, I have openings at {spoken_list(spoken, 'or')}{more}. "
        "Which time works best for you?",
        data=data,
    )


async def check_availability_range(
    ctx: ToolContext,
    start_date_text: Optional[str] = None,
    days_ahead: Optional[int] = None,
) -> ToolResult:
    """
    Summarize openings over a window of up to MAX_RANGE_DAYS days.

    Returns one summary per day plus the first day with any opening and its
    slots (capped) so the assistant can offer times right away.
    """
    if not ctx.clinic:
        return clinic_not_found()

    today = ctx.today()
    if start_date_text:
        start = parse_date(start_date_text, today)
        if not start:
            return ToolResult.fail(
                INVALID_DATE,
                f'I couldn\'t understand the date "{start_date_text}". Could you please say it again?',
            )
    else:
        start = today
    start = max(start, today)

    try:
        days = int(days_ahead) if days_ahead is not None else DEFAULT_RANGE_DAYS
    except (TypeError, ValueError):
        days = DEFAULT_RANGE_DAYS
    days = min(max(days, 1), MAX_RANGE_DAYS)

    tz_name = ctx.clinic.timezone
    summaries: List[Dict[str, Any]] = []
    first_available: Optional[Dict[str, Any]] = None

    for offset in range(days):
        day = start + timedelta(days=offset)
        try:
            open_slots = await fetch_open_slots(ctx, day)
        except StoreError as e:
            logger.error(f"[AVAIL] ❌ Range lookup failed clinic={ctx.clinic.id} date={day}: {e}")
            return database_error(
                "I'm having trouble checking the schedule right now. Please try again in a moment."
            )

        views = [slot_view(s, day, tz_name) for s in open_slots]
        summaries.append({
            "date": day.isoformat(),
            "formatted_date": format_date_spoken(day),
            "open": bool(views),
            "open_slot_count": len(views),
            "first_time": views[0]["formatted_time"] if views else None,
            "first_start_at": views[0]["start_at"] if views else None,
        })
        if views and first_available is None:
            first_available = {
                "date": day.isoformat(),
                "formatted_date": format_date_spoken(day),
                "slots": views[:RANGE_FIRST_DAY_SLOT_CAP],
            }

    end = start + timedelta(days=days - 1)
    logger.info(
        f"[AVAIL] Range clinic={ctx.clinic.id} {start}..{end} "
        f"open_days={sum(1 for s in summaries if s['open'])}"
    )

    data = {
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "timezone": tz_name,
        "days": summaries,
        "first_available": first_available,
    }

    if first_available is None:
        return ToolResult.ok(
            f"I'm sorry, I don't see any openings between {format_date_spoken(start)} "
            f"and {format_date_spoken(end)}. Would you like me to look further out?",
            data=data,
        )

    times = [s["formatted_time"] for s in first_available["slots"][:3]]
    other_days = [s["formatted_date"] for s in summaries if s["open"] and s["date"] != first_available["date"]]
    tail = f" I also have openings on {spoken_list(other_days[:3])}." if other_days else ""
    return ToolResult.ok(
        f"The next opening is {first_available['formatted_date']}, at {spoken_list(times, 'or')}.{tail} "
        "Would any of those work for you?",
        data=data,
    )
