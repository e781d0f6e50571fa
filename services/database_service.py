"""
Async access to the scheduling store.

Handles:
- Running blocking store calls off the event loop (reads time out, writes never do)
- Audit log writes
- Call record outcome/snapshot updates
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from config import logger, STORE_READ_TIMEOUT_SEC, AUDIT_PERFORMED_BY
from supabase_scheduling_store import StoreError

if TYPE_CHECKING:
    from models.context import ToolContext


async def run_store(fn: Callable[..., Any], *args, timeout: Optional[float] = None, **kwargs) -> Any:
    """
    Run a blocking store method in a worker thread.

    With no `timeout` the call is awaited to completion. Every write goes
    through this path: abandoning the await does not stop the worker thread,
    so a write that "timed out" may still commit.

    With a `timeout`, a call that outlives it is reported as `StoreError` so
    callers handle it like any other store failure. Only reads pass one.
    """
    call = asyncio.to_thread(fn, *args, **kwargs)
    if timeout is None:
        return await call
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as e:
        name = getattr(fn, "__name__", "store call")
        raise StoreError(f"{name} timed out after {timeout}s") from e


async def read_store(fn: Callable[..., Any], *args, **kwargs) -> Any:
    """Run a read-only store method with the read timeout applied."""
    return await run_store(fn, *args, timeout=STORE_READ_TIMEOUT_SEC, **kwargs)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def write_audit_entry(
    ctx: "ToolContext",
    action: str,
    appointment_id: Optional[str],
    old_appointment_id: Optional[str] = None,
    external_id: Optional[str] = None,
    old_datetime: Optional[str] = None,
    new_datetime: Optional[str] = None,
    reason: Optional[str] = None,
) -> bool:
    """
    Append one audit log entry. The mutation it describes has already been
    committed, so a failed write is logged and reported, never raised.
    """
    entry = {
        "clinic_id": ctx.clinic.id if ctx.clinic else None,
        "action": action,
        "appointment_id": appointment_id,
        "old_appointment_id": old_appointment_id,
        "idexx_appointment_id": external_id,
        "old_datetime": old_datetime,
        "new_datetime": new_datetime,
        "reason": reason,
        "vapi_call_id": ctx.call_id,
        "performed_by": AUDIT_PERFORMED_BY,
        "created_at": utc_now_iso(),
    }
    try:
        await run_store(ctx.store.insert_audit_entry, entry)
        logger.info(f"[DB] Audit entry written action={action} appt={appointment_id}")
        return True
    except StoreError as e:
        logger.error(f"[DB] ❌ Audit write failed action={action} appt={appointment_id}: {e}")
        return False


async def update_call_record(ctx: "ToolContext", fields: Dict[str, Any]) -> bool:
    """
    Best-effort update of the originating call record (outcome tag, appointment
    snapshot). Skipped when the call id is unknown.
    """
    if not ctx.call_id:
        logger.debug("[DB] No call id, skipping call record update")
        return False
    try:
        await run_store(ctx.store.update_call_record, ctx.call_id, fields)
        logger.info(f"[DB] Call record updated call={ctx.call_id} outcome={fields.get('outcome')}")
        return True
    except StoreError as e:
        logger.warning(f"[DB] ⚠️ Could not update call record call={ctx.call_id}: {e}")
        return False
