# supabase_scheduling_store.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from config import (
    get_supabase,
    SYNCED_APPOINTMENTS_TABLE,
    PENDING_BOOKINGS_TABLE,
    AUDIT_LOG_TABLE,
    CALL_RECORDS_TABLE,
    INACTIVE_SYNCED_STATUSES,
    ACTIVE_PENDING_STATUSES,
)


class StoreError(Exception):
    """A Supabase read or write failed."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ilike_fragment(value: str) -> str:
    # PostgREST treats % and _ as wildcards; callers pass plain name fragments
    cleaned = (value or "").replace("%", "").replace("_", " ").strip()
    return f"%{cleaned}%"


class SupabaseSchedulingStore:
    """
    Scheduling data access over Supabase tables and RPCs.

    All methods are blocking; async services call them through
    `asyncio.to_thread`. Every failure surfaces as `StoreError`.
    """

    SYNCED_COLUMNS = (
        "id, clinic_id, date, start_time, end_time, status, neo_appointment_id, "
        "client_name, client_phone, patient_name, provider_name, room_id, "
        "appointment_type, cancelled_at, cancelled_reason"
    )
    PENDING_COLUMNS = (
        "id, clinic_id, date, start_time, end_time, status, confirmation_number, "
        "client_name, client_phone, patient_name, species, reason, provider_name, "
        "room_id, appointment_type, cancelled_at, cancelled_reason, metadata"
    )

    def __init__(self, client: Optional[Client] = None):
        self.supabase: Client = client or get_supabase()

    # ------------------------------------------------------------------ RPCs

    def get_available_slots(self, clinic_id: str, date_iso: str) -> List[Dict[str, Any]]:
        try:
            resp = self.supabase.rpc(
                "get_available_slots",
                {"p_clinic_id": clinic_id, "p_date": date_iso},
            ).execute()
        except Exception as e:
            raise StoreError(f"get_available_slots failed: {e}") from e
        return resp.data or []

    def book_slot_with_hold(
        self,
        clinic_id: str,
        date_iso: str,
        time_iso: str,
        client_name: Optional[str],
        client_phone: Optional[str],
        patient_name: Optional[str],
        species: Optional[str] = None,
        reason: Optional[str] = None,
        is_new_client: bool = False,
        call_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = {
            "p_clinic_id": clinic_id,
            "p_date": date_iso,
            "p_time": time_iso,
            "p_client_name": client_name,
            "p_client_phone": client_phone,
            "p_patient_name": patient_name,
            "p_species": species,
            "p_reason": reason,
            "p_is_new_client": is_new_client,
            "p_vapi_call_id": call_id,
        }
        try:
            resp = self.supabase.rpc("book_slot_with_hold", params).execute()
        except Exception as e:
            raise StoreError(f"book_slot_with_hold failed: {e}") from e
        data = resp.data
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            raise StoreError(f"book_slot_with_hold returned unexpected payload: {data!r}")
        return data

    # --------------------------------------------------------------- lookups

    def find_synced_appointments(
        self, clinic_id: str, date_iso: str, owner_name: str, patient_name: str
    ) -> List[Dict[str, Any]]:
        try:
            resp = (
                self.supabase
                .table(SYNCED_APPOINTMENTS_TABLE)
                .select(self.SYNCED_COLUMNS)
                .eq("clinic_id", clinic_id)
                .eq("date", date_iso)
                .ilike("client_name", _ilike_fragment(owner_name))
                .ilike("patient_name", _ilike_fragment(patient_name))
                .is_("deleted_at", "null")
                .not_.in_("status", INACTIVE_SYNCED_STATUSES)
                .order("start_time")
                .execute()
            )
        except Exception as e:
            raise StoreError(f"{SYNCED_APPOINTMENTS_TABLE} lookup failed: {e}") from e
        return resp.data or []

    def find_pending_bookings(
        self, clinic_id: str, date_iso: str, owner_name: str, patient_name: str
    ) -> List[Dict[str, Any]]:
        try:
            resp = (
                self.supabase
                .table(PENDING_BOOKINGS_TABLE)
                .select(self.PENDING_COLUMNS)
                .eq("clinic_id", clinic_id)
                .eq("date", date_iso)
                .ilike("client_name", _ilike_fragment(owner_name))
                .ilike("patient_name", _ilike_fragment(patient_name))
                .in_("status", ACTIVE_PENDING_STATUSES)
                .order("start_time")
                .execute()
            )
        except Exception as e:
            raise StoreError(f"{PENDING_BOOKINGS_TABLE} lookup failed: {e}") from e
        return resp.data or []

    # ---------------------------------------------------------------- writes

    def update_appointment(self, source: str, appointment_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Update one appointment row in `source`; returns the updated row."""
        if source not in (SYNCED_APPOINTMENTS_TABLE, PENDING_BOOKINGS_TABLE):
            raise StoreError(f"Unknown appointment source {source!r}")
        payload = {**fields, "updated_at": _now_iso()}
        try:
            resp = (
                self.supabase
                .table(source)
                .update(payload, returning="representation")
                .eq("id", appointment_id)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"{source} update failed: {e}") from e
        if not resp.data:
            raise StoreError(f"{source} update matched no row for id={appointment_id}")
        return resp.data[0]

    def insert_booking(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = (
                self.supabase
                .table(PENDING_BOOKINGS_TABLE)
                .insert(payload, returning="representation")
                .execute()
            )
        except Exception as e:
            raise StoreError(f"{PENDING_BOOKINGS_TABLE} insert failed: {e}") from e
        data = resp.data or []
        if not data:
            raise StoreError(f"{PENDING_BOOKINGS_TABLE} insert returned no row")
        return data[0]

    def insert_audit_entry(self, entry: Dict[str, Any]) -> None:
        try:
            self.supabase.table(AUDIT_LOG_TABLE).insert(entry).execute()
        except Exception as e:
            raise StoreError(f"{AUDIT_LOG_TABLE} insert failed: {e}") from e

    def update_call_record(self, call_id: str, fields: Dict[str, Any]) -> None:
        payload = {**fields, "updated_at": _now_iso()}
        try:
            (
                self.supabase
                .table(CALL_RECORDS_TABLE)
                .update(payload)
                .eq("vapi_call_id", call_id)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"{CALL_RECORDS_TABLE} update failed: {e}") from e
