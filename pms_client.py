# pms_client.py
"""
Clients for clinics' external practice-management systems (PMS).

A clinic's `pms_type` picks the client class from `PMS_CLIENTS` once, when the
per-call context is built. Sessions are opened and closed through
`pms_session()` so a provider login is never leaked, even when a call fails.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

import httpx

from config import logger, PMS_BASE_URL, PMS_HTTP_TIMEOUT_SEC


class PmsError(Exception):
    """Any failure talking to an external PMS."""


class PmsClient:
    """Contract every PMS client implements."""

    def authenticate(self, credentials: Optional[Dict[str, str]]) -> None:
        raise NotImplementedError

    def search_patient(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def create_appointment(
        self,
        patient_id: str,
        client_id: Optional[str],
        date: str,
        start_time: str,
        reason: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def create_appointment_with_new_client(
        self,
        client_name: str,
        client_phone: Optional[str],
        patient_name: str,
        species: Optional[str],
        date: str,
        start_time: str,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


class HttpPmsClient(PmsClient):
    """
    JSON-over-HTTP PMS client (IDEXX Neo style endpoints).

    Create calls return `{"success": bool, "appointmentId": ..., "error": ...}`;
    a `success: false` body is returned as-is, transport and auth problems
    raise `PmsError`.
    """

    ENDPOINTS = {
        "login": "/auth/login",
        "logout": "/auth/logout",
        "patient_search": "/search/patients",
        "create_appointment": "/appointments/create",
        "create_with_client": "/appointments/createWithNewClient",
    }

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = PMS_HTTP_TIMEOUT_SEC,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or PMS_BASE_URL).rstrip("/")
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)
        self._token: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    def _request(self, method: str, key: str, **kwargs) -> Dict[str, Any]:
        headers = kwargs.pop("headers", {})
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            resp = self._http.request(method, self.ENDPOINTS[key], headers=headers, **kwargs)
            resp.raise_for_status()
            return resp.json() if resp.content else {}
        except httpx.HTTPStatusError as e:
            raise PmsError(f"{key} returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise PmsError(f"{key} failed: {e}") from e

    def authenticate(self, credentials: Optional[Dict[str, str]]) -> None:
        if not credentials or not credentials.get("username") or not credentials.get("password"):
            raise PmsError("No PMS credentials configured for this clinic")
        body = self._request("POST", "login", json={
            "username": credentials["username"],
            "password": credentials["password"],
            "companyId": credentials.get("company_id"),
        })
        token = body.get("token") or body.get("sessionToken")
        if not token:
            raise PmsError("PMS login returned no session token")
        self._token = token
        logger.debug(f"[PMS] Authenticated against {self.base_url}")

    def _require_session(self) -> None:
        if not self._token:
            raise PmsError("Not authenticated")

    def search_patient(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        self._require_session()
        body = self._request("GET", "patient_search", params={"q": query, "limit": limit})
        patients = body.get("patients") if isinstance(body, dict) else body
        return list(patients or [])[:limit]

    def create_appointment(
        self,
        patient_id: str,
        client_id: Optional[str],
        date: str,
        start_time: str,
        reason: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._require_session()
        return self._request("POST", "create_appointment", json={
            "patientId": patient_id,
            "clientId": client_id,
            "date": date,
            "startTime": start_time,
            "reason": reason,
            "providerId": provider_id,
        })

    def create_appointment_with_new_client(
        self,
        client_name: str,
        client_phone: Optional[str],
        patient_name: str,
        species: Optional[str],
        date: str,
        start_time: str,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._require_session()
        return self._request("POST", "create_with_client", json={
            "clientName": client_name,
            "clientPhone": client_phone,
            "patientName": patient_name,
            "species": species,
            "date": date,
            "startTime": start_time,
            "reason": reason,
        })

    def close(self) -> None:
        try:
            if self._token:
                self._request("POST", "logout")
        except PmsError as e:
            logger.warning(f"[PMS] Logout failed (session will expire on its own): {e}")
        finally:
            self._token = None
            self._http.close()


# Capability lookup: pms_type -> client class
PMS_CLIENTS: Dict[str, Callable[[], PmsClient]] = {
    "idexx": HttpPmsClient,
}


def resolve_pms_client_factory(pms_type: Optional[str]) -> Optional[Callable[[], PmsClient]]:
    """Return the constructor for a clinic's PMS, or None if it has none we support."""
    if not pms_type:
        return None
    factory = PMS_CLIENTS.get(pms_type.strip().lower())
    if factory is None:
        logger.warning(f"[PMS] No client registered for pms_type={pms_type!r}")
    return factory


@contextmanager
def pms_session(
    factory: Callable[[], PmsClient],
    credentials: Optional[Dict[str, str]],
) -> Iterator[PmsClient]:
    """Open an authenticated PMS session and always close it."""
    client = factory()
    try:
        client.authenticate(credentials)
        yield client
    finally:
        try:
            client.close()
        except Exception as e:
            logger.warning(f"[PMS] Error closing session: {e!r}")
