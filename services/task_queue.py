"""
Background job submission for PMS sync work.

Cancellations and reschedules are committed locally during the call; the
matching change on the clinic's PMS is handed to a queue that owns its own
retry/backoff policy. Submitting is fire-and-forget from the caller's point
of view: `submit_background_job` never raises and never changes the result
already decided for the caller. Missed jobs are picked up by the nightly
reconciliation.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx

from config import (
    logger,
    QSTASH_URL,
    QSTASH_TOKEN,
    QSTASH_RETRIES,
    APP_BASE_URL,
    QUEUE_SUBMIT_TIMEOUT_SEC,
)


class TaskQueueError(Exception):
    """The queue rejected or never received a job."""


class QStashTaskQueue:
    """Publishes JSON jobs to an HTTP endpoint of this app through Upstash QStash."""

    def __init__(
        self,
        token: Optional[str] = QSTASH_TOKEN,
        qstash_url: str = QSTASH_URL,
        app_base_url: str = APP_BASE_URL,
        retries: int = QSTASH_RETRIES,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.token = token
        self.qstash_url = qstash_url.rstrip("/")
        self.app_base_url = app_base_url.rstrip("/")
        self.retries = retries
        self._transport = transport

    def publish(self, payload: Dict[str, Any], endpoint: str) -> str:
        """Publish one job; returns the queue's message id."""
        if not self.token:
            raise TaskQueueError("QSTASH_TOKEN is not configured")
        if not self.app_base_url:
            raise TaskQueueError("APP_BASE_URL is not configured")

        destination = f"{self.app_base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Upstash-Retries": str(self.retries),
        }
        try:
            with httpx.Client(timeout=QUEUE_SUBMIT_TIMEOUT_SEC, transport=self._transport) as client:
                resp = client.post(
                    f"{self.qstash_url}/v2/publish/{destination}",
                    json=payload,
                    headers=headers,
                )
                resp.raise_for_status()
                body = resp.json() if resp.content else {}
        except (httpx.HTTPError, ValueError) as e:
            raise TaskQueueError(f"publish to {endpoint} failed: {e}") from e

        return (body or {}).get("messageId", "")


async def submit_background_job(
    queue: Any,
    payload: Dict[str, Any],
    endpoint: str,
    tag: str,
) -> bool:
    """
    Submit a job without letting the outcome reach the caller.

    Returns True when the queue accepted the job. Failures, timeouts and a
    missing queue are logged and reported as False.
    """
    if queue is None:
        logger.warning(f"[QUEUE] No task queue configured, {tag} job not submitted (nightly sync will reconcile)")
        return False
    try:
        message_id = await asyncio.wait_for(
            asyncio.to_thread(queue.publish, payload, endpoint),
            timeout=QUEUE_SUBMIT_TIMEOUT_SEC,
        )
        logger.info(f"[QUEUE] Queued {tag} job → {endpoint} id={message_id or '?'}")
        return True
    except asyncio.TimeoutError:
        logger.warning(f"[QUEUE] ⚠️ {tag} job submission timed out after {QUEUE_SUBMIT_TIMEOUT_SEC}s")
        return False
    except Exception as e:
        logger.warning(f"[QUEUE] ⚠️ Failed to queue {tag} job: {e!r}")
        return False
