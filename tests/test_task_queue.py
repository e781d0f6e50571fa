"""Tests for background job submission."""

import json
import time

import httpx
import pytest

from services.task_queue import QStashTaskQueue, TaskQueueError, submit_background_job

from conftest import FakeTaskQueue


class TestQStashTaskQueue:
    """Tests for the QStash publisher."""

    def test_publish_posts_to_destination(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"messageId": "msg_123"})

        queue = QStashTaskQueue(
            token="qs-token",
            qstash_url="https://qstash.example.com/",
            app_base_url="https://app.example.com",
            retries=4,
            transport=httpx.MockTransport(handler),
        )
        message_id = queue.publish({"clinic_id": "clinic-1"}, "/api/jobs/pms-cancel-appointment")

        assert message_id == "msg_123"
        assert seen["url"].startswith("https://qstash.example.com/v2/publish/")
        assert seen["url"].endswith("app.example.com/api/jobs/pms-cancel-appointment")
        assert seen["headers"]["authorization"] == "Bearer qs-token"
        assert seen["headers"]["upstash-retries"] == "4"
        assert seen["body"] == {"clinic_id": "clinic-1"}

    def test_http_error_raises(self):
        queue = QStashTaskQueue(
            token="qs-token",
            app_base_url="https://app.example.com",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        with pytest.raises(TaskQueueError):
            queue.publish({}, "/api/jobs/x")

    def test_missing_token_raises(self):
        queue = QStashTaskQueue(token=None, app_base_url="https://app.example.com")
        with pytest.raises(TaskQueueError):
            queue.publish({}, "/api/jobs/x")


class _SlowQueue:
    def publish(self, payload, endpoint):
        time.sleep(0.5)
        return "late"


@pytest.mark.asyncio
class TestSubmitBackgroundJob:
    """Tests for fire-and-forget submission."""

    async def test_accepted(self):
        queue = FakeTaskQueue()
        assert await submit_background_job(queue, {"a": 1}, "/api/jobs/x", tag="test") is True
        assert queue.jobs == [("/api/jobs/x", {"a": 1})]

    async def test_failure_is_swallowed(self):
        assert await submit_background_job(FakeTaskQueue(fail=True), {}, "/api/jobs/x", tag="test") is False

    async def test_missing_queue(self):
        assert await submit_background_job(None, {}, "/api/jobs/x", tag="test") is False

    async def test_timeout(self, monkeypatch):
        monkeypatch.setattr("services.task_queue.QUEUE_SUBMIT_TIMEOUT_SEC", 0.05)
        assert await submit_background_job(_SlowQueue(), {}, "/api/jobs/x", tag="test") is False
