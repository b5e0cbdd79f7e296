"""
Tests for the client draft store, offline queue and API client.
"""

import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from admissions.client import AdmissionsClient, DraftStore, OfflineQueue
from admissions.client.drafts import REGISTRY_KEY


class RecordingSender:
    """Sender that records calls and fails for paths listed in ``failing``."""

    def __init__(self, failing: set[str] | None = None):
        self.failing = failing or set()
        self.sent: list[str] = []

    async def send_queued(self, item):
        if item.path in self.failing:
            raise httpx.ConnectError("offline")
        self.sent.append(item.path)


class TestDraftStore:
    def test_persists_to_file(self, tmp_path):
        path = tmp_path / "drafts.json"
        DraftStore(path).set("u1", "application", {"step": 2})

        assert DraftStore(path).get("u1", "application") == {"step": 2}
        assert "admissions:u1:application" in json.loads(path.read_text())

    def test_clear_drafts_only_removes_registered_keys_of_user(self, tmp_path):
        path = tmp_path / "drafts.json"
        store = DraftStore(path)
        store.set("u1", "application", {"step": 1})
        store.set("u1", "documents", ["nrc.pdf"])
        store.set("u10", "application", {"step": 3})

        removed = store.clear_drafts("u1")

        assert removed == 2
        assert store.get("u1", "application") is None
        assert store.get("u10", "application") == {"step": 3}
        assert store.keys_for("u10") == ["admissions:u10:application"]

    def test_unregistered_entries_survive_clear(self, tmp_path):
        path = tmp_path / "drafts.json"
        path.write_text(json.dumps({"admissions:u1:legacy": 1, "theme": "dark"}))
        store = DraftStore(path)

        store.clear_drafts("u1")

        data = json.loads(path.read_text())
        assert data["theme"] == "dark"
        assert data["admissions:u1:legacy"] == 1
        assert data[REGISTRY_KEY] == {}

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "drafts.json"
        path.write_text("{not json")

        assert DraftStore(path).has_drafts("u1") is False

    def test_empty_identifiers_rejected(self):
        with pytest.raises(ValueError):
            DraftStore().set("", "application", {})

    def test_save_leaves_no_temporary_files(self, tmp_path):
        path = tmp_path / "drafts.json"
        store = DraftStore(path)
        store.set("u1", "application", {"step": 1})
        store.set("u1", "application", {"step": 2})

        assert list(tmp_path.iterdir()) == [path]

    def test_save_does_not_depend_on_a_fixed_temporary_name(self, tmp_path):
        path = tmp_path / "drafts.json"
        # A leftover that blocks "drafts.json.tmp" from being written
        (tmp_path / "drafts.json.tmp").mkdir()

        DraftStore(path).set("u1", "application", {"step": 1})

        assert DraftStore(path).get("u1", "application") == {"step": 1}

    def test_failed_replace_keeps_previous_file(self, tmp_path):
        path = tmp_path / "drafts.json"
        store = DraftStore(path)
        store.set("u1", "application", {"step": 1})

        with patch("admissions.client.drafts.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.set("u1", "application", {"step": 2})

        assert DraftStore(path).get("u1", "application") == {"step": 1}
        assert list(tmp_path.iterdir()) == [path]


class TestOfflineQueue:
    @pytest.mark.asyncio
    async def test_replays_in_insertion_order_and_empties(self):
        queue = OfflineQueue(DraftStore(), "u1")
        for path in ("/a", "/b", "/c"):
            queue.enqueue("patch", path, {"x": 1})
        sender = RecordingSender()

        result = await queue.replay(sender)

        assert sender.sent == ["/a", "/b", "/c"]
        assert len(result.sent) == 3
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_failed_item_stays_queued_with_count(self):
        queue = OfflineQueue(DraftStore(), "u1")
        queue.enqueue("POST", "/a")
        queue.enqueue("POST", "/b")

        result = await queue.replay(RecordingSender(failing={"/a"}))

        pending = queue.pending()
        assert [i.path for i in pending] == ["/a"]
        assert pending[0].failures == 1
        assert pending[0].last_error == "offline"
        assert len(result.failed) == 1

    @pytest.mark.asyncio
    async def test_item_dropped_after_three_failures(self):
        queue = OfflineQueue(DraftStore(), "u1")
        queue.enqueue("POST", "/a")
        sender = RecordingSender(failing={"/a"})

        first = await queue.replay(sender)
        second = await queue.replay(sender)
        third = await queue.replay(sender)

        assert first.failed and second.failed
        assert len(third.dropped) == 1
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_concurrent_replay_is_skipped(self):
        queue = OfflineQueue(DraftStore(), "u1")
        queue.enqueue("POST", "/a")
        release = asyncio.Event()

        class SlowSender:
            async def send_queued(self, item):
                await release.wait()

        running = asyncio.create_task(queue.replay(SlowSender()))
        await asyncio.sleep(0)

        skipped = await queue.replay(RecordingSender())
        release.set()
        finished = await running

        assert skipped.skipped is True
        assert finished.sent and not queue.is_replaying

    def test_queue_survives_restart(self, tmp_path):
        path = tmp_path / "drafts.json"
        OfflineQueue(DraftStore(path), "u1").enqueue("PATCH", "/applications/1", {"phone": "1"})

        pending = OfflineQueue(DraftStore(path), "u1").pending()

        assert [(i.method, i.path, i.body) for i in pending] == [
            ("PATCH", "/applications/1", {"phone": "1"})
        ]


class TestAdmissionsClient:
    @pytest.mark.asyncio
    async def test_sends_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"ok": True})

        client = AdmissionsClient(
            "http://api.test/api/v1", token="abc", transport=httpx.MockTransport(handler)
        )
        response = await client.get("/applications")

        assert response.json() == {"ok": True}
        assert seen == {"auth": "Bearer abc", "url": "http://api.test/api/v1/applications"}

    @pytest.mark.asyncio
    async def test_offline_write_is_queued(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route to host", request=request)

        queue = OfflineQueue(DraftStore(), "u1")
        client = AdmissionsClient(
            "http://api.test", queue=queue, transport=httpx.MockTransport(handler)
        )

        response = await client.patch("/applications/1", json={"phone": "0977"})

        assert response is None
        assert [(i.method, i.body) for i in queue.pending()] == [("PATCH", {"phone": "0977"})]

    @pytest.mark.asyncio
    async def test_offline_read_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route to host", request=request)

        client = AdmissionsClient(
            "http://api.test",
            queue=OfflineQueue(DraftStore(), "u1"),
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(httpx.ConnectError):
            await client.get("/applications")

    @pytest.mark.asyncio
    async def test_http_errors_are_not_queued(self):
        queue = OfflineQueue(DraftStore(), "u1")
        client = AdmissionsClient(
            "http://api.test",
            queue=queue,
            transport=httpx.MockTransport(lambda request: httpx.Response(409)),
        )

        with pytest.raises(httpx.HTTPStatusError):
            await client.post("/applications/1/submit")
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_sync_pending_replays_through_client(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            return httpx.Response(200, json={})

        queue = OfflineQueue(DraftStore(), "u1")
        queue.enqueue("PATCH", "/applications/1", {"phone": "1"})
        queue.enqueue("POST", "/applications/1/submit")
        client = AdmissionsClient(
            "http://api.test", queue=queue, transport=httpx.MockTransport(handler)
        )

        result = await client.sync_pending()

        assert calls == [("PATCH", "/applications/1"), ("POST", "/applications/1/submit")]
        assert len(result.sent) == 2
        assert len(queue) == 0
