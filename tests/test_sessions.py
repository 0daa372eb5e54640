"""Tests for the date-partitioned session store."""

from __future__ import annotations

import json

import pytest

from agent_runner.storage.models import DEFAULT_PREVIEW, Message, Session
from agent_runner.storage.sessions import SessionStore, SessionStoreError, parse_timestamp, partition_name


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "sessions", seed_examples=False)


def _session(session_id: int, timestamp: str = "2024-03-01T00:00:00Z", title: str = "T") -> Session:
    return Session(id=session_id, title=title, timestamp=timestamp)


def _ids(path) -> list[int]:
    return [item["id"] for item in json.loads(path.read_text())]


class TestPartitionName:
    def test_utc_date(self):
        assert partition_name("2024-03-01T00:00:00Z") == "2024-03-01.json"

    def test_offset_converted_to_utc(self):
        assert partition_name("2024-03-01T23:30:00-02:00") == "2024-03-02.json"

    def test_naive_timestamp(self):
        assert partition_name("2024-03-01T10:00:00") == "2024-03-01.json"

    def test_milliseconds(self):
        assert partition_name("2024-03-01T10:00:00.123Z") == "2024-03-01.json"

    def test_any_fraction_length(self):
        assert partition_name("2024-03-01T00:00:00.1Z") == "2024-03-01.json"
        assert partition_name("2024-03-01T23:59:59.1234567Z") == "2024-03-01.json"
        assert parse_timestamp("2024-03-01T00:00:00.25Z").microsecond == 250000

    def test_invalid(self):
        with pytest.raises(ValueError):
            partition_name("yesterday")


class TestInitialization:
    @pytest.mark.asyncio
    async def test_seeds_starter_sessions(self, tmp_path):
        store = SessionStore(tmp_path / "seeded")
        summaries = await store.list_summaries()

        assert [s["id"] for s in summaries] == [1, 2, 3, 4, 5]
        assert sorted(p.name for p in (tmp_path / "seeded").iterdir()) == [
            "2024-01-13.json",
            "2024-01-14.json",
            "2024-01-15.json",
        ]
        assert summaries[0]["unread"] is True

    @pytest.mark.asyncio
    async def test_existing_directory_not_seeded(self, tmp_path):
        directory = tmp_path / "existing"
        directory.mkdir()
        store = SessionStore(directory)
        assert await store.list_summaries() == []

    @pytest.mark.asyncio
    async def test_seed_disabled(self, store):
        assert await store.list_summaries() == []
        assert store.directory.is_dir()


class TestSaveAndGet:
    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        session = Session(
            id=7,
            title="Round trip",
            preview="hello",
            timestamp="2024-03-01T12:00:00Z",
            unread=True,
            messages=[
                Message(role="user", content="hi", timestamp="2024-03-01T12:00:00Z", command_id="echo-test"),
                Message(role="system", content="out", timestamp="2024-03-01T12:00:01Z", command="echo hi"),
            ],
        )
        await store.save(session)
        assert await store.get(7) == session

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get(404) is None

    @pytest.mark.asyncio
    async def test_partition_by_session_timestamp(self, store):
        await store.save(_session(1, "2024-03-01T08:00:00Z"))
        await store.save(_session(2, "2024-03-02T08:00:00Z"))
        assert (store.directory / "2024-03-01.json").exists()
        assert (store.directory / "2024-03-02.json").exists()

    @pytest.mark.asyncio
    async def test_upsert_replaces_in_place(self, store):
        for i in (1, 2, 3):
            await store.save(_session(i, title=f"S{i}"))
        await store.save(_session(2, title="renamed"))

        path = store.directory / "2024-03-01.json"
        assert _ids(path) == [1, 2, 3]
        assert (await store.get(2)).title == "renamed"

    @pytest.mark.asyncio
    async def test_summaries_order(self, store):
        await store.save(_session(1, "2024-03-01T08:00:00Z"))
        await store.save(_session(2, "2024-03-02T09:00:00Z"))
        await store.save(_session(3, "2024-03-02T07:00:00Z"))
        await store.save(_session(4, "2024-02-28T07:00:00Z"))

        summaries = await store.list_summaries()
        # Newest file first, file order (not time order) inside a file
        assert [s["id"] for s in summaries] == [2, 3, 1, 4]
        assert set(summaries[0]) == {"id", "title", "preview", "timestamp", "unread"}

    @pytest.mark.asyncio
    async def test_get_first_match_wins(self, store):
        await store.save(_session(9, "2024-03-01T08:00:00Z", title="older"))
        await store.save(_session(9, "2024-03-05T08:00:00Z", title="newer"))
        assert (await store.get(9)).title == "newer"


class TestAppendMessage:
    @pytest.mark.asyncio
    async def test_scenario_preview_truncation(self, store):
        await store.save(Session(id=42, title="T", timestamp="2024-03-01T00:00:00Z", messages=[]))

        summaries = await store.list_summaries()
        assert summaries == [
            {"id": 42, "title": "T", "preview": DEFAULT_PREVIEW, "timestamp": "2024-03-01T00:00:00Z", "unread": False}
        ]
        assert summaries[0]["preview"].startswith("New session")

        content = "x" * 150
        ok = await store.append_message(
            42, Message(role="user", content=content, timestamp="2024-03-01T00:05:00Z")
        )
        assert ok

        session = await store.get(42)
        assert session.preview == "x" * 100 + "..."
        assert len(session.messages) == 1
        assert session.timestamp == "2024-03-01T00:05:00Z"

    @pytest.mark.asyncio
    async def test_short_content_not_truncated(self, store):
        await store.save(_session(1))
        await store.append_message(1, Message(role="system", content="done", timestamp="2024-03-01T00:01:00Z"))
        assert (await store.get(1)).preview == "done"

    @pytest.mark.asyncio
    async def test_missing_session(self, store):
        await store.save(_session(1))
        files_before = sorted(store.directory.iterdir())

        assert await store.append_message(99, Message(role="user", content="x")) is False
        assert await store.get(99) is None
        assert sorted(store.directory.iterdir()) == files_before

    @pytest.mark.asyncio
    async def test_stays_in_creation_partition(self, store):
        await store.save(_session(5, "2024-03-01T23:00:00Z"))
        await store.append_message(5, Message(role="user", content="later", timestamp="2024-03-04T10:00:00Z"))

        assert [p.name for p in store.directory.iterdir()] == ["2024-03-01.json"]
        session = await store.get(5)
        assert session.timestamp == "2024-03-04T10:00:00Z"

    @pytest.mark.asyncio
    async def test_messages_keep_order(self, store):
        await store.save(_session(1))
        for i in range(5):
            await store.append_message(1, Message(role="user", content=f"m{i}", timestamp=f"2024-03-01T00:0{i}:00Z"))
        session = await store.get(1)
        assert [m.content for m in session.messages] == ["m0", "m1", "m2", "m3", "m4"]


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_only_session_removes_file(self, store):
        await store.save(_session(1))
        assert await store.delete(1) is True
        assert not (store.directory / "2024-03-01.json").exists()

    @pytest.mark.asyncio
    async def test_delete_keeps_remaining_order(self, store):
        for i in (1, 2, 3):
            await store.save(_session(i))
        assert await store.delete(2) is True
        assert _ids(store.directory / "2024-03-01.json") == [1, 3]

    @pytest.mark.asyncio
    async def test_delete_missing(self, store):
        await store.save(_session(1))
        assert await store.delete(2) is False
        assert _ids(store.directory / "2024-03-01.json") == [1]


class TestStorageErrors:
    @pytest.mark.asyncio
    async def test_corrupted_partition(self, store):
        await store.initialize()
        (store.directory / "2024-03-01.json").write_text("{not json")

        with pytest.raises(SessionStoreError) as exc_info:
            await store.list_summaries()
        assert "2024-03-01.json" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_corrupted_partition_not_repaired(self, store):
        await store.initialize()
        path = store.directory / "2024-03-01.json"
        path.write_text("[{\"title\": \"no id\"}]")

        with pytest.raises(SessionStoreError):
            await store.get(1)
        assert path.read_text() == "[{\"title\": \"no id\"}]"
