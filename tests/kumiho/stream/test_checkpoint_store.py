"""Tests for cursor store implementations."""

import json

import pytest

from kumiho.stream.checkpoint_store import (
    CursorStore,
    InMemoryCursorStore,
    JsonFileCursorStore,
    create_cursor_store,
)


class TestInMemoryCursorStore:
    @pytest.mark.asyncio
    async def test_load_missing(self):
        assert await InMemoryCursorStore().load("trigger-a") is None

    @pytest.mark.asyncio
    async def test_save_and_load(self):
        store = InMemoryCursorStore()
        await store.save("trigger-a", "c1")
        await store.save("trigger-a", "c2")
        assert await store.load("trigger-a") == "c2"

    @pytest.mark.asyncio
    async def test_scoped_by_instance(self):
        store = InMemoryCursorStore({"trigger-a": "c1"})
        await store.save("trigger-b", "x9")
        assert await store.load("trigger-a") == "c1"
        assert store.snapshot() == {"trigger-a": "c1", "trigger-b": "x9"}

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryCursorStore(), CursorStore)


class TestJsonFileCursorStore:
    @pytest.mark.asyncio
    async def test_load_returns_none_when_file_missing(self, tmp_path):
        store = JsonFileCursorStore(tmp_path / "cursors.json")
        assert await store.load("trigger-a") is None

    @pytest.mark.asyncio
    async def test_save_creates_parent_dirs_and_persists(self, tmp_path):
        path = tmp_path / "state" / "cursors.json"
        store = JsonFileCursorStore(path)
        await store.save("trigger-a", "c1")

        data = json.loads(path.read_text())
        assert data["cursors"]["trigger-a"]["cursor"] == "c1"
        assert data["cursors"]["trigger-a"]["updated_at"]

    @pytest.mark.asyncio
    async def test_survives_restart(self, tmp_path):
        path = tmp_path / "cursors.json"
        await JsonFileCursorStore(path).save("trigger-a", "c7")
        assert await JsonFileCursorStore(path).load("trigger-a") == "c7"

    @pytest.mark.asyncio
    async def test_instances_do_not_overwrite_each_other(self, tmp_path):
        store = JsonFileCursorStore(tmp_path / "cursors.json")
        await store.save("trigger-a", "a1")
        await store.save("trigger-b", "b1")
        await store.save("trigger-a", "a2")
        assert await store.load("trigger-a") == "a2"
        assert await store.load("trigger-b") == "b1"

    @pytest.mark.asyncio
    async def test_no_temp_file_left_behind(self, tmp_path):
        store = JsonFileCursorStore(tmp_path / "cursors.json")
        await store.save("trigger-a", "c1")
        assert [p.name for p in tmp_path.iterdir()] == ["cursors.json"]

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_fresh(self, tmp_path):
        path = tmp_path / "cursors.json"
        path.write_text("{bad json")
        store = JsonFileCursorStore(path)
        assert await store.load("trigger-a") is None

        await store.save("trigger-a", "c1")
        assert await store.load("trigger-a") == "c1"

    @pytest.mark.asyncio
    async def test_unexpected_shape_ignored(self, tmp_path):
        path = tmp_path / "cursors.json"
        path.write_text(json.dumps({"cursors": ["not", "a", "dict"]}))
        assert await JsonFileCursorStore(path).load("trigger-a") is None


class TestCreateCursorStore:
    def test_in_memory_without_path(self):
        assert isinstance(create_cursor_store(""), InMemoryCursorStore)
        assert isinstance(create_cursor_store(None), InMemoryCursorStore)

    def test_file_store_with_path(self, tmp_path):
        store = create_cursor_store(tmp_path / "cursors.json")
        assert isinstance(store, JsonFileCursorStore)
        assert store.path == tmp_path / "cursors.json"
