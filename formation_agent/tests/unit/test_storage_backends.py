"""Tests for the key-value store implementations."""

import json

import pytest

from formation_agent.core.exceptions import StorageError
from formation_agent.storage.backends import InMemoryKeyValueStore, JsonFileKeyValueStore
from formation_agent.utils.error_handling import ErrorCategory, categorize_error, describe_error


@pytest.mark.asyncio
async def test_in_memory_store_copies_values():
    store = InMemoryKeyValueStore({"a": {"x": 1}})
    value = (await store.get(["a", "missing"]))["a"]
    value["x"] = 2

    assert await store.get(["a"]) == {"a": {"x": 1}}
    assert "missing" not in await store.get(["missing"])

    await store.set({"b": [1]})
    await store.remove(["a", "nope"])
    assert await store.keys() == ["b"]
    assert await store.get_all() == {"b": [1]}


@pytest.mark.asyncio
async def test_json_file_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "storage.json"
    store = JsonFileKeyValueStore(str(path))
    await store.set({"form_x": {"fields": {"a": "1"}}, "global_save_mode": {"isEnabled": True}})
    await store.remove(["global_save_mode"])

    reopened = JsonFileKeyValueStore(str(path))
    assert await reopened.get_all() == {"form_x": {"fields": {"a": "1"}}}
    assert json.loads(path.read_text(encoding="utf-8")) == {"form_x": {"fields": {"a": "1"}}}
    assert not (tmp_path / "nested" / "storage.json.tmp").exists()


@pytest.mark.asyncio
async def test_json_file_store_missing_file_is_empty(tmp_path):
    store = JsonFileKeyValueStore(str(tmp_path / "none.json"))
    assert await store.keys() == []


@pytest.mark.asyncio
async def test_corrupt_file_raises_storage_error(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileKeyValueStore(str(path))

    with pytest.raises(StorageError) as excinfo:
        await store.get(["anything"])

    assert categorize_error(excinfo.value) is ErrorCategory.PERSISTENCE
    details = describe_error(excinfo.value)
    assert details["type"] == "StorageError"
    assert details["context"]["path"] == str(path)


def test_foreign_errors_are_unknown():
    assert categorize_error(ValueError("x")) is ErrorCategory.UNKNOWN
    details = describe_error(ValueError("boom"), include_traceback=True)
    assert details["message"] == "boom"
    assert details["category"] == "unknown"
    assert "traceback" in details


def test_categories_cover_only_raised_failures():
    assert [c.value for c in ErrorCategory] == ["resolution", "fill", "channel", "persistence", "unknown"]
    assert describe_error(StorageError("quota exceeded"))["category"] == "persistence"
