"""
Tests for key-value storage backends.
"""

import asyncio
import json

import pytest

from onboarding.config import OnboardingSettings
from onboarding.errors import StorageError
from onboarding.storage import (
    InMemoryStorage,
    JsonFileStorage,
    KeyValueStorage,
    StorageResult,
    SupabaseStorage,
    create_storage,
)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


class TestStorageResult:
    def test_unwrap(self):
        assert StorageResult.ok(5).unwrap() == 5
        with pytest.raises(StorageError):
            StorageResult.fail("nope").unwrap()


class TestInMemoryStorage:
    """Test the dict-backed backend."""

    def test_implements_protocol(self):
        assert isinstance(InMemoryStorage(), KeyValueStorage)

    def test_default_when_missing(self):
        storage = InMemoryStorage()
        assert _run(storage.get_string("k", "fallback")).value == "fallback"
        assert _run(storage.get_item("k", {"answers": {}})).value == {"answers": {}}

    def test_values_are_copied(self):
        storage = InMemoryStorage()
        value = {"answers": {"a": ["x"]}}
        _run(storage.set_item("k", value))
        value["answers"]["a"].append("y")
        assert _run(storage.get_item("k", None)).value == {"answers": {"a": ["x"]}}

    def test_string_type_checked(self):
        storage = InMemoryStorage({"k": {"not": "a string"}})
        assert _run(storage.get_string("k", "")).success is False
        assert _run(storage.set_string("k", 1)).success is False

    def test_unserializable_item(self):
        result = _run(InMemoryStorage().set_item("k", object()))
        assert result.success is False

    def test_remove(self):
        storage = InMemoryStorage({"k": "v"})
        assert _run(storage.remove_item("k")).success is True
        assert _run(storage.remove_item("missing")).success is True
        assert storage.keys() == []


class TestJsonFileStorage:
    """Test the file-backed backend."""

    def test_round_trip(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "store.json")
        _run(storage.set_string("flag", "true"))
        _run(storage.set_item("blob", {"answers": {"a": 1}}))

        reopened = JsonFileStorage(tmp_path / "store.json")
        assert _run(reopened.get_string("flag", "false")).value == "true"
        assert _run(reopened.get_item("blob", None)).value == {"answers": {"a": 1}}

    def test_missing_file_uses_default(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "nested" / "store.json")
        assert _run(storage.get_string("flag", "false")).value == "false"

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "store.json"
        assert _run(JsonFileStorage(path).set_string("k", "v")).success is True
        assert path.exists()

    def test_namespaces_are_isolated(self, tmp_path):
        path = tmp_path / "store.json"
        alice = JsonFileStorage(path, namespace="alice")
        bob = JsonFileStorage(path, namespace="bob")
        _run(alice.set_string("flag", "true"))

        assert _run(bob.get_string("flag", "false")).value == "false"
        assert json.loads(path.read_text()) == {"alice": {"flag": "true"}}

    def test_concurrent_writers_keep_every_namespace(self, tmp_path):
        path = tmp_path / "store.json"
        writers = [JsonFileStorage(path, namespace=f"user{i}") for i in range(8)]

        async def _write_all():
            return await asyncio.gather(*(w.set_item("k", i) for i, w in enumerate(writers)))

        results = _run(_write_all())
        assert all(r.success for r in results)
        assert json.loads(path.read_text()) == {f"user{i}": {"k": i} for i in range(8)}

    def test_concurrent_keys_in_one_namespace(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "store.json")

        async def _write_all():
            await asyncio.gather(*(storage.set_item(f"k{i}", i) for i in range(8)))
            return await storage.get_item("k7", None)

        assert _run(_write_all()).value == 7
        assert len(json.loads((tmp_path / "store.json").read_text())["default"]) == 8

    def test_remove(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "store.json")
        _run(storage.set_string("flag", "true"))
        _run(storage.remove_item("flag"))
        assert _run(storage.get_string("flag", "false")).value == "false"

    def test_corrupt_file_read_fails(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        result = _run(JsonFileStorage(path).get_item("k", None))
        assert result.success is False

    def test_corrupt_file_write_fails(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[1, 2, 3]")
        result = _run(JsonFileStorage(path).set_string("k", "v"))
        assert result.success is False
        assert path.read_text() == "[1, 2, 3]"


class TestSupabaseStorage:
    """Test the Supabase backend against a mocked client."""

    def test_get_missing_returns_default(self, mock_supabase):
        storage = SupabaseStorage(mock_supabase, namespace="user-1")
        result = _run(storage.get_string("flag", "false"))

        assert result.value == "false"
        mock_supabase.table.assert_called_with("onboarding_kv")
        table = mock_supabase.table.return_value
        table.select.assert_called_with("value")
        table.eq.assert_any_call("namespace", "user-1")
        table.eq.assert_any_call("key", "flag")

    def test_get_existing(self, mock_supabase):
        table = mock_supabase.table.return_value
        table.execute.return_value.data = [{"value": {"answers": {"a": "1"}}}]
        storage = SupabaseStorage(mock_supabase)
        assert _run(storage.get_item("blob", None)).value == {"answers": {"a": "1"}}

    def test_set_upserts(self, mock_supabase):
        storage = SupabaseStorage(mock_supabase, table="kv", namespace="user-1")
        assert _run(storage.set_item("blob", {"answers": {}})).success is True

        table = mock_supabase.table.return_value
        row = table.upsert.call_args.args[0]
        assert row["namespace"] == "user-1"
        assert row["key"] == "blob"
        assert row["value"] == {"answers": {}}
        assert "updated_at" in row
        assert table.upsert.call_args.kwargs["on_conflict"] == "namespace,key"

    def test_remove_deletes(self, mock_supabase):
        storage = SupabaseStorage(mock_supabase, namespace="user-1")
        assert _run(storage.remove_item("flag")).success is True
        mock_supabase.table.return_value.delete.assert_called_once()

    def test_client_errors_become_failures(self, mock_supabase):
        mock_supabase.table.return_value.execute.side_effect = Exception("connection refused")
        storage = SupabaseStorage(mock_supabase)

        assert _run(storage.get_item("k", None)).success is False
        assert _run(storage.set_item("k", 1)).success is False
        assert _run(storage.remove_item("k")).success is False


class TestCreateStorage:
    """Test backend selection from settings."""

    def test_memory(self):
        assert isinstance(create_storage(OnboardingSettings(storage_backend="memory")), InMemoryStorage)

    def test_file(self, tmp_path):
        settings = OnboardingSettings(storage_backend="file", storage_path=tmp_path / "s.json")
        storage = create_storage(settings, namespace="alice")
        assert isinstance(storage, JsonFileStorage)
        assert storage.namespace == "alice"

    def test_supabase_requires_credentials(self):
        with pytest.raises(ValueError):
            create_storage(OnboardingSettings(storage_backend="supabase", supabase_url=None, supabase_key=None))
