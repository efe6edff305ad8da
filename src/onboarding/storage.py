"""
Key-Value Storage for onboarding persistence.

Defines the Result-wrapped interface the AnswerStore talks to, plus the
backends that implement it:

- InMemoryStorage: process-local dict (tests, throwaway sessions)
- JsonFileStorage: one JSON document on local disk (CLI, single device)
- SupabaseStorage: rows in a Supabase table (hosted deployments)

Backends never raise for I/O problems. Every call returns a StorageResult;
callers decide whether a failure is fatal.
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar, runtime_checkable

from .config import DEFAULT_COMPLETION_KEY, USER_DATA_KEY, OnboardingSettings
from .errors import StorageError
from .state import utc_now_iso

if TYPE_CHECKING:
    from supabase import Client

__all__ = [
    "DEFAULT_COMPLETION_KEY",
    "USER_DATA_KEY",
    "StorageResult",
    "KeyValueStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "SupabaseStorage",
    "create_storage",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class StorageResult(Generic[T]):
    """Outcome of a storage call."""

    success: bool
    value: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "StorageResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str) -> "StorageResult[T]":
        return cls(success=False, error=error)

    def unwrap(self) -> T | None:
        """Return the value or raise StorageError."""
        if not self.success:
            raise StorageError(self.error or "Storage operation failed")
        return self.value


@runtime_checkable
class KeyValueStorage(Protocol):
    """
    Durable, per-device key-value store.

    Strings and JSON-compatible items share one key space.
    """

    async def get_string(self, key: str, default: str) -> StorageResult[str]:
        ...

    async def set_string(self, key: str, value: str) -> StorageResult[None]:
        ...

    async def get_item(self, key: str, default: Any) -> StorageResult[Any]:
        ...

    async def set_item(self, key: str, value: Any) -> StorageResult[None]:
        ...

    async def remove_item(self, key: str) -> StorageResult[None]:
        ...


# =============================================================================
# In-memory
# =============================================================================


class InMemoryStorage:
    """
    Dict-backed storage.

    Values are JSON round-tripped on the way in and out, so callers never
    share references with the store (same behavior as a real backend).
    """

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    async def get_string(self, key: str, default: str) -> StorageResult[str]:
        if key not in self._data:
            return StorageResult.ok(default)
        value = json.loads(self._data[key])
        if not isinstance(value, str):
            return StorageResult.fail(f"Value at '{key}' is not a string")
        return StorageResult.ok(value)

    async def set_string(self, key: str, value: str) -> StorageResult[None]:
        if not isinstance(value, str):
            return StorageResult.fail(f"Refusing to store non-string at '{key}'")
        self._data[key] = json.dumps(value)
        return StorageResult.ok()

    async def get_item(self, key: str, default: Any) -> StorageResult[Any]:
        if key not in self._data:
            return StorageResult.ok(default)
        return StorageResult.ok(json.loads(self._data[key]))

    async def set_item(self, key: str, value: Any) -> StorageResult[None]:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            return StorageResult.fail(f"Value for '{key}' is not JSON serializable: {e}")
        return StorageResult.ok()

    async def remove_item(self, key: str) -> StorageResult[None]:
        self._data.pop(key, None)
        return StorageResult.ok()

    def keys(self) -> list[str]:
        return list(self._data)


# =============================================================================
# JSON file
# =============================================================================


_file_locks: dict[Path, threading.Lock] = {}
_file_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    resolved = path.resolve()
    with _file_locks_guard:
        lock = _file_locks.get(resolved)
        if lock is None:
            lock = _file_locks[resolved] = threading.Lock()
        return lock


class JsonFileStorage:
    """
    Single JSON document on disk, optionally split into namespaces.

    Writes go to a temp file in the same directory followed by os.replace,
    so a crash never leaves a half-written store behind. File I/O runs in a
    worker thread to keep the event loop free.

    Read-modify-write cycles on the same file are serialized by a per-path
    lock shared by every instance in the process, so namespaces written
    concurrently never overwrite each other.
    """

    def __init__(self, path: Path | str, namespace: str = "default"):
        self.path = Path(path).expanduser()
        self.namespace = namespace

    # -- raw file access (runs in a thread) -----------------------------------

    def _read_all(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self.path} does not contain a JSON object")
        return data

    def _write_all(self, data: dict[str, dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    async def _load_namespace(self) -> dict[str, Any]:
        data = await asyncio.to_thread(self._read_all)
        bucket = data.get(self.namespace, {})
        return bucket if isinstance(bucket, dict) else {}

    def _update_sync(self, key: str, value: Any, remove: bool) -> None:
        with _lock_for(self.path):
            data = self._read_all()
            bucket = data.get(self.namespace)
            if not isinstance(bucket, dict):
                bucket = {}
            if remove:
                bucket.pop(key, None)
            else:
                bucket[key] = value
            data[self.namespace] = bucket
            self._write_all(data)

    async def _update(self, key: str, value: Any, remove: bool = False) -> StorageResult[None]:
        try:
            await asyncio.to_thread(self._update_sync, key, value, remove)
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to write '{key}' to {self.path}: {e}")
            return StorageResult.fail(str(e))
        return StorageResult.ok()

    # -- interface --------------------------------------------------------------

    async def get_string(self, key: str, default: str) -> StorageResult[str]:
        result = await self.get_item(key, default)
        if result.success and not isinstance(result.value, str):
            return StorageResult.fail(f"Value at '{key}' is not a string")
        return result

    async def set_string(self, key: str, value: str) -> StorageResult[None]:
        if not isinstance(value, str):
            return StorageResult.fail(f"Refusing to store non-string at '{key}'")
        return await self._update(key, value)

    async def get_item(self, key: str, default: Any) -> StorageResult[Any]:
        try:
            bucket = await self._load_namespace()
        except (OSError, ValueError) as e:
            return StorageResult.fail(f"Failed to read {self.path}: {e}")
        return StorageResult.ok(bucket.get(key, default))

    async def set_item(self, key: str, value: Any) -> StorageResult[None]:
        return await self._update(key, value)

    async def remove_item(self, key: str) -> StorageResult[None]:
        return await self._update(key, None, remove=True)


# =============================================================================
# Supabase
# =============================================================================


class SupabaseStorage:
    """
    Key-value rows in a Supabase table.

    Expected table:
        namespace TEXT, key TEXT, value JSONB, updated_at TIMESTAMPTZ,
        PRIMARY KEY (namespace, key)
    """

    def __init__(self, client: "Client", table: str = "onboarding_kv", namespace: str = "default"):
        self.client = client
        self.table = table
        self.namespace = namespace

    def _query(self):
        return self.client.table(self.table)

    async def get_string(self, key: str, default: str) -> StorageResult[str]:
        result = await self.get_item(key, default)
        if result.success and not isinstance(result.value, str):
            return StorageResult.fail(f"Value at '{key}' is not a string")
        return result

    async def set_string(self, key: str, value: str) -> StorageResult[None]:
        if not isinstance(value, str):
            return StorageResult.fail(f"Refusing to store non-string at '{key}'")
        return await self.set_item(key, value)

    async def get_item(self, key: str, default: Any) -> StorageResult[Any]:
        try:
            result = (
                self._query()
                .select("value")
                .eq("namespace", self.namespace)
                .eq("key", key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Supabase read of '{key}' failed: {e}")
            return StorageResult.fail(str(e))

        if not result.data:
            return StorageResult.ok(default)
        return StorageResult.ok(result.data[0].get("value", default))

    async def set_item(self, key: str, value: Any) -> StorageResult[None]:
        try:
            self._query().upsert(
                {
                    "namespace": self.namespace,
                    "key": key,
                    "value": value,
                    "updated_at": utc_now_iso(),
                },
                on_conflict="namespace,key",
            ).execute()
        except Exception as e:
            logger.error(f"Supabase write of '{key}' failed: {e}")
            return StorageResult.fail(str(e))
        return StorageResult.ok()

    async def remove_item(self, key: str) -> StorageResult[None]:
        try:
            self._query().delete().eq("namespace", self.namespace).eq("key", key).execute()
        except Exception as e:
            logger.error(f"Supabase delete of '{key}' failed: {e}")
            return StorageResult.fail(str(e))
        return StorageResult.ok()


# =============================================================================
# Factory
# =============================================================================


def create_storage(settings: OnboardingSettings, namespace: str = "default") -> KeyValueStorage:
    """Build the backend selected by settings.storage_backend."""
    backend = settings.storage_backend

    if backend == "memory":
        return InMemoryStorage()

    if backend == "file":
        return JsonFileStorage(settings.storage_path, namespace=namespace)

    if backend == "supabase":
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("ONBOARDING_SUPABASE_URL and ONBOARDING_SUPABASE_KEY are required for supabase storage")
        from supabase import create_client

        client = create_client(settings.supabase_url, settings.supabase_key)
        return SupabaseStorage(client, table=settings.supabase_table, namespace=namespace)

    raise ValueError(f"Unknown storage backend: {backend}")
