from __future__ import annotations

import logging
from typing import Protocol

import duckdb

from journey.core.errors import StorageUnavailable
from journey.core.logging import get_logger
from journey.features.persistence.duckdb_adapter import DuckDBAdapter


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Process-lifetime store. Also the degraded mode of FallbackKeyValueStore."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class DuckDBKeyValueStore:
    """
    Persistent store on top of the kv_store table.
    Every DuckDB failure surfaces as StorageUnavailable.
    """

    def __init__(self, adapter: DuckDBAdapter) -> None:
        self.adapter = adapter

    def open(self) -> None:
        try:
            self.adapter.open()
        except (duckdb.Error, OSError) as e:
            raise StorageUnavailable(f"cannot open store at {self.adapter.path!r}: {e}") from e

    def close(self) -> None:
        self.adapter.close()

    def get(self, key: str) -> str | None:
        try:
            return self.adapter.kv_get(key)
        except (duckdb.Error, RuntimeError) as e:
            raise StorageUnavailable(f"get({key!r}) failed: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            self.adapter.kv_set(key, str(value))
        except (duckdb.Error, RuntimeError) as e:
            raise StorageUnavailable(f"set({key!r}) failed: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self.adapter.kv_remove(key)
        except (duckdb.Error, RuntimeError) as e:
            raise StorageUnavailable(f"remove({key!r}) failed: {e}") from e


class FallbackKeyValueStore:
    """
    Wraps a persistent store. Every successful primary read or write is mirrored into
    memory; on the first StorageUnavailable it logs a warning and serves every later
    call from that memory copy for the rest of the process, so values already seen
    survive the outage.
    """

    def __init__(self, primary: KeyValueStore, *, logger: logging.Logger | None = None) -> None:
        self._primary = primary
        self._memory = InMemoryKeyValueStore()
        self._degraded = False
        self._logger = logger or get_logger(__name__)

    @property
    def degraded(self) -> bool:
        return self._degraded

    def _degrade(self, exc: StorageUnavailable) -> None:
        self._degraded = True
        self._logger.warning(
            "storage_unavailable",
            extra={"feature": "storage", "reason": "degraded_to_memory", "error": str(exc)},
        )

    def get(self, key: str) -> str | None:
        if not self._degraded:
            try:
                value = self._primary.get(key)
            except StorageUnavailable as e:
                self._degrade(e)
            else:
                if value is None:
                    self._memory.remove(key)
                else:
                    self._memory.set(key, value)
                return value
        return self._memory.get(key)

    def set(self, key: str, value: str) -> None:
        if not self._degraded:
            try:
                self._primary.set(key, value)
            except StorageUnavailable as e:
                self._degrade(e)
        self._memory.set(key, value)

    def remove(self, key: str) -> None:
        if not self._degraded:
            try:
                self._primary.remove(key)
            except StorageUnavailable as e:
                self._degrade(e)
        self._memory.remove(key)
