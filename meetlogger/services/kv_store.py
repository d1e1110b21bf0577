"""Durable key-value store used for session logs, history and the credential.

Last write wins; there are no transactions. The JSON-file implementation
writes to a temp file and swaps it in with ``os.replace`` so a crash never
leaves a half-written store behind.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return the stored values for the keys that exist."""
        raise NotImplementedError

    @abstractmethod
    def set(self, values: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove(self, keys: Iterable[str]) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, keys: Iterable[str]) -> dict[str, Any]:
        with self._lock:
            return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    def set(self, values: dict[str, Any]) -> None:
        with self._lock:
            self._data.update(copy.deepcopy(values))

    def remove(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._logger = logging.getLogger("meetlogger.store")
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    @property
    def path(self) -> str:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        if not os.path.exists(self._path):
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            self._logger.warning("Failed to read store file: %s error=%s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            self._logger.warning("Store file is not an object: %s", self._path)
            return {}
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        temp_path = f"{self._path}.tmp"
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(temp_path, self._path)

    def get(self, keys: Iterable[str]) -> dict[str, Any]:
        with self._lock:
            data = self._read_all()
            return {k: data[k] for k in keys if k in data}

    def set(self, values: dict[str, Any]) -> None:
        with self._lock:
            data = self._read_all()
            data.update(values)
            self._write_all(data)

    def remove(self, keys: Iterable[str]) -> None:
        with self._lock:
            data = self._read_all()
            changed = False
            for key in keys:
                if key in data:
                    del data[key]
                    changed = True
            if changed:
                self._write_all(data)
