import errno
import json
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from filelock import FileLock, Timeout  # type: ignore


class StorageError(Exception):
    """Base class for every persistence fault the consent core degrades on."""


class StorageUnavailable(StorageError):
    pass


class StorageQuotaExceeded(StorageError):
    pass


class MalformedStoredValue(StorageError):
    pass


class KeyValueStorage(ABC):
    """
    String key -> string value persistence with localStorage semantics.

    Backends raise StorageError subclasses; callers decide how to degrade.
    """

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...

    @abstractmethod
    def scoped(self, scope: str) -> "KeyValueStorage":
        """Return a view of the same backing store partitioned under `scope`."""

    def get_json(self, key: str) -> Any:
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as ex:
            raise MalformedStoredValue(f"{key}: {ex}") from ex

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, separators=(",", ":")))


class MemoryStorage(KeyValueStorage):
    """
    In-process store. Used by tests and by single-instance deployments.

    `disabled` and `quota_bytes` simulate blocked storage and a full quota.
    Scoped views share both with the store they came from.
    """

    def __init__(self, quota_bytes: Optional[int] = None, *, _root: Optional["MemoryStorage"] = None, _prefix: str = ""):
        self._root = _root if _root is not None else self
        self._prefix = _prefix
        if _root is None:
            self._items: Dict[str, str] = {}
            self._quota_bytes = quota_bytes
            self._disabled = False
        else:
            self._items = _root._items

    @property
    def disabled(self) -> bool:
        return self._root._disabled

    @disabled.setter
    def disabled(self, value: bool) -> None:
        self._root._disabled = value

    @property
    def quota_bytes(self) -> Optional[int]:
        return self._root._quota_bytes

    @quota_bytes.setter
    def quota_bytes(self, value: Optional[int]) -> None:
        self._root._quota_bytes = value

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _check(self) -> None:
        if self.disabled:
            raise StorageUnavailable("storage is disabled")

    def get_item(self, key: str) -> Optional[str]:
        self._check()
        return self._items.get(self._k(key))

    def set_item(self, key: str, value: str) -> None:
        self._check()
        if self.quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self._items.items() if k != self._k(key))
            if used + len(self._k(key)) + len(value) > self.quota_bytes:
                raise StorageQuotaExceeded(f"quota of {self.quota_bytes} bytes exceeded writing {key}")
        self._items[self._k(key)] = value

    def remove_item(self, key: str) -> None:
        self._check()
        self._items.pop(self._k(key), None)

    def scoped(self, scope: str) -> "MemoryStorage":
        return MemoryStorage(_root=self._root, _prefix=f"{self._prefix}{scope}::")


class JsonFileStorage(KeyValueStorage):
    """
    A single JSON document on disk: {scope: {key: value}}.

    Read-modify-write runs under a FileLock (shared across gunicorn workers) and
    the document is replaced atomically via a temp file + os.replace, so a reader
    never sees a half-written file.
    """

    def __init__(self, path: str, scope: str = "default", lock_timeout: float = 10.0):
        self.path = path
        self.scope = scope
        self.lock_timeout = lock_timeout
        self._lock = FileLock(path + ".lock", timeout=lock_timeout)

    def scoped(self, scope: str) -> "JsonFileStorage":
        return JsonFileStorage(self.path, scope=scope, lock_timeout=self.lock_timeout)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            folder = os.path.dirname(self.path) or "."
            os.makedirs(folder, exist_ok=True)
            self._lock.acquire()
        except Timeout as ex:
            raise StorageUnavailable(f"timed out waiting for {self.path}.lock") from ex
        except OSError as ex:
            raise StorageUnavailable(f"cannot lock {self.path}: {ex}") from ex
        try:
            yield
        finally:
            self._lock.release()

    def _load(self) -> Dict[str, Any]:
        if not os.path.isfile(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError as ex:
            raise MalformedStoredValue(f"{self.path}: {ex}") from ex
        except OSError as ex:
            raise StorageUnavailable(f"cannot read {self.path}: {ex}") from ex
        if not isinstance(data, dict):
            raise MalformedStoredValue(f"{self.path}: top-level value is not an object")
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        tmp = self.path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except OSError as ex:
            if ex.errno in (errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)):
                raise StorageQuotaExceeded(f"no space left writing {self.path}") from ex
            raise StorageUnavailable(f"cannot write {self.path}: {ex}") from ex

    def _bucket(self, data: Dict[str, Any]) -> Dict[str, Any]:
        bucket = data.get(self.scope)
        return bucket if isinstance(bucket, dict) else {}

    def get_item(self, key: str) -> Optional[str]:
        with self._locked():
            value = self._bucket(self._load()).get(key)
        return value if isinstance(value, str) else None

    def _mutate(self, key: str, value: Optional[str]) -> None:
        with self._locked():
            try:
                data = self._load()
            except MalformedStoredValue:
                # A corrupt document is unrecoverable; start over rather than block every write.
                data = {}
            bucket = self._bucket(data)
            if value is None:
                if key not in bucket:
                    return
                bucket.pop(key, None)
            else:
                bucket[key] = value
            if bucket:
                data[self.scope] = bucket
            else:
                data.pop(self.scope, None)
            self._save(data)

    def set_item(self, key: str, value: str) -> None:
        self._mutate(key, value)

    def remove_item(self, key: str) -> None:
        self._mutate(key, None)
