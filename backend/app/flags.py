from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from fastapi import Request, Response

from .storage import StorageUnavailable
from .timeutil import utc_now


class FlagJar(ABC):
    """Cookie-like flags: named, path-scoped, with an explicit expiry."""

    @abstractmethod
    def get(self, name: str) -> Optional[str]:
        """Return the value, or None when missing or expired."""

    @abstractmethod
    def set(self, name: str, value: str, *, expires_at: datetime, path: str = "/", samesite: str = "lax") -> None:
        ...

    @abstractmethod
    def delete(self, name: str, *, path: str = "/") -> None:
        ...


@dataclass
class StoredFlag:
    value: str
    expires_at: datetime
    path: str = "/"
    samesite: str = "lax"


class MemoryFlagJar(FlagJar):
    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._flags: Dict[str, StoredFlag] = {}
        self.disabled = False

    def _check(self) -> None:
        if self.disabled:
            raise StorageUnavailable("cookies are disabled")

    def get(self, name: str) -> Optional[str]:
        self._check()
        flag = self._flags.get(name)
        if flag is None:
            return None
        if flag.expires_at <= self._clock():
            self._flags.pop(name, None)
            return None
        return flag.value

    def set(self, name: str, value: str, *, expires_at: datetime, path: str = "/", samesite: str = "lax") -> None:
        self._check()
        self._flags[name] = StoredFlag(value=value, expires_at=expires_at, path=path, samesite=samesite)

    def delete(self, name: str, *, path: str = "/") -> None:
        self._check()
        self._flags.pop(name, None)

    def peek(self, name: str) -> Optional[StoredFlag]:
        """Raw stored flag including expired ones."""
        return self._flags.get(name)


class RequestCookieJar(FlagJar):
    """
    Flags backed by real cookies: reads the incoming request, writes Set-Cookie
    headers on the outgoing response.

    The browser enforces expiry, so any cookie it sends is unexpired. Writes made
    during this request are visible to later reads within the same request.
    """

    def __init__(self, request: Request, response: Response, clock: Callable[[], datetime] = utc_now):
        self._request = request
        self._response = response
        self._clock = clock
        self._pending: Dict[str, Optional[str]] = {}

    def get(self, name: str) -> Optional[str]:
        if name in self._pending:
            return self._pending[name]
        return self._request.cookies.get(name)

    def set(self, name: str, value: str, *, expires_at: datetime, path: str = "/", samesite: str = "lax") -> None:
        max_age = int(round((expires_at - self._clock()).total_seconds()))
        if max_age <= 0:
            self.delete(name, path=path)
            return
        self._response.set_cookie(
            key=name,
            value=value,
            max_age=max_age,
            expires=max_age,
            path=path,
            samesite=samesite,
        )
        self._pending[name] = value

    def delete(self, name: str, *, path: str = "/") -> None:
        self._response.delete_cookie(key=name, path=path, samesite="lax")
        self._pending[name] = None
