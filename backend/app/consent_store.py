from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from .diagnostics import dbg
from .flags import FlagJar
from .settings import ConsentConfig
from .storage import KeyValueStorage, StorageError
from .timeutil import parse_iso, to_iso, utc_now

CONSENT_KEY = "cookieConsent"
FLAG_NAME = "cookieConsent"
FLAG_ACCEPTED = "accepted"
FLAG_PATH = "/"


@dataclass
class ConsentRecord:
    accepted: bool
    date: datetime
    version: str

    def to_json(self) -> Dict[str, Any]:
        return {"accepted": self.accepted, "date": to_iso(self.date), "version": self.version}

    @classmethod
    def from_json(cls, raw: Any) -> Optional["ConsentRecord"]:
        if not isinstance(raw, dict):
            return None
        accepted = raw.get("accepted")
        version = raw.get("version")
        date = parse_iso(raw.get("date"))
        if not isinstance(accepted, bool) or not isinstance(version, str) or date is None:
            return None
        return cls(accepted=accepted, date=date, version=version)


class ConsentStore:
    """
    The consent record (key/value storage) plus the authoritative flag (cookie jar).

    The two channels are independent and may disagree; ConsentManager decides
    what each combination means. Every fault degrades to "absent" on read and
    to a no-op on write.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        flags: FlagJar,
        config: ConsentConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._storage = storage
        self._flags = flags
        self._config = config
        self._clock = clock

    def get_record(self) -> Optional[ConsentRecord]:
        try:
            raw = self._storage.get_json(CONSENT_KEY)
        except StorageError as ex:
            dbg(self._config.debug, f"Error reading {CONSENT_KEY}: {ex!r}")
            return None
        if raw is None:
            return None
        rec = ConsentRecord.from_json(raw)
        if rec is None:
            dbg(self._config.debug, f"Ignoring malformed {CONSENT_KEY} value: {raw!r}")
        return rec

    def set_record(self, accepted: bool) -> None:
        rec = ConsentRecord(accepted=accepted, date=self._clock(), version=self._config.policy_version)
        try:
            self._storage.set_json(CONSENT_KEY, rec.to_json())
        except StorageError as ex:
            dbg(self._config.debug, f"Error saving {CONSENT_KEY}: {ex!r}")
            return
        dbg(self._config.debug, "Cookie consent saved:", rec.to_json())

    def clear_record(self) -> None:
        try:
            self._storage.remove_item(CONSENT_KEY)
        except StorageError as ex:
            dbg(self._config.debug, f"Error removing {CONSENT_KEY}: {ex!r}")

    def get_flag(self) -> Optional[str]:
        try:
            return self._flags.get(FLAG_NAME)
        except StorageError as ex:
            dbg(self._config.debug, f"Error reading {FLAG_NAME} cookie: {ex!r}")
            return None

    def set_flag(self, token: str = FLAG_ACCEPTED, ttl_days: Optional[int] = None) -> None:
        days = self._config.flag_ttl_days if ttl_days is None else ttl_days
        if days <= 0:
            self.clear_flag()
            return
        try:
            self._flags.set(
                FLAG_NAME,
                token,
                expires_at=self._clock() + timedelta(days=days),
                path=FLAG_PATH,
                samesite="lax",
            )
        except StorageError as ex:
            dbg(self._config.debug, f"Error setting {FLAG_NAME} cookie: {ex!r}")

    def clear_flag(self) -> None:
        try:
            self._flags.delete(FLAG_NAME, path=FLAG_PATH)
        except StorageError as ex:
            dbg(self._config.debug, f"Error clearing {FLAG_NAME} cookie: {ex!r}")
