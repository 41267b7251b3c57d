from datetime import datetime
from typing import Callable, List

from .diagnostics import dbg
from .settings import ConsentConfig
from .storage import KeyValueStorage, MalformedStoredValue, StorageError
from .timeutil import parse_iso, subtract_months, to_iso, utc_now

VISITS_KEY = "visitorVisits"


class VisitLedger:
    """
    Rolling log of visit timestamps, used only to tell frequent visitors apart.

    Entries are kept in insertion order and are not deduplicated; anything older
    than the retention window (calendar months) is pruned on every write.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        config: ConsentConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._storage = storage
        self._config = config
        self._clock = clock

    def _cutoff(self, now: datetime) -> datetime:
        return subtract_months(now, self._config.retention_months)

    def _read(self) -> List[datetime]:
        raw = self._storage.get_json(VISITS_KEY)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise MalformedStoredValue(f"{VISITS_KEY} is not a list")
        entries: List[datetime] = []
        for item in raw:
            ts = parse_iso(item)
            if ts is not None:
                entries.append(ts)
        return entries

    def _retained(self, now: datetime) -> List[datetime]:
        cutoff = self._cutoff(now)
        return [ts for ts in self._read() if ts >= cutoff]

    def record_visit(self) -> None:
        now = self._clock()
        try:
            entries = self._read()
        except MalformedStoredValue as ex:
            dbg(self._config.debug, f"Malformed {VISITS_KEY}, starting a new ledger: {ex!r}")
            entries = []
        except StorageError as ex:
            dbg(self._config.debug, f"Error reading {VISITS_KEY}, visit not recorded: {ex!r}")
            return
        entries.append(now)
        cutoff = self._cutoff(now)
        kept = [ts for ts in entries if ts >= cutoff]
        try:
            self._storage.set_json(VISITS_KEY, [to_iso(ts) for ts in kept])
        except StorageError as ex:
            dbg(self._config.debug, f"Error saving {VISITS_KEY}: {ex!r}")

    def visits(self) -> List[datetime]:
        try:
            return sorted(self._retained(self._clock()))
        except StorageError as ex:
            dbg(self._config.debug, f"Error reading {VISITS_KEY}: {ex!r}")
            return []

    def is_frequent_visitor(self) -> bool:
        try:
            entries = self._retained(self._clock())
        except StorageError as ex:
            dbg(self._config.debug, f"Error reading {VISITS_KEY}: {ex!r}")
            return False
        if len(entries) < 2:
            return False
        first, last = min(entries), max(entries)
        span = max(1, (last.year - first.year) * 12 + (last.month - first.month) + 1)
        return len(entries) / span > 1.0
