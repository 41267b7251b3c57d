from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from .consent_store import FLAG_ACCEPTED, ConsentStore
from .diagnostics import dbg
from .flags import FlagJar
from .settings import ConsentConfig
from .storage import KeyValueStorage
from .timeutil import utc_now
from .visit_ledger import VisitLedger

CONSENT_ACCEPTED_EVENT = "cookieConsented"


class Verdict(str, Enum):
    SHOW = "show"
    SUPPRESS = "suppress"

    @property
    def show_banner(self) -> bool:
        return self is Verdict.SHOW


@dataclass
class ConsentEvent:
    name: str
    version: str
    date: datetime
    context: str = ""


Listener = Callable[[ConsentEvent], None]


class ConsentNotifier:
    """Observers for "consent accepted". A failing listener never stops the others."""

    def __init__(self, debug: bool = False):
        self._listeners: List[Listener] = []
        self.debug = debug

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(listener)

        return _unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: ConsentEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as ex:
                dbg(self.debug, f"{event.name} listener {listener!r} failed: {ex!r}")


class ConsentManager:
    """
    Decides whether the cookie notice is shown on this page load.

    Order of checks (first match wins):
      1. unexpired cookieConsent=accepted flag -> suppress, record not read
      2. no record -> show
      3. record from another policy version -> show
      4. accepted + frequent visitor -> renew flag and record silently, suppress
         (`renewed` is set for the caller; the verdict stays SUPPRESS)
      5. anything else -> show

    Only step 4 writes. Right after a renewal the fresh flag stops step 1, so a
    renewal buys at most one flag TTL.
    """

    def __init__(
        self,
        store: ConsentStore,
        ledger: VisitLedger,
        config: ConsentConfig,
        notifier: Optional[ConsentNotifier] = None,
        clock: Callable[[], datetime] = utc_now,
        context: str = "",
    ):
        self.store = store
        self.ledger = ledger
        self.config = config
        self.notifier = notifier if notifier is not None else ConsentNotifier(debug=config.debug)
        self._clock = clock
        self.context = context
        # True when the last evaluate() renewed consent silently.
        self.renewed = False

    def _log(self, *args) -> None:
        dbg(self.config.debug, *args)

    def evaluate(self) -> Verdict:
        self.renewed = False
        if self.store.get_flag() == FLAG_ACCEPTED:
            if not self.config.version_bump_clears_flag:
                self._log("Consent cookie present - banner suppressed")
                return Verdict.SUPPRESS
            rec = self.store.get_record()
            if rec is None or rec.version == self.config.policy_version:
                self._log("Consent cookie present - banner suppressed")
                return Verdict.SUPPRESS
            self._log(f"Consent cookie predates policy {self.config.policy_version} - clearing it")
            self.store.clear_flag()
            return Verdict.SHOW

        rec = self.store.get_record()
        if rec is None:
            self._log("No cookie consent found - showing banner")
            return Verdict.SHOW

        if rec.version != self.config.policy_version:
            self._log(f"Version mismatch (stored: {rec.version}, current: {self.config.policy_version}) - showing banner")
            return Verdict.SHOW

        if not rec.accepted:
            self._log("Stored consent was not accepted - showing banner")
            return Verdict.SHOW

        if self.ledger.is_frequent_visitor():
            self.store.set_flag(FLAG_ACCEPTED, self.config.flag_ttl_days)
            self.store.set_record(True)
            self.renewed = True
            self._log("Frequent visitor - consent renewed silently")
            return Verdict.SUPPRESS

        self._log("Consent cookie expired for an infrequent visitor - showing banner")
        return Verdict.SHOW

    def page_load(self) -> Verdict:
        self.ledger.record_visit()
        return self.evaluate()

    def accept(self) -> None:
        self.store.set_record(True)
        self.store.set_flag(FLAG_ACCEPTED, self.config.flag_ttl_days)
        self._log("Cookie banner dismissed")
        self.notifier.emit(
            ConsentEvent(
                name=CONSENT_ACCEPTED_EVENT,
                version=self.config.policy_version,
                date=self._clock(),
                context=self.context,
            )
        )

    def reset(self) -> None:
        self.store.clear_flag()
        self.store.clear_record()
        self._log("Consent reset")

    def has_consented(self) -> bool:
        if self.store.get_flag() == FLAG_ACCEPTED:
            return True
        rec = self.store.get_record()
        return rec is not None and rec.accepted is True

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.notifier.subscribe(listener)


def build_consent_manager(
    storage: KeyValueStorage,
    flags: FlagJar,
    config: ConsentConfig,
    notifier: Optional[ConsentNotifier] = None,
    clock: Callable[[], datetime] = utc_now,
    context: str = "",
) -> ConsentManager:
    store = ConsentStore(storage, flags, config, clock=clock)
    ledger = VisitLedger(storage, config, clock=clock)
    return ConsentManager(store, ledger, config, notifier=notifier, clock=clock, context=context)
