"""
Alert State Machine.

Per market key a record is either absent (never alerted, or older than
expiry_hours) or armed. For a scored signal:

    absent                -> "initial", always emitted
    armed, price better   -> "realert_plus" if re-alerts enabled and score >= min
                             (cooldown does not apply)
    armed, price equal    -> "realert" if additionally the cooldown has elapsed
    armed, price worse    -> nothing

The store is written only when an alert is emitted, so suppressed checks
never push the cooldown window forward.
"""

import time
from typing import Callable, Optional

import structlog

from sharpscan.config import ReAlertSettings
from sharpscan.engine.odds_math import compare_prices
from sharpscan.errors import PersistenceError
from sharpscan.models.schemas import (
    AlertDecision,
    AlertKind,
    AlertPayload,
    AlertRecord,
    PriceComparison,
    ScoredSignal,
)
from sharpscan.utils.state_store import AlertStore

logger = structlog.get_logger()


class AlertStateMachine:
    """
    Decides initial / re-alert / suppress for scored signals.

    Owns the AlertRecords in `store`; nothing else should write to it.
    Callers must not run two decisions for the same key concurrently.
    """

    def __init__(
        self,
        store: AlertStore,
        settings: ReAlertSettings,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.settings = settings
        self._clock = clock
        self.logger = logger.bind(component="alert_state")

        self._emitted: dict[str, int] = {kind.value: 0 for kind in AlertKind}
        self._suppressed: dict[str, int] = {}

    def _is_expired(self, record: AlertRecord, now: float) -> bool:
        return now - record.ts > self.settings.expiry_hours * 3600

    def current_record(self, key: str, now: Optional[float] = None) -> Optional[AlertRecord]:
        """Active record for a key; expired records read as absent."""
        now = self._clock() if now is None else now
        record = self.store.get(key)
        if record is None or self._is_expired(record, now):
            return None
        return record

    def decide(self, signal: ScoredSignal, now: Optional[float] = None) -> AlertDecision:
        """Run one scored signal through the state machine."""
        now = self._clock() if now is None else now
        key = signal.key
        record = self.current_record(key, now)

        if record is None:
            return self._emit(signal, AlertKind.INITIAL, now)

        comparison = compare_prices(signal.entry_line, record.entry_line)
        if comparison is PriceComparison.WORSE:
            return self._suppress(key, "price_worse")
        if not self.settings.enabled:
            return self._suppress(key, "realerts_disabled")
        if signal.score < self.settings.min_score:
            return self._suppress(key, "score_below_min")

        if comparison is PriceComparison.BETTER:
            return self._emit(signal, AlertKind.REALERT_PLUS, now)

        if now - record.ts < self.settings.cooldown_minutes * 60:
            return self._suppress(key, "cooldown")
        return self._emit(signal, AlertKind.REALERT, now)

    # =========================================================================
    # Transitions
    # =========================================================================

    def _emit(self, signal: ScoredSignal, kind: AlertKind, now: float) -> AlertDecision:
        key = signal.key
        snapshot = signal.snapshot
        payload = AlertPayload(
            alert_kind=kind,
            sport=snapshot.sport,
            market=snapshot.market,
            game_key=key,
            side=signal.side,
            entry_line=signal.entry_line,
            score=signal.score,
            tier=signal.tier,
            signals=list(signal.signals),
        )

        self.logger.info(
            "Alert emitted",
            kind=kind.value,
            key=key,
            game=snapshot.get_display_name(),
            side=signal.side,
            entry_line=signal.entry_line,
            score=signal.score,
            tier=signal.tier.value,
        )

        # Record is written last so a failure above leaves the key untouched
        record = AlertRecord(key=key, ts=now, entry_line=signal.entry_line, side=signal.side)
        try:
            self.store.set(key, record)
        except PersistenceError as e:
            # Decision stands; a restart may re-send this alert
            self.logger.warning("Failed to persist alert record", key=key, error=str(e))

        self._emitted[kind.value] += 1
        return AlertDecision(key=key, emit=True, kind=kind, reason=kind.value, payload=payload)

    def _suppress(self, key: str, reason: str) -> AlertDecision:
        self._suppressed[reason] = self._suppressed.get(reason, 0) + 1
        self.logger.debug("Alert suppressed", key=key, reason=reason)
        return AlertDecision(key=key, emit=False, reason=reason)

    def get_metrics(self) -> dict:
        return {
            "emitted": dict(self._emitted),
            "suppressed": dict(self._suppressed),
        }
