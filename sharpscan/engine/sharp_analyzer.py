"""
Sharp Money Analyzer.

Scores one MarketSnapshot at a time against a sharp profile. The defining
signal is money share running ahead of bet-count share:

    handle% - ticket% >= min_gap   (few bets, big money = sharp side)

Gates run in order and the first failure rejects the snapshot. A snapshot
with no split metrics is rejected up front (no data, as opposed to failing
to qualify). Passing snapshots are scored additively and bucketed into
tiers; a "pass" tier is a rejection.
"""

import math
import time
from typing import Callable, Iterable, Optional

import structlog

from sharpscan.config import SharpProfile
from sharpscan.models.schemas import (
    MarketSnapshot,
    ScoredSignal,
    SignalContribution,
    Tier,
)

logger = structlog.get_logger()

# Extra scorers (reverse line move, steam, key numbers...) plug in here
SignalScorer = Callable[[MarketSnapshot, SharpProfile], Optional[SignalContribution]]


def to_percent(value: float) -> float:
    """Feeds mix fractions (0.55) and percentages (55); values <= 1 are fractions."""
    if value <= 1:
        return round(value * 100, 6)
    return value


def _finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class SharpAnalyzer:
    """
    Gate, score and tier market snapshots.

    Usage:
        analyzer = SharpAnalyzer(get_profile("sharpest"))
        signal = analyzer.analyze(snapshot)  # ScoredSignal or None
    """

    def __init__(
        self,
        profile: SharpProfile,
        extra_scorers: Optional[Iterable[SignalScorer]] = None,
    ):
        self.profile = profile
        self.extra_scorers = list(extra_scorers or [])
        self.logger = logger.bind(component="sharp_analyzer", profile=profile.name)

        # Rejection tracking
        self._rejection_counts: dict[str, int] = {}
        self._last_rejection_log_ms: int = 0
        self._signals_scored = 0

    # =========================================================================
    # Core Analysis
    # =========================================================================

    def analyze(self, snapshot: MarketSnapshot) -> Optional[ScoredSignal]:
        """Return a ScoredSignal for a qualifying snapshot, otherwise None."""
        p = self.profile

        # 1. Split metrics are a hard precondition
        splits = snapshot.splits
        if splits is None or not _finite(splits.tickets_pct) or not _finite(splits.handle_pct):
            self._track_rejection("no_splits")
            return None

        # 2. Common 0-100 scale
        tickets = to_percent(splits.tickets_pct)
        handle = to_percent(splits.handle_pct)
        gap = handle - tickets

        # 3-5. Split gates
        if tickets > p.max_tickets_pct:
            self._track_rejection("tickets_high")
            return None
        if handle < p.min_handle_pct:
            self._track_rejection("handle_low")
            return None
        if gap < p.min_gap:
            self._track_rejection("gap_low")
            return None

        # 6. Hold screen; unknown hold does not fail the gate
        hold = snapshot.hold if _finite(snapshot.hold) else None
        if hold is not None:
            if hold > p.hold.skip_above:
                self._track_rejection("hold_skip")
                return None
            if hold > p.hold.max:
                self._track_rejection("hold_high")
                return None

        side = self._resolve_side(snapshot, splits.side)
        if side is None:
            self._track_rejection("unknown_side")
            return None

        # Scoring
        signals: list[SignalContribution] = []
        if gap >= p.min_gap:
            signals.append(SignalContribution(
                key="split_gap",
                label=f"Handle > Tickets by {gap:.0f}%",
                weight=p.weights.split_gap,
            ))
        if hold is not None and hold <= p.hold.max:
            signals.append(SignalContribution(
                key="hold",
                label=f"Hold {hold:.1%}",
                weight=p.weights.hold,
            ))
        for scorer in self.extra_scorers:
            contribution = scorer(snapshot, p)
            if contribution is not None:
                signals.append(contribution)

        score = sum(s.weight for s in signals)
        tier = self.tier_for(score)
        if tier is Tier.PASS:
            self._track_rejection("score_low")
            return None

        self._signals_scored += 1
        self.logger.debug(
            "Sharp signal scored",
            game=snapshot.get_display_name(),
            market=snapshot.market,
            side=side,
            tickets=f"{tickets:.0f}%",
            handle=f"{handle:.0f}%",
            score=score,
            tier=tier.value,
        )

        return ScoredSignal(
            snapshot=snapshot,
            score=score,
            tier=tier,
            side=side,
            signals=signals,
        )

    def tier_for(self, score: float) -> Tier:
        thresholds = self.profile.thresholds
        if score >= thresholds.strong:
            return Tier.STRONG
        if score >= thresholds.lean:
            return Tier.LEAN
        return Tier.PASS

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve_side(self, snapshot: MarketSnapshot, split_side: Optional[str]) -> Optional[str]:
        """Map the side the splits describe onto a snapshot side label."""
        if not split_side:
            return snapshot.home if snapshot.home in snapshot.sides else snapshot.sides[0]
        if split_side in snapshot.sides:
            return split_side

        alias = split_side.lower()
        if alias == "home" and snapshot.home in snapshot.sides:
            return snapshot.home
        if alias == "away" and snapshot.away in snapshot.sides:
            return snapshot.away
        for side in snapshot.sides:
            if side.lower() == alias:
                return side
        return None

    def _track_rejection(self, reason: str) -> None:
        """Track rejection for metrics."""
        self._rejection_counts[reason] = self._rejection_counts.get(reason, 0) + 1

        # Log periodically
        now_ms = int(time.time() * 1000)
        if now_ms - self._last_rejection_log_ms > 60_000:
            self._last_rejection_log_ms = now_ms
            self.logger.debug(
                "Sharp rejections (last 60s)",
                rejections=dict(self._rejection_counts),
            )
            self._rejection_counts.clear()

    def get_metrics(self) -> dict:
        return {
            "profile": self.profile.name,
            "signals_scored": self._signals_scored,
            "rejection_counts": dict(self._rejection_counts),
        }
