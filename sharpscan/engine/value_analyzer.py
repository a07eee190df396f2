"""
Price Value Analyzer.

Second-line analysis for markets the splits gates did not take. Works only
on per-book quotes (MarketSnapshot.book_quotes), for candidate books from the
alert list:

- EV path: de-vig every other book, average their fair probability, and
  price each side of the candidate book against that consensus. The best EV
  across candidates is graded by edge, EV and Kelly with thresholds that
  depend on league band and minutes to post.
- Outlier path: candidate price against the median of the other books, in
  cents. Favorites and underdogs have their own gates.

EV runs first; the outlier path only runs when EV finds nothing.
"""

import statistics
import time
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

import structlog

from sharpscan.config import SharpProfile, ValueSettings
from sharpscan.engine.odds_math import (
    expected_value,
    implied_probability,
    kelly_fraction,
    play_to_price,
)
from sharpscan.models.schemas import (
    MarketSnapshot,
    ScoredSignal,
    SignalContribution,
    Tier,
)

logger = structlog.get_logger()


class Verdict(str, Enum):
    STRONG = "strong"
    MEDIUM = "medium"
    PASS = "pass"


class LeagueBand(str, Enum):
    NFL_NBA = "nfl_nba"
    MLB_NHL = "mlb_nhl"
    NCAA_WNBA = "ncaa_wnba"


_BAND_BY_LEAGUE = {
    "nfl": LeagueBand.NFL_NBA,
    "nba": LeagueBand.NFL_NBA,
    "mlb": LeagueBand.MLB_NHL,
    "nhl": LeagueBand.MLB_NHL,
    "ncaaf": LeagueBand.NCAA_WNBA,
    "ncaab": LeagueBand.NCAA_WNBA,
    "wnba": LeagueBand.NCAA_WNBA,
}


@dataclass(frozen=True)
class VerdictThresholds:
    """Percent thresholds for one league band."""
    edge_strong: float
    ev_strong: float
    kelly_strong: float
    edge_medium: float
    ev_medium: float


BASE_THRESHOLDS: dict[LeagueBand, VerdictThresholds] = {
    LeagueBand.NFL_NBA: VerdictThresholds(
        edge_strong=2.5, ev_strong=1.0, kelly_strong=3.0, edge_medium=1.2, ev_medium=0.3,
    ),
    LeagueBand.MLB_NHL: VerdictThresholds(
        edge_strong=3.0, ev_strong=1.2, kelly_strong=4.0, edge_medium=1.0, ev_medium=0.2,
    ),
    LeagueBand.NCAA_WNBA: VerdictThresholds(
        edge_strong=3.0, ev_strong=1.0, kelly_strong=3.0, edge_medium=1.0, ev_medium=0.2,
    ),
}

# Half Kelly ceiling, percent of bankroll
KELLY_CAP_PCT: dict[LeagueBand, float] = {
    LeagueBand.NFL_NBA: 2.0,
    LeagueBand.MLB_NHL: 1.0,
    LeagueBand.NCAA_WNBA: 2.0,
}

EARLY_MINUTES = 360       # T-6h or more: loosen
LATE_MINUTES = 60         # Last hour: tighten
UNKNOWN_START_MINUTES = 9999


def league_band(sport: str) -> LeagueBand:
    """Map a sport key ("basketball_nba") to its band; unknown leagues are MLB/NHL."""
    league = sport.strip().lower().rsplit("_", 1)[-1]
    return _BAND_BY_LEAGUE.get(league, LeagueBand.MLB_NHL)


def verdict_thresholds(sport: str, minutes: int) -> VerdictThresholds:
    t = BASE_THRESHOLDS[league_band(sport)]
    if minutes >= EARLY_MINUTES:
        return replace(
            t,
            edge_strong=t.edge_strong - 0.3,
            ev_strong=t.ev_strong - 0.2,
            edge_medium=max(0.0, t.edge_medium - 0.3),
            ev_medium=max(0.0, t.ev_medium - 0.2),
        )
    if minutes <= LATE_MINUTES:
        return replace(
            t,
            edge_strong=t.edge_strong + 0.3,
            ev_strong=t.ev_strong + 0.2,
            edge_medium=t.edge_medium + 0.3,
            ev_medium=t.ev_medium + 0.2,
        )
    return t


def decide_verdict(sport: str, minutes: int, edge_pct: float, ev_pct: float, kelly_pct: float) -> Verdict:
    """Strong needs all three; medium needs edge or EV over its floor."""
    t = verdict_thresholds(sport, minutes)
    if edge_pct >= t.edge_strong and ev_pct >= t.ev_strong and kelly_pct >= t.kelly_strong:
        return Verdict.STRONG
    if edge_pct >= t.edge_medium or ev_pct >= t.ev_medium:
        return Verdict.MEDIUM
    return Verdict.PASS


def minutes_to_post(commence_time: Optional[str], now: float) -> int:
    if not commence_time:
        return UNKNOWN_START_MINUTES
    try:
        start = datetime.fromisoformat(commence_time.replace("Z", "+00:00")).timestamp()
    except (TypeError, ValueError):
        return UNKNOWN_START_MINUTES
    return max(0, round((start - now) / 60))


def to_cents(american: float) -> float:
    """American odds on a continuous scale: -105 -> -5, +105 -> +5."""
    return american - 100 if american > 0 else american + 100


def from_cents(cents: float) -> float:
    return cents + 100 if cents >= 0 else cents - 100


def _fmt_american(price: float) -> str:
    return f"{price:+.0f}"


@dataclass
class _EVPick:
    book: str
    side: str
    price: float
    model_prob: float
    ev: float
    fair_first: float
    consensus_n: int


@dataclass
class _OutlierPick:
    book: str
    side: str
    price: float
    diff: float
    tier: Tier
    median: float
    others_n: int


class ValueAnalyzer:
    """
    EV and outlier analysis over per-book quotes.

    Usage:
        analyzer = ValueAnalyzer(settings.value, get_profile("sharpest"))
        signal = analyzer.analyze(snapshot)  # ScoredSignal or None
    """

    def __init__(
        self,
        settings: ValueSettings,
        profile: SharpProfile,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.profile = profile
        self._clock = clock
        self.logger = logger.bind(component="value_analyzer")

        # Rejection tracking
        self._rejection_counts: dict[str, int] = {}
        self._last_rejection_log_ms: int = 0
        self._signals_scored: dict[str, int] = {"ev": 0, "outlier": 0}

    # =========================================================================
    # Core Analysis
    # =========================================================================

    def analyze(self, snapshot: MarketSnapshot) -> Optional[ScoredSignal]:
        quotes = snapshot.book_quotes
        if len(quotes) < 2:
            self._track_rejection("few_books")
            return None

        if self.settings.alert_any_book:
            candidates = list(quotes)
        else:
            allowed = set(self.settings.alert_book_list)
            candidates = [book for book in quotes if book in allowed]
        if not candidates:
            self._track_rejection("no_candidate_book")
            return None

        signal = self._analyze_ev(snapshot, candidates)
        if signal is None:
            signal = self._analyze_outlier(snapshot, candidates)
        if signal is None:
            self._track_rejection("no_value")
            return None

        self._signals_scored[signal.source] += 1
        self.logger.debug(
            "Value signal scored",
            game=snapshot.get_display_name(),
            market=snapshot.market,
            source=signal.source,
            book=signal.book,
            side=signal.side,
            price=signal.price,
            tier=signal.tier.value,
        )
        return signal

    def consensus_fair(self, snapshot: MarketSnapshot, books: list[str]) -> Optional[tuple[float, int]]:
        """Average de-vigged probability of the first side across `books`."""
        side_a, side_b = snapshot.sides
        rows = []
        for book in books:
            by_side = snapshot.book_quotes.get(book) or {}
            if side_a not in by_side or side_b not in by_side:
                continue
            p_a = by_side[side_a].implied_prob
            p_b = by_side[side_b].implied_prob
            rows.append(p_a / (p_a + p_b))
        if not rows:
            return None
        return sum(rows) / len(rows), len(rows)

    def _tier_score(self, tier: Tier) -> float:
        thresholds = self.profile.thresholds
        return thresholds.strong if tier is Tier.STRONG else thresholds.lean

    # =========================================================================
    # EV Path
    # =========================================================================

    def _analyze_ev(self, snapshot: MarketSnapshot, candidates: list[str]) -> Optional[ScoredSignal]:
        side_a, side_b = snapshot.sides
        best: Optional[_EVPick] = None

        for book in candidates:
            others = [b for b in snapshot.book_quotes if b != book]
            fair = self.consensus_fair(snapshot, others)
            if fair is None:
                continue
            fair_a, consensus_n = fair

            for side, prob in ((side_a, fair_a), (side_b, 1.0 - fair_a)):
                price = snapshot.book_quotes[book][side].price
                ev = expected_value(price, prob)
                if ev is None:
                    continue
                if best is None or ev > best.ev:
                    best = _EVPick(book, side, price, prob, ev, fair_a, consensus_n)

        if best is None:
            return None

        ev_pct = best.ev * 100
        edge_pct = (best.model_prob - implied_probability(best.price)) * 100
        minutes = minutes_to_post(snapshot.commence_time, self._clock())
        kelly_pct = max(0.0, kelly_fraction(best.model_prob, best.price) or 0.0) * 100
        cap = KELLY_CAP_PCT[league_band(snapshot.sport)]
        half_kelly_pct = min(cap, kelly_pct / 2)

        verdict = decide_verdict(snapshot.sport, minutes, edge_pct, ev_pct, kelly_pct)
        if verdict is Verdict.PASS or ev_pct < self.settings.min_ev_pct:
            self._track_rejection("ev_pass")
            return None

        tier = Tier.STRONG if verdict is Verdict.STRONG else Tier.LEAN
        signals = [
            SignalContribution(key="consensus_n", label=f"Consensus N={best.consensus_n}", weight=1),
            SignalContribution(key="fair", label=f"Fair({side_a}) {best.fair_first:.1%}", weight=1),
            SignalContribution(key="edge_pct", label=f"Edge {edge_pct:.2f}%", weight=2),
            SignalContribution(key="ev_pct", label=f"+{ev_pct:.2f}% EV", weight=2),
            SignalContribution(
                key="kelly",
                label=f"Kelly {kelly_pct:.1f}% / half {half_kelly_pct:.1f}% (cap {cap:.1f}%)",
                weight=1,
            ),
        ]
        play_to = play_to_price(best.model_prob)
        if play_to is not None:
            exact, rounded = play_to
            signals.append(SignalContribution(
                key="play_to",
                label=f"Play-to {_fmt_american(exact)} / {_fmt_american(rounded)}",
                weight=1,
            ))
        signals += [
            SignalContribution(key="book", label=f"Book {best.book}", weight=1),
            SignalContribution(key="verdict", label=f"Verdict {verdict.value.upper()}", weight=2),
            SignalContribution(key="t2p", label=f"T-{minutes}m", weight=1),
        ]

        return ScoredSignal(
            snapshot=snapshot,
            score=self._tier_score(tier),
            tier=tier,
            side=best.side,
            signals=signals,
            source="ev",
            book=best.book,
            price=best.price,
        )

    # =========================================================================
    # Outlier Path
    # =========================================================================

    def _outlier_tier(self, price: float, diff: float) -> Optional[Tier]:
        s = self.settings
        if price > 0:
            lean, strong = s.outlier_dog_lean_cents, s.outlier_dog_strong_cents
        else:
            lean, strong = s.outlier_fav_lean_cents, s.outlier_fav_strong_cents
        if diff >= strong:
            return Tier.STRONG
        if diff >= lean:
            return Tier.LEAN
        return None

    def _analyze_outlier(self, snapshot: MarketSnapshot, candidates: list[str]) -> Optional[ScoredSignal]:
        best: Optional[_OutlierPick] = None
        rank = {Tier.STRONG: 2, Tier.LEAN: 1}

        for book in candidates:
            others = [b for b in snapshot.book_quotes if b != book]
            for side in snapshot.sides:
                other_cents = [to_cents(snapshot.book_quotes[b][side].price) for b in others]
                if not other_cents:
                    continue
                median = statistics.median(other_cents)
                price = snapshot.book_quotes[book][side].price
                diff = to_cents(price) - median
                tier = self._outlier_tier(price, diff)
                if tier is None:
                    continue
                pick = _OutlierPick(book, side, price, diff, tier, from_cents(median), len(others))
                if best is None or (rank[pick.tier], pick.diff) > (rank[best.tier], best.diff):
                    best = pick

        if best is None:
            return None

        return ScoredSignal(
            snapshot=snapshot,
            score=self._tier_score(best.tier),
            tier=best.tier,
            side=best.side,
            signals=[
                SignalContribution(key="consensus_n", label=f"Consensus N={best.others_n}", weight=1),
                SignalContribution(
                    key="median_ref",
                    label=f"Median {best.side} {_fmt_american(best.median)}",
                    weight=1,
                ),
                SignalContribution(key="delta_cents", label=f"+{best.diff:.0f}c vs market", weight=2),
                SignalContribution(key="book", label=f"Book {best.book}", weight=1),
            ],
            source="outlier",
            book=best.book,
            price=best.price,
        )

    # =========================================================================
    # Metrics
    # =========================================================================

    def _track_rejection(self, reason: str) -> None:
        self._rejection_counts[reason] = self._rejection_counts.get(reason, 0) + 1

        now_ms = int(time.time() * 1000)
        if now_ms - self._last_rejection_log_ms > 60_000:
            self._last_rejection_log_ms = now_ms
            self.logger.debug("Value rejections (last 60s)", rejections=dict(self._rejection_counts))
            self._rejection_counts.clear()

    def get_metrics(self) -> dict:
        return {
            "signals_scored": dict(self._signals_scored),
            "rejection_counts": dict(self._rejection_counts),
        }
