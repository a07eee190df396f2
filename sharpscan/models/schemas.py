"""
Sharp scanner data models.

Defines the core data structures for:
- Book quotes and normalized two-sided market snapshots
- Scored sharp signals and tiers
- Persisted alert records and alert decisions
- The outbound alert payload handed to renderers
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Tier(str, Enum):
    """Qualitative bucket derived from a numeric score."""
    STRONG = "strong"
    LEAN = "lean"
    PASS = "pass"


class AlertKind(str, Enum):
    """Why an alert was emitted."""
    INITIAL = "initial"
    REALERT = "realert"            # Same price, cooldown elapsed
    REALERT_PLUS = "realert_plus"  # Price improved since last alert


class PriceComparison(str, Enum):
    """Result of comparing a price to a reference price."""
    BETTER = "better"
    EQUAL = "equal"
    WORSE = "worse"


# --- Market Data Models ---

@dataclass(frozen=True)
class BookOffer:
    """A single bookmaker's price for one side of a market."""
    book: str                      # Bookmaker key, lower-cased ("pinnacle")
    side: str                      # Outcome label ("Chiefs", "Over")
    price: float                   # American odds (-110, +135)
    implied_prob: float            # Raw implied probability, vig included
    point: Optional[float] = None  # Spread/total line, display only
    observed_at_ms: int = 0


@dataclass(frozen=True)
class SplitMetrics:
    """Public betting splits for one side of a market."""
    tickets_pct: float
    handle_pct: float
    side: Optional[str] = None  # Side the splits describe; defaults to first side

    @property
    def gap_pct(self) -> float:
        return self.handle_pct - self.tickets_pct


@dataclass(frozen=True)
class MarketSnapshot:
    """
    Canonical best-price view of one two-sided market for one fetch cycle.

    `sides` keeps the order sides were first observed in. `best`, `implied`
    and `devig` are keyed by side label. `book_quotes` holds every book that
    priced both sides: book -> side -> BookOffer.
    """
    sport: str
    market: str
    game_id: str
    home: str
    away: str
    commence_time: Optional[str]
    sides: tuple[str, str]
    best: dict[str, BookOffer]
    hold: float
    devig: dict[str, float]
    splits: Optional[SplitMetrics] = None
    book_quotes: dict[str, dict[str, BookOffer]] = field(default_factory=dict)
    fetched_at_ms: int = field(default_factory=lambda: int(time.time() * 1000))

    @property
    def key(self) -> str:
        """Composite (game, market) key used by the alert store."""
        return f"{self.game_id}:{self.market}"

    def implied(self, side: str) -> float:
        return self.best[side].implied_prob

    def get_display_name(self) -> str:
        return f"{self.away} @ {self.home}"


# --- Signal Models ---

class SignalContribution(BaseModel):
    """One weighted reason that contributed to a score."""
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    weight: float


@dataclass
class ScoredSignal:
    """A market snapshot that qualified under one of the analysis paths."""
    snapshot: MarketSnapshot
    score: float
    tier: Tier
    side: str
    signals: list[SignalContribution] = field(default_factory=list)
    source: str = "splits"               # "splits", "ev" or "outlier"
    book: Optional[str] = None           # Book the price paths picked
    price: Optional[float] = None        # That book's price, if any

    @property
    def entry_line(self) -> float:
        """Price the alert is entered at: the picked book, else the best price."""
        if self.price is not None:
            return self.price
        return self.snapshot.best[self.side].price

    @property
    def key(self) -> str:
        return self.snapshot.key


# --- Alert State Models ---

@dataclass
class AlertRecord:
    """Last emitted alert for a (game, market) key."""
    key: str
    ts: float            # Epoch seconds of the last emitted alert
    entry_line: float
    side: str

    def to_dict(self) -> dict[str, Any]:
        return {"ts": self.ts, "entry_line": self.entry_line, "side": self.side}

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> "AlertRecord":
        return cls(
            key=key,
            ts=float(data["ts"]),
            entry_line=float(data["entry_line"]),
            side=str(data["side"]),
        )


class AlertPayload(BaseModel):
    """Outbound alert consumed by the external renderer/transport."""
    alert_kind: AlertKind
    sport: str
    market: str
    game_key: str
    side: str
    entry_line: float
    score: float
    tier: Tier
    signals: list[SignalContribution] = Field(default_factory=list)


@dataclass
class AlertDecision:
    """Outcome of running a scored signal through the alert state machine."""
    key: str
    emit: bool
    kind: Optional[AlertKind] = None
    reason: str = ""
    payload: Optional[AlertPayload] = None
