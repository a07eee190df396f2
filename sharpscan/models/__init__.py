"""Sharp scanner data models."""

from sharpscan.models.schemas import (
    AlertDecision,
    AlertKind,
    AlertPayload,
    AlertRecord,
    BookOffer,
    MarketSnapshot,
    PriceComparison,
    ScoredSignal,
    SignalContribution,
    SplitMetrics,
    Tier,
)

__all__ = [
    "AlertDecision",
    "AlertKind",
    "AlertPayload",
    "AlertRecord",
    "BookOffer",
    "MarketSnapshot",
    "PriceComparison",
    "ScoredSignal",
    "SignalContribution",
    "SplitMetrics",
    "Tier",
]
