"""
Odds and probability math.

Pure functions, no state and no I/O. Invalid inputs return None instead of
raising: an American price of 0, a magnitude below 100 where decimal odds are
needed, probabilities outside (0, 1) and non-finite values are not prices.
"""

import math
from typing import Optional

from sharpscan.models.schemas import PriceComparison

PLAY_TO_STEP = 5


def _finite(*values: float) -> bool:
    try:
        return all(math.isfinite(float(v)) for v in values)
    except (TypeError, ValueError):
        return False


def implied_probability(american: float) -> Optional[float]:
    """
    Convert American odds to implied probability (vig included).

    +200 -> 0.333, -110 -> 0.524. Returns None for 0 or non-finite input.
    """
    if not _finite(american):
        return None
    odds = float(american)
    if odds == 0:
        return None
    if odds > 0:
        return 100 / (odds + 100)
    return -odds / (-odds + 100)


def american_from_probability(prob: float) -> Optional[float]:
    """Inverse of implied_probability. Returns None unless 0 < prob < 1."""
    if not _finite(prob) or prob <= 0 or prob >= 1:
        return None
    if prob > 0.5:
        return -(prob / (1 - prob)) * 100
    return ((1 - prob) / prob) * 100


def american_to_decimal(american: float) -> Optional[float]:
    """Convert American odds to decimal odds. |odds| below 100 is invalid."""
    if not _finite(american) or abs(float(american)) < 100:
        return None
    odds = float(american)
    if odds > 0:
        return 1 + odds / 100
    return 1 + 100 / abs(odds)


def decimal_to_american(decimal: float) -> Optional[float]:
    """Convert decimal odds to American odds."""
    if not _finite(decimal) or decimal <= 1:
        return None
    if decimal >= 2:
        return (decimal - 1) * 100
    return -100 / (decimal - 1)


def expected_value(american: float, model_prob: float) -> Optional[float]:
    """
    Expected value of a 1 unit stake.

    EV = p * win - (1 - p) * 1, where win is odds/100 for underdogs and
    100/|odds| for favorites.
    """
    if not _finite(american, model_prob) or float(american) == 0:
        return None
    odds = float(american)
    win = odds / 100 if odds > 0 else 100 / abs(odds)
    return model_prob * win - (1 - model_prob)


def kelly_fraction(model_prob: float, american: float) -> Optional[float]:
    """
    Full Kelly stake as a fraction of bankroll.

    f = (d * p - 1) / (d - 1) with d the decimal odds. Not clamped: a negative
    value means the bet has negative expectation.
    """
    if not _finite(model_prob):
        return None
    decimal = american_to_decimal(american)
    if decimal is None or decimal <= 1:
        return None
    return (decimal * model_prob - 1) / (decimal - 1)


def round_play_to(american: float) -> int:
    """Round a break-even price up to the next 5 cent step (never worse for the bettor)."""
    return int(math.ceil(american / PLAY_TO_STEP) * PLAY_TO_STEP)


def play_to_price(model_prob: float) -> Optional[tuple[float, int]]:
    """
    Worst price still worth playing for a model probability.

    Returns (exact break-even American price, price rounded to a 5 cent step).
    """
    exact = american_from_probability(model_prob)
    if exact is None:
        return None
    return exact, round_play_to(exact)


def compare_prices(current: float, reference: float) -> PriceComparison:
    """
    Compare a new price to a reference price from the bettor's side.

    For favorites (-105 vs -110) and underdogs (+120 vs +110) alike, a higher
    signed value pays more, so "better" reduces to current > reference.
    """
    if not _finite(current, reference):
        return PriceComparison.WORSE
    if current > reference:
        return PriceComparison.BETTER
    if current == reference:
        return PriceComparison.EQUAL
    return PriceComparison.WORSE
