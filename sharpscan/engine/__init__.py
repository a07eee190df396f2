"""
Sharp analysis engine.

Odds math, market normalization, sharp scoring, price value paths and
alert state.
"""

from sharpscan.engine.alert_state import AlertStateMachine
from sharpscan.engine.normalizer import MarketNormalizer
from sharpscan.engine.sharp_analyzer import SharpAnalyzer
from sharpscan.engine.value_analyzer import ValueAnalyzer

__all__ = [
    "AlertStateMachine",
    "MarketNormalizer",
    "SharpAnalyzer",
    "ValueAnalyzer",
]
