"""
Sportsbook odds feeds.

- odds_api: The Odds API v4, events then per-event odds
"""

from sharpscan.feeds.odds_api import OddsAPIFeed

__all__ = [
    "OddsAPIFeed",
]
