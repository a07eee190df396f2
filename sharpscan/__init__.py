"""
Sharp money scanner for sportsbook markets.

Pulls odds from The Odds API, normalizes each two-sided market into a
best-price snapshot (hold + de-vig), scores it against a sharp money profile
and decides whether to alert, re-alert or stay quiet.

Architecture:
- feeds/: Odds provider client (two-tier cache, retry, pacing)
- engine/: Odds math, normalization, sharp analysis, alert state machine
- models/: Data schemas and the outbound alert payload
- utils/: Cache, retry policy, state store, logging
"""

__version__ = "0.1.0"
