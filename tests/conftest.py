"""Shared fixtures for scanner tests."""

import pytest

from sharpscan.engine.odds_math import implied_probability
from sharpscan.models.schemas import BookOffer, MarketSnapshot, ScoredSignal, SplitMetrics, Tier


@pytest.fixture
def game_factory():
    """Build a raw Odds API game payload.

    books: {book_key: [(side, price, point), ...]}
    """
    def _make(books, game_id="g1", home="Chiefs", away="Ravens", market="h2h", **extra):
        game = {
            "id": game_id,
            "sport_key": "americanfootball_nfl",
            "commence_time": "2026-10-20T00:20:00Z",
            "home_team": home,
            "away_team": away,
            "bookmakers": [
                {
                    "key": book,
                    "title": book.title(),
                    "last_update": "2026-10-18T12:00:00Z",
                    "markets": [
                        {
                            "key": market,
                            "outcomes": [
                                {"name": name, "price": price, **({"point": point} if point is not None else {})}
                                for name, price, point in outcomes
                            ],
                        }
                    ],
                }
                for book, outcomes in books.items()
            ],
        }
        game.update(extra)
        return game

    return _make


@pytest.fixture
def snapshot_factory():
    """Build a MarketSnapshot directly, bypassing the normalizer."""
    def _make(
        home_price=-110.0,
        away_price=-110.0,
        hold=0.02,
        tickets=40.0,
        handle=55.0,
        split_side=None,
        game_id="g1",
        market="h2h",
        with_splits=True,
    ):
        home, away = "Chiefs", "Ravens"
        best = {
            home: BookOffer(book="pinnacle", side=home, price=home_price,
                            implied_prob=implied_probability(home_price)),
            away: BookOffer(book="draftkings", side=away, price=away_price,
                            implied_prob=implied_probability(away_price)),
        }
        splits = SplitMetrics(tickets_pct=tickets, handle_pct=handle, side=split_side) if with_splits else None
        return MarketSnapshot(
            sport="americanfootball_nfl",
            market=market,
            game_id=game_id,
            home=home,
            away=away,
            commence_time="2026-10-20T00:20:00Z",
            sides=(home, away),
            best=best,
            hold=hold,
            devig={home: 0.5, away: 0.5},
            splits=splits,
        )

    return _make


@pytest.fixture
def signal_factory(snapshot_factory):
    """Build a ScoredSignal on the home side at a given price."""
    def _make(price, score=3.0, tier=Tier.LEAN, game_id="g1"):
        snapshot = snapshot_factory(home_price=price, game_id=game_id)
        return ScoredSignal(snapshot=snapshot, score=score, tier=tier, side=snapshot.home)

    return _make
