"""
Market Normalizer.

Turns a raw multi-book game payload (The Odds API shape) into one canonical
MarketSnapshot per market:

    game -> bookmakers[] -> markets[] -> outcomes[] (name, price, point)

For every side label the quote with the lowest implied probability (best
price for the bettor) wins. Exact ties go to the book ranked earliest in the
priority list; ranked books beat unranked ones; between unranked books the
first one seen stays. Only markets with exactly two sides survive.
"""

import math
import time
from datetime import datetime
from typing import Callable, Iterable, Optional

import structlog

from sharpscan.engine.odds_math import implied_probability
from sharpscan.errors import MalformedPayloadError
from sharpscan.models.schemas import BookOffer, MarketSnapshot, SplitMetrics

logger = structlog.get_logger()


# Sharpest books first
DEFAULT_BOOK_PRIORITY: tuple[str, ...] = (
    "pinnacle",
    "betfair_ex_eu",
    "betfair",
    "circa",
    "betmgm",
    "caesars",
    "draftkings",
    "fanduel",
    "fanatics",
    "betrivers",
    "betonlineag",
    "bovada",
    "mybookieag",
)

SplitsLookup = Callable[[str, str], Optional[SplitMetrics]]


def _parse_time_ms(value: Optional[str]) -> int:
    if not value:
        return int(time.time() * 1000)
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
    except (TypeError, ValueError):
        return int(time.time() * 1000)


def _number(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


class MarketNormalizer:
    """
    Best-price selection, hold and proportional de-vig per market.

    Usage:
        normalizer = MarketNormalizer(bookmakers=["pinnacle", "draftkings"])
        snapshot = normalizer.normalize(game, sport="basketball_nba", market="h2h")
    """

    def __init__(
        self,
        book_priority: Optional[Iterable[str]] = None,
        bookmakers: Optional[Iterable[str]] = None,
        max_hold: Optional[float] = None,
    ):
        priority = book_priority if book_priority is not None else DEFAULT_BOOK_PRIORITY
        self._rank = {book.lower(): i for i, book in enumerate(priority)}
        # Empty whitelist accepts every book
        self.bookmakers = frozenset(b.strip().lower() for b in (bookmakers or []) if b.strip())
        self.max_hold = max_hold
        self.logger = logger.bind(component="market_normalizer")

    # =========================================================================
    # Best price selection
    # =========================================================================

    def _book_rank(self, book: str) -> float:
        return self._rank.get(book, math.inf)

    def _prefer(self, current: Optional[BookOffer], candidate: BookOffer) -> BookOffer:
        """Return whichever offer is the better price for the bettor."""
        if current is None:
            return candidate
        if candidate.implied_prob < current.implied_prob:
            return candidate
        if candidate.implied_prob == current.implied_prob:
            if self._book_rank(candidate.book) < self._book_rank(current.book):
                return candidate
        return current

    def _collect_offers(
        self, game: dict, market: str
    ) -> tuple[list[str], dict[str, BookOffer], dict[str, dict[str, BookOffer]]]:
        sides: list[str] = []
        best: dict[str, BookOffer] = {}
        quotes: dict[str, dict[str, BookOffer]] = {}

        for book_data in game.get("bookmakers") or []:
            if not isinstance(book_data, dict):
                continue
            book = str(book_data.get("key") or "").strip().lower()
            if not book:
                continue
            if self.bookmakers and book not in self.bookmakers:
                continue
            observed_ms = _parse_time_ms(book_data.get("last_update"))

            for market_data in book_data.get("markets") or []:
                if not isinstance(market_data, dict) or market_data.get("key") != market:
                    continue
                for outcome in market_data.get("outcomes") or []:
                    offer = self._parse_outcome(outcome, book, observed_ms)
                    if offer is None:
                        continue
                    if offer.side not in best:
                        sides.append(offer.side)
                    best[offer.side] = self._prefer(best.get(offer.side), offer)
                    book_quotes = quotes.setdefault(book, {})
                    book_quotes[offer.side] = self._prefer(book_quotes.get(offer.side), offer)

        return sides, best, quotes

    def _parse_outcome(self, outcome, book: str, observed_ms: int) -> Optional[BookOffer]:
        """Parse one outcome; malformed quotes are skipped, not fatal."""
        if not isinstance(outcome, dict):
            return None
        side = str(outcome.get("name") or "").strip()
        price = _number(outcome.get("price"))
        if not side or price is None:
            return None
        implied = implied_probability(price)
        if implied is None:
            return None
        return BookOffer(
            book=book,
            side=side,
            price=price,
            implied_prob=implied,
            point=_number(outcome.get("point")),
            observed_at_ms=observed_ms,
        )

    # =========================================================================
    # Normalization
    # =========================================================================

    def _read_splits(self, game: dict) -> Optional[SplitMetrics]:
        tickets = _number(game.get("tickets"))
        handle = _number(game.get("handle"))
        if tickets is None or handle is None:
            return None
        side = game.get("split_side")
        return SplitMetrics(tickets_pct=tickets, handle_pct=handle, side=str(side) if side else None)

    def normalize(
        self,
        game: dict,
        sport: str,
        market: str,
        splits: Optional[SplitMetrics] = None,
    ) -> Optional[MarketSnapshot]:
        """
        Build a MarketSnapshot for one game and market.

        Returns None when the market does not have exactly two priced sides
        (or breaches max_hold). Raises MalformedPayloadError when the game
        itself is missing required fields.
        """
        if not isinstance(game, dict):
            raise MalformedPayloadError(f"game payload is {type(game).__name__}, not an object")

        game_id = str(game.get("id") or "")
        home = str(game.get("home_team") or game.get("home") or "")
        away = str(game.get("away_team") or game.get("away") or "")
        if not game_id or not home or not away:
            raise MalformedPayloadError("game payload missing id or team names")

        sides, best, quotes = self._collect_offers(game, market)
        if len(sides) != 2:
            self.logger.debug(
                "Market rejected: need exactly two sides",
                game_id=game_id,
                market=market,
                sides=len(sides),
            )
            return None

        side_a, side_b = sides
        p_a = best[side_a].implied_prob
        p_b = best[side_b].implied_prob
        hold = p_a + p_b - 1

        if self.max_hold is not None and hold > self.max_hold:
            self.logger.debug("Market rejected: hold above ceiling", game_id=game_id, hold=f"{hold:.2%}")
            return None

        devig_a = p_a / (p_a + p_b)

        return MarketSnapshot(
            sport=sport,
            market=market,
            game_id=game_id,
            home=home,
            away=away,
            commence_time=game.get("commence_time"),
            sides=(side_a, side_b),
            best=dict(best),
            hold=hold,
            devig={side_a: devig_a, side_b: 1.0 - devig_a},
            splits=splits if splits is not None else self._read_splits(game),
            book_quotes={
                book: by_side for book, by_side in quotes.items()
                if side_a in by_side and side_b in by_side
            },
        )

    def normalize_games(
        self,
        games: Iterable[dict],
        sport: str,
        market: str,
        splits_lookup: Optional[SplitsLookup] = None,
    ) -> list[MarketSnapshot]:
        """
        Normalize a batch of games, tightest hold first.

        A malformed game is dropped on its own; the rest of the batch is kept.
        """
        snapshots = []
        dropped = 0

        for game in games:
            try:
                splits = None
                if splits_lookup is not None and isinstance(game, dict):
                    splits = splits_lookup(str(game.get("id") or ""), market)
                snapshot = self.normalize(game, sport, market, splits=splits)
            except MalformedPayloadError as e:
                dropped += 1
                self.logger.debug("Dropped malformed game", sport=sport, market=market, error=str(e))
                continue
            if snapshot:
                snapshots.append(snapshot)

        snapshots.sort(key=lambda s: s.hold)

        self.logger.debug(
            "Normalized markets",
            sport=sport,
            market=market,
            snapshots=len(snapshots),
            dropped=dropped,
        )
        return snapshots
