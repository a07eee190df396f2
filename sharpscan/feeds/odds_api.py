"""
Per-event odds fetcher for The Odds API v4.

Pulls one market at a time for a sport across the whitelisted books. The
provider meters quota per market x region on every call.

API Docs: https://the-odds-api.com/liveapi/guides/v4/

Retrieval is two-step:
- /sports/{sport}/events: Event listing (cheap), cached per sport
- /sports/{sport}/events/{id}/odds: Odds for one event, cached per
  (sport, event, market, bookset)

Events appear slowly and prices move quickly, so the listing cache has the
coarser TTL. Changing the book whitelist changes the odds cache key, which
retires old entries without an explicit purge.

Failure policy (callers never see exceptions from fetch_market/fetch_markets):
- Disabled provider / missing key: empty result, no network call
- 429: exponential backoff with jitter, empty result once attempts run out
- Unsupported market (422 / INVALID_MARKET): skipped for the rest of the batch
- Malformed event odds: that event is dropped, siblings are kept
"""

import asyncio
import ssl
import time
from typing import Any, Awaitable, Callable, Iterable, Optional

import certifi
import httpx
import structlog

from sharpscan.config import OddsAPISettings
from sharpscan.errors import (
    ConfigError,
    MalformedPayloadError,
    ProviderError,
    RateLimitedError,
    UnsupportedMarketError,
)
from sharpscan.utils.cache import TTLCache
from sharpscan.utils.retry import RetryPolicy

logger = structlog.get_logger()

UNSUPPORTED_MARKERS = ("INVALID_MARKET", "Markets not supported")


class OddsAPIFeed:
    """
    Cached, rate-aware odds fetcher for The Odds API.

    Usage:
        feed = OddsAPIFeed(settings.odds_api)
        await feed.start()

        games = await feed.fetch_market("basketball_nba", "h2h")
        by_market = await feed.fetch_markets("basketball_nba", ["h2h", "spreads"])

        await feed.stop()
    """

    def __init__(
        self,
        settings: OddsAPISettings,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.logger = logger.bind(feed="odds_api")
        self._sleep = sleep

        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            jitter=settings.retry_jitter_seconds,
            sleep=sleep,
        )

        # Caches (owned exclusively by the feed)
        self.events_cache = TTLCache(settings.events_ttl_seconds, name="events", clock=clock)
        self.odds_cache = TTLCache(settings.odds_ttl_seconds, name="event_odds", clock=clock)

        # HTTP client
        self._http_client: Optional[httpx.AsyncClient] = http_client
        self._owns_client = http_client is None

        # Quota tracking
        self._requests_remaining: Optional[int] = None
        self._requests_used: Optional[int] = None
        self._requests_made: int = 0

        # Health
        self._error_count: int = 0
        self._last_success_ms: int = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Create the HTTP client."""
        if self._http_client is None:
            self.logger.info("Starting Odds API feed")
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            self._http_client = httpx.AsyncClient(
                verify=ssl_context,
                timeout=self.settings.request_timeout_seconds,
                headers={"Accept": "application/json"},
            )
            self._owns_client = True

    async def stop(self) -> None:
        """Close the HTTP client if the feed created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    @property
    def bookset(self) -> tuple[str, ...]:
        return tuple(sorted(self.settings.bookmaker_list))

    def _check_config(self) -> None:
        if not self.settings.enabled:
            raise ConfigError("Odds API disabled")
        if not self.settings.api_key:
            raise ConfigError("Missing ODDS_API_KEY")

    # =========================================================================
    # API Calls
    # =========================================================================

    def _track_quota(self, response: httpx.Response) -> None:
        remaining = response.headers.get("x-requests-remaining")
        used = response.headers.get("x-requests-used")
        try:
            if remaining is not None:
                self._requests_remaining = int(float(remaining))
            if used is not None:
                self._requests_used = int(float(used))
        except ValueError:
            return
        if remaining is not None or used is not None:
            self.logger.debug(
                "API quota",
                used=self._requests_used,
                remaining=self._requests_remaining,
            )

    async def _request(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """Make one API request and classify the response."""
        if self._http_client is None:
            await self.start()

        url = f"{self.settings.base_url}{endpoint}"
        full_params = {"apiKey": self.settings.api_key}
        if params:
            full_params.update({k: v for k, v in params.items() if v not in (None, "")})

        self._requests_made += 1
        try:
            response = await self._http_client.get(url, params=full_params)
        except httpx.HTTPError as e:
            self._error_count += 1
            raise ProviderError(f"Request to {endpoint} failed: {e}") from e

        self._track_quota(response)
        status = response.status_code

        if status == 200:
            try:
                data = response.json()
            except ValueError as e:
                self._error_count += 1
                raise MalformedPayloadError(f"Invalid JSON from {endpoint}") from e
            self._last_success_ms = int(time.time() * 1000)
            return data

        self._error_count += 1
        body = response.text
        if status == 429:
            raise RateLimitedError("Rate limited by API", status=status, body=body)
        if status == 422 or any(marker in body for marker in UNSUPPORTED_MARKERS):
            raise UnsupportedMarketError("Market not supported", status=status, body=body)
        if status == 401:
            raise ConfigError("Invalid API key")
        raise ProviderError(f"API error {status}", status=status, body=body)

    async def get_events(self, sport: str) -> list[dict]:
        """Event listing for a sport (ids + teams + start time), cached."""
        cached = self.events_cache.get(sport)
        if cached is not None:
            return cached

        data = await self._request(f"/sports/{sport}/events", {"dateFormat": self.settings.date_format})
        if not isinstance(data, list):
            raise MalformedPayloadError(f"Event listing for {sport} is not a list")

        events = [e for e in data if isinstance(e, dict) and e.get("id")]
        self.events_cache.set(sport, events)
        return events

    async def get_event_odds(self, sport: str, event_id: str, market: str) -> dict:
        """Odds for one event and market across the whitelisted books, cached."""
        key = (sport, event_id, market, self.bookset)
        cached = self.odds_cache.get(key)
        if cached is not None:
            return cached

        params = {
            "regions": ",".join(self.settings.region_list),
            "markets": market,
            "oddsFormat": self.settings.odds_format,
            "dateFormat": self.settings.date_format,
            "bookmakers": ",".join(self.bookset),
        }
        data = await self._request(f"/sports/{sport}/events/{event_id}/odds", params)
        if not isinstance(data, dict):
            raise MalformedPayloadError(f"Odds for event {event_id} is not an object")

        self.odds_cache.set(key, data)
        return data

    # =========================================================================
    # Fetch Jobs
    # =========================================================================

    async def _collect_market(self, sport: str, market: str) -> list[dict]:
        label = f"{sport} {market}"
        events = await self.retry_policy.run(lambda: self.get_events(sport), label=label)

        games = []
        for event in events[: self.settings.max_events_per_sport]:
            event_id = str(event["id"])
            try:
                game = await self.retry_policy.run(
                    lambda: self.get_event_odds(sport, event_id, market),
                    label=label,
                )
            except MalformedPayloadError as e:
                self.logger.debug("Dropped malformed event odds", sport=sport, event_id=event_id, error=str(e))
                continue
            games.append(game)
        return games

    async def fetch_market(
        self,
        sport: str,
        market: str,
        unsupported: Optional[set[tuple[str, str]]] = None,
    ) -> list[dict]:
        """
        Raw game payloads for one (sport, market) job. Never raises.

        `unsupported` collects (sport, market) pairs the provider rejected so
        the rest of a batch skips them.
        """
        if unsupported is not None and (sport, market) in unsupported:
            return []

        try:
            self._check_config()
            games = await self._collect_market(sport, market)
        except ConfigError as e:
            self.logger.debug("Odds fetch skipped", sport=sport, market=market, reason=str(e))
            return []
        except RateLimitedError:
            self.logger.warning(
                "Rate limited, max retries hit, skipping",
                sport=sport,
                market=market,
                attempts=self.retry_policy.max_attempts,
            )
            return []
        except UnsupportedMarketError:
            if unsupported is not None:
                unsupported.add((sport, market))
            self.logger.warning("Skipping unsupported market", sport=sport, market=market)
            return []
        except (ProviderError, MalformedPayloadError) as e:
            self.logger.warning("Odds fetch failed", sport=sport, market=market, error=str(e))
            return []

        self.logger.info(
            "Fetched market",
            sport=sport,
            market=market,
            games=len(games),
            requests_remaining=self._requests_remaining,
        )
        return games

    async def fetch_markets(self, sport: str, markets: Iterable[str]) -> dict[str, list[dict]]:
        """
        Run several market jobs for one sport, one at a time, with a fixed
        pacing delay between jobs.
        """
        unsupported: set[tuple[str, str]] = set()
        results: dict[str, list[dict]] = {}

        for i, market in enumerate(markets):
            if i > 0:
                await self._sleep(self.settings.pacing_delay_seconds)
            results[market] = await self.fetch_market(sport, market, unsupported=unsupported)

        return results

    # =========================================================================
    # Metrics
    # =========================================================================

    def get_metrics(self) -> dict:
        """Get feed health metrics."""
        return {
            "name": "odds_api",
            "requests_made": self._requests_made,
            "requests_remaining": self._requests_remaining,
            "requests_used": self._requests_used,
            "error_count": self._error_count,
            "age_seconds": (int(time.time() * 1000) - self._last_success_ms) / 1000 if self._last_success_ms else 0,
            "events_cache": self.events_cache.get_metrics(),
            "odds_cache": self.odds_cache.get_metrics(),
        }
