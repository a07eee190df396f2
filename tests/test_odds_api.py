"""Tests for the Odds API feed (fetch orchestration, caching, failure policy)."""

import asyncio

import httpx
import pytest

from sharpscan.config import OddsAPISettings
from sharpscan.errors import ConfigError, MalformedPayloadError
from sharpscan.feeds.odds_api import OddsAPIFeed

SPORT = "americanfootball_nfl"
BASE = "/v4/sports/americanfootball_nfl"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _settings(**overrides) -> OddsAPISettings:
    values = {
        "enabled": True,
        "key": "test-key",
        "base_url": "https://odds.test/v4",
        "bookmakers": "pinnacle,draftkings",
        "retry_jitter_seconds": 0.0,
    }
    values.update(overrides)
    return OddsAPISettings(**values)


def _event_odds(event_id: str, market: str = "h2h") -> dict:
    return {
        "id": event_id,
        "home_team": "Chiefs",
        "away_team": "Ravens",
        "commence_time": "2026-10-20T00:20:00Z",
        "bookmakers": [
            {
                "key": "pinnacle",
                "last_update": "2026-10-18T12:00:00Z",
                "markets": [
                    {"key": market, "outcomes": [
                        {"name": "Chiefs", "price": -110},
                        {"name": "Ravens", "price": -105},
                    ]},
                ],
            }
        ],
    }


class FakeOddsAPI:
    """MockTransport handler serving two events; routes can be overridden."""

    def __init__(self, events=None):
        self.events = events if events is not None else [
            {"id": "e1", "home_team": "Chiefs", "away_team": "Ravens"},
            {"id": "e2", "home_team": "Bills", "away_team": "Jets"},
        ]
        self.requests: list[httpx.Request] = []
        self.overrides: dict[str, tuple[int, dict]] = {}

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.overrides:
            status, kwargs = self.overrides[path]
            return httpx.Response(status, **kwargs)
        if path == f"{BASE}/events":
            return httpx.Response(200, json=self.events, headers={"x-requests-remaining": "480"})
        if path.startswith(f"{BASE}/events/") and path.endswith("/odds"):
            event_id = path.split("/")[-2]
            market = request.url.params["markets"]
            return httpx.Response(
                200,
                json=_event_odds(event_id, market),
                headers={"x-requests-remaining": "479", "x-requests-used": "21"},
            )
        return httpx.Response(404, text="not found")


def _feed(api, settings=None, clock=None, sleep=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(api))
    return OddsAPIFeed(
        settings or _settings(),
        http_client=client,
        sleep=sleep or RecordingSleep(),
        clock=clock or FakeClock(),
    )


class TestFetchMarket:
    """Tests for a single (sport, market) job."""

    def test_fetches_events_then_odds(self):
        api = FakeOddsAPI()

        async def run():
            feed = _feed(api)
            return feed, await feed.fetch_market(SPORT, "h2h")

        feed, games = asyncio.run(run())

        assert [g["id"] for g in games] == ["e1", "e2"]
        assert api.paths() == [f"{BASE}/events", f"{BASE}/events/e1/odds", f"{BASE}/events/e2/odds"]
        params = api.requests[1].url.params
        assert params["apiKey"] == "test-key"
        assert params["markets"] == "h2h"
        assert params["bookmakers"] == "draftkings,pinnacle"
        assert params["oddsFormat"] == "american"
        assert feed.get_metrics()["requests_remaining"] == 479

    def test_max_events_per_sport(self):
        api = FakeOddsAPI()

        async def run():
            return await _feed(api, settings=_settings(max_events_per_sport=1)).fetch_market(SPORT, "h2h")

        games = asyncio.run(run())

        assert [g["id"] for g in games] == ["e1"]

    def test_repeat_within_ttl_hits_cache(self):
        api = FakeOddsAPI()

        async def run():
            feed = _feed(api)
            first = await feed.fetch_market(SPORT, "h2h")
            second = await feed.fetch_market(SPORT, "h2h")
            return first, second

        first, second = asyncio.run(run())

        assert first == second
        assert len(api.requests) == 3

    def test_odds_ttl_shorter_than_events_ttl(self):
        api = FakeOddsAPI()
        clock = FakeClock()

        async def run():
            feed = _feed(api, clock=clock)
            await feed.fetch_market(SPORT, "h2h")
            clock.now += 61
            await feed.fetch_market(SPORT, "h2h")

        asyncio.run(run())

        # Odds refetched, event listing still cached
        assert api.paths().count(f"{BASE}/events") == 1
        assert len(api.requests) == 5

    def test_whitelist_change_misses_cache(self):
        api = FakeOddsAPI()

        async def run():
            feed = _feed(api)
            await feed.fetch_market(SPORT, "h2h")
            feed.settings.bookmakers = "pinnacle"
            await feed.fetch_market(SPORT, "h2h")

        asyncio.run(run())

        assert len(api.requests) == 5
        assert api.requests[-1].url.params["bookmakers"] == "pinnacle"

    @pytest.mark.parametrize("overrides", [{"enabled": False}, {"key": ""}])
    def test_disabled_or_missing_key_makes_no_requests(self, overrides):
        api = FakeOddsAPI()

        async def run():
            return await _feed(api, settings=_settings(**overrides)).fetch_market(SPORT, "h2h")

        assert asyncio.run(run()) == []
        assert api.requests == []

    def test_rate_limit_exhaustion_returns_empty(self):
        api = FakeOddsAPI()
        api.overrides[f"{BASE}/events"] = (429, {"text": "Too Many Requests"})
        sleep = RecordingSleep()

        async def run():
            return await _feed(api, settings=_settings(retry_max_attempts=3), sleep=sleep).fetch_market(SPORT, "h2h")

        assert asyncio.run(run()) == []
        assert len(api.requests) == 3
        assert sleep.calls == pytest.approx([0.4, 0.8])

    def test_rate_limit_recovers(self):
        api = FakeOddsAPI()
        responses = iter([httpx.Response(429, text="slow down")])

        def handler(request):
            if request.url.path == f"{BASE}/events":
                nxt = next(responses, None)
                if nxt is not None:
                    api.requests.append(request)
                    return nxt
            return api(request)

        async def run():
            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            feed = OddsAPIFeed(_settings(), http_client=client, sleep=RecordingSleep(), clock=FakeClock())
            return await feed.fetch_market(SPORT, "h2h")

        games = asyncio.run(run())

        assert len(games) == 2
        assert api.paths().count(f"{BASE}/events") == 2

    def test_malformed_event_dropped(self):
        api = FakeOddsAPI()
        api.overrides[f"{BASE}/events/e1/odds"] = (200, {"json": ["not", "an", "object"]})

        async def run():
            return await _feed(api).fetch_market(SPORT, "h2h")

        games = asyncio.run(run())

        assert [g["id"] for g in games] == ["e2"]

    def test_invalid_json_event_dropped(self):
        api = FakeOddsAPI()
        api.overrides[f"{BASE}/events/e2/odds"] = (200, {"text": "<html>oops</html>"})

        async def run():
            return await _feed(api).fetch_market(SPORT, "h2h")

        assert [g["id"] for g in asyncio.run(run())] == ["e1"]

    def test_server_error_returns_empty(self):
        api = FakeOddsAPI()
        api.overrides[f"{BASE}/events"] = (503, {"text": "unavailable"})

        async def run():
            return await _feed(api).fetch_market(SPORT, "h2h")

        assert asyncio.run(run()) == []
        # Not retried
        assert len(api.requests) == 1


class TestFetchMarkets:
    """Tests for paced multi-market batches."""

    def test_pacing_between_jobs(self):
        api = FakeOddsAPI()
        sleep = RecordingSleep()

        async def run():
            return await _feed(api, sleep=sleep).fetch_markets(SPORT, ["h2h", "spreads", "totals"])

        results = asyncio.run(run())

        assert list(results) == ["h2h", "spreads", "totals"]
        assert all(len(games) == 2 for games in results.values())
        assert sleep.calls == [0.35, 0.35]

    def test_unsupported_market_skipped_not_retried(self):
        api = FakeOddsAPI()

        def handler(request):
            if request.url.params.get("markets") == "alternate_spreads":
                api.requests.append(request)
                return httpx.Response(422, json={"error_code": "INVALID_MARKET"})
            return api(request)

        async def run():
            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            sleep = RecordingSleep()
            feed = OddsAPIFeed(_settings(), http_client=client, sleep=sleep, clock=FakeClock())
            unsupported = set()
            first = await feed.fetch_market(SPORT, "alternate_spreads", unsupported=unsupported)
            before = len(api.requests)
            second = await feed.fetch_market(SPORT, "alternate_spreads", unsupported=unsupported)
            others = await feed.fetch_markets(SPORT, ["alternate_spreads", "h2h"])
            return first, second, before, unsupported, others, sleep

        first, second, before, unsupported, others, sleep = asyncio.run(run())

        assert first == [] and second == []
        assert unsupported == {(SPORT, "alternate_spreads")}
        # Events call plus one rejected odds call; the second job is skipped
        assert before == 2
        assert others["alternate_spreads"] == []
        assert len(others["h2h"]) == 2
        assert sleep.calls == [0.35]


class TestRequest:
    """Tests for response classification."""

    def test_unauthorized_is_config_error(self):
        api = FakeOddsAPI()
        api.overrides[f"{BASE}/events"] = (401, {"text": "bad key"})

        async def run():
            await _feed(api).get_events(SPORT)

        with pytest.raises(ConfigError):
            asyncio.run(run())

    def test_event_listing_must_be_a_list(self):
        api = FakeOddsAPI()
        api.overrides[f"{BASE}/events"] = (200, {"json": {"message": "nope"}})

        async def run():
            await _feed(api).get_events(SPORT)

        with pytest.raises(MalformedPayloadError):
            asyncio.run(run())

    def test_events_without_ids_filtered(self):
        api = FakeOddsAPI(events=[{"id": "e1"}, {"home_team": "x"}, "junk"])

        async def run():
            return await _feed(api).get_events(SPORT)

        assert asyncio.run(run()) == [{"id": "e1"}]
