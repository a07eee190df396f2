"""
Scan cycle.

    OddsAPIFeed -> raw games -> MarketNormalizer -> MarketSnapshot
        -> SharpAnalyzer (splits), else ValueAnalyzer (EV, outlier)
        -> ScoredSignal -> AlertStateMachine -> AlertPayload

Sports are fetched concurrently; market jobs within a sport are paced by the
feed. All fetches rejoin before analysis, which runs on one logical thread so
each market key sees at most one decision at a time. A failure in one sport
degrades that sport to "no results" and never stops the others.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

import structlog

from sharpscan.engine.alert_state import AlertStateMachine
from sharpscan.engine.normalizer import MarketNormalizer, SplitsLookup
from sharpscan.engine.sharp_analyzer import SharpAnalyzer
from sharpscan.engine.value_analyzer import ValueAnalyzer
from sharpscan.errors import PersistenceError
from sharpscan.feeds.odds_api import OddsAPIFeed
from sharpscan.models.schemas import AlertPayload

logger = structlog.get_logger()


@dataclass
class ScanReport:
    """Summary of one scan cycle."""
    sports: list[str]
    pulled: int = 0       # Raw games fetched
    snapshots: int = 0    # Two-sided markets normalized
    analyzed: int = 0     # Snapshots that produced a ScoredSignal
    alerts: list[AlertPayload] = field(default_factory=list)
    failed_sports: list[str] = field(default_factory=list)
    duration_ms: int = 0


class SharpScanner:
    """
    Runs scan cycles over configured sports and markets.

    Usage:
        scanner = SharpScanner(feed, normalizer, analyzer, state_machine, markets=["h2h"])
        report = await scanner.scan(["basketball_nba", "icehockey_nhl"])
    """

    def __init__(
        self,
        feed: OddsAPIFeed,
        normalizer: MarketNormalizer,
        analyzer: SharpAnalyzer,
        state_machine: AlertStateMachine,
        markets: Iterable[str],
        splits_lookup: Optional[SplitsLookup] = None,
        value_analyzer: Optional[ValueAnalyzer] = None,
    ):
        self.feed = feed
        self.normalizer = normalizer
        self.analyzer = analyzer
        self.state_machine = state_machine
        self.markets = list(markets)
        self.splits_lookup = splits_lookup
        self.value_analyzer = value_analyzer
        self.logger = logger.bind(component="sharp_scanner")

    async def scan(self, sports: Iterable[str]) -> ScanReport:
        """Fetch, analyze and decide for every sport; never raises for data errors."""
        start = time.time()
        sports = list(sports)
        report = ScanReport(sports=sports)

        results = await asyncio.gather(
            *(self.feed.fetch_markets(sport, self.markets) for sport in sports),
            return_exceptions=True,
        )

        for sport, result in zip(sports, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                report.failed_sports.append(sport)
                self.logger.error("Sport fetch failed", sport=sport, error=str(result))
                continue
            try:
                self._process_sport(sport, result, report)
            except Exception as e:
                report.failed_sports.append(sport)
                self.logger.error("Sport analysis failed", sport=sport, error=str(e))

        self._flush_state()

        report.duration_ms = int((time.time() - start) * 1000)
        self.logger.info(
            "Scan complete",
            sports=sports,
            pulled=report.pulled,
            snapshots=report.snapshots,
            analyzed=report.analyzed,
            alerts=len(report.alerts),
            failed=report.failed_sports,
            duration_ms=report.duration_ms,
        )
        return report

    def _process_sport(self, sport: str, games_by_market: dict[str, list[dict]], report: ScanReport) -> None:
        for market, games in games_by_market.items():
            report.pulled += len(games)
            snapshots = self.normalizer.normalize_games(
                games, sport=sport, market=market, splits_lookup=self.splits_lookup
            )
            report.snapshots += len(snapshots)

            for snapshot in snapshots:
                signal = self.analyzer.analyze(snapshot)
                if signal is None and self.value_analyzer is not None:
                    signal = self.value_analyzer.analyze(snapshot)
                if signal is None:
                    continue
                report.analyzed += 1

                decision = self.state_machine.decide(signal)
                if decision.emit and decision.payload is not None:
                    report.alerts.append(decision.payload)

    def _flush_state(self) -> None:
        flush = getattr(self.state_machine.store, "flush", None)
        if flush is None:
            return
        try:
            flush()
        except PersistenceError as e:
            # Alerts already decided this cycle still go out
            self.logger.warning("State flush failed", error=str(e))
