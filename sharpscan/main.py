"""
Sharp Scanner - Main Entry Point.

Runs the scan loop:
1. Fetch odds per sport/market (The Odds API, cached + paced)
2. Normalize each market to best price, hold and de-vig
3. Score against the active sharp profile (splits), else EV / outlier price paths
4. Decide initial / re-alert / suppress against persisted state
5. Hand alert payloads to the renderer (logged as JSON here)

Usage:
    python -m sharpscan.main

Environment Variables:
    ODDS_API_KEY          - Required: The Odds API key
    ODDS_API_BOOKMAKERS   - Book whitelist (comma-separated)
    SHARP_PROFILE         - sharpest|balanced|volume (default: sharpest)
    SHARP_VALUE__ALERT_BOOKS - Candidate books for the price paths (default: pinnacle)
    SHARP_SPORTS          - Sport keys to scan (comma-separated)
    SHARP_STATE_FILE      - Alert state file (default: ./sharp_state.json)
"""

import asyncio
import signal
import sys
import time
from typing import Optional

import structlog
from dotenv import load_dotenv

from sharpscan.config import Settings, get_settings
from sharpscan.engine.alert_state import AlertStateMachine
from sharpscan.engine.normalizer import MarketNormalizer
from sharpscan.engine.sharp_analyzer import SharpAnalyzer
from sharpscan.engine.value_analyzer import ValueAnalyzer
from sharpscan.errors import ConfigError, PersistenceError
from sharpscan.feeds.odds_api import OddsAPIFeed
from sharpscan.scanner import ScanReport, SharpScanner
from sharpscan.utils.logging import setup_logging
from sharpscan.utils.state_store import JsonFileAlertStore

logger = structlog.get_logger()


class SharpScanBot:
    """Polls the odds provider and emits sharp alerts until stopped."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.logger = logger.bind(component="sharp_scan_bot")

        self.profile = self.settings.active_profile()

        self.store = JsonFileAlertStore(self.settings.state_file)
        self.feed = OddsAPIFeed(self.settings.odds_api)
        self.scanner = SharpScanner(
            feed=self.feed,
            normalizer=MarketNormalizer(bookmakers=self.settings.odds_api.bookmaker_list),
            analyzer=SharpAnalyzer(self.profile),
            state_machine=AlertStateMachine(self.store, self.profile.re_alerts),
            markets=self.settings.market_list,
            value_analyzer=(
                ValueAnalyzer(self.settings.value, self.profile) if self.settings.value.enabled else None
            ),
        )

        # Control
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Stats
        self._cycles = 0
        self._alerts_sent = 0
        self._start_time_ms = 0

    async def start(self) -> None:
        """Load state and run scan cycles until shutdown."""
        self.logger.info(
            "Starting Sharp Scanner",
            profile=self.profile.name,
            sports=self.settings.sport_list,
            markets=self.settings.market_list,
        )
        if not self.settings.odds_api.api_key:
            self.logger.warning("ODDS_API_KEY not set, scans will return no data")

        try:
            self.store.load()
        except PersistenceError as e:
            self.logger.warning("Could not load state, starting empty", error=str(e))

        self._running = True
        self._start_time_ms = int(time.time() * 1000)
        await self.feed.start()

        try:
            while self._running:
                report = await self.scanner.scan(self.settings.sport_list)
                self._publish(report)
                self._cycles += 1

                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self.settings.poll_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            self.logger.info("Bot cancelled")

        await self.stop()

    def _publish(self, report: ScanReport) -> None:
        """Hand payloads to the external renderer/transport."""
        for payload in report.alerts:
            self._alerts_sent += 1
            self.logger.info("alert_payload", payload=payload.model_dump(mode="json"))

    async def stop(self) -> None:
        """Stop the bot."""
        self._running = False
        await self.feed.stop()
        try:
            self.store.flush()
        except PersistenceError as e:
            self.logger.warning("Final state flush failed", error=str(e))

        runtime_seconds = (int(time.time() * 1000) - self._start_time_ms) / 1000
        self.logger.info(
            "Sharp scanner stopped",
            runtime=f"{runtime_seconds / 60:.1f}min",
            cycles=self._cycles,
            alerts=self._alerts_sent,
            feed=self.feed.get_metrics(),
        )

    def shutdown(self) -> None:
        """Trigger graceful shutdown."""
        self._running = False
        self._shutdown_event.set()


def main():
    """Main entry point."""
    load_dotenv()
    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.json_logs)

    try:
        bot = SharpScanBot(settings)
    except ConfigError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(1)

    def signal_handler(sig, frame):
        print("\n🛑 Shutdown requested...")
        bot.shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        asyncio.run(bot.start())
    except KeyboardInterrupt:
        print("\n⚠️ Interrupted")


if __name__ == "__main__":
    main()
