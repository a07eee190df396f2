"""
Sharp scanner configuration.

Uses pydantic-settings for validation and environment variable loading.
Sharp profiles are immutable snapshots picked once per process via
SHARP_PROFILE (default: "sharpest").
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sharpscan.errors import ConfigError


def _split_csv(value: str, lower: bool = False) -> list[str]:
    items = [s.strip() for s in value.split(",") if s.strip()]
    return [s.lower() for s in items] if lower else items


# =============================================================================
# Sharp Profiles
# =============================================================================

class HoldLimits(BaseModel):
    """Hold screen: reject above skip_above, accept at or below max."""
    model_config = ConfigDict(frozen=True)

    max: float = 0.05
    skip_above: float = 0.07


class ReAlertSettings(BaseModel):
    """Re-alert gating for markets that already alerted."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    min_score: float = 3.0
    cooldown_minutes: float = 20.0
    expiry_hours: float = 4.0


class TierThresholds(BaseModel):
    """Score cut-offs for tiers. Below lean is a pass."""
    model_config = ConfigDict(frozen=True)

    strong: float = 5.0
    lean: float = 3.0


class ScoringWeights(BaseModel):
    """Additive weight per signal."""
    model_config = ConfigDict(frozen=True)

    split_gap: float = 2.0
    hold: float = 1.0

    # Reserved for extra signal scorers
    rlm: float = 2.0
    steam: float = 2.0
    key_number: float = 1.5


class SharpProfile(BaseModel):
    """One named set of sharp money thresholds."""
    model_config = ConfigDict(frozen=True)

    name: str
    max_tickets_pct: float    # Ceiling on public bet-count share
    min_handle_pct: float     # Floor on money share
    min_gap: float            # handle% - ticket% floor
    hold: HoldLimits = Field(default_factory=HoldLimits)
    re_alerts: ReAlertSettings = Field(default_factory=ReAlertSettings)
    thresholds: TierThresholds = Field(default_factory=TierThresholds)
    weights: ScoringWeights = Field(default_factory=ScoringWeights)


PROFILES: dict[str, SharpProfile] = {
    "sharpest": SharpProfile(
        name="sharpest",
        max_tickets_pct=40.0,
        min_handle_pct=55.0,
        min_gap=15.0,
        hold=HoldLimits(max=0.025, skip_above=0.04),
    ),
    "balanced": SharpProfile(
        name="balanced",
        max_tickets_pct=45.0,
        min_handle_pct=55.0,
        min_gap=10.0,
        hold=HoldLimits(max=0.05, skip_above=0.07),
    ),
    "volume": SharpProfile(
        name="volume",
        max_tickets_pct=50.0,
        min_handle_pct=50.0,
        min_gap=8.0,
        hold=HoldLimits(max=0.06, skip_above=0.08),
        thresholds=TierThresholds(strong=4.0, lean=2.0),
        re_alerts=ReAlertSettings(min_score=2.0),
    ),
}


def get_profile(name: str) -> SharpProfile:
    """Look up a built-in profile by name."""
    profile = PROFILES.get(name.strip().lower())
    if profile is None:
        raise ConfigError(f"Unknown sharp profile '{name}' (known: {', '.join(PROFILES)})")
    return profile


# =============================================================================
# Price Paths
# =============================================================================

class ValueSettings(BaseModel):
    """
    Price paths used when a market has no qualifying splits.

    EV: candidate book price against a consensus fair line from the other
    books. Outlier: candidate book price against the other books' median.
    """
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    alert_books: str = Field(default="pinnacle", description="Candidate books; '*' means any book")
    min_ev_pct: float = 0.25              # Global EV floor, percent

    # Outlier gates in cents vs the market median
    outlier_dog_lean_cents: float = 10.0
    outlier_dog_strong_cents: float = 18.0
    outlier_fav_lean_cents: float = 7.0
    outlier_fav_strong_cents: float = 12.0

    @property
    def alert_book_list(self) -> list[str]:
        return [b for b in _split_csv(self.alert_books, lower=True) if b != "*"]

    @property
    def alert_any_book(self) -> bool:
        return "*" in _split_csv(self.alert_books)


# =============================================================================
# Provider Settings
# =============================================================================

class OddsAPISettings(BaseSettings):
    """The Odds API configuration (ODDS_API_* environment variables)."""

    model_config = SettingsConfigDict(
        env_prefix="ODDS_API_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enabled: bool = True
    # Read from ODDS_API_KEY
    key: str = Field(default="", description="The Odds API key")
    base_url: str = "https://api.the-odds-api.com/v4"

    regions: str = Field(default="us", description="Comma-separated regions (us,eu,uk)")
    bookmakers: str = Field(
        default="pinnacle,betfair,draftkings,fanduel,betmgm,caesars",
        description="Comma-separated book whitelist; empty accepts all books",
    )
    odds_format: str = "american"
    date_format: str = "iso"

    # Caching: events listing changes slowly, prices quickly
    events_ttl_seconds: float = 120.0
    odds_ttl_seconds: float = 60.0

    # Request budget
    request_timeout_seconds: float = 15.0
    max_events_per_sport: int = 15
    pacing_delay_seconds: float = 0.35
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 0.4
    retry_jitter_seconds: float = 0.12

    @property
    def api_key(self) -> str:
        return self.key

    @property
    def region_list(self) -> list[str]:
        return _split_csv(self.regions, lower=True)

    @property
    def bookmaker_list(self) -> list[str]:
        return _split_csv(self.bookmakers, lower=True)


# =============================================================================
# Main Settings
# =============================================================================

class Settings(BaseSettings):
    """Main scanner settings (SHARP_* environment variables)."""

    model_config = SettingsConfigDict(
        env_prefix="SHARP_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    profile: str = "sharpest"

    sports: str = Field(
        default="americanfootball_nfl,basketball_nba,baseball_mlb",
        description="Comma-separated The Odds API sport keys",
    )
    markets: str = Field(default="h2h,spreads,totals", description="Comma-separated market keys")

    state_file: str = "./sharp_state.json"
    poll_interval_seconds: float = 180.0

    log_level: str = "INFO"
    json_logs: bool = False

    odds_api: OddsAPISettings = Field(default_factory=OddsAPISettings)
    value: ValueSettings = Field(default_factory=ValueSettings)

    @property
    def sport_list(self) -> list[str]:
        return _split_csv(self.sports, lower=True)

    @property
    def market_list(self) -> list[str]:
        return _split_csv(self.markets, lower=True)

    def active_profile(self) -> SharpProfile:
        """Resolve the configured profile; unknown names raise ConfigError."""
        return get_profile(self.profile)


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global _settings
    _settings = Settings()
    return _settings
