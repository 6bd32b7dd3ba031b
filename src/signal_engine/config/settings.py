"""
Configuration models using Pydantic for type-safe validation.

This module defines all configuration models for the signal decision engine:
- SystemConfig: Environment, log level, log output
- ContextRulesConfig: Required/optional/primary sources and max age
- GateConfig: Regime, structural and market gate thresholds
- ConfidenceConfig: Contribution weights and expert-score normalization
- ThresholdConfig: EXECUTE / WAIT confidence thresholds
- SizingConfig: Position size factor tables and bounds
- RuleConfig: Versioned bundle of all decision rules
- MarketFeedsConfig: Market data provider endpoints, timeouts and cache TTLs
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..core.errors import ConfigurationError
from ..core.types import Direction, ExecutionGrade, MetricSection, QualityTier, SourceName


# ============================================================================
# Enums for Configuration
# ============================================================================

class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class HTFAlignment(str, Enum):
    """Higher-timeframe agreement with the trade direction."""
    PERFECT = "PERFECT"
    GOOD = "GOOD"
    WEAK = "WEAK"
    COUNTER = "COUNTER"


class Session(str, Enum):
    """US equity session segments (America/New_York)."""
    PREMARKET = "PREMARKET"
    OPEN = "OPEN"
    MIDDAY = "MIDDAY"
    POWER_HOUR = "POWER_HOUR"
    AFTERHOURS = "AFTERHOURS"
    CLOSED = "CLOSED"
    WEEKEND = "WEEKEND"


# ============================================================================
# System Configuration
# ============================================================================

class SystemConfig(BaseModel):
    """System-wide settings."""

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    json_logs: bool = Field(
        default=False,
        description="Emit structured JSON log lines"
    )

    log_file: Optional[str] = Field(
        default=None,
        description="Optional rotating log file path"
    )

    model_config = ConfigDict(use_enum_values=True)


# ============================================================================
# Context Completeness Rules
# ============================================================================

class ContextRulesConfig(BaseModel):
    """Which sources must be fresh before a snapshot is usable."""

    required_sources: List[SourceName] = Field(
        default=[SourceName.EXPERT_SIGNAL],
        description="Sources that must all be fresh"
    )

    optional_sources: List[SourceName] = Field(
        default=[
            SourceName.REGIME,
            SourceName.TREND_ALIGNMENT,
            SourceName.STRUCTURE_CHECK,
        ],
        description="Sources that enrich the context but are not waited for"
    )

    primary_sources: List[SourceName] = Field(
        default=[SourceName.EXPERT_SIGNAL],
        description="Primary evidence family; at least one must be fresh"
    )

    max_age_seconds: float = Field(
        default=1800.0,
        gt=0.0,
        description="Fragments older than this are treated as absent"
    )

    max_clock_skew_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Payload timestamps further ahead of receipt time are replaced by it"
    )

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def default_optional_sources(cls, data):
        """Without an explicit optional list, every source not required is optional."""
        if not isinstance(data, dict):
            return data
        required = data.get("required_sources")
        if isinstance(required, (list, tuple)) and data.get("optional_sources") is None:
            required_set = {SourceName(s) for s in required}
            data = {**data, "optional_sources": [s for s in SourceName if s not in required_set]}
        return data

    @model_validator(mode="after")
    def check_source_sets(self) -> "ContextRulesConfig":
        overlap = set(self.required_sources) & set(self.optional_sources)
        if overlap:
            names = ", ".join(sorted(s.value for s in overlap))
            raise ValueError(f"sources cannot be both required and optional: {names}")
        if not self.primary_sources:
            raise ValueError("at least one primary source is needed")
        known = set(self.required_sources) | set(self.optional_sources)
        unknown = set(self.primary_sources) - known
        if unknown:
            names = ", ".join(sorted(s.value for s in unknown))
            raise ValueError(f"primary sources must be required or optional: {names}")
        return self

    @property
    def known_sources(self) -> List[SourceName]:
        return list(self.required_sources) + [
            s for s in self.optional_sources if s not in self.required_sources
        ]

    def with_overrides(self, **overrides) -> "ContextRulesConfig":
        """
        Return a copy with every non-None override applied.

        Defaults come from this instance; an override only wins when supplied.
        A new required set without an optional set re-derives the optional
        sources from it.

        Raises:
            ConfigurationError: If an override is unknown or the result is invalid
        """
        data = self.model_dump()
        for key, value in overrides.items():
            if key not in data:
                raise ConfigurationError(f"Unknown context rule: {key}")
            if value is not None:
                data[key] = value

        if overrides.get("required_sources") is not None and overrides.get("optional_sources") is None:
            data.pop("optional_sources")

        try:
            return ContextRulesConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid context rules: {e}") from e


# ============================================================================
# Gate Configuration
# ============================================================================

class GateConfig(BaseModel):
    """Thresholds for the regime, structural and market gates."""

    min_regime_confidence: float = Field(
        default=50.0,
        ge=0.0,
        le=100.0,
        description="Minimum phase confidence for the regime gate"
    )

    allow_signal_only_mode: bool = Field(
        default=True,
        description="Pass the regime gate when no regime data is present"
    )

    signal_only_score: float = Field(
        default=50.0,
        ge=0.0,
        le=100.0,
        description="Regime gate score used in signal-only mode"
    )

    enforce_phase_rules: bool = Field(
        default=True,
        description="Reject directions not allowed in the current regime phase"
    )

    phase_rules: Dict[int, List[Direction]] = Field(
        default={
            1: [Direction.LONG],
            2: [Direction.LONG, Direction.SHORT],
            3: [Direction.SHORT],
            4: [Direction.SHORT],
        },
        description="Allowed directions per regime phase number"
    )

    missing_structure_score: float = Field(default=0.0, ge=0.0, le=100.0)
    invalid_structure_score: float = Field(default=25.0, ge=0.0, le=100.0)
    illiquid_structure_score: float = Field(default=40.0, ge=0.0, le=100.0)

    grade_scores: Dict[ExecutionGrade, float] = Field(
        default={
            ExecutionGrade.A: 100.0,
            ExecutionGrade.B: 80.0,
            ExecutionGrade.C: 60.0,
        },
        description="Structural gate score per execution grade when passing"
    )

    max_spread_bps: float = Field(
        default=12.0,
        gt=0.0,
        description="Maximum bid/ask spread in basis points"
    )

    max_atr: float = Field(
        default=2.5,
        gt=0.0,
        description="ATR spike threshold"
    )

    min_depth_score: float = Field(
        default=30.0,
        ge=0.0,
        le=100.0,
        description="Minimum order book depth score"
    )

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_structure_scores(self) -> "GateConfig":
        if self.missing_structure_score > self.invalid_structure_score:
            raise ValueError("missing_structure_score must not exceed invalid_structure_score")
        return self


# ============================================================================
# Confidence Configuration
# ============================================================================

class ConfidenceWeights(BaseModel):
    """Weight of each contribution in the confidence score."""

    regime: float = Field(default=0.30, ge=0.0, le=1.0)
    expert: float = Field(default=0.25, ge=0.0, le=1.0)
    alignment: float = Field(default=0.20, ge=0.0, le=1.0)
    market: float = Field(default=0.15, ge=0.0, le=1.0)
    structural: float = Field(default=0.10, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def weights_sum_to_one(self) -> "ConfidenceWeights":
        total = self.regime + self.expert + self.alignment + self.market + self.structural
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"confidence weights must sum to 1.0, got {total:.4f}")
        return self


class ConfidenceConfig(BaseModel):
    """Confidence scoring parameters."""

    weights: ConfidenceWeights = Field(default_factory=ConfidenceWeights)

    ai_score_max: float = Field(
        default=10.5,
        gt=0.0,
        description="Top of the expert ai_score scale"
    )

    ai_score_minimum: float = Field(
        default=5.0,
        ge=0.0,
        description="Expert scores below this are penalized"
    )

    low_ai_penalty: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Multiplier applied to weak expert scores"
    )

    neutral_score: float = Field(
        default=50.0,
        ge=0.0,
        le=100.0,
        description="Contribution used when a section is absent"
    )

    fallback_penalty: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="Points deducted per market section on fallback values"
    )

    model_config = ConfigDict(frozen=True)


class ThresholdConfig(BaseModel):
    """Confidence thresholds for action determination."""

    execute: float = Field(default=70.0, ge=0.0, le=100.0)
    wait: float = Field(default=50.0, ge=0.0, le=100.0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def wait_below_execute(self) -> "ThresholdConfig":
        if self.wait >= self.execute:
            raise ValueError(
                f"wait threshold ({self.wait}) must be below execute threshold ({self.execute})"
            )
        return self


# ============================================================================
# Position Sizing Configuration
# ============================================================================

class Tier(BaseModel):
    """A ``value >= min`` -> ``factor`` step in a tier table."""

    min: float
    factor: float = Field(ge=0.0)

    model_config = ConfigDict(frozen=True)


def _tiers(*pairs) -> List[Tier]:
    return [Tier(min=m, factor=f) for m, f in pairs]


class SizingConfig(BaseModel):
    """Position size multiplier factors and bounds."""

    min_multiplier: float = Field(default=0.5, gt=0.0)
    max_multiplier: float = Field(default=3.0, gt=0.0)

    quality_factors: Dict[QualityTier, float] = Field(
        default={
            QualityTier.EXTREME: 1.3,
            QualityTier.HIGH: 1.1,
            QualityTier.MEDIUM: 1.0,
            QualityTier.LOW: 0.85,
        }
    )

    confluence_tiers: List[Tier] = Field(
        default=_tiers((5, 1.25), (4, 1.15), (3, 1.0), (2, 0.9), (0, 0.75)),
        description="Timeframes agreeing with the trade direction"
    )

    htf_factors: Dict[HTFAlignment, float] = Field(
        default={
            HTFAlignment.PERFECT: 1.3,
            HTFAlignment.GOOD: 1.15,
            HTFAlignment.WEAK: 0.85,
            HTFAlignment.COUNTER: 0.5,
        }
    )

    higher_timeframes: List[str] = Field(
        default=["tf60min", "tf240min"],
        description="Timeframe keys that count as higher timeframes"
    )

    rr_tiers: List[Tier] = Field(
        default=_tiers((5.0, 1.2), (4.0, 1.15), (3.0, 1.1), (2.0, 1.0), (1.5, 0.85), (0.0, 0.5))
    )

    volume_tiers: List[Tier] = Field(
        default=_tiers((1.5, 1.1), (0.8, 1.0), (0.0, 0.7))
    )

    trend_tiers: List[Tier] = Field(
        default=_tiers((80.0, 1.2), (60.0, 1.0), (0.0, 0.8))
    )

    session_factors: Dict[Session, float] = Field(
        default={
            Session.PREMARKET: 0.5,
            Session.OPEN: 0.9,
            Session.MIDDAY: 1.0,
            Session.POWER_HOUR: 0.85,
            Session.AFTERHOURS: 0.5,
            Session.CLOSED: 0.5,
            Session.WEEKEND: 0.5,
        }
    )

    day_factors: Dict[str, float] = Field(
        default={"MON": 0.95, "TUE": 1.1, "WED": 1.0, "THU": 0.95, "FRI": 0.85}
    )

    phase_boost_tiers: List[Tier] = Field(
        default=_tiers((90.0, 0.10), (80.0, 0.05)),
        description="Additive boost by regime confidence when the regime agrees"
    )

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_bounds(self) -> "SizingConfig":
        if self.min_multiplier >= self.max_multiplier:
            raise ValueError("min_multiplier must be below max_multiplier")
        return self

    @field_validator("confluence_tiers", "rr_tiers", "volume_tiers", "trend_tiers", "phase_boost_tiers")
    @classmethod
    def sort_tiers(cls, v: List[Tier]) -> List[Tier]:
        return sorted(v, key=lambda t: t.min, reverse=True)


# ============================================================================
# Versioned Rule Configuration
# ============================================================================

class RuleConfig(BaseModel):
    """Complete, versioned rule set consumed by the decision engine."""

    version: str = Field(default="2.5.0", description="Rule set version")
    context: ContextRulesConfig = Field(default_factory=ContextRulesConfig)
    gates: GateConfig = Field(default_factory=GateConfig)
    confidence: ConfidenceConfig = Field(default_factory=ConfidenceConfig)
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    sizing: SizingConfig = Field(default_factory=SizingConfig)

    model_config = ConfigDict(frozen=True)


# ============================================================================
# Market Feeds Configuration
# ============================================================================

class FeedConfig(BaseModel):
    """A single market data provider."""

    enabled: bool = Field(default=True)

    base_url: str = Field(description="Provider REST base URL")

    api_key_env: Optional[str] = Field(
        default=None,
        description="Environment variable name for API key"
    )

    api_secret_env: Optional[str] = Field(
        default=None,
        description="Environment variable name for API secret"
    )

    timeout_seconds: float = Field(
        default=1.0,
        gt=0.0,
        le=30.0,
        description="Per-call timeout"
    )

    cache_ttl_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="Response cache TTL (0 disables caching)"
    )

    max_calls_per_minute: Optional[int] = Field(
        default=None,
        gt=0,
        description="Per-minute call quota (None for unlimited)"
    )

    max_calls_per_day: Optional[int] = Field(
        default=None,
        gt=0,
        description="Per-day call quota (None for unlimited)"
    )


class MarketFeedsConfig(BaseModel):
    """Market data providers and the shared fetch budget."""

    budget_seconds: float = Field(
        default=1.0,
        gt=0.0,
        le=30.0,
        description="Overall time budget for one metrics fetch"
    )

    max_retries: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Retries for timeouts and network errors, within the budget"
    )

    retry_delay_seconds: float = Field(
        default=0.05,
        ge=0.0,
        description="Pause before each retry"
    )

    feeds: Dict[str, FeedConfig] = Field(
        default={
            "tradier": FeedConfig(
                base_url="https://api.tradier.com/v1",
                api_key_env="TRADIER_API_KEY",
                cache_ttl_seconds=60.0,
                max_calls_per_minute=60,
                max_calls_per_day=10000,
            ),
            "twelvedata": FeedConfig(
                base_url="https://api.twelvedata.com",
                api_key_env="TWELVEDATA_API_KEY",
                cache_ttl_seconds=60.0,
                max_calls_per_minute=8,
                max_calls_per_day=800,
            ),
            "alpaca": FeedConfig(
                base_url="https://data.alpaca.markets",
                api_key_env="ALPACA_API_KEY",
                api_secret_env="ALPACA_SECRET_KEY",
                cache_ttl_seconds=5.0,
                max_calls_per_minute=200,
                max_calls_per_day=200,
            ),
        }
    )

    section_providers: Dict[MetricSection, str] = Field(
        default={
            MetricSection.DERIVATIVES: "tradier",
            MetricSection.STATISTICS: "twelvedata",
            MetricSection.LIQUIDITY: "alpaca",
        },
        description="Which feed serves each metrics section"
    )

    @model_validator(mode="after")
    def providers_are_configured(self) -> "MarketFeedsConfig":
        missing = set(self.section_providers.values()) - set(self.feeds)
        if missing:
            raise ValueError(f"section providers not configured: {', '.join(sorted(missing))}")
        return self


# ============================================================================
# Complete Application Configuration
# ============================================================================

class AppConfig(BaseModel):
    """Complete application configuration."""

    system: SystemConfig = Field(
        default_factory=SystemConfig,
        description="System configuration"
    )

    rules: RuleConfig = Field(
        default_factory=RuleConfig,
        description="Versioned decision rules"
    )

    market_feeds: MarketFeedsConfig = Field(
        default_factory=MarketFeedsConfig,
        description="Market data providers"
    )
