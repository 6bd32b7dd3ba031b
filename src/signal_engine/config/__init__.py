"""Configuration models and loader."""

from .settings import (
    AppConfig,
    SystemConfig,
    ContextRulesConfig,
    GateConfig,
    ConfidenceConfig,
    ConfidenceWeights,
    ThresholdConfig,
    SizingConfig,
    Tier,
    RuleConfig,
    FeedConfig,
    MarketFeedsConfig,
    HTFAlignment,
    Session,
)
from .loader import ConfigLoader, load_rule_config, load_app_config

__all__ = [
    "AppConfig",
    "SystemConfig",
    "ContextRulesConfig",
    "GateConfig",
    "ConfidenceConfig",
    "ConfidenceWeights",
    "ThresholdConfig",
    "SizingConfig",
    "Tier",
    "RuleConfig",
    "FeedConfig",
    "MarketFeedsConfig",
    "HTFAlignment",
    "Session",
    "ConfigLoader",
    "load_rule_config",
    "load_app_config",
]
