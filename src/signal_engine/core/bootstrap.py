"""
Composition root.

Builds the aggregator, fetcher, decision engine and service from an
AppConfig and wires them together explicitly. Callers own the returned
objects; nothing here is cached at module level.

Usage:
    config = load_app_config()
    service = build_decision_service(config)
"""

import logging
import time
from typing import Callable, Dict, List, Optional, TextIO

from ..config.loader import load_app_config
from ..config.settings import AppConfig, MarketFeedsConfig, SystemConfig
from ..context.aggregator import ContextAggregator
from ..context.normalizer import FieldNormalizer
from ..context.sweeper import ContextSweeper
from ..decision.engine import DecisionEngine
from ..market_data.cache import TTLCache
from ..market_data.fetcher import MarketMetricsFetcher
from ..market_data.providers.base import MetricsProvider
from ..market_data.providers.http import PROVIDER_CLASSES
from ..market_data.rate_limit import RateLimitTracker
from ..service.service import DecisionService
from ..service.sinks import DecisionSink, LoggingDecisionSink
from ..utils.logger import setup_logging
from ..utils.metrics import MetricsCollector
from .errors import ConfigurationError
from .types import MetricSection

logger = logging.getLogger(__name__)


def build_providers(feeds: MarketFeedsConfig) -> Dict[MetricSection, MetricsProvider]:
    """
    One HTTP provider per enabled feed, mapped onto the sections it serves.

    Sections whose feed is disabled get no provider and fall back at fetch time.
    """
    instances: Dict[str, MetricsProvider] = {}
    providers: Dict[MetricSection, MetricsProvider] = {}

    for section, feed_name in feeds.section_providers.items():
        feed = feeds.feeds[feed_name]
        if not feed.enabled:
            logger.warning(f"Feed {feed_name} disabled; {section.value} will use fallback values")
            continue

        if feed_name not in instances:
            provider_class = PROVIDER_CLASSES.get(feed_name)
            if provider_class is None:
                raise ConfigurationError(f"No provider implementation for feed '{feed_name}'")
            instances[feed_name] = provider_class.from_config(feed)

        providers[MetricSection(section)] = instances[feed_name]

    return providers


def configure_logging(
    system: SystemConfig,
    log_level: Optional[str] = None,
    json_logs: Optional[bool] = None,
    log_file: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Apply the system logging settings. Explicit arguments win over config.
    """
    level = log_level if log_level is not None else getattr(system.log_level, "value", system.log_level)
    setup_logging(
        log_level=level,
        log_file=log_file if log_file is not None else system.log_file,
        json_format=json_logs if json_logs is not None else system.json_logs,
        stream=stream,
    )


def build_rate_limiter(feeds: MarketFeedsConfig) -> RateLimitTracker:
    """Quota tracker with one entry per enabled feed."""
    tracker = RateLimitTracker()
    for feed_name, feed in feeds.feeds.items():
        if feed.enabled:
            tracker.configure(feed_name, feed.max_calls_per_minute, feed.max_calls_per_day)
    return tracker


def build_decision_service(
    config: Optional[AppConfig] = None,
    providers: Optional[Dict[MetricSection, MetricsProvider]] = None,
    sinks: Optional[List[DecisionSink]] = None,
    metrics: Optional[MetricsCollector] = None,
    clock: Callable[[], float] = time.time,
    sweep_interval_seconds: Optional[float] = None,
    configure_logs: bool = False,
) -> DecisionService:
    """
    Wire a DecisionService.

    Args:
        config: Application config (loaded from config/ when omitted)
        providers: Section -> provider overrides (HTTP providers when omitted)
        sinks: Decision sinks (a LoggingDecisionSink when omitted)
        metrics: Shared metrics collector
        clock: Wall clock used for freshness and timestamps
        sweep_interval_seconds: Run a ContextSweeper at this interval once started
        configure_logs: Apply config.system logging settings

    Returns:
        Ready-to-use DecisionService
    """
    config = config if config is not None else load_app_config()
    metrics = metrics if metrics is not None else MetricsCollector()

    if configure_logs:
        configure_logging(config.system)

    if providers is None:
        providers = build_providers(config.market_feeds)

    feeds = config.market_feeds
    aggregator = ContextAggregator(config.rules.context, clock=clock)
    fetcher = MarketMetricsFetcher(
        providers,
        budget_seconds=feeds.budget_seconds,
        cache=TTLCache(),
        metrics=metrics,
        clock=clock,
        rate_limiter=build_rate_limiter(feeds),
        max_retries=feeds.max_retries,
        retry_delay_seconds=feeds.retry_delay_seconds,
    )
    engine = DecisionEngine(config.rules)

    sweeper = None
    if sweep_interval_seconds is not None:
        sweeper = ContextSweeper(aggregator, interval_seconds=sweep_interval_seconds, cache=fetcher.cache)

    service = DecisionService(
        aggregator=aggregator,
        fetcher=fetcher,
        engine=engine,
        normalizer=FieldNormalizer(
            clock=clock, max_clock_skew_seconds=config.rules.context.max_clock_skew_seconds
        ),
        sinks=sinks if sinks is not None else [LoggingDecisionSink()],
        metrics=metrics,
        sweeper=sweeper,
    )

    logger.info(
        f"✅ Decision service ready ({config.system.environment} environment, "
        f"rules v{config.rules.version})"
    )
    return service
