"""
Replay recorded payloads through the decision service.

Usage:
    signal-engine replay payloads.jsonl                # static market metrics
    signal-engine replay payloads.jsonl --json-logs    # structured log lines
    signal-engine replay payloads.jsonl --config-dir ./config
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .config.loader import load_app_config
from .config.settings import AppConfig, SystemConfig
from .core.bootstrap import build_decision_service, configure_logging
from .core.errors import ClassificationFailure, ConfigurationError, NormalizationFailure
from .core.types import MetricSection
from .market_data.providers.static import StaticMetricsProvider
from .service.sinks import JSONLinesSink, LoggingDecisionSink

logger = logging.getLogger(__name__)


def read_payloads(path: Path) -> List[Dict]:
    """One JSON object per non-blank line; malformed lines are reported and skipped."""
    payloads = []
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                payloads.append(json.loads(line))
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping line {line_no}: invalid JSON ({e})")
    return payloads


async def replay(
    path: Path,
    config_dir: Optional[Path] = None,
    config: Optional[AppConfig] = None,
) -> Dict[str, int]:
    """Feed every payload in ``path`` through ingest and decide; return summary counts."""
    config = config if config is not None else load_app_config(config_dir)
    static = StaticMetricsProvider()
    service = build_decision_service(
        config,
        providers={section: static for section in MetricSection},
        sinks=[LoggingDecisionSink(), JSONLinesSink(sys.stdout)],
    )

    summary = {"payloads": 0, "pending": 0, "decisions": 0, "rejected": 0}
    try:
        for payload in read_payloads(path):
            summary["payloads"] += 1
            try:
                _, packet = await service.process(payload)
            except (ClassificationFailure, NormalizationFailure) as e:
                summary["rejected"] += 1
                logger.warning(f"Rejected payload #{summary['payloads']}: {e}")
                continue

            if packet is None:
                summary["pending"] += 1
            else:
                summary["decisions"] += 1
    finally:
        await service.close()

    return summary


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="signal-engine",
        description="Signal decision engine tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  signal-engine replay payloads.jsonl
  signal-engine replay payloads.jsonl --json-logs --log-level DEBUG
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    replay_parser = subparsers.add_parser("replay", help="Replay a JSON-lines payload file")
    replay_parser.add_argument("file", type=Path, help="Payload file, one JSON object per line")
    replay_parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory holding config.yaml and rules.yaml"
    )
    replay_parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit structured JSON log lines (overrides system.json_logs)"
    )
    replay_parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides system.log_level)"
    )

    args = parser.parse_args(argv)

    try:
        config = load_app_config(args.config_dir)
    except ConfigurationError as e:
        configure_logging(SystemConfig(), log_level=args.log_level, json_logs=args.json_logs, stream=sys.stderr)
        logger.error(f"Invalid configuration: {e}")
        return 2

    # Log to stderr so stdout carries only decision JSON lines
    configure_logging(config.system, log_level=args.log_level, json_logs=args.json_logs, stream=sys.stderr)

    if not args.file.exists():
        logger.error(f"Payload file not found: {args.file}")
        return 1

    try:
        summary = asyncio.run(replay(args.file, config=config))
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    logger.info(
        f"Replay complete: {summary['payloads']} payloads, {summary['decisions']} decisions, "
        f"{summary['pending']} pending, {summary['rejected']} rejected"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
