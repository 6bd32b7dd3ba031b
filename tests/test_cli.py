"""
Tests for the replay command line tool.

Tests:
- Replay summary counts (pending, decisions, rejected)
- Decisions written to stdout as JSON lines
- Exit codes for missing files and invalid configuration
- System logging settings applied, command line flags taking precedence
"""

import json

import pytest

from signal_engine import cli
from signal_engine.core import bootstrap

from conftest import PayloadFactory


@pytest.fixture(autouse=True)
def logging_calls(monkeypatch):
    calls = []
    monkeypatch.setattr(bootstrap, "setup_logging", lambda **kwargs: calls.append(kwargs))
    return calls


@pytest.fixture
def payload_file(tmp_path):
    lines = [
        json.dumps(PayloadFactory.regime()),
        json.dumps(PayloadFactory.trend()),
        json.dumps(PayloadFactory.structure()),
        json.dumps({"hello": "world"}),
        "{not json",
        "",
        json.dumps(PayloadFactory.options_signal()),
    ]
    path = tmp_path / "payloads.jsonl"
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def config_dir(tmp_path):
    path = tmp_path / "config"
    path.mkdir()
    return path


def test_read_payloads_skips_invalid_lines(payload_file):
    payloads = cli.read_payloads(payload_file)

    assert len(payloads) == 5
    assert payloads[-1]["signal"]["type"] == "LONG"


@pytest.mark.asyncio
async def test_replay_summary(payload_file, config_dir, capsys):
    summary = await cli.replay(payload_file, config_dir)

    assert summary == {"payloads": 5, "pending": 3, "decisions": 1, "rejected": 1}

    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 1
    decision = json.loads(lines[0])
    assert decision["action"] == "EXECUTE"
    assert decision["context"]["instrument"]["symbol"] == "SPY"


def test_main_replays_file(payload_file, config_dir, capsys):
    exit_code = cli.main(["replay", str(payload_file), "--config-dir", str(config_dir)])

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out.splitlines()[0])["action"] == "EXECUTE"


def test_main_missing_file(tmp_path):
    assert cli.main(["replay", str(tmp_path / "missing.jsonl")]) == 1


def test_main_invalid_rules(payload_file, config_dir):
    (config_dir / "rules.yaml").write_text("thresholds:\n  execute: 40\n  wait: 45\n")

    assert cli.main(["replay", str(payload_file), "--config-dir", str(config_dir)]) == 2


# ============================================================================
# Logging Configuration
# ============================================================================

def test_main_applies_system_logging_config(payload_file, config_dir, logging_calls, monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("JSON_LOGS", raising=False)
    (config_dir / "config.yaml").write_text(
        "system:\n  log_level: DEBUG\n  json_logs: true\n  log_file: null\n"
    )

    assert cli.main(["replay", str(payload_file), "--config-dir", str(config_dir)]) == 0

    assert logging_calls[-1]["log_level"] == "DEBUG"
    assert logging_calls[-1]["json_format"] is True
    assert logging_calls[-1]["log_file"] is None


def test_command_line_flags_override_system_logging(payload_file, config_dir, logging_calls, monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("JSON_LOGS", raising=False)
    (config_dir / "config.yaml").write_text("system:\n  log_level: DEBUG\n  json_logs: false\n")

    exit_code = cli.main([
        "replay", str(payload_file), "--config-dir", str(config_dir),
        "--log-level", "WARNING", "--json-logs",
    ])

    assert exit_code == 0
    assert logging_calls[-1]["log_level"] == "WARNING"
    assert logging_calls[-1]["json_format"] is True


def test_invalid_config_still_configures_logging(payload_file, config_dir, logging_calls):
    (config_dir / "rules.yaml").write_text("thresholds:\n  execute: 40\n  wait: 45\n")

    assert cli.main(["replay", str(payload_file), "--config-dir", str(config_dir), "--log-level", "ERROR"]) == 2
    assert logging_calls[-1]["log_level"] == "ERROR"
