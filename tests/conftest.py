"""
Pytest configuration and shared fixtures for HLMM tests.

This module provides:
- Common test fixtures for file I/O and logging
- Test configuration helpers
- Event builders for book updates and trades
"""
import json
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from hlmm.logging import JsonlLogger
from hlmm.models import BookUpdate, Side, Trade
from hlmm.signals import SignalEngine
from hlmm.types import (
    BotConfig,
    FeedConfig,
    LoggingConfig,
    QuoteConfig,
    RiskConfig,
    SignalConfig,
)

T0 = 1_703_123_456_789


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests that need file I/O."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir):
    """Sample bot configuration for testing."""
    return BotConfig(
        feed=FeedConfig(coin="BTC", seed_from_snapshot=False),
        signal=SignalConfig(),
        quote=QuoteConfig(),
        risk=RiskConfig(),
        logging=LoggingConfig(),
        log_path=str(temp_dir / "test_events.jsonl"),
    )


@pytest.fixture
def mock_logger(temp_dir):
    """JsonlLogger whose write calls are recorded."""
    log_path = temp_dir / "test_log.jsonl"
    logger = JsonlLogger(str(log_path))

    original_write = logger.write
    logger.write = MagicMock(side_effect=original_write)
    logger.reset_mock = logger.write.reset_mock

    yield logger

    logger.close()


@pytest.fixture
def engine(mock_logger):
    """SignalEngine with default settings."""
    return SignalEngine(SignalConfig(), mock_logger)


@pytest.fixture
def sample_config_file(temp_dir, sample_config):
    """Create a temporary config file for testing config loading."""
    config_path = temp_dir / "test_config.json"
    config_data = {
        "feed": {"coin": "ETH"},
        "signal": {"flow_tau_s": 4.0},
        "quote": {"min_spread": 0.5, "tick_size": 0.1},
        "risk": {"max_long": 3.0, "max_short": 2.0},
        "logging": {"level": "DEBUG"},
        "fill_model": "instant",
        "log_path": str(sample_config.log_path),
    }

    with open(config_path, 'w') as f:
        json.dump(config_data, f, indent=2)

    return config_path


def book(bid=99.5, ask=100.5, ts=T0, bid_sz=1.0, ask_sz=1.0):
    return BookUpdate(bids=((bid, bid_sz),), asks=((ask, ask_sz),), timestamp_ms=ts)


def trade(price=100.0, size=0.1, side=Side.BUY, ts=T0):
    return Trade(price=price, size=size, side=side, timestamp_ms=ts)


def read_events(path):
    with open(path, "r") as f:
        return [json.loads(line) for line in f if line.strip()]
