"""
Tests for configuration management in hlmm/types.py and hlmm/config.py.

Tests cover:
- Config dataclass defaults
- BotConfig composition
- Loading from JSON files
- Validation of unusable settings
"""
import json
from dataclasses import replace

import pytest

from hlmm.config import load_config, validate_config
from hlmm.types import BotConfig, FeedConfig, LoggingConfig, QuoteConfig, RiskConfig, SignalConfig


class TestConfigDefaults:
    """Test dataclass defaults."""

    @pytest.mark.unit
    def test_feed_defaults(self):
        """Test default Hyperliquid endpoints and subscription settings."""
        feed = FeedConfig()
        assert feed.coin == "BTC"
        assert feed.wss_url == "wss://api.hyperliquid.xyz/ws"
        assert feed.info_url == "https://api.hyperliquid.xyz/info"
        assert feed.reconnect_delay_s <= feed.max_reconnect_delay_s

    @pytest.mark.unit
    def test_signal_defaults(self):
        """Test default signal windows and scales."""
        sig = SignalConfig()
        assert sig.flow_tau_s > 0
        assert sig.vol_tau_s > 0
        assert sig.fill_tau_s > 0
        assert sig.book_depth is None

    @pytest.mark.unit
    def test_quote_defaults(self):
        """Test default quote layer parameters."""
        q = QuoteConfig()
        assert q.min_spread == 1.0
        assert q.min_size <= q.base_size <= q.max_size
        assert q.tick_size == 0.0

    @pytest.mark.unit
    def test_risk_and_logging_defaults(self):
        """Test default position limits and log level."""
        assert RiskConfig().max_long == 5.0
        assert RiskConfig().max_short == 5.0
        assert LoggingConfig().level == "INFO"

    @pytest.mark.unit
    def test_bot_config_sections_are_independent(self):
        """Test that each BotConfig gets its own section instances."""
        a, b = BotConfig(), BotConfig()
        a.quote.min_spread = 9.0
        assert b.quote.min_spread == 1.0
        assert a.fill_model == "none"

    @pytest.mark.unit
    def test_defaults_validate(self):
        """Test that the default configuration passes validation."""
        assert validate_config(BotConfig()) is not None


class TestConfigLoading:
    """Test JSON config loading."""

    @pytest.mark.unit
    def test_load_config_success(self, sample_config_file, sample_config):
        """Test loading a complete config file."""
        cfg = load_config(str(sample_config_file))

        assert cfg.feed.coin == "ETH"
        assert cfg.signal.flow_tau_s == 4.0
        assert cfg.signal.vol_tau_s == SignalConfig().vol_tau_s
        assert cfg.quote.min_spread == 0.5
        assert cfg.quote.tick_size == 0.1
        assert cfg.risk.max_long == 3.0
        assert cfg.risk.max_short == 2.0
        assert cfg.logging.level == "DEBUG"
        assert cfg.fill_model == "instant"
        assert cfg.log_path == sample_config.log_path

    @pytest.mark.unit
    def test_load_config_empty_file(self, temp_dir):
        """Test that an empty JSON object yields defaults."""
        path = temp_dir / "empty.json"
        path.write_text("{}")

        cfg = load_config(str(path))
        assert cfg == BotConfig()

    @pytest.mark.unit
    def test_load_config_unknown_field(self, temp_dir):
        """Test that unknown fields are rejected."""
        path = temp_dir / "bad.json"
        path.write_text(json.dumps({"quote": {"spread_bps": 3}}))

        with pytest.raises(TypeError):
            load_config(str(path))

    @pytest.mark.unit
    def test_load_config_file_not_found(self):
        """Test loading a missing config file."""
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/config.json")

    @pytest.mark.unit
    def test_load_config_invalid_json(self, temp_dir):
        """Test loading a file that is not valid JSON."""
        path = temp_dir / "invalid.json"
        path.write_text("{ invalid json }")

        with pytest.raises(json.JSONDecodeError):
            load_config(str(path))

    @pytest.mark.unit
    def test_load_config_validates(self, temp_dir):
        """Test that loaded values go through validation."""
        path = temp_dir / "bad.json"
        path.write_text(json.dumps({"signal": {"flow_tau_s": 0}}))

        with pytest.raises(ValueError, match="flow_tau_s"):
            load_config(str(path))


class TestValidation:
    """Test validate_config rejections."""

    @pytest.mark.unit
    @pytest.mark.parametrize("section,changes,match", [
        ("signal", {"vol_tau_s": -1.0}, "vol_tau_s"),
        ("signal", {"fill_ref_size": 0.0}, "fill_ref_size"),
        ("signal", {"book_depth": 0}, "book_depth"),
        ("quote", {"min_spread": 0.0}, "min_spread"),
        ("quote", {"min_size": 3.0, "max_size": 2.0}, "min_size"),
        ("quote", {"max_spread_mult": 0.5}, "max_spread_mult"),
        ("quote", {"tick_size": -0.01}, "tick_size"),
        ("risk", {"max_long": -1.0}, "risk limits"),
        ("feed", {"reconnect_delay_s": 10.0, "max_reconnect_delay_s": 5.0}, "reconnect"),
    ])
    def test_invalid_sections(self, section, changes, match):
        """Test validation errors for out-of-range section values."""
        cfg = BotConfig()
        setattr(cfg, section, replace(getattr(cfg, section), **changes))

        with pytest.raises(ValueError, match=match):
            validate_config(cfg)

    @pytest.mark.unit
    def test_invalid_fill_model(self):
        """Test that an unknown fill model is rejected."""
        with pytest.raises(ValueError, match="fill_model"):
            validate_config(BotConfig(fill_model="probabilistic"))

    @pytest.mark.unit
    def test_invalid_log_level(self):
        """Test that an unknown log level is rejected."""
        with pytest.raises(ValueError, match="logging.level"):
            validate_config(BotConfig(logging=LoggingConfig(level="LOUD")))
