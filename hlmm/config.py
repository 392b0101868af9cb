"""
Configuration loading utilities for HLMM.
"""
import json

from .types import BotConfig, FeedConfig, LoggingConfig, QuoteConfig, RiskConfig, SignalConfig

FILL_MODELS = ("none", "instant")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_config(path: str) -> BotConfig:
    """Load configuration from JSON file. Every section is optional."""
    with open(path, "r") as fp:
        d = json.load(fp)
    cfg = BotConfig(
        feed=FeedConfig(**d.get("feed", {})),
        signal=SignalConfig(**d.get("signal", {})),
        quote=QuoteConfig(**d.get("quote", {})),
        risk=RiskConfig(**d.get("risk", {})),
        logging=LoggingConfig(**d.get("logging", {})),
        fill_model=d.get("fill_model", "none"),
        log_path=d.get("log_path", "./data/logs/hlmm_events.jsonl"),
    )
    validate_config(cfg)
    return cfg


def validate_config(cfg: BotConfig) -> BotConfig:
    """Reject settings the core cannot run with.

    Raises:
        ValueError: naming the first offending field
    """
    s, q, r = cfg.signal, cfg.quote, cfg.risk

    for name in ("flow_tau_s", "vol_tau_s", "fill_tau_s", "twap_window_s", "slide_scale", "fill_ref_size"):
        if getattr(s, name) <= 0:
            raise ValueError(f"signal.{name} must be > 0")
    if s.twap_max_samples < 1 or s.mid_history < 2 or s.momentum_window < 1:
        raise ValueError("signal history lengths must be positive")
    if s.book_depth is not None and s.book_depth < 1:
        raise ValueError("signal.book_depth must be >= 1 or null")
    if s.slide_vol_k < 0:
        raise ValueError("signal.slide_vol_k must be >= 0")

    if q.min_spread <= 0:
        raise ValueError("quote.min_spread must be > 0")
    if q.max_spread_mult < 1:
        raise ValueError("quote.max_spread_mult must be >= 1")
    if q.min_size <= 0 or q.min_size > q.max_size:
        raise ValueError("quote sizes must satisfy 0 < min_size <= max_size")
    if q.base_size <= 0:
        raise ValueError("quote.base_size must be > 0")
    if q.tick_size < 0 or q.min_price <= 0:
        raise ValueError("quote.tick_size must be >= 0 and quote.min_price > 0")
    if q.refresh_s <= 0:
        raise ValueError("quote.refresh_s must be > 0")

    if r.max_long < 0 or r.max_short < 0 or r.min_order_size < 0:
        raise ValueError("risk limits must be non-negative")

    if cfg.feed.reconnect_delay_s <= 0 or cfg.feed.max_reconnect_delay_s < cfg.feed.reconnect_delay_s:
        raise ValueError("feed reconnect delays must satisfy 0 < reconnect_delay_s <= max_reconnect_delay_s")
    if cfg.fill_model not in FILL_MODELS:
        raise ValueError(f"fill_model must be one of {FILL_MODELS}")
    if cfg.logging.level.upper() not in LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {LOG_LEVELS}")
    return cfg
