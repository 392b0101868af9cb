"""
Configuration types and dataclasses for HLMM.
"""
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class FeedConfig:
    """Market data feed configuration (one coin per process)."""
    coin: str = "BTC"
    wss_url: str = "wss://api.hyperliquid.xyz/ws"
    info_url: str = "https://api.hyperliquid.xyz/info"
    ping_interval_s: float = 20.0
    reconnect_delay_s: float = 1.0
    max_reconnect_delay_s: float = 30.0
    queue_maxsize: int = 10_000
    seed_from_snapshot: bool = True
    http_timeout_s: float = 5.0


@dataclass
class SignalConfig:
    """Rolling signal calculator parameters."""
    flow_tau_s: float = 8.0
    vol_tau_s: float = 30.0
    fill_tau_s: float = 8.0
    twap_window_s: float = 120.0
    twap_max_samples: int = 120
    momentum_window: int = 10
    mid_history: int = 120
    book_depth: Optional[int] = None
    slide_scale: float = 1.0
    slide_vol_k: float = 0.1
    fill_ref_size: float = 1.0
    aggressive_slide_threshold: float = 0.4
    aggressive_fill_threshold: float = 0.5
    deviation_threshold: float = 0.002


@dataclass
class QuoteConfig:
    """Quote construction parameters."""
    min_spread: float = 1.0
    spread_vol_k: float = 0.1
    max_spread_mult: float = 3.0
    skew_fraction: float = 0.25
    base_size: float = 1.0
    size_vol_k: float = 0.1
    size_fill_k: float = 1.0
    min_size: float = 0.5
    max_size: float = 2.0
    tick_size: float = 0.0
    min_price: float = 1e-8
    refresh_s: float = 1.0


@dataclass
class RiskConfig:
    """Inventory limits for the risk gate."""
    max_long: float = 5.0
    max_short: float = 5.0
    min_order_size: float = 0.0


@dataclass
class LoggingConfig:
    """Logging configuration for debugging and monitoring."""
    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    enable_performance: bool = False
    print_interval_s: float = 5.0


@dataclass
class BotConfig:
    """Complete bot configuration."""
    feed: FeedConfig = field(default_factory=FeedConfig)
    signal: SignalConfig = field(default_factory=SignalConfig)
    quote: QuoteConfig = field(default_factory=QuoteConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    fill_model: str = "none"  # none | instant
    log_path: str = "./data/logs/hlmm_events.jsonl"
