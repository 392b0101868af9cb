"""
Utility functions for the HLMM market maker.
"""
import math
import time
from typing import Union


def now_ms() -> int:
    """Get current timestamp in milliseconds."""
    return int(time.time() * 1000)


def clip(x: float, lo: float, hi: float) -> float:
    """Clip value to [lo, hi] range."""
    return max(lo, min(hi, x))


def is_finite(*xs: float) -> bool:
    """True when every argument is a real, finite number."""
    try:
        return all(math.isfinite(float(x)) for x in xs)
    except (TypeError, ValueError):
        return False


def sign(x: float) -> float:
    """Sign of x as -1.0, 0.0 or 1.0."""
    if x > 0:
        return 1.0
    if x < 0:
        return -1.0
    return 0.0


def decay_weight(dt_ms: float, tau_s: float) -> float:
    """Exponential decay weight exp(-dt/tau) for an elapsed time in milliseconds.

    Non-positive elapsed times (duplicate or out-of-order timestamps) give a
    weight of exactly 1.0, i.e. no time advance.
    """
    if dt_ms <= 0 or tau_s <= 0:
        return 1.0
    return math.exp(-(dt_ms / 1000.0) / tau_s)


def floor_to_tick(p: float, tick: float) -> float:
    """Floor price to nearest tick."""
    if tick <= 0:
        return p
    # Tolerate representation error so 99.5 / 0.01 stays on 9950
    return round(math.floor(p / tick + 1e-9) * tick, 12)


def ceil_to_tick(p: float, tick: float) -> float:
    """Ceil price to nearest tick."""
    if tick <= 0:
        return p
    return round(math.ceil(p / tick - 1e-9) * tick, 12)


def fmt(x: Union[int, float], nd: int = 4) -> str:
    """Format number with specified decimal places."""
    return f"{x:.{nd}f}"
