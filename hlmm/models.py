"""
Value types flowing through the signal → quote → risk pipeline.

Market Data Flow:
    BookUpdate / Trade → EventRouter → SignalEngine → SignalSnapshot
    SignalSnapshot → QuoteLayerManager → QuotePair(QuoteProposal, QuoteProposal)
    QuoteProposal → RiskManager → Approved | Adjusted | Rejected

All types here are frozen dataclasses: a snapshot or proposal is never
mutated after construction, so it can be shared freely between the quoting
path and loggers.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

Level = Tuple[float, float]  # (price, size)


class Side(str, Enum):
    """Order or trade side. For trades this is the taker side."""
    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> float:
        return 1.0 if self is Side.BUY else -1.0

    @property
    def opposite(self) -> "Side":
        return Side.SELL if self is Side.BUY else Side.BUY

    @classmethod
    def parse(cls, value: Union[str, "Side"]) -> "Side":
        """Accept BUY/SELL in any case plus the exchange shorthands B/A."""
        if isinstance(value, Side):
            return value
        v = str(value).strip().upper()
        if v in ("B", "BID", "BUY"):
            return cls.BUY
        if v in ("A", "S", "ASK", "SELL"):
            return cls.SELL
        raise ValueError(f"unknown side: {value!r}")


@dataclass(frozen=True)
class BookUpdate:
    """Order book update. Bids best-first (descending), asks best-first (ascending)."""
    bids: Sequence[Level]
    asks: Sequence[Level]
    timestamp_ms: int


@dataclass(frozen=True)
class Trade:
    """Public trade print."""
    price: float
    size: float
    side: Side
    timestamp_ms: int


MarketDataEvent = Union[BookUpdate, Trade]


@dataclass(frozen=True)
class SignalSnapshot:
    """Immutable view of every signal after one processed event.

    Attributes:
        trend: Short-window momentum (sum of recent mid changes, price units)
        twap: Time-weighted average trade price over the rolling window, NaN without trades
        slide: Decay-weighted order-flow imbalance accumulator (signed)
        norm_slide: slide squashed into [-1, 1], compressed by volatility
        fill_score: Recent-liquidity confidence score in [0, 1)
        deviation: (mid - twap) / twap, NaN when either side is undefined
        volatility: Realized volatility of trade log returns in basis points
        aggressive: Directional pressure AND enough liquidity to lean into it
        timestamp_ms: Engine clock at the time of the snapshot
        mid: Current top-of-book mid, NaN before the first book update
        mean_reversion: "Fade breakout", "Scalp retracement" or "Neutral"
    """
    trend: float
    twap: float
    slide: float
    norm_slide: float
    fill_score: float
    deviation: float
    volatility: float
    aggressive: bool
    timestamp_ms: int
    mid: float = math.nan
    best_bid: float = math.nan
    best_ask: float = math.nan
    imbalance: float = 0.0
    mean_reversion: str = "Neutral"
    n_trades: int = 0

    @property
    def insufficient_data(self) -> bool:
        """True when there is no trade history or no book yet: hold, do not quote."""
        return math.isnan(self.twap) or math.isnan(self.mid)

    @classmethod
    def empty(cls, timestamp_ms: int = 0) -> "SignalSnapshot":
        return cls(
            trend=0.0, twap=math.nan, slide=0.0, norm_slide=0.0, fill_score=0.0,
            deviation=math.nan, volatility=0.0, aggressive=False, timestamp_ms=timestamp_ms,
        )

    def as_dict(self) -> dict:
        """Loggable form. NaN becomes None so the JSON stays strict."""
        out = {}
        for k, v in self.__dict__.items():
            if isinstance(v, float) and math.isnan(v):
                v = None
            out[k] = v
        return out


@dataclass(frozen=True)
class QuoteProposal:
    """One priced/sized leg proposed by the quote layer, consumed once by risk."""
    side: Side
    price: float
    size: float
    timestamp_ms: int
    source_snapshot_ts_ms: int

    def __post_init__(self):
        if not (self.size > 0 and math.isfinite(self.size)):
            raise ValueError(f"proposal size must be positive and finite, got {self.size}")

    def with_size(self, size: float) -> "QuoteProposal":
        return QuoteProposal(self.side, self.price, size, self.timestamp_ms, self.source_snapshot_ts_ms)

    def as_dict(self) -> dict:
        return {"side": self.side.value, "price": self.price, "size": self.size,
                "ts_ms": self.timestamp_ms, "snapshot_ts_ms": self.source_snapshot_ts_ms}


@dataclass(frozen=True)
class QuotePair:
    """Bid and ask legs. After risk filtering a rejected leg is None."""
    bid: Optional[QuoteProposal]
    ask: Optional[QuoteProposal]
    decisions: Tuple["RiskDecision", ...] = field(default=(), compare=False)

    def legs(self) -> Tuple[QuoteProposal, ...]:
        return tuple(q for q in (self.bid, self.ask) if q is not None)


@dataclass(frozen=True)
class Approved:
    proposal: QuoteProposal

    @property
    def approved_proposal(self) -> Optional[QuoteProposal]:
        return self.proposal


@dataclass(frozen=True)
class Adjusted:
    """Proposal shrunk so the post-fill position sits exactly on a limit."""
    proposal: QuoteProposal
    original_size: float

    @property
    def approved_proposal(self) -> Optional[QuoteProposal]:
        return self.proposal


@dataclass(frozen=True)
class Rejected:
    reason: str
    proposal: Optional[QuoteProposal] = None

    @property
    def approved_proposal(self) -> Optional[QuoteProposal]:
        return None


RiskDecision = Union[Approved, Adjusted, Rejected]

LIMIT_BREACH = "limit breach"
