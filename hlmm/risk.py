"""
Position-risk gate and inventory bookkeeping.

RiskManager owns the InventoryLedger. ``evaluate`` reads it, ``report_fill``
writes it, and both run under one lock so a limit check never interleaves
with a position update.

Decision Policy:
    post = net_position + side.sign * size   (assume the proposal fills in full)
    -max_short <= post <= max_long          → Approved
    limit would be breached, headroom left  → Adjusted to the headroom
    no headroom (at or past the limit)      → Rejected("limit breach")

Fill Policy:
    Fills are applied as reported: the core assumes an instant, complete
    fill at the reported price (see trading.InstantFillPolicy). Partial
    fills, latency and fill probability belong to whatever reports fills.
"""
import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import MalformedInput
from .logging import JsonlLogger, log_at
from .models import LIMIT_BREACH, Adjusted, Approved, QuoteProposal, Rejected, RiskDecision, Side
from .types import RiskConfig
from .utils import is_finite

# Float slack when comparing a position to a limit
EPS = 1e-9


@dataclass
class InventoryLedger:
    """Net position and weighted-average entry price for one instrument.

    Attributes:
        net_position: Signed size, positive = long
        avg_entry_price: Weighted average cost of the open position, 0.0 when flat
        max_long_limit: Largest permitted long position
        max_short_limit: Largest permitted short position (positive number)
        cash: Quote-currency balance change from fills (buys spend, sells receive)
        n_fills: Fills applied
    """
    net_position: float = 0.0
    avg_entry_price: float = 0.0
    max_long_limit: float = 5.0
    max_short_limit: float = 5.0
    cash: float = 0.0
    n_fills: int = 0

    def headroom(self, side: Side) -> float:
        """Size that can still be filled on ``side`` before hitting its limit."""
        if side is Side.BUY:
            return self.max_long_limit - self.net_position
        return self.net_position + self.max_short_limit

    def within_limits(self, position: Optional[float] = None) -> bool:
        q = self.net_position if position is None else position
        return -self.max_short_limit - EPS <= q <= self.max_long_limit + EPS

    def unrealized_pnl(self, mark: float) -> float:
        return (mark - self.avg_entry_price) * self.net_position if self.net_position else 0.0

    def apply_fill(self, side: Side, price: float, size: float) -> None:
        """Weighted-average-cost update.

        Same-side fills average in; opposite-side fills reduce first; a fill
        larger than the open position flips it and re-bases the average at
        the fill price.
        """
        q = self.net_position
        signed = side.sign * size
        new_q = q + signed

        if q == 0 or (q > 0) == (signed > 0):
            self.avg_entry_price = (abs(q) * self.avg_entry_price + size * price) / (abs(q) + size)
        elif abs(new_q) <= EPS:
            new_q = 0.0
            self.avg_entry_price = 0.0
        elif (new_q > 0) != (q > 0):
            self.avg_entry_price = price
        # else: partial reduction keeps the entry price

        self.net_position = new_q
        self.cash -= signed * price
        self.n_fills += 1


class RiskManager:
    """Approves, shrinks or rejects quote proposals against inventory limits."""

    def __init__(self, cfg: RiskConfig, logger: JsonlLogger, ledger: Optional[InventoryLedger] = None):
        if cfg.max_long < 0 or cfg.max_short < 0:
            raise ValueError("position limits must be non-negative")
        self.cfg = cfg
        self.logger = logger
        if ledger is None:
            ledger = InventoryLedger(max_long_limit=cfg.max_long, max_short_limit=cfg.max_short)
        self.ledger = ledger
        self._lock = threading.Lock()

    def evaluate(self, proposal: QuoteProposal, ledger: Optional[InventoryLedger] = None) -> RiskDecision:
        """Decide on one proposal. Never mutates the ledger, so repeated calls agree."""
        with self._lock:
            return self._decide(proposal, self.ledger if ledger is None else ledger)

    def evaluate_pair(self, bid: QuoteProposal, ask: QuoteProposal) -> Tuple[RiskDecision, RiskDecision]:
        """Evaluate both legs against the same ledger state."""
        with self._lock:
            return self._decide(bid, self.ledger), self._decide(ask, self.ledger)

    def _decide(self, proposal: QuoteProposal, ledger: InventoryLedger) -> RiskDecision:
        post = ledger.net_position + proposal.side.sign * proposal.size
        if ledger.within_limits(post):
            return Approved(proposal)

        # Past the opposite limit already: a leg that stays inside its own limit only reduces exposure.
        headroom = ledger.headroom(proposal.side)
        if headroom >= proposal.size - EPS:
            return Approved(proposal)
        new_size = min(headroom, proposal.size)
        if new_size > max(EPS, self.cfg.min_order_size):
            return Adjusted(proposal.with_size(new_size), original_size=proposal.size)
        return Rejected(LIMIT_BREACH, proposal)

    def report_fill(self, side, price: float, size: float) -> InventoryLedger:
        """Apply a completed fill to the ledger and return it.

        Raises:
            MalformedInput: non-finite or non-positive price/size, unknown side.
        """
        if not is_finite(price, size) or float(price) <= 0 or float(size) <= 0:
            raise MalformedInput(f"invalid fill: price={price!r} size={size!r}")
        try:
            side = Side.parse(side)
        except ValueError as e:
            raise MalformedInput(str(e)) from None

        with self._lock:
            self.ledger.apply_fill(side, float(price), float(size))
            state = self.position()
            breached = not self.ledger.within_limits()

        self.logger.write("fill", {"side": side.value, "price": float(price), "size": float(size), **state})
        if breached:
            log_at(self.logger, "WARNING", "inventory_limit_breach", state)
        return self.ledger

    def position(self) -> dict:
        return {
            "net_position": self.ledger.net_position,
            "avg_entry_price": self.ledger.avg_entry_price,
            "cash": self.ledger.cash,
        }

    @staticmethod
    def summarize(decisions: List[RiskDecision]) -> List[dict]:
        """Loggable view of a batch of decisions."""
        out = []
        for d in decisions:
            if isinstance(d, Approved):
                out.append({"decision": "approved", **d.proposal.as_dict()})
            elif isinstance(d, Adjusted):
                out.append({"decision": "adjusted", "original_size": d.original_size, **d.proposal.as_dict()})
            else:
                rec = {"decision": "rejected", "reason": d.reason}
                if d.proposal is not None:
                    rec.update(d.proposal.as_dict())
                out.append(rec)
        return out
