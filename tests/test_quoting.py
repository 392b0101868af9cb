"""
Tests for quote construction in hlmm/quoting.py.

Tests cover:
- Baseline symmetric quote around TWAP
- Volatility widening and size reduction
- Aggressive skew against order-flow pressure
- Tick snapping, positivity and never-crossed output
- Holding while data is insufficient
"""
import math

import pytest

from hlmm.errors import InternalInvariantViolation
from hlmm.models import Side, SignalSnapshot
from hlmm.quoting import QuoteLayerManager
from hlmm.types import QuoteConfig
from tests.conftest import T0


def snap(twap=100.0, mid=100.0, vol=0.0, norm_slide=0.0, fill=0.0, aggressive=False, ts=T0):
    return SignalSnapshot(
        trend=0.0, twap=twap, slide=norm_slide, norm_slide=norm_slide, fill_score=fill,
        deviation=0.0, volatility=vol, aggressive=aggressive, timestamp_ms=ts, mid=mid,
    )


class TestBaselineQuote:
    """Calm market, no pressure."""

    @pytest.mark.unit
    def test_symmetric_quote_around_twap(self):
        """Test the calm-market quote around TWAP."""
        pair = QuoteLayerManager(QuoteConfig(min_spread=1.0)).propose(snap())

        assert pair.bid.side is Side.BUY
        assert pair.ask.side is Side.SELL
        assert pair.bid.price == pytest.approx(99.5)
        assert pair.ask.price == pytest.approx(100.5)
        assert pair.bid.size == pytest.approx(1.0)
        assert pair.ask.size == pytest.approx(1.0)
        assert pair.bid.source_snapshot_ts_ms == T0

    @pytest.mark.unit
    def test_propose_is_pure(self):
        """Test that propose does not change state."""
        quoter = QuoteLayerManager(QuoteConfig())
        s = snap(vol=12.0, fill=0.3)
        assert quoter.propose(s) == quoter.propose(s)

    @pytest.mark.unit
    def test_explicit_timestamp(self):
        """Test that proposals carry the given timestamp."""
        pair = QuoteLayerManager(QuoteConfig()).propose(snap(), ts_ms=T0 + 7)
        assert pair.bid.timestamp_ms == T0 + 7
        assert pair.bid.source_snapshot_ts_ms == T0


class TestInsufficientData:
    """No quote until TWAP and mid both exist."""

    @pytest.mark.unit
    @pytest.mark.parametrize("twap,mid", [(math.nan, 100.0), (100.0, math.nan), (math.nan, math.nan)])
    def test_hold(self, twap, mid):
        """Test that an insufficient snapshot yields no quote."""
        assert QuoteLayerManager(QuoteConfig()).propose(snap(twap=twap, mid=mid)) is None

    @pytest.mark.unit
    def test_empty_snapshot(self):
        """Test proposing from the initial empty snapshot."""
        assert QuoteLayerManager(QuoteConfig()).propose(SignalSnapshot.empty()) is None


class TestVolatility:
    """Spread widens and size shrinks with volatility."""

    @pytest.mark.unit
    def test_spread_widens(self):
        """Test spread widening with volatility."""
        quoter = QuoteLayerManager(QuoteConfig(min_spread=1.0, spread_vol_k=0.1, max_spread_mult=3.0))
        assert quoter.spread(snap(vol=0.0)) == pytest.approx(1.0)
        assert quoter.spread(snap(vol=10.0)) == pytest.approx(2.0)
        assert quoter.spread(snap(vol=1000.0)) == pytest.approx(3.0)

    @pytest.mark.unit
    def test_size_shrinks_and_is_clamped(self):
        """Test size reduction with volatility and its floor."""
        quoter = QuoteLayerManager(QuoteConfig(base_size=1.0, size_vol_k=0.1, min_size=0.5, max_size=2.0))
        assert quoter.size(snap(vol=5.0)) == pytest.approx(1.0 / 1.5)
        assert quoter.size(snap(vol=1000.0)) == pytest.approx(0.5)

    @pytest.mark.unit
    def test_size_grows_with_fill_score(self):
        """Test size increase with fill score."""
        quoter = QuoteLayerManager(QuoteConfig(base_size=1.0, size_fill_k=1.0, max_size=2.0))
        assert quoter.size(snap(fill=0.5)) == pytest.approx(1.5)


class TestAggressiveSkew:
    """Aggressive mode leans the centre against order-flow pressure."""

    @pytest.mark.unit
    def test_buy_pressure_moves_quotes_down(self):
        """Test skew under aggressive buy-side slide."""
        quoter = QuoteLayerManager(QuoteConfig(min_spread=1.0, skew_fraction=0.25))
        pair = quoter.propose(snap(norm_slide=0.8, fill=0.9, aggressive=True))

        assert pair.bid.price == pytest.approx(99.25)
        assert pair.ask.price == pytest.approx(100.25)

    @pytest.mark.unit
    def test_sell_pressure_moves_quotes_up(self):
        """Test skew under aggressive sell-side slide."""
        quoter = QuoteLayerManager(QuoteConfig(min_spread=1.0, skew_fraction=0.25))
        pair = quoter.propose(snap(norm_slide=-0.8, fill=0.9, aggressive=True))

        assert pair.bid.price == pytest.approx(99.75)
        assert pair.ask.price == pytest.approx(100.75)

    @pytest.mark.unit
    def test_no_skew_when_not_aggressive(self):
        """Test that non-aggressive signals leave the center at TWAP."""
        quoter = QuoteLayerManager(QuoteConfig(min_spread=1.0))
        pair = quoter.propose(snap(norm_slide=0.9, fill=0.9, aggressive=False))
        assert pair.bid.price == pytest.approx(99.5)


class TestPriceSafety:
    """Ticks, positivity and the no-cross guarantee."""

    @pytest.mark.unit
    def test_tick_snapping_widens_outward(self):
        """Test tick rounding away from the center."""
        quoter = QuoteLayerManager(QuoteConfig(min_spread=1.0, tick_size=0.2))
        pair = quoter.propose(snap(twap=100.05))

        assert pair.bid.price == pytest.approx(99.4)
        assert pair.ask.price == pytest.approx(100.6)

    @pytest.mark.unit
    def test_bid_clamped_positive(self):
        """Test that the bid never goes below one tick."""
        quoter = QuoteLayerManager(QuoteConfig(min_spread=1.0, min_price=0.01))
        pair = quoter.propose(snap(twap=0.2, mid=0.2))

        assert pair.bid.price == pytest.approx(0.01)
        assert pair.ask.price > pair.bid.price

    @pytest.mark.unit
    def test_never_crossed(self):
        """Test that bid stays below ask across signal values."""
        quoter = QuoteLayerManager(QuoteConfig(min_spread=0.01, tick_size=0.5))
        for twap in (0.3, 1.0, 99.99, 100.0, 12345.67):
            for vol in (0.0, 50.0):
                for slide in (-1.0, 0.0, 1.0):
                    pair = quoter.propose(snap(twap=twap, mid=twap, vol=vol, norm_slide=slide,
                                               fill=0.9, aggressive=slide != 0.0))
                    assert 0 < pair.bid.price < pair.ask.price
                    assert pair.bid.size > 0 and pair.ask.size > 0

    @pytest.mark.unit
    def test_non_finite_twap_is_invariant_violation(self):
        """Test that a non-finite center raises InternalInvariantViolation."""
        quoter = QuoteLayerManager(QuoteConfig())
        with pytest.raises(InternalInvariantViolation):
            quoter.propose(snap(twap=math.inf, mid=100.0))
