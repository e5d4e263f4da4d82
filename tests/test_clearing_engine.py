import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from market.company import Company
from market.ipo.bid import Bid
from market.ipo.clearing_engine import Allocation, ClearingEngine


def _bids(company_id, *entries):
    """entries: (participant_id, price, shares) in arrival order"""
    return [
        Bid(participant_id=pid, company_id=company_id, price=price, shares=shares, sequence=i + 1)
        for i, (pid, price, shares) in enumerate(entries)
    ]


@pytest.fixture
def company():
    return Company("c1", "Lemonade Co", 1000)


@pytest.fixture
def engine():
    return ClearingEngine()


def test_marginal_bid_sets_uniform_price(company, engine):
    bids = _bids("c1", ("A", 2.75, 300), ("B", 2.50, 200), ("C", 2.25, 500))

    result = engine.clear(company, bids)

    assert result.clearing_price == pytest.approx(2.25)
    shares = {a.participant_id: a.shares_allocated for a in result.allocations}
    assert shares == {"A": 300, "B": 200, "C": 500}
    costs = {a.participant_id: a.cost for a in result.allocations}
    assert costs["A"] == pytest.approx(675.0)
    assert costs["B"] == pytest.approx(450.0)
    assert costs["C"] == pytest.approx(1125.0)
    assert result.revenue == pytest.approx(2250.0)
    assert result.unsold_shares == 0
    assert result.warnings == []


def test_insufficient_demand_clears_at_lowest_bid(company, engine):
    bids = _bids("c1", ("A", 2.75, 300), ("B", 2.50, 200), ("C", 2.25, 100))

    result = engine.clear(company, bids)

    assert result.clearing_price == pytest.approx(2.25)
    assert result.shares_allocated == 600
    assert result.unsold_shares == 400
    assert len(result.warnings) == 1
    assert all(a.clearing_price == pytest.approx(2.25) for a in result.allocations)


def test_every_share_pays_clearing_price_not_bid_price(engine):
    company = Company("c1", "Juice Corp", 500)
    bids = _bids("c1", ("A", 4.00, 200), ("B", 3.00, 200), ("C", 2.00, 400), ("D", 1.00, 400))

    result = engine.clear(company, bids)

    assert result.clearing_price == pytest.approx(2.00)
    for allocation in result.allocations:
        assert allocation.cost == pytest.approx(allocation.shares_allocated * 2.00)
    assert "D" not in {a.participant_id for a in result.allocations}


def test_oversubscribed_book_allocates_exactly_supply(company, engine):
    bids = _bids("c1", ("A", 3.00, 700), ("B", 2.00, 700), ("C", 1.00, 700))

    result = engine.clear(company, bids)

    assert result.shares_allocated == company.total_shares
    assert result.clearing_price == pytest.approx(2.00)
    assert result.allocation_for("A").shares_allocated == 700
    assert result.allocation_for("B").shares_allocated == 300
    assert result.allocation_for("C") is None
    assert result.oversubscription == pytest.approx(2.1)


def test_tied_marginal_tier_is_split_pro_rata(company, engine):
    bids = _bids("c1", ("A", 2.00, 600), ("B", 1.50, 600), ("C", 1.50, 300))

    result = engine.clear(company, bids)

    assert result.clearing_price == pytest.approx(1.50)
    shares = {a.participant_id: a.shares_allocated for a in result.allocations}
    # 400 left for 900 requested at $1.50: 266.67 / 133.33, leftover share to the larger remainder
    assert shares == {"A": 600, "B": 267, "C": 133}
    assert sum(shares.values()) == 1000


def test_equal_remainders_go_by_arrival_order(engine):
    company = Company("c1", "Lemonade Co", 101)
    bids = _bids("c1", ("first", 1.00, 100), ("second", 1.00, 100))

    result = engine.clear(company, bids)

    shares = {a.participant_id: a.shares_allocated for a in result.allocations}
    assert shares == {"first": 51, "second": 50}


def test_equal_prices_rank_by_arrival(engine):
    bids = [
        Bid("late", "c1", 2.0, 100, sequence=9),
        Bid("early", "c1", 2.0, 100, sequence=3),
        Bid("high", "c1", 2.5, 100, sequence=10),
    ]

    ranked = engine.rank_bids(bids)

    assert [b.participant_id for b in ranked] == ["high", "early", "late"]


def test_no_bids_uses_reference_price(company, engine):
    result = engine.clear(company, [])

    assert result.clearing_price == pytest.approx(company.reference_price)
    assert result.allocations == []
    assert result.unsold_shares == 1000
    assert result.warnings


def test_multi_tier_participant_gets_one_allocation(company, engine):
    bids = _bids("c1", ("bot", 3.00, 300), ("human", 2.50, 500), ("bot", 2.00, 400))

    result = engine.clear(company, bids)

    assert result.clearing_price == pytest.approx(2.00)
    bot = result.allocation_for("bot")
    assert bot.shares_allocated == 500
    assert bot.cost == pytest.approx(1000.0)
    assert len(result.allocations) == 2
    assert len(result.fills) == 3


def test_clearing_does_not_touch_company(company, engine):
    engine.clear(company, _bids("c1", ("A", 2.0, 1000)))

    assert company.shares_allocated == 0
    assert company.clearing_price is None


def test_allocation_rejects_impossible_values():
    with pytest.raises(ValueError):
        Allocation("A", "c1", 0, 1.0)
    with pytest.raises(ValueError):
        Allocation("A", "c1", 10, 0.0)


def test_bid_rejects_impossible_values():
    with pytest.raises(ValueError):
        Bid("A", "c1", 1.0, 0)
    with pytest.raises(ValueError):
        Bid("A", "c1", -1.0, 10)
