import math
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from conftest import make_bot, make_session, open_round
from agents.bot_bid_generator import BotBidGenerator
from agents.bot_profiles import BOT_PROFILES, BotArchetype, BotProfile
from market.company import Company
from market.ipo.bid_collector import BidCollector


def _roster(total_shares=1000):
    return [Company(f"c{i}", f"Company {i}", total_shares) for i in range(1, 5)]


@pytest.mark.parametrize("archetype", list(BotArchetype))
def test_plans_respect_profile_bounds(archetype):
    profile = BOT_PROFILES[archetype]
    bot = make_bot("bot", archetype.value, capital=5000.0)
    session = make_session(companies=_roster(), participants=[bot])

    for seed in range(20):
        generator = BotBidGenerator(seed=seed)
        plans = generator.generate_bids(bot, session, 5000.0)

        assert 1 <= len(plans) <= 4
        assert len({p.company_id for p in plans}) == len(plans)
        assert sum(p.cost for p in plans) <= 5000.0 + 1e-6
        for plan in plans:
            assert plan.shares <= math.floor(profile.ownership_cap_pct * 1000)
            for price, shares in plan.tiers:
                assert type(price) is float and type(shares) is int
                assert profile.min_price <= price <= profile.max_price
                assert shares >= 100 and shares % 100 == 0
                # on the quarter tick unless clamped to a profile bound
                on_tick = abs(price / 0.25 - round(price / 0.25)) < 1e-9
                assert on_tick or price in (profile.min_price, profile.max_price)


def test_company_count_follows_concentration():
    generator = BotBidGenerator(seed=1)

    assert generator.companies_to_bid_on(BOT_PROFILES[BotArchetype.SCAVENGER]) == 4
    assert generator.companies_to_bid_on(BOT_PROFILES[BotArchetype.CEO]) == 1
    assert generator.companies_to_bid_on(BOT_PROFILES[BotArchetype.AGGRESSIVE]) == 3


def test_single_company_session_limits_selection():
    bot = make_bot("bot", "scavenger", capital=1000.0)
    session = make_session(companies=[Company("c1", "Lemonade Co", 1000)], participants=[bot])

    plans = BotBidGenerator(seed=3).generate_bids(bot, session, 1000.0)

    assert [p.company_id for p in plans] == ["c1"]


def test_ownership_cap_binds_over_budget():
    profile = BotProfile(archetype=BotArchetype.BALANCED, concentration=1.0, ownership_cap_pct=0.20,
                         min_price=1.0, max_price=3.0, ipo_price_range=(2.0, 2.0), deployment=0.95)
    bot = make_bot("bot", "balanced", capital=1000.0, profile=profile)
    session = make_session(companies=[Company("c1", "Lemonade Co", 1000)], participants=[bot])

    for seed in range(10):
        plans = BotBidGenerator(price_jitter=0.0, seed=seed).generate_bids(bot, session, 1000.0)
        assert sum(p.shares for p in plans) <= 200


def test_no_capital_no_bids():
    bot = make_bot("bot", "balanced", capital=1000.0)
    session = make_session(companies=_roster(), participants=[bot])

    assert BotBidGenerator(seed=0).generate_bids(bot, session, 0.0) == []
    # Not enough for a single lot at the profile's floor price
    assert BotBidGenerator(seed=0).generate_bids(bot, session, 50.0) == []


def test_humans_are_refused(session):
    with pytest.raises(ValueError):
        BotBidGenerator(seed=0).generate_bids(session.get_participant("alice"), session, 100.0)


def test_same_seed_same_plans():
    bot = make_bot("bot", "momentum", capital=5000.0)
    session = make_session(companies=_roster(), participants=[bot])

    first = BotBidGenerator(rng=np.random.default_rng(11)).generate_bids(bot, session, 5000.0)
    second = BotBidGenerator(rng=np.random.default_rng(11)).generate_bids(bot, session, 5000.0)

    assert [(p.company_id, p.tiers) for p in first] == [(p.company_id, p.tiers) for p in second]


@pytest.mark.parametrize("archetype", list(BotArchetype))
def test_bots_deploy_most_of_their_capital(archetype):
    """With caps far from binding, bots commit at least ~70% of capital"""
    bot = make_bot("bot", archetype.value, capital=10000.0)
    session = make_session(companies=_roster(total_shares=100000), participants=[bot])
    generator = BotBidGenerator(rng=np.random.default_rng(2024))

    deployments = []
    for _ in range(30):
        plans = generator.generate_bids(bot, session, 10000.0)
        deployments.append(sum(p.cost for p in plans) / 10000.0)

    assert min(deployments) >= 0.70
    assert np.mean(deployments) >= 0.75


def test_generated_plans_pass_collector_validation():
    bots = [make_bot(f"bot_{a.value}", a.value) for a in BotArchetype]
    session = open_round(make_session(companies=_roster(), participants=bots))
    session.bidding_open = False

    results = BidCollector(session).collect_bot_bids(BotBidGenerator(seed=5))

    for bot_results in results.values():
        assert all(r.accepted for r in bot_results), [r.message for r in bot_results if not r.accepted]
    for bot in bots:
        assert session.pending_cost(bot.participant_id) <= bot.initial_capital + 1e-6
