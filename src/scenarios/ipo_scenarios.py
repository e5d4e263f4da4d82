"""
IPO Scenarios

Rosters for exercising the auction under different demand conditions.
"""

from .base import GameScenario, DEFAULT_PARAMS, BASE_COMPANIES, BASE_STARTING_CAPITAL

SCENARIOS = {
    "default_ipo": GameScenario(
        name="default_ipo",
        description="Four companies, one human and a mixed bot roster",
        parameters={
            **DEFAULT_PARAMS,
        }
    ),
    "oversubscribed": GameScenario(
        name="oversubscribed",
        description="Liquidity scavengers topped up so every offering is oversubscribed",
        parameters={
            **DEFAULT_PARAMS,
            "ENSURE_SCAVENGERS": True,
            "BOT_COMPOSITION": {
                'aggressive': 2,
                'ceo': 2,
                'balanced': 2,
                'momentum': 2,
            },
        }
    ),
    "thin_demand": GameScenario(
        name="thin_demand",
        description="Few conservative bots; expect partial allocations and unsold shares",
        parameters={
            **DEFAULT_PARAMS,
            "HUMANS": [],
            "BOT_COMPOSITION": {
                'conservative': 2,
            },
        }
    ),
    "ceo_race": GameScenario(
        name="ceo_race",
        description="One company and several CEO-seeking bots competing for control",
        parameters={
            **DEFAULT_PARAMS,
            "COMPANIES": BASE_COMPANIES[:1],
            "STARTING_CAPITAL": 2 * BASE_STARTING_CAPITAL,
            "BOT_COMPOSITION": {
                'ceo': 3,
                'scavenger': 2,
            },
        }
    ),
    "bot_only_sweep": GameScenario(
        name="bot_only_sweep",
        description="Bots only, no delays, for headless sweeps",
        parameters={
            **DEFAULT_PARAMS,
            "HUMANS": [],
            "STARTING_CAPITAL": 10 * BASE_STARTING_CAPITAL,
            "PROCESSING_DELAY_SEC": 0.0,
            "BIDDING_WINDOW_SEC": None,
        }
    ),
}
