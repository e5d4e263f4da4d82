"""
Scenarios Package

Named game configurations for headless IPO runs.

- get_scenario(name): Get a scenario by name
- list_scenarios(): List all available scenarios
"""

from typing import Dict
from .base import GameScenario, DEFAULT_PARAMS

from . import ipo_scenarios

SCENARIOS = {
    **ipo_scenarios.SCENARIOS,
}


def get_scenario(scenario_name: str) -> GameScenario:
    """Get a scenario by name"""
    if scenario_name not in SCENARIOS:
        raise ValueError(f"Unknown scenario: {scenario_name}. Available scenarios: {list(SCENARIOS.keys())}")
    return SCENARIOS[scenario_name]


def list_scenarios() -> Dict[str, str]:
    """List all available scenarios and their descriptions"""
    return {name: scenario.description for name, scenario in SCENARIOS.items()}
