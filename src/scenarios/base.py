from typing import Any, Dict

from agents.bot_profiles import DEFAULT_REGISTRY
from agents.bot_roster import bot_identity
from constants import DEFAULT_LOT_SIZE, DEFAULT_STARTING_CAPITAL, DEFAULT_TOTAL_SHARES, PRICE_TICK
from market.engine.engine_api import CompanySpec, ParticipantSpec


class GameScenario:
    """
    A named game configuration.

    Attributes:
        name (str): The unique name of the scenario.
        description (str): A brief description of what the scenario exercises.
        parameters (Dict[str, Any]): Engine settings plus company, human and bot rosters.
    """
    def __init__(self, name: str, description: str, parameters: Dict[str, Any]):
        self.name = name
        self.description = description
        self.parameters = parameters
        self._validate_rosters()

    def _validate_rosters(self):
        params = self.parameters
        if not params.get("COMPANIES"):
            raise ValueError(f"Scenario {self.name} defines no companies")
        for archetype in params.get("BOT_COMPOSITION", {}):
            if archetype not in DEFAULT_REGISTRY:
                raise ValueError(f"Scenario {self.name} uses unknown bot archetype: {archetype}")

    def company_specs(self):
        return [CompanySpec(**c) for c in self.parameters["COMPANIES"]]

    def participant_specs(self):
        """Humans first, then bots numbered per archetype"""
        specs = [ParticipantSpec(**h) for h in self.parameters.get("HUMANS", [])]
        for archetype, count in self.parameters.get("BOT_COMPOSITION", {}).items():
            profile = DEFAULT_REGISTRY.get(archetype)
            for number in range(1, count + 1):
                participant_id, name = bot_identity(profile, number)
                specs.append(ParticipantSpec(
                    participant_id=participant_id,
                    display_name=name,
                    is_human=False,
                    bot_profile=profile.archetype,
                ))
        return specs


# Base constants
BASE_STARTING_CAPITAL = DEFAULT_STARTING_CAPITAL
BASE_TOTAL_SHARES = DEFAULT_TOTAL_SHARES

BASE_COMPANIES = [
    {"company_id": "company_1", "name": "Lemonade Co", "total_shares": BASE_TOTAL_SHARES},
    {"company_id": "company_2", "name": "Citrus Dreams Co.", "total_shares": BASE_TOTAL_SHARES},
    {"company_id": "company_3", "name": "Golden Squeeze Inc.", "total_shares": BASE_TOTAL_SHARES},
    {"company_id": "company_4", "name": "Juice Corp", "total_shares": BASE_TOTAL_SHARES},
]

# Default parameters that can be overridden by specific scenarios
DEFAULT_PARAMS = {
    # Core parameters
    "RANDOM_SEED": 42,
    "STARTING_CAPITAL": BASE_STARTING_CAPITAL,

    # Rosters
    "COMPANIES": BASE_COMPANIES,
    "HUMANS": [
        {"participant_id": "player_1", "display_name": "Player 1"},
    ],
    "BOT_COMPOSITION": {
        'aggressive': 1,
        'conservative': 1,
        'ceo': 1,
        'balanced': 1,
        'momentum': 1,
        'scavenger': 2,
    },
    "ENSURE_SCAVENGERS": False,  # Top up to max(5, 2 x companies) scavenger bots

    # Bot bid generation
    "LOT_SIZE": DEFAULT_LOT_SIZE,
    "PRICE_TICK": PRICE_TICK,
    "PRICE_JITTER": 0.20,

    # Timing
    "PROCESSING_DELAY_SEC": 3.0,
    "CLEARING_TIMEOUT_SEC": 30.0,
    "BIDDING_WINDOW_SEC": 120.0,  # None disables the auto-close timer
}
