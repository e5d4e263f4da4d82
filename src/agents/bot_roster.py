from collections import Counter
from typing import Dict, List, Optional, Tuple

from agents.bot_profiles import DEFAULT_REGISTRY, BotArchetype, BotProfile, BotProfileRegistry
from agents.participant import Participant
from constants import DEFAULT_STARTING_CAPITAL
from services.logging_service import LoggingService

MIN_SCAVENGERS = 5


def bot_identity(profile: BotProfile, number: int) -> Tuple[str, str]:
    """(participant_id, personality-based display name), e.g. ('bot_scavenger_2', 'Scavenger Bot #2')"""
    return f"bot_{profile.archetype.value}_{number}", f"{profile.display_name} #{number}"


def build_bots(composition: Dict[str, int],
               initial_capital: float = DEFAULT_STARTING_CAPITAL,
               registry: Optional[BotProfileRegistry] = None,
               existing: Optional[List[Participant]] = None) -> List[Participant]:
    """Create bot participants from an archetype -> count mapping.

    Numbering continues from any bots of the same archetype in ``existing``.
    """
    registry = registry or DEFAULT_REGISTRY
    counts = Counter(p.profile.archetype for p in (existing or []) if p.is_bot)
    bots = []
    for archetype_name, count in composition.items():
        profile = registry.get(archetype_name)
        if count < 0:
            raise ValueError(f"Invalid bot count for {archetype_name}: {count}")
        for _ in range(count):
            counts[profile.archetype] += 1
            participant_id, name = bot_identity(profile, counts[profile.archetype])
            bots.append(Participant(
                participant_id=participant_id,
                name=name,
                initial_capital=initial_capital,
                is_human=False,
                profile=profile,
            ))
    return bots


def required_scavengers(num_companies: int) -> int:
    """Enough floor bidders to oversubscribe every offering"""
    return max(MIN_SCAVENGERS, 2 * num_companies)


def ensure_scavengers(participants: List[Participant], num_companies: int,
                      initial_capital: float = DEFAULT_STARTING_CAPITAL,
                      registry: Optional[BotProfileRegistry] = None) -> List[Participant]:
    """Return the scavenger bots that must be added to reach the liquidity minimum"""
    existing = sum(
        1 for p in participants
        if p.is_bot and p.profile.archetype == BotArchetype.SCAVENGER
    )
    missing = required_scavengers(num_companies) - existing
    if missing <= 0:
        return []
    LoggingService.get_logger('bots').info(
        f"Creating {missing} scavenger bots for oversubscription ({existing} present)"
    )
    return build_bots({BotArchetype.SCAVENGER.value: missing}, initial_capital,
                      registry=registry, existing=participants)
