from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from agents.bot_profiles import BotProfile
from constants import CASH_MATCHING_TOLERANCE


@dataclass
class PurchaseLot:
    round_number: int
    company_id: str
    shares: int
    price_per_share: float
    total_cost: float
    sequence: int
    transaction_type: str = 'ipo_allocation'


class Participant:
    """A human or bot taking part in one session.

    Cash is only moved at settlement. ``cash + total_spent`` therefore
    equals ``initial_capital`` at every observable point.
    """

    def __init__(self, participant_id: str, name: str, initial_capital: float,
                 is_human: bool = True, profile: Optional[BotProfile] = None):
        if initial_capital < 0:
            raise ValueError(f"Invalid initial_capital: {initial_capital}. Must be non-negative")
        if not is_human and profile is None:
            raise ValueError(f"Bot participant {participant_id} requires a BotProfile")

        self.participant_id = participant_id
        self.name = name
        self.is_human = is_human
        self.profile = profile
        self.initial_capital = float(initial_capital)

        self.cash = float(initial_capital)
        self.total_spent = 0.0
        self.shares: Dict[str, int] = {}
        self.lots: List[PurchaseLot] = []

        # (round_number, company_id) pairs already debited
        self.settled: Set[Tuple[int, str]] = set()

    @property
    def is_bot(self) -> bool:
        return not self.is_human

    @property
    def participant_type(self) -> str:
        """'human' or the bot archetype"""
        if self.is_human:
            return 'human'
        return self.profile.archetype.value

    def shares_of(self, company_id: str) -> int:
        return self.shares.get(company_id, 0)

    def has_settled(self, round_number: int, company_id: str) -> bool:
        return (round_number, company_id) in self.settled

    def first_settlement_sequence(self, company_id: str) -> Optional[int]:
        """Sequence number of the earliest lot bought in a company"""
        sequences = [lot.sequence for lot in self.lots if lot.company_id == company_id]
        return min(sequences) if sequences else None

    def cost_basis(self, company_id: str) -> float:
        return sum(lot.total_cost for lot in self.lots if lot.company_id == company_id)

    def verify_cash_position(self) -> bool:
        """cash + total_spent must match initial capital within a cent"""
        return abs(self.cash + self.total_spent - self.initial_capital) <= CASH_MATCHING_TOLERANCE

    def __repr__(self):
        kind = 'human' if self.is_human else f"bot:{self.profile.archetype.value}"
        return (f"Participant({self.participant_id!r}, {self.name!r}, {kind}, "
                f"cash={self.cash:.2f}, spent={self.total_spent:.2f})")
