from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class RejectionReason(str, Enum):
    INVALID_SHARES = "invalid_shares"
    INVALID_PRICE = "invalid_price"
    UNKNOWN_COMPANY = "unknown_company"
    UNKNOWN_PARTICIPANT = "unknown_participant"
    WRONG_PHASE = "wrong_phase"
    ROUND_IN_FLIGHT = "round_in_flight"
    INSUFFICIENT_CAPITAL = "insufficient_capital"
    OWNERSHIP_CAP_EXCEEDED = "ownership_cap_exceeded"


@dataclass(frozen=True)
class Bid:
    """
    A request to buy ``shares`` of a company at up to ``price`` each.

    Bids live for a single IPO round: created while the round is open,
    consumed by the clearing engine and discarded after allocation.
    """
    participant_id: str
    company_id: str
    price: float
    shares: int
    sequence: int = 0
    submitted_at: datetime = field(default_factory=datetime.now, compare=False)

    def __post_init__(self):
        """Validate bid data"""
        if self.shares <= 0:
            raise ValueError("Bid shares must be positive")
        if self.price <= 0:
            raise ValueError("Bid price must be positive")

    @property
    def cost(self) -> float:
        """Implied cost at the bid's own price"""
        return self.price * self.shares

    def to_dict(self):
        return {
            'participant_id': self.participant_id,
            'company_id': self.company_id,
            'price': self.price,
            'shares': self.shares,
            'cost': self.cost,
            'sequence': self.sequence,
        }

    def __str__(self):
        return (f"Bid: {self.participant_id} {self.shares} {self.company_id} @ ${self.price:.2f}"
                f" (seq {self.sequence})")


@dataclass(frozen=True)
class BidSlot:
    """
    Everything one participant has pending for one company in the current round.

    A human slot holds a single bid; a bot slot may hold several price tiers
    that were generated together. Settlement treats the slot as one unit.
    """
    participant_id: str
    company_id: str
    bids: Tuple[Bid, ...]

    def __post_init__(self):
        if not self.bids:
            raise ValueError("A bid slot needs at least one bid")
        for bid in self.bids:
            if bid.participant_id != self.participant_id or bid.company_id != self.company_id:
                raise ValueError(f"{bid} does not belong to slot "
                                 f"({self.participant_id}, {self.company_id})")

    @property
    def cost(self) -> float:
        return sum(bid.cost for bid in self.bids)

    @property
    def shares(self) -> int:
        return sum(bid.shares for bid in self.bids)


@dataclass
class BidResult:
    accepted: bool
    message: str
    reason: Optional[RejectionReason] = None
    bid: Optional[Bid] = None
    slot: Optional[BidSlot] = None

    @classmethod
    def rejected(cls, reason: RejectionReason, message: str) -> 'BidResult':
        return cls(False, message, reason=reason)
