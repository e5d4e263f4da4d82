from dataclasses import dataclass, field
from datetime import datetime
from itertools import groupby
from typing import Dict, List, Optional

from constants import FLOAT_TOLERANCE
from market.company import Company
from market.ipo.bid import Bid
from services.logging_service import LoggingService


@dataclass
class Fill:
    """Shares awarded to one bid"""
    bid: Bid
    shares: int

    def __post_init__(self):
        if self.shares < 0 or self.shares > self.bid.shares:
            raise ValueError(f"Fill of {self.shares} shares is impossible for {self.bid}")


@dataclass
class Allocation:
    """
    Shares one participant receives in one company, all charged at the clearing price
    """
    participant_id: str
    company_id: str
    shares_allocated: int
    clearing_price: float
    sequence: int = 0  # arrival sequence of the participant's first filled bid

    def __post_init__(self):
        """Validate allocation data"""
        if self.shares_allocated <= 0:
            raise ValueError("Allocated shares must be positive")
        if self.clearing_price <= 0:
            raise ValueError("Clearing price must be positive")

    @property
    def cost(self) -> float:
        return self.shares_allocated * self.clearing_price

    def to_dict(self):
        return {
            'participant_id': self.participant_id,
            'company_id': self.company_id,
            'shares_allocated': self.shares_allocated,
            'clearing_price': self.clearing_price,
            'cost': self.cost,
        }


@dataclass
class ClearingResult:
    """
    Outcome of one company's uniform-price auction
    """
    company_id: str
    clearing_price: float
    supply: int
    allocations: List[Allocation]
    fills: List[Fill] = field(default_factory=list)
    shares_requested: int = 0
    bids_received: int = 0
    warnings: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.timestamp = datetime.now()

    @property
    def shares_allocated(self) -> int:
        return sum(a.shares_allocated for a in self.allocations)

    @property
    def unsold_shares(self) -> int:
        return self.supply - self.shares_allocated

    @property
    def revenue(self) -> float:
        return sum(a.cost for a in self.allocations)

    @property
    def oversubscription(self) -> float:
        """Requested shares per share offered"""
        if self.supply <= 0:
            return 0.0
        return self.shares_requested / self.supply

    def allocation_for(self, participant_id: str) -> Optional[Allocation]:
        for allocation in self.allocations:
            if allocation.participant_id == participant_id:
                return allocation
        return None

    def to_dict(self):
        return {
            'timestamp': self.timestamp,
            'company_id': self.company_id,
            'clearing_price': self.clearing_price,
            'supply': self.supply,
            'shares_requested': self.shares_requested,
            'shares_allocated': self.shares_allocated,
            'unsold_shares': self.unsold_shares,
            'revenue': self.revenue,
            'bids_received': self.bids_received,
            'allocations': [a.to_dict() for a in self.allocations],
            'warnings': list(self.warnings),
        }


class ClearingEngine:
    """Uniform-price (Dutch) auction for a single company.

    Bids are ranked by price, highest first, with equal prices in arrival
    order. The clearing price is the price of the bid at which cumulative
    demand first covers the supply; every winning share pays that price.
    Bids tied at the clearing price share whatever supply the higher tiers
    left, pro-rata by requested size.

    ``clear`` is pure: it reads the company and the bids and returns a
    ClearingResult without touching any balances.
    """

    def __init__(self, logger=None):
        self.logger = logger or LoggingService.get_logger('clearing')

    @staticmethod
    def rank_bids(bids: List[Bid]) -> List[Bid]:
        """Price descending, then arrival sequence"""
        return sorted(bids, key=lambda b: (-b.price, b.sequence))

    def clear(self, company: Company, bids: List[Bid], supply: Optional[int] = None) -> ClearingResult:
        """Compute the clearing price and allocation for one company.

        Args:
            company: Company being offered
            bids: Every pending bid for the company
            supply: Shares on offer; defaults to the company's unallocated shares

        Returns:
            ClearingResult; degenerate books resolve to a fallback price with a warning
        """
        if supply is None:
            supply = company.remaining_shares
        bids = [b for b in bids if b.company_id == company.company_id]
        requested = sum(b.shares for b in bids)

        if not bids:
            msg = (f"No bids for {company.company_id}; using reference price "
                   f"${company.reference_price:.2f}, {supply} shares unsold")
            self.logger.warning(msg)
            return ClearingResult(company.company_id, company.reference_price, supply, [],
                                  shares_requested=0, bids_received=0, warnings=[msg])

        ranked = self.rank_bids(bids)
        warnings: List[str] = []

        if supply <= 0:
            # Sold out: keep the last traded price, no bid has filled
            price = company.clearing_price if company.is_priced else company.reference_price
            msg = (f"No shares of {company.company_id} left to offer; {len(bids)} bids unfilled, "
                   f"price stays ${price:.2f}")
            self.logger.warning(msg)
            return ClearingResult(company.company_id, price, 0, [],
                                  shares_requested=requested, bids_received=len(bids),
                                  warnings=[msg])

        clearing_price = self._find_clearing_price(ranked, supply)
        if clearing_price is None:
            clearing_price = ranked[-1].price
            msg = (f"Demand for {company.company_id} ({requested} shares) is below supply "
                   f"({supply}); clearing at lowest bid ${clearing_price:.2f}, "
                   f"{supply - requested} shares unsold")
            self.logger.warning(msg)
            warnings.append(msg)

        fills = self._allocate(ranked, supply, clearing_price)
        allocations = self._aggregate(company.company_id, fills, clearing_price)

        result = ClearingResult(
            company_id=company.company_id,
            clearing_price=clearing_price,
            supply=supply,
            allocations=allocations,
            fills=fills,
            shares_requested=requested,
            bids_received=len(bids),
            warnings=warnings,
        )
        self.logger.info(
            f"{company.company_id} cleared at ${clearing_price:.2f}: "
            f"{result.shares_allocated}/{supply} shares to {len(allocations)} participants, "
            f"revenue ${result.revenue:.2f} ({len(bids)} bids, {requested} requested)"
        )
        return result

    @staticmethod
    def _find_clearing_price(ranked: List[Bid], supply: int) -> Optional[float]:
        cumulative = 0
        for bid in ranked:
            cumulative += bid.shares
            if cumulative >= supply:
                return bid.price
        return None

    def _allocate(self, ranked: List[Bid], supply: int, clearing_price: float) -> List[Fill]:
        """Fill every bid priced at or above the clearing price, tier by tier"""
        fills: List[Fill] = []
        remaining = supply
        winners = [b for b in ranked if b.price >= clearing_price - FLOAT_TOLERANCE]

        for _, tier in groupby(winners, key=lambda b: round(b.price, 2)):
            tier = list(tier)
            demand = sum(b.shares for b in tier)
            if demand <= remaining:
                fills.extend(Fill(b, b.shares) for b in tier)
                remaining -= demand
                continue

            if len(tier) > 1:
                self.logger.info(
                    f"{len(tier)} bids tied at ${tier[0].price:.2f} want {demand} shares, "
                    f"{remaining} left; splitting pro-rata"
                )
            fills.extend(self._pro_rata(tier, remaining, demand))
            remaining = 0
            break

        return [f for f in fills if f.shares > 0]

    @staticmethod
    def _pro_rata(tier: List[Bid], available: int, demand: int) -> List[Fill]:
        """Largest-remainder split of ``available`` shares across one price tier.

        Leftover shares go to the largest fractional claims, then arrival order.
        """
        base = {b.sequence: available * b.shares // demand for b in tier}
        leftover = available - sum(base.values())
        by_claim = sorted(tier, key=lambda b: (-(available * b.shares % demand), b.sequence))
        for bid in by_claim[:leftover]:
            base[bid.sequence] += 1
        return [Fill(b, base[b.sequence]) for b in tier]

    @staticmethod
    def _aggregate(company_id: str, fills: List[Fill], clearing_price: float) -> List[Allocation]:
        """One allocation per participant, ordered by their best-ranked fill"""
        allocations: Dict[str, Allocation] = {}
        for fill in fills:
            participant_id = fill.bid.participant_id
            if participant_id in allocations:
                allocation = allocations[participant_id]
                allocation.shares_allocated += fill.shares
                allocation.sequence = min(allocation.sequence, fill.bid.sequence)
            else:
                allocations[participant_id] = Allocation(
                    participant_id=participant_id,
                    company_id=company_id,
                    shares_allocated=fill.shares,
                    clearing_price=clearing_price,
                    sequence=fill.bid.sequence,
                )
        return list(allocations.values())
