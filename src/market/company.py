from dataclasses import dataclass, field
from typing import Optional

from constants import DEFAULT_REFERENCE_PRICE


@dataclass
class Company:
    """
    A company whose fixed share supply is sold once through the IPO auction
    """
    company_id: str
    name: str
    total_shares: int
    reference_price: float = DEFAULT_REFERENCE_PRICE
    clearing_price: Optional[float] = None
    shares_allocated: int = 0
    ceo_id: Optional[str] = None
    ipo_round: Optional[int] = field(default=None, repr=False)

    def __post_init__(self):
        """Validate company data"""
        if self.total_shares <= 0:
            raise ValueError(f"Company {self.company_id} must have a positive share supply")
        if self.reference_price <= 0:
            raise ValueError(f"Company {self.company_id} reference price must be positive")

    @property
    def remaining_shares(self) -> int:
        return self.total_shares - self.shares_allocated

    @property
    def is_priced(self) -> bool:
        return self.clearing_price is not None

    def set_clearing_price(self, price: float, round_number: int):
        """Fix the IPO clearing price; it is set once per IPO round"""
        if self.ipo_round == round_number and self.clearing_price is not None:
            raise ValueError(
                f"Clearing price for {self.company_id} already set in round {round_number}"
            )
        self.clearing_price = price
        self.reference_price = price
        self.ipo_round = round_number

    def ownership_fraction(self, shares: int) -> float:
        return shares / self.total_shares

    def to_dict(self):
        return {
            'company_id': self.company_id,
            'name': self.name,
            'total_shares': self.total_shares,
            'reference_price': self.reference_price,
            'clearing_price': self.clearing_price,
            'shares_allocated': self.shares_allocated,
            'ceo_id': self.ceo_id,
        }
