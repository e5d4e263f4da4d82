from typing import Dict, List

from pydantic import BaseModel, Field, model_validator

from agents.bot_profiles import BotArchetype
from constants import DEFAULT_REFERENCE_PRICE, DEFAULT_TOTAL_SHARES


class CompanySpec(BaseModel):
    """Company roster entry supplied by the session layer"""
    company_id: str
    name: str
    total_shares: int = Field(default=DEFAULT_TOTAL_SHARES, gt=0)
    reference_price: float = Field(default=DEFAULT_REFERENCE_PRICE, gt=0)


class ParticipantSpec(BaseModel):
    """Participant roster entry supplied by the session layer.

    Fields:
        participant_id: Stable id used in bids and the ledger
        display_name: Name shown in reports
        is_human: Humans bid through submit_bid, bots through the generator
        capital: Starting capital; None uses the engine's starting capital
        bot_profile: Archetype of a bot participant
    """
    participant_id: str
    display_name: str
    is_human: bool = True
    capital: float | None = Field(default=None, ge=0)
    bot_profile: BotArchetype | None = None

    @model_validator(mode='after')
    def validate_profile(self):
        """Bots need a profile, humans must not have one"""
        if not self.is_human and self.bot_profile is None:
            raise ValueError(f"Bot {self.participant_id} requires a bot_profile")
        if self.is_human and self.bot_profile is not None:
            raise ValueError(f"Human {self.participant_id} cannot have a bot_profile")
        return self


class AllocationReport(BaseModel):
    participant_id: str
    participant_name: str
    shares_allocated: int
    cost: float


class CompanyReport(BaseModel):
    """Per-company newspaper headline for one IPO round"""
    company_id: str
    name: str
    clearing_price: float
    shares_offered: int
    shares_sold: int
    unsold_shares: int
    oversubscription: float
    ceo_id: str | None = None
    ceo_name: str | None = None
    allocations: List[AllocationReport] = []
    warnings: List[str] = []


class RoundCompletion(BaseModel):
    """Notification published once per settled IPO round"""
    session_id: str
    round_number: int
    forced: bool = False
    companies: List[CompanyReport]
    violations: List[str] = []

    @classmethod
    def from_round(cls, session, round_result) -> 'RoundCompletion':
        companies = []
        for company_id, result in round_result.results.items():
            company = session.get_company(company_id)
            ceo = session.participants.get(company.ceo_id) if company.ceo_id else None
            companies.append(CompanyReport(
                company_id=company_id,
                name=company.name,
                clearing_price=result.clearing_price,
                shares_offered=result.supply,
                shares_sold=result.shares_allocated,
                unsold_shares=result.unsold_shares,
                oversubscription=result.oversubscription,
                ceo_id=company.ceo_id,
                ceo_name=ceo.name if ceo else None,
                allocations=[
                    AllocationReport(
                        participant_id=a.participant_id,
                        participant_name=session.participants[a.participant_id].name,
                        shares_allocated=a.shares_allocated,
                        cost=a.cost,
                    )
                    for a in result.allocations
                ],
                warnings=list(result.warnings),
            ))
        return cls(
            session_id=round_result.session_id,
            round_number=round_result.round_number,
            forced=round_result.forced,
            companies=companies,
            violations=[str(v) for v in round_result.violations],
        )


class LedgerEntry(BaseModel):
    cash: float
    total_spent: float
    shares: Dict[str, int]
    net_worth: float
