from typing import Dict, List, Mapping, Optional

from agents.participant import Participant, PurchaseLot
from constants import CEO_THRESHOLD, FLOAT_TOLERANCE
from market.company import Company
from market.ipo.clearing_engine import ClearingResult
from market.state.session import Session
from services.logging_service import LoggingService


class LedgerAccountant:
    """Applies IPO allocations to balances and derives net worth and CEO status.

    Each (round, company) allocation debits a participant exactly once;
    replaying a settlement is a logged no-op. All mutations happen under
    the session lock.
    """

    def __init__(self, session: Session, ceo_threshold: float = CEO_THRESHOLD, logger=None):
        self.session = session
        self.ceo_threshold = ceo_threshold
        self.logger = logger or LoggingService.get_logger('ledger')

    def apply_allocation(self, participant: Participant, company: Company, shares: int,
                         clearing_price: float, round_number: Optional[int] = None) -> bool:
        """Debit ``shares * clearing_price`` and credit the shares.

        Returns:
            True if applied, False if this (round, company) was already settled for the participant
        """
        if shares <= 0:
            raise ValueError(f"Cannot apply an allocation of {shares} shares")
        if clearing_price <= 0:
            raise ValueError(f"Cannot apply an allocation at price {clearing_price}")
        if round_number is None:
            round_number = self.session.round_number

        with self.session.lock:
            key = (round_number, company.company_id)
            if key in participant.settled:
                self.logger.warning(
                    f"Ignoring replayed allocation for {participant.participant_id} "
                    f"on {company.company_id} in round {round_number}"
                )
                return False
            if company.shares_allocated + shares > company.total_shares:
                raise ValueError(
                    f"Allocating {shares} shares of {company.company_id} would exceed its "
                    f"supply of {company.total_shares} ({company.shares_allocated} already allocated)"
                )

            cost = shares * clearing_price
            participant.cash -= cost
            participant.total_spent += cost
            participant.shares[company.company_id] = participant.shares_of(company.company_id) + shares
            participant.lots.append(PurchaseLot(
                round_number=round_number,
                company_id=company.company_id,
                shares=shares,
                price_per_share=clearing_price,
                total_cost=cost,
                sequence=self.session.next_settlement_sequence(),
            ))
            participant.settled.add(key)
            company.shares_allocated += shares

        self.logger.info(
            f"{participant.name} bought {shares} {company.company_id} @ ${clearing_price:.2f} "
            f"= ${cost:.2f}; cash ${participant.cash:.2f}"
        )
        return True

    def settle(self, result: ClearingResult, round_number: Optional[int] = None) -> int:
        """Apply a company's clearing result and refresh its CEO.

        Returns:
            Number of allocations newly applied
        """
        if round_number is None:
            round_number = self.session.round_number
        company = self.session.get_company(result.company_id)
        applied = 0
        with self.session.lock:
            # A round with no fills does not reprice an already priced company
            repriced = result.shares_allocated > 0 or not company.is_priced
            if repriced and company.ipo_round != round_number:
                company.set_clearing_price(result.clearing_price, round_number)
            for allocation in result.allocations:
                participant = self.session.get_participant(allocation.participant_id)
                if self.apply_allocation(participant, company, allocation.shares_allocated,
                                         result.clearing_price, round_number):
                    applied += 1
            self.update_ceo(company)
        return applied

    def ownership(self, participant: Participant, company: Company) -> float:
        return company.ownership_fraction(participant.shares_of(company.company_id))

    def net_worth(self, participant: Participant, prices: Optional[Mapping[str, float]] = None) -> float:
        """cash + shares valued at reference prices (or the supplied external prices)"""
        total = participant.cash
        for company_id, shares in participant.shares.items():
            total += shares * self._price_of(company_id, prices)
        return total

    def _price_of(self, company_id: str, prices: Optional[Mapping[str, float]]) -> float:
        if prices is not None and company_id in prices:
            return prices[company_id]
        return self.session.get_company(company_id).reference_price

    def ceo_candidates(self, company: Company) -> List[Participant]:
        return [
            p for p in self.session.participants.values()
            if self.ownership(p, company) >= self.ceo_threshold - FLOAT_TOLERANCE
        ]

    def determine_ceo(self, company: Company) -> Optional[str]:
        """Highest ownership fraction wins; ties go to the earliest settled purchase"""
        candidates = self.ceo_candidates(company)
        if not candidates:
            return None
        if len(candidates) > 1:
            self.logger.warning(
                f"{len(candidates)} holders qualify as CEO of {company.company_id}: "
                f"{[p.participant_id for p in candidates]}"
            )
        winner = min(
            candidates,
            key=lambda p: (-p.shares_of(company.company_id),
                           p.first_settlement_sequence(company.company_id) or 0),
        )
        return winner.participant_id

    def is_ceo(self, company: Company, participant: Participant) -> bool:
        return self.determine_ceo(company) == participant.participant_id

    def update_ceo(self, company: Company) -> Optional[str]:
        ceo_id = self.determine_ceo(company)
        if ceo_id != company.ceo_id:
            self.logger.info(f"CEO of {company.company_id}: {company.ceo_id} -> {ceo_id}")
            company.ceo_id = ceo_id
        return ceo_id

    def position_summary(self, participant: Participant,
                         prices: Optional[Mapping[str, float]] = None) -> Dict:
        """Per-company cost basis, market value and unrealized P&L"""
        positions = {}
        for company_id, shares in participant.shares.items():
            if shares == 0:
                continue
            cost_basis = participant.cost_basis(company_id)
            market_value = shares * self._price_of(company_id, prices)
            positions[company_id] = {
                'shares': shares,
                'cost_basis': cost_basis,
                'avg_price': cost_basis / shares,
                'market_value': market_value,
                'unrealized_pnl': market_value - cost_basis,
            }
        net_worth = self.net_worth(participant, prices)
        return {
            'participant_id': participant.participant_id,
            'name': participant.name,
            'cash': participant.cash,
            'total_spent': participant.total_spent,
            'positions': positions,
            'net_worth': net_worth,
            'total_pnl': net_worth - participant.initial_capital,
        }

    def snapshot(self, prices: Optional[Mapping[str, float]] = None) -> Dict[str, Dict]:
        """participant_id -> {cash, total_spent, shares, net_worth}"""
        with self.session.lock:
            return {
                p.participant_id: {
                    'cash': p.cash,
                    'total_spent': p.total_spent,
                    'shares': dict(p.shares),
                    'net_worth': self.net_worth(p, prices),
                }
                for p in self.session.participants.values()
            }
