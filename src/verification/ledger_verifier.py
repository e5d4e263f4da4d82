"""
LedgerVerifier: checks the IPO ledger invariants after every round.

Violations are defects. They are logged at ERROR and returned to the caller
but never raised, so a bookkeeping bug cannot stall a running session.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

from constants import CASH_MATCHING_TOLERANCE, CEO_THRESHOLD, FLOAT_TOLERANCE
from services.logging_service import LoggingService


@dataclass
class InvariantViolation:
    invariant: str
    subject: str
    details: str

    def __str__(self):
        return f"[{self.invariant}] {self.subject}: {self.details}"


class LedgerVerifier:
    """
    Verifies cash conservation, share supply, bot ownership caps and CEO uniqueness.
    """

    def __init__(self, session, ceo_threshold: float = CEO_THRESHOLD, logger=None):
        self.session = session
        self.ceo_threshold = ceo_threshold
        self.logger = logger or LoggingService.get_logger('verification')

    def verify_round(self, round_number: Optional[int] = None) -> List[InvariantViolation]:
        """Run every check; returns all violations found"""
        if round_number is None:
            round_number = self.session.round_number
        self.logger.info(f"=== Verifying ledger for session {self.session.session_id} "
                         f"round {round_number} ===")
        with self.session.lock:
            violations = (
                self.verify_cash_conservation()
                + self.verify_share_supply()
                + self.verify_ownership_caps()
                + self.verify_single_ceo()
            )
        for violation in violations:
            self.logger.error(str(violation))
        if not violations:
            self.logger.info("All ledger invariants hold")
        return violations

    def verify_cash_conservation(self) -> List[InvariantViolation]:
        """cash + total_spent == initial_capital for every participant"""
        violations = []
        for participant in self.session.participants.values():
            if not participant.verify_cash_position():
                violations.append(InvariantViolation(
                    'cash_conservation',
                    participant.participant_id,
                    f"cash {participant.cash:.2f} + spent {participant.total_spent:.2f} "
                    f"!= initial {participant.initial_capital:.2f}",
                ))
            if participant.total_spent < -CASH_MATCHING_TOLERANCE:
                violations.append(InvariantViolation(
                    'non_negative_spend',
                    participant.participant_id,
                    f"total_spent is {participant.total_spent:.2f}",
                ))
            lot_spend = sum(lot.total_cost for lot in participant.lots)
            if abs(lot_spend - participant.total_spent) > CASH_MATCHING_TOLERANCE:
                violations.append(InvariantViolation(
                    'lot_accounting',
                    participant.participant_id,
                    f"purchase lots total {lot_spend:.2f} but total_spent is "
                    f"{participant.total_spent:.2f}",
                ))
        return violations

    def verify_share_supply(self) -> List[InvariantViolation]:
        """Held shares match the company's allocated count, which never exceeds supply"""
        violations = []
        for company in self.session.companies.values():
            held = sum(p.shares_of(company.company_id) for p in self.session.participants.values())
            if held != company.shares_allocated:
                violations.append(InvariantViolation(
                    'share_conservation',
                    company.company_id,
                    f"participants hold {held} shares but {company.shares_allocated} were allocated",
                ))
            if company.shares_allocated > company.total_shares:
                violations.append(InvariantViolation(
                    'share_supply',
                    company.company_id,
                    f"{company.shares_allocated} allocated exceeds supply {company.total_shares}",
                ))
        return violations

    def verify_ownership_caps(self) -> List[InvariantViolation]:
        violations = []
        for bot in self.session.bots:
            for company in self.session.companies.values():
                cap_shares = math.floor(bot.profile.ownership_cap_pct * company.total_shares)
                held = bot.shares_of(company.company_id)
                if held > cap_shares:
                    violations.append(InvariantViolation(
                        'ownership_cap',
                        bot.participant_id,
                        f"holds {held} of {company.company_id}, cap is {cap_shares}",
                    ))
        return violations

    def verify_single_ceo(self) -> List[InvariantViolation]:
        """A recorded CEO must actually qualify"""
        violations = []
        for company in self.session.companies.values():
            if company.ceo_id is None:
                continue
            ceo = self.session.participants.get(company.ceo_id)
            if ceo is None:
                violations.append(InvariantViolation(
                    'ceo', company.company_id, f"CEO {company.ceo_id} is not a participant",
                ))
                continue
            fraction = company.ownership_fraction(ceo.shares_of(company.company_id))
            if fraction < self.ceo_threshold - FLOAT_TOLERANCE:
                violations.append(InvariantViolation(
                    'ceo', company.company_id,
                    f"CEO {company.ceo_id} owns only {fraction:.1%}",
                ))
        return violations
