import math
import numbers
from typing import Dict, List, Optional, Sequence, Tuple

from constants import FLOAT_TOLERANCE
from market.ipo.bid import Bid, BidResult, BidSlot, RejectionReason
from market.state.session import GamePhase, Session
from services.logging_service import LoggingService


class BidCollector:
    """Validates bids and keeps the pool for the session's active round.

    Every accepted submission is a single read-modify-write of the pool under
    the session lock. Capital is checked against what the participant has not
    already committed to other pending bids; cash itself only moves at settlement.
    """

    def __init__(self, session: Session, logger=None):
        self.session = session
        self.logger = logger or LoggingService.get_logger('bids')

    def remaining_capital(self, participant_id: str, exclude_company: Optional[str] = None) -> float:
        """initial capital - spent in prior rounds - pending bid costs this round"""
        with self.session.lock:
            participant = self.session.get_participant(participant_id)
            committed = self.session.pending_cost(participant_id, exclude_company=exclude_company)
            return participant.initial_capital - participant.total_spent - committed

    def submit_bid(self, participant_id: str, company_id: str, shares, price) -> BidResult:
        """Validate and store a single bid, replacing any earlier bid for the same company"""
        return self._submit(participant_id, company_id, [(price, shares)], from_engine=False)

    def submit_bot_slot(self, participant_id: str, company_id: str,
                        tiers: Sequence[Tuple[float, int]], epoch: Optional[int] = None) -> BidResult:
        """Store the price tiers a bot generated for one company as a single slot.

        With ``epoch`` set, the slot is refused once the session has moved past that round.
        """
        return self._submit(participant_id, company_id, list(tiers), from_engine=True, epoch=epoch)

    def collect_bot_bids(self, bot_bid_generator, epoch: Optional[int] = None) -> Dict[str, List[BidResult]]:
        """Ask the generator for every bot's candidates and merge them into the pool.

        Called once per round by the phase controller after bidding has closed.
        Stops early without touching the pool if the session moved to a new epoch.
        """
        results: Dict[str, List[BidResult]] = {}
        for bot in self.session.bots:
            if epoch is not None and not self.session.is_current(epoch):
                self.logger.warning(
                    f"Session {self.session.session_id} epoch changed during bot bidding - discarding"
                )
                break
            available = self.remaining_capital(bot.participant_id)
            plans = bot_bid_generator.generate_bids(bot, self.session, available)

            bot_results = []
            for plan in plans:
                result = self.submit_bot_slot(bot.participant_id, plan.company_id, plan.tiers, epoch=epoch)
                if epoch is not None and not self.session.is_current(epoch):
                    break
                bot_results.append(result)
            results[bot.participant_id] = bot_results

            accepted = sum(1 for r in bot_results if r.accepted)
            self.logger.info(
                f"{bot.name} placed {accepted}/{len(bot_results)} slots "
                f"(available ${available:.2f})"
            )
        return results

    def bids_for(self, company_id: str) -> List[Bid]:
        """All pending bids for a company in arrival order"""
        with self.session.lock:
            slots = self.session.bid_pool.get(company_id, {})
            bids = [bid for slot in slots.values() for bid in slot.bids]
        return sorted(bids, key=lambda b: b.sequence)

    def pending_slot(self, participant_id: str, company_id: str) -> Optional[BidSlot]:
        with self.session.lock:
            return self.session.bid_pool.get(company_id, {}).get(participant_id)

    def _submit(self, participant_id: str, company_id: str, tiers: List[Tuple[float, int]],
                from_engine: bool, epoch: Optional[int] = None) -> BidResult:
        session = self.session
        with session.lock:
            if epoch is not None and not session.is_current(epoch):
                self.logger.warning(
                    f"Dropping stale slot for {participant_id} on {company_id} from epoch {epoch}"
                )
                return BidResult.rejected(
                    RejectionReason.ROUND_IN_FLIGHT,
                    f"Round of epoch {epoch} is over (session is at epoch {session.epoch})"
                )
            result = self._validate(participant_id, company_id, tiers, from_engine)
            if result is not None:
                self._log_rejection(participant_id, company_id, tiers, result)
                return result

            bids = tuple(
                Bid(
                    participant_id=participant_id,
                    company_id=company_id,
                    price=round(float(price), 2),
                    shares=int(shares),
                    sequence=session.next_bid_sequence(),
                )
                for price, shares in tiers
            )
            slot = BidSlot(participant_id, company_id, bids)
            replaced = session.bid_pool[company_id].get(participant_id)
            session.bid_pool[company_id][participant_id] = slot

        if replaced is not None:
            self.logger.info(f"Replaced pending slot for {participant_id} on {company_id}: "
                             f"{replaced.shares} shares -> {slot.shares} shares")
        else:
            self.logger.info(f"Accepted slot for {participant_id} on {company_id}: "
                             f"{slot.shares} shares, cost ${slot.cost:.2f}")
        return BidResult(True, "Bid accepted", bid=bids[-1], slot=slot)

    def _validate(self, participant_id: str, company_id: str, tiers: List[Tuple[float, int]],
                  from_engine: bool) -> Optional[BidResult]:
        """Return a rejection, or None if the tiers may be stored. Caller holds the lock."""
        session = self.session

        if session.phase != GamePhase.IPO:
            return BidResult.rejected(
                RejectionReason.WRONG_PHASE, f"Bids are only accepted in the ipo phase, not {session.phase.value}"
            )
        if not from_engine and not session.bidding_open:
            return BidResult.rejected(
                RejectionReason.ROUND_IN_FLIGHT, "Bidding for this round has closed"
            )
        if participant_id not in session.participants:
            return BidResult.rejected(
                RejectionReason.UNKNOWN_PARTICIPANT, f"Unknown participant: {participant_id}"
            )
        if company_id not in session.companies:
            return BidResult.rejected(
                RejectionReason.UNKNOWN_COMPANY, f"Unknown company: {company_id}"
            )
        if not tiers:
            return BidResult.rejected(RejectionReason.INVALID_SHARES, "No bids supplied")

        for price, shares in tiers:
            if not _is_positive_integer(shares):
                return BidResult.rejected(
                    RejectionReason.INVALID_SHARES, f"Shares must be a positive whole number, got {shares}"
                )
            if not _is_positive_number(price):
                return BidResult.rejected(
                    RejectionReason.INVALID_PRICE, f"Price must be positive, got {price}"
                )

        participant = session.participants[participant_id]
        company = session.companies[company_id]

        if participant.is_bot:
            requested = sum(int(shares) for _, shares in tiers)
            cap_shares = math.floor(participant.profile.ownership_cap_pct * company.total_shares)
            held = participant.shares_of(company_id)
            if held + requested > cap_shares:
                return BidResult.rejected(
                    RejectionReason.OWNERSHIP_CAP_EXCEEDED,
                    f"{held + requested} shares would exceed the {cap_shares} share cap on {company_id}"
                )

        cost = sum(round(float(price), 2) * int(shares) for price, shares in tiers)
        available = (participant.initial_capital - participant.total_spent
                     - session.pending_cost(participant_id, exclude_company=company_id))
        if cost - available > FLOAT_TOLERANCE:
            return BidResult.rejected(
                RejectionReason.INSUFFICIENT_CAPITAL,
                f"Bid cost ${cost:.2f} exceeds uncommitted capital ${available:.2f}"
            )
        return None

    def _log_rejection(self, participant_id, company_id, tiers, result: BidResult):
        participant = self.session.participants.get(participant_id)
        LoggingService.log_validation_error(
            session_id=self.session.session_id,
            round_number=self.session.round_number,
            participant_id=participant_id,
            participant_type=participant.participant_type if participant else 'unknown',
            error_type=result.reason.name,
            details=result.message,
            attempted_action=" ".join(f"BID {shares}@{price}" for price, shares in tiers) + f" {company_id}",
        )


def _is_positive_integer(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, numbers.Integral):
        return value > 0
    if isinstance(value, numbers.Real):
        value = float(value)
        return math.isfinite(value) and value.is_integer() and value > 0
    return False


def _is_positive_number(value) -> bool:
    """Positive, finite, and still positive once rounded to cents"""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    value = float(value)
    return math.isfinite(value) and round(value, 2) > 0
