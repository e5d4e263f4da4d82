import itertools
import threading
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Dict, Iterator, List, Optional

from agents.participant import Participant
from market.company import Company
from market.ipo.bid import BidSlot


class GamePhase(str, Enum):
    LOBBY = "lobby"
    IPO = "ipo"
    NEWSPAPER = "newspaper"
    TRADING = "trading"


class ProcessingGuard:
    """Marks that a round is in flight for one session.

    Acquisition never blocks: a caller either gets a token or learns the
    round is already being processed. Only the token holder can release.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._token: Optional[int] = None
        self._tokens = itertools.count(1)

    @property
    def held(self) -> bool:
        with self._lock:
            return self._token is not None

    def try_acquire(self) -> Optional[int]:
        """Return a release token, or None if the guard is already held"""
        with self._lock:
            if self._token is not None:
                return None
            self._token = next(self._tokens)
            return self._token

    def release(self, token: Optional[int]) -> bool:
        """Release the guard if ``token`` is the current holder"""
        with self._lock:
            if token is None or self._token != token:
                return False
            self._token = None
            return True

    @contextmanager
    def hold(self) -> Iterator[Optional[int]]:
        """Acquire-or-no-op scope; yields None when the guard was already held"""
        token = self.try_acquire()
        try:
            yield token
        finally:
            if token is not None:
                self.release(token)


class Session:
    """
    All state of one independent game.

    Responsibilities:
    - Holds companies, participants and the current round's bid pool
    - Tracks the phase, round number and validity epoch
    - Owns the lock guarding pool and ledger mutations and the processing guard

    Does NOT:
    - Validate bids (BidCollector)
    - Clear auctions (ClearingEngine)
    - Move money (LedgerAccountant)
    - Decide transitions (PhaseController)
    """

    def __init__(self, session_id: str, companies: List[Company], participants: List[Participant],
                 seed: Optional[int] = None):
        if not companies:
            raise ValueError("A session needs at least one company")
        company_ids = [c.company_id for c in companies]
        if len(set(company_ids)) != len(company_ids):
            raise ValueError(f"Duplicate company ids: {company_ids}")
        participant_ids = [p.participant_id for p in participants]
        if len(set(participant_ids)) != len(participant_ids):
            raise ValueError(f"Duplicate participant ids: {participant_ids}")

        self.session_id = session_id
        self.seed = seed
        self.created_at = datetime.now()
        self.phase = GamePhase.LOBBY
        self.companies: Dict[str, Company] = {c.company_id: c for c in companies}
        self.participants: Dict[str, Participant] = {p.participant_id: p for p in participants}

        self.round_number = 0
        # Bumped on every round start and reset; in-flight work compares against it
        self.epoch = 0
        self.round_settled = False
        # Human submissions are accepted only while the round is open
        self.bidding_open = False

        # company_id -> participant_id -> slot
        self.bid_pool: Dict[str, Dict[str, BidSlot]] = {}

        self.lock = threading.RLock()
        self.guard = ProcessingGuard()
        self._bid_sequence = itertools.count(1)
        self._settlement_sequence = itertools.count(1)

    def get_company(self, company_id: str) -> Company:
        company = self.companies.get(company_id)
        if company is None:
            raise KeyError(f"Company not found: {company_id}")
        return company

    def get_participant(self, participant_id: str) -> Participant:
        participant = self.participants.get(participant_id)
        if participant is None:
            raise KeyError(f"Participant not found: {participant_id}")
        return participant

    @property
    def bots(self) -> List[Participant]:
        return [p for p in self.participants.values() if p.is_bot]

    @property
    def humans(self) -> List[Participant]:
        return [p for p in self.participants.values() if p.is_human]

    def next_bid_sequence(self) -> int:
        return next(self._bid_sequence)

    def next_settlement_sequence(self) -> int:
        return next(self._settlement_sequence)

    def open_bid_pool(self):
        """Start a round with an empty pool for every company"""
        self.bid_pool = {company_id: {} for company_id in self.companies}

    def pending_slots(self, participant_id: str) -> List[BidSlot]:
        return [
            slots[participant_id]
            for slots in self.bid_pool.values()
            if participant_id in slots
        ]

    def pending_cost(self, participant_id: str, exclude_company: Optional[str] = None) -> float:
        """Cost of every pending slot of a participant, optionally skipping one company"""
        return sum(
            slot.cost for slot in self.pending_slots(participant_id)
            if slot.company_id != exclude_company
        )

    def is_current(self, epoch: int) -> bool:
        return self.epoch == epoch

    def __repr__(self):
        return (f"Session({self.session_id!r}, phase={self.phase.value}, round={self.round_number}, "
                f"epoch={self.epoch}, companies={len(self.companies)}, "
                f"participants={len(self.participants)})")
