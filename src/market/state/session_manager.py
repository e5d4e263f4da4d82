import threading
from typing import Dict, List, Optional, Tuple

from agents.bot_profiles import DEFAULT_REGISTRY, BotProfileRegistry
from agents.bot_roster import ensure_scavengers
from agents.participant import Participant
from constants import DEFAULT_STARTING_CAPITAL
from market.company import Company
from market.engine.engine_api import CompanySpec, ParticipantSpec
from market.state.session import GamePhase, Session
from services.logging_service import LoggingService


class SessionNotFoundError(KeyError):
    pass


class SessionManager:
    """
    Owns every live session, keyed by session id.

    Responsibilities:
    - Builds sessions from company and participant rosters
    - Hands out sessions by id to engine calls
    - Resets and tears sessions down, invalidating in-flight work

    Does NOT:
    - Run rounds (PhaseController)
    """

    def __init__(self, registry: Optional[BotProfileRegistry] = None, logger=None):
        self.registry = registry or DEFAULT_REGISTRY
        self.logger = logger or LoggingService.get_logger('sessions')
        self._sessions: Dict[str, Session] = {}
        self._rosters: Dict[str, Tuple[List[CompanySpec], List[ParticipantSpec], Optional[int], float, bool]] = {}
        self._lock = threading.Lock()

    def create(self, session_id: str, companies: List[CompanySpec], participants: List[ParticipantSpec],
               seed: Optional[int] = None, starting_capital: float = DEFAULT_STARTING_CAPITAL,
               add_scavengers: bool = False) -> Session:
        """Create and register a session; raises ValueError if the id is taken"""
        companies = [CompanySpec.model_validate(c) for c in companies]
        participants = [ParticipantSpec.model_validate(p) for p in participants]
        session = self._build(session_id, companies, participants, seed, starting_capital, add_scavengers)
        with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"Session already exists: {session_id}")
            self._sessions[session_id] = session
            self._rosters[session_id] = (companies, participants, seed, starting_capital, add_scavengers)
        self.logger.info(f"Created {session!r}")
        return session

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def reset(self, session_id: str) -> Session:
        """Discard all state of a session and rebuild it from its original roster"""
        with self._lock:
            if session_id not in self._sessions:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            old = self._sessions[session_id]
            roster = self._rosters[session_id]
        self._invalidate(old)
        session = self._build(session_id, *roster)
        with self._lock:
            self._sessions[session_id] = session
        self.logger.info(f"Reset session {session_id} (old epoch {old.epoch})")
        return session

    def teardown(self, session_id: str) -> Session:
        """Remove a session for good; in-flight work for it will be discarded"""
        with self._lock:
            session = self._sessions.pop(session_id, None)
            self._rosters.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        self._invalidate(session)
        self.logger.info(f"Tore down session {session_id}")
        return session

    @staticmethod
    def _invalidate(session: Session):
        with session.lock:
            session.epoch += 1
            session.bidding_open = False
            session.phase = GamePhase.LOBBY
            session.bid_pool = {}

    def _build(self, session_id: str, companies: List[CompanySpec], participants: List[ParticipantSpec],
               seed: Optional[int], starting_capital: float, add_scavengers: bool) -> Session:
        built_companies = [
            Company(c.company_id, c.name, c.total_shares, reference_price=c.reference_price)
            for c in companies
        ]
        built_participants = [
            Participant(
                participant_id=p.participant_id,
                name=p.display_name,
                initial_capital=starting_capital if p.capital is None else p.capital,
                is_human=p.is_human,
                profile=None if p.is_human else self.registry.get(p.bot_profile),
            )
            for p in participants
        ]
        if add_scavengers:
            built_participants += ensure_scavengers(
                built_participants, len(built_companies), starting_capital, registry=self.registry
            )
        return Session(session_id, built_companies, built_participants, seed=seed)
