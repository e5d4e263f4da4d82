import threading
from typing import Callable, Dict, List, Mapping, Optional

from market.engine.engine_api import CompanySpec, LedgerEntry, ParticipantSpec, RoundCompletion
from market.engine.engine_settings import EngineSettings
from market.engine.phase_controller import PhaseController, RoundResult
from market.ipo.bid import BidResult
from market.state.session import Session
from market.state.session_manager import SessionManager
from services.logging_service import LoggingService


class IPOEngine:
    """Entry point for the session layer.

    Every call names its session by id. The engine keeps one PhaseController
    per live session and performs no I/O; round completions are handed to
    subscribers as RoundCompletion payloads.
    """

    def __init__(self, settings: Optional[EngineSettings] = None,
                 session_manager: Optional[SessionManager] = None):
        self.settings = settings or EngineSettings()
        self.sessions = session_manager or SessionManager()
        self.logger = LoggingService.get_logger('sessions')
        self._controllers: Dict[str, PhaseController] = {}
        self._subscribers: List[Callable[[RoundCompletion], None]] = []
        self._lock = threading.Lock()

    def create_session(self, session_id: str, companies: List[CompanySpec],
                       participants: List[ParticipantSpec], seed: Optional[int] = None) -> Session:
        session = self.sessions.create(
            session_id, companies, participants, seed=seed,
            starting_capital=self.settings.starting_capital,
            add_scavengers=self.settings.ensure_scavengers,
        )
        self._attach(session)
        return session

    def controller(self, session_id: str) -> PhaseController:
        self.sessions.get(session_id)
        with self._lock:
            return self._controllers[session_id]

    def subscribe(self, callback: Callable[[RoundCompletion], None]):
        """Receive a RoundCompletion for every settled round of every session"""
        self._subscribers.append(callback)

    def start_round(self, session_id: str) -> int:
        return self.controller(session_id).start_round()

    def submit_bid(self, session_id: str, participant_id: str, company_id: str,
                   shares, price) -> BidResult:
        return self.controller(session_id).submit_bid(participant_id, company_id, shares, price)

    def close_round(self, session_id: str) -> bool:
        return self.controller(session_id).close_round()

    def force_advance(self, session_id: str) -> Optional[RoundResult]:
        return self.controller(session_id).force_advance()

    def advance_to_trading(self, session_id: str):
        self.controller(session_id).advance_to_trading()

    def wait_for_round(self, session_id: str, timeout: Optional[float] = None) -> Optional[RoundResult]:
        return self.controller(session_id).wait(timeout)

    def ledger_snapshot(self, session_id: str,
                        prices: Optional[Mapping[str, float]] = None) -> Dict[str, LedgerEntry]:
        """participant_id -> cash, total spent, shares and net worth"""
        snapshot = self.controller(session_id).accountant.snapshot(prices)
        return {pid: LedgerEntry(**entry) for pid, entry in snapshot.items()}

    def reset_session(self, session_id: str) -> Session:
        """Rebuild a session from its roster; in-flight work for the old state is dropped"""
        session = self.sessions.reset(session_id)
        self._detach(session_id)
        self._attach(session)
        return session

    def teardown_session(self, session_id: str):
        self.sessions.teardown(session_id)
        self._detach(session_id)

    def shutdown(self):
        with self._lock:
            controllers = list(self._controllers.values())
            self._controllers.clear()
        for controller in controllers:
            controller.shutdown()

    def _attach(self, session: Session):
        controller = PhaseController(session, self.settings)
        controller.subscribe(lambda result: self._publish(session, result))
        with self._lock:
            self._controllers[session.session_id] = controller

    def _detach(self, session_id: str):
        with self._lock:
            controller = self._controllers.pop(session_id, None)
        if controller is not None:
            controller.shutdown()

    def _publish(self, session: Session, result: RoundResult):
        completion = RoundCompletion.from_round(session, result)
        for callback in list(self._subscribers):
            try:
                callback(completion)
            except Exception:
                self.logger.exception(f"Round completion subscriber {callback!r} failed")
