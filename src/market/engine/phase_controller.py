import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

import numpy as np

from agents.bot_bid_generator import BotBidGenerator
from market.engine.engine_settings import EngineSettings
from market.ipo.bid import BidResult
from market.ipo.bid_collector import BidCollector
from market.ipo.clearing_engine import ClearingEngine, ClearingResult
from market.ipo.ledger_accountant import LedgerAccountant
from market.state.session import GamePhase, Session
from services.logging_service import LoggingService
from verification.ledger_verifier import InvariantViolation, LedgerVerifier


class PhaseTransitionError(ValueError):
    pass


@dataclass
class RoundResult:
    """Everything one settled IPO round produced"""
    session_id: str
    round_number: int
    epoch: int
    results: Dict[str, ClearingResult]
    forced: bool = False
    bot_bids: Dict[str, List[BidResult]] = field(default_factory=dict)
    violations: List[InvariantViolation] = field(default_factory=list)

    def __post_init__(self):
        self.completed_at = datetime.now()

    @property
    def revenue(self) -> float:
        return sum(r.revenue for r in self.results.values())


class PhaseController:
    """
    Per-session state machine: lobby -> ipo -> newspaper -> trading.

    Responsibilities:
    - Opens IPO rounds and accepts human bids while bidding is open
    - Closes a round at most once: bot bids, clearing and settlement run on a
      worker thread behind the session's processing guard
    - Force-advances with the bids already collected when processing overruns
    - Publishes a RoundResult to subscribers exactly once per round

    Settlement is committed with a compare-and-set on ``session.round_settled``
    under the session lock, after checking the epoch captured when the round
    closed. Work started before a reset or a forced advance finds the commit
    already taken and is dropped.
    """

    def __init__(self, session: Session, settings: Optional[EngineSettings] = None,
                 bot_bid_generator: Optional[BotBidGenerator] = None,
                 executor: Optional[ThreadPoolExecutor] = None, logger=None):
        self.session = session
        self.settings = settings or EngineSettings()
        self.logger = logger or LoggingService.get_logger('phase')

        self.collector = BidCollector(session)
        self.clearing_engine = ClearingEngine()
        self.accountant = LedgerAccountant(session, ceo_threshold=self.settings.ceo_threshold)
        self.verifier = LedgerVerifier(session, ceo_threshold=self.settings.ceo_threshold)
        self.bot_bid_generator = bot_bid_generator or BotBidGenerator(
            lot_size=self.settings.lot_size,
            price_tick=self.settings.price_tick,
            price_jitter=self.settings.price_jitter,
            max_companies=self.settings.max_companies_per_bot,
            rng=np.random.default_rng(session.seed),
        )

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"ipo-{session.session_id}"
        )
        self._listeners: List[Callable[[RoundResult], None]] = []
        self._stopped = threading.Event()
        self._window_timer: Optional[threading.Timer] = None
        self._watchdog: Optional[threading.Timer] = None
        self._active_token: Optional[int] = None
        self._future: Optional[Future] = None
        self.last_result: Optional[RoundResult] = None

    @property
    def phase(self) -> GamePhase:
        return self.session.phase

    def subscribe(self, callback: Callable[[RoundResult], None]):
        self._listeners.append(callback)

    def start_round(self) -> int:
        """Open a new IPO round with an empty bid pool; returns the round number"""
        session = self.session
        with session.lock:
            if session.phase not in (GamePhase.LOBBY, GamePhase.TRADING):
                raise PhaseTransitionError(
                    f"Cannot start an IPO round from phase {session.phase.value}"
                )
            if session.guard.held:
                raise PhaseTransitionError("Previous round is still being processed")
            session.round_number += 1
            session.epoch += 1
            session.round_settled = False
            session.open_bid_pool()
            session.phase = GamePhase.IPO
            session.bidding_open = True
            epoch, round_number = session.epoch, session.round_number

        LoggingService.log_phase(
            f"Session {session.session_id}: round {round_number} started (epoch {epoch}), "
            f"{len(session.companies)} companies, {len(session.participants)} participants"
        )
        if self.settings.bidding_window_sec is not None:
            self._window_timer = self._start_timer(
                self.settings.bidding_window_sec, self._on_window_expired, epoch
            )
        return round_number

    def submit_bid(self, participant_id: str, company_id: str, shares, price) -> BidResult:
        return self.collector.submit_bid(participant_id, company_id, shares, price)

    def close_round(self) -> bool:
        """Stop accepting bids and start processing the round.

        Returns:
            False if the trigger was ignored because a round is already in flight
            or the session is not bidding
        """
        session = self.session
        token = session.guard.try_acquire()
        if token is None:
            self.logger.info(f"Session {session.session_id}: round already in flight, ignoring close")
            return False

        with session.lock:
            if session.phase != GamePhase.IPO or session.round_settled:
                session.guard.release(token)
                self.logger.info(
                    f"Session {session.session_id}: nothing to close in phase {session.phase.value}"
                )
                return False
            session.bidding_open = False
            epoch, round_number = session.epoch, session.round_number
            self._active_token = token

        self._cancel_timer(self._window_timer)
        LoggingService.log_phase(
            f"Session {session.session_id}: round {round_number} closed, processing"
        )
        watchdog = self._start_timer(self.settings.clearing_timeout_sec, self._on_timeout, epoch)
        self._watchdog = watchdog
        self._future = self._executor.submit(self._process_round, token, epoch, round_number, watchdog)
        return True

    def force_advance(self) -> Optional[RoundResult]:
        """Settle the current round right now with whatever bids are in the pool"""
        session = self.session
        with session.lock:
            if session.phase != GamePhase.IPO or session.round_settled:
                self.logger.info(
                    f"Session {session.session_id}: force-advance ignored in phase {session.phase.value}"
                )
                return None
            session.bidding_open = False
            epoch, round_number = session.epoch, session.round_number

        self.logger.warning(
            f"Session {session.session_id}: force-advancing round {round_number} with collected bids"
        )
        self._cancel_timer(self._window_timer)
        result = self._settle_and_publish(epoch, round_number, forced=True)

        # Free the guard for the next round even if the original job never returns
        token = self._active_token
        if token is not None and session.guard.release(token):
            self._active_token = None
        return result

    def advance_to_trading(self):
        with self.session.lock:
            if self.session.phase != GamePhase.NEWSPAPER:
                raise PhaseTransitionError(
                    f"Cannot move to trading from phase {self.session.phase.value}"
                )
            self.session.phase = GamePhase.TRADING
        LoggingService.log_phase(f"Session {self.session.session_id}: trading opened")

    def wait(self, timeout: Optional[float] = None) -> Optional[RoundResult]:
        """Block until the round in flight finishes; returns the last published result"""
        if self._future is not None:
            self._future.result(timeout=timeout)
        return self.last_result

    def shutdown(self):
        self._stopped.set()
        self._cancel_timer(self._window_timer)
        self._cancel_timer(self._watchdog)
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _process_round(self, token: int, epoch: int, round_number: int,
                       watchdog: Optional[threading.Timer] = None):
        session = self.session
        try:
            if self.settings.processing_delay_sec > 0:
                self._stopped.wait(self.settings.processing_delay_sec)
            if not self._still_pending(epoch):
                self.logger.warning(
                    f"Session {session.session_id}: round {round_number} superseded before processing"
                )
                return
            bot_bids = self.collector.collect_bot_bids(self.bot_bid_generator, epoch=epoch)
            results = self._clear_all()
            self._settle_and_publish(epoch, round_number, forced=False,
                                     results=results, bot_bids=bot_bids)
        except Exception:
            self.logger.exception(
                f"Session {session.session_id}: processing round {round_number} failed, "
                f"forcing advance"
            )
            self._settle_and_publish(epoch, round_number, forced=True)
        finally:
            self._cancel_timer(watchdog)
            if session.guard.release(token):
                self._active_token = None

    def _still_pending(self, epoch: int) -> bool:
        with self.session.lock:
            return self.session.is_current(epoch) and not self.session.round_settled

    def _clear_all(self) -> Dict[str, ClearingResult]:
        return {
            company_id: self.clearing_engine.clear(company, self.collector.bids_for(company_id))
            for company_id, company in self.session.companies.items()
        }

    def _settle_and_publish(self, epoch: int, round_number: int, forced: bool,
                            results: Optional[Dict[str, ClearingResult]] = None,
                            bot_bids: Optional[Dict[str, List[BidResult]]] = None) -> Optional[RoundResult]:
        session = self.session
        with session.lock:
            if (not session.is_current(epoch) or session.round_settled
                    or session.round_number != round_number):
                self.logger.warning(
                    f"Session {session.session_id}: discarding stale results for round "
                    f"{round_number} (epoch {epoch}, current {session.epoch})"
                )
                return None
            session.round_settled = True

            if results is None:
                results = self._clear_all()
            for company_id, result in results.items():
                try:
                    self.accountant.settle(result, round_number)
                    LoggingService.log_allocations(session.session_id, round_number, result)
                except Exception:
                    self.logger.exception(f"Settlement of {company_id} in round {round_number} failed")

            session.phase = GamePhase.NEWSPAPER
            session.bid_pool = {}
            violations = self.verifier.verify_round(round_number) if self.settings.verify_ledger else []
            round_result = RoundResult(
                session_id=session.session_id,
                round_number=round_number,
                epoch=epoch,
                results=results,
                forced=forced,
                bot_bids=bot_bids or {},
                violations=violations,
            )
            self.last_result = round_result

        LoggingService.log_phase(
            f"Session {session.session_id}: round {round_number} settled"
            f"{' (forced)' if forced else ''}, revenue ${round_result.revenue:.2f}; -> newspaper"
        )
        self._publish(round_result)
        return round_result

    def _publish(self, round_result: RoundResult):
        for callback in list(self._listeners):
            try:
                callback(round_result)
            except Exception:
                self.logger.exception(f"Round completion subscriber {callback!r} failed")

    def _on_window_expired(self, epoch: int):
        if self._still_pending(epoch) and self.session.bidding_open:
            self.logger.info(f"Session {self.session.session_id}: bidding window expired")
            self.close_round()

    def _on_timeout(self, epoch: int):
        if self._still_pending(epoch):
            self.logger.warning(
                f"Session {self.session.session_id}: clearing exceeded "
                f"{self.settings.clearing_timeout_sec}s"
            )
            self.force_advance()

    def _start_timer(self, delay: float, callback, epoch: int) -> threading.Timer:
        timer = threading.Timer(delay, callback, args=(epoch,))
        timer.daemon = True
        timer.start()
        return timer

    @staticmethod
    def _cancel_timer(timer: Optional[threading.Timer]):
        if timer is not None:
            timer.cancel()
