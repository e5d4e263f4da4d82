import sys
import threading
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from conftest import make_bot, make_session
from agents.bot_bid_generator import BotBidGenerator
from agents.participant import Participant
from market.engine.engine_api import CompanySpec, ParticipantSpec
from market.engine.engine_settings import EngineSettings
from market.engine.phase_controller import PhaseController, PhaseTransitionError
from market.ipo.bid import RejectionReason
from market.state.session import GamePhase
from market.state.session_manager import SessionManager

FAST = EngineSettings(processing_delay_sec=0.0, bidding_window_sec=None, clearing_timeout_sec=10.0)


class GatedGenerator:
    """Wraps the real generator and blocks the first call until released"""

    def __init__(self, seed=0):
        self.inner = BotBidGenerator(seed=seed)
        self.entered = threading.Event()
        self.gate = threading.Event()
        self.calls = 0
        self._lock = threading.Lock()

    def generate_bids(self, bot, session, available):
        with self._lock:
            self.calls += 1
        self.entered.set()
        self.gate.wait(5)
        return self.inner.generate_bids(bot, session, available)


def _session_with_bots():
    participants = [
        Participant("alice", "Alice", 1000.0),
        make_bot("bot_agg", "aggressive"),
        make_bot("bot_bal", "balanced"),
        make_bot("bot_scv", "scavenger"),
    ]
    return make_session(participants=participants)


@pytest.fixture
def controller():
    controller = PhaseController(_session_with_bots(), FAST, bot_bid_generator=BotBidGenerator(seed=3))
    yield controller
    controller.shutdown()


def test_full_round_settles_and_advances(controller):
    session = controller.session
    published = []
    controller.subscribe(published.append)

    assert controller.start_round() == 1
    assert controller.submit_bid("alice", "c1", 300, 2.0).accepted
    assert controller.close_round()
    result = controller.wait(timeout=5)

    assert session.phase == GamePhase.NEWSPAPER
    assert published == [result]
    assert not result.forced
    assert result.violations == []
    assert set(result.results) == {"c1", "c2"}
    assert any(result.bot_bids.values())
    for company in session.companies.values():
        assert company.shares_allocated <= company.total_shares
        assert company.clearing_price is not None
    for participant in session.participants.values():
        assert participant.verify_cash_position()
    assert not session.guard.held


def test_submission_after_close_is_rejected(controller):
    gated = GatedGenerator()
    controller.bot_bid_generator = gated
    controller.start_round()
    controller.close_round()
    gated.entered.wait(5)

    result = controller.submit_bid("alice", "c1", 10, 1.0)

    gated.gate.set()
    controller.wait(timeout=5)
    assert result.reason == RejectionReason.ROUND_IN_FLIGHT


def test_concurrent_close_runs_one_clearing_pass():
    session = _session_with_bots()
    gated = GatedGenerator()
    controller = PhaseController(session, FAST, bot_bid_generator=gated)
    published = []
    controller.subscribe(published.append)
    clear_calls = []
    original_clear = controller.clearing_engine.clear

    def counting_clear(company, bids, supply=None):
        clear_calls.append(company.company_id)
        return original_clear(company, bids, supply)

    controller.clearing_engine.clear = counting_clear
    controller.start_round()

    barrier = threading.Barrier(4)
    outcomes = []

    def trigger():
        barrier.wait()
        outcomes.append(controller.close_round())

    threads = [threading.Thread(target=trigger) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    gated.gate.set()
    controller.wait(timeout=5)

    # A trigger after settlement is also a no-op
    assert not controller.close_round()
    controller.shutdown()

    assert sorted(outcomes) == [False, False, False, True]
    assert gated.calls == len(session.bots)
    assert sorted(clear_calls) == ["c1", "c2"]
    assert len(published) == 1


def test_force_advance_uses_collected_bids_and_drops_slow_work():
    session = _session_with_bots()
    gated = GatedGenerator()
    controller = PhaseController(session, FAST, bot_bid_generator=gated)
    published = []
    controller.subscribe(published.append)

    controller.start_round()
    controller.submit_bid("alice", "c1", 400, 2.5)
    controller.close_round()
    assert gated.entered.wait(5)

    forced = controller.force_advance()

    assert forced.forced
    assert session.phase == GamePhase.NEWSPAPER
    assert not session.guard.held
    assert forced.results["c1"].allocation_for("alice").shares_allocated == 400

    gated.gate.set()
    controller.wait(timeout=5)
    controller.shutdown()

    assert published == [forced]
    assert all(bot.total_spent == 0 for bot in session.bots)
    assert session.get_participant("alice").total_spent == pytest.approx(400 * 2.5)


def test_watchdog_forces_advance_when_processing_overruns():
    session = _session_with_bots()
    gated = GatedGenerator()
    settings = EngineSettings(processing_delay_sec=0.0, bidding_window_sec=None, clearing_timeout_sec=0.2)
    controller = PhaseController(session, settings, bot_bid_generator=gated)
    done = threading.Event()
    published = []
    controller.subscribe(lambda result: (published.append(result), done.set()))

    controller.start_round()
    controller.submit_bid("alice", "c2", 100, 1.5)
    controller.close_round()

    assert done.wait(5)
    gated.gate.set()
    controller.wait(timeout=5)
    controller.shutdown()

    assert len(published) == 1
    assert published[0].forced
    assert session.phase == GamePhase.NEWSPAPER


def test_bidding_window_closes_the_round():
    settings = EngineSettings(processing_delay_sec=0.0, bidding_window_sec=0.1, clearing_timeout_sec=10.0)
    controller = PhaseController(_session_with_bots(), settings, bot_bid_generator=BotBidGenerator(seed=1))
    done = threading.Event()
    controller.subscribe(lambda result: done.set())

    controller.start_round()

    assert done.wait(5)
    controller.shutdown()
    assert controller.session.phase == GamePhase.NEWSPAPER
    assert not controller.last_result.forced


def test_reset_discards_in_flight_round():
    manager = SessionManager()
    session = manager.create(
        "s1",
        [CompanySpec(company_id="c1", name="Lemonade Co")],
        [
            ParticipantSpec(participant_id="alice", display_name="Alice"),
            ParticipantSpec(participant_id="bot_1", display_name="Bot", is_human=False,
                            bot_profile="balanced"),
        ],
        seed=4,
    )
    gated = GatedGenerator()
    controller = PhaseController(session, FAST, bot_bid_generator=gated)
    published = []
    controller.subscribe(published.append)

    controller.start_round()
    controller.submit_bid("alice", "c1", 100, 2.0)
    controller.close_round()
    assert gated.entered.wait(5)

    fresh = manager.reset("s1")
    gated.gate.set()
    controller.wait(timeout=5)
    controller.shutdown()

    assert published == []
    assert session.get_participant("alice").total_spent == 0
    assert session.get_company("c1").shares_allocated == 0
    assert fresh is not session
    assert fresh.phase == GamePhase.LOBBY
    assert manager.get("s1") is fresh


def test_phase_transitions_are_checked(controller):
    with pytest.raises(PhaseTransitionError):
        controller.advance_to_trading()

    controller.start_round()
    with pytest.raises(PhaseTransitionError):
        controller.start_round()

    controller.close_round()
    controller.wait(timeout=5)
    controller.advance_to_trading()
    assert controller.phase == GamePhase.TRADING


def test_force_advance_outside_ipo_is_ignored(controller):
    assert controller.force_advance() is None


def test_second_round_offers_remaining_shares(controller):
    session = controller.session
    controller.start_round()
    controller.close_round()
    first = controller.wait(timeout=5)
    controller.advance_to_trading()

    assert controller.start_round() == 2
    controller.close_round()
    second = controller.wait(timeout=5)

    assert second.round_number == 2
    for company_id, company in session.companies.items():
        assert second.results[company_id].supply == company.total_shares - first.results[company_id].shares_allocated
        assert company.shares_allocated <= company.total_shares
    for participant in session.participants.values():
        assert participant.verify_cash_position()


def test_bot_slot_cannot_leak_into_the_next_round():
    session = make_session(participants=[Participant("alice", "Alice", 1000.0), make_bot("bot_1", "balanced")])
    controller = PhaseController(session, FAST)

    class _RoundTurningPlan:
        """Moves the session on to a new round as the bot's slot is about to be stored"""
        tiers = [(1.0, 100)]
        turned = False

        @property
        def company_id(self):
            if not self.turned:
                self.turned = True
                controller.force_advance()
                controller.advance_to_trading()
                controller.start_round()
            return "c1"

    class _Generator:
        def generate_bids(self, bot, session, available):
            return [_RoundTurningPlan()]

    published = []
    controller.subscribe(published.append)
    controller.bot_bid_generator = _Generator()

    controller.start_round()
    controller.close_round()
    controller.wait(timeout=5)
    controller.shutdown()

    assert session.round_number == 2
    assert session.phase == GamePhase.IPO
    assert session.bid_pool["c1"] == {}
    assert [r.round_number for r in published] == [1]
    assert published[0].forced
