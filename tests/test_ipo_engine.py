import sys
import threading
from pathlib import Path

import pytest
from pydantic import ValidationError

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from market.data_recorder import DataRecorder
from market.engine.engine_api import CompanySpec, LedgerEntry, ParticipantSpec, RoundCompletion
from market.engine.engine_settings import EngineSettings
from market.engine.ipo_engine import IPOEngine
from market.state.session import GamePhase
from market.state.session_manager import SessionNotFoundError
from scenarios import get_scenario, list_scenarios

FAST = EngineSettings(processing_delay_sec=0.0, bidding_window_sec=None, clearing_timeout_sec=10.0)

COMPANIES = [
    CompanySpec(company_id="c1", name="Lemonade Co"),
    CompanySpec(company_id="c2", name="Juice Corp"),
]
PARTICIPANTS = [
    ParticipantSpec(participant_id="alice", display_name="Alice"),
    ParticipantSpec(participant_id="bob", display_name="Bob", capital=2000.0),
    ParticipantSpec(participant_id="bot_ceo_1", display_name="CEO Bot #1", is_human=False, bot_profile="ceo"),
    ParticipantSpec(participant_id="bot_scavenger_1", display_name="Scavenger Bot #1", is_human=False,
                    bot_profile="scavenger"),
]


@pytest.fixture
def engine():
    engine = IPOEngine(FAST)
    yield engine
    engine.shutdown()


def test_round_publishes_completion_and_ledger(engine):
    completions = []
    engine.subscribe(completions.append)
    session = engine.create_session("s1", COMPANIES, PARTICIPANTS, seed=11)

    engine.start_round("s1")
    assert engine.submit_bid("s1", "bob", "c1", 400, 4.5).accepted
    assert engine.close_round("s1")
    engine.wait_for_round("s1", timeout=5)

    assert len(completions) == 1
    completion = completions[0]
    assert isinstance(completion, RoundCompletion)
    assert completion.session_id == "s1"
    assert completion.round_number == 1
    assert [c.company_id for c in completion.companies] == ["c1", "c2"]
    assert completion.violations == []

    c1 = completion.companies[0]
    assert c1.shares_sold + c1.unsold_shares == c1.shares_offered
    # Bob's 400 shares are at least 35% of c1 and nobody can outbid him at $4.50
    bob_report = next(a for a in c1.allocations if a.participant_id == "bob")
    assert bob_report.shares_allocated == 400
    assert c1.ceo_id == "bob"
    assert c1.ceo_name == "Bob"

    snapshot = engine.ledger_snapshot("s1")
    assert set(snapshot) == set(session.participants)
    assert all(isinstance(entry, LedgerEntry) for entry in snapshot.values())
    bob = snapshot["bob"]
    assert bob.shares == {"c1": 400}
    assert bob.total_spent == pytest.approx(400 * c1.clearing_price)
    assert bob.cash + bob.total_spent == pytest.approx(2000.0)
    assert session.phase == GamePhase.NEWSPAPER


def test_participant_capital_defaults_to_engine_setting(engine):
    session = engine.create_session("s1", COMPANIES, PARTICIPANTS)

    assert session.get_participant("alice").initial_capital == pytest.approx(FAST.starting_capital)
    assert session.get_participant("bob").initial_capital == pytest.approx(2000.0)


def test_unknown_session_raises(engine):
    with pytest.raises(SessionNotFoundError):
        engine.start_round("missing")
    with pytest.raises(KeyError):
        engine.ledger_snapshot("missing")


def test_duplicate_session_id_is_refused(engine):
    engine.create_session("s1", COMPANIES, PARTICIPANTS)

    with pytest.raises(ValueError):
        engine.create_session("s1", COMPANIES, PARTICIPANTS)


def test_sessions_are_independent(engine):
    engine.create_session("s1", COMPANIES, PARTICIPANTS, seed=1)
    engine.create_session("s2", COMPANIES, PARTICIPANTS, seed=1)

    engine.start_round("s1")
    engine.submit_bid("s1", "alice", "c1", 100, 2.0)
    engine.close_round("s1")
    engine.wait_for_round("s1", timeout=5)

    assert engine.sessions.get("s2").phase == GamePhase.LOBBY
    assert engine.ledger_snapshot("s2")["alice"].total_spent == 0


def test_reset_session_starts_over(engine):
    engine.create_session("s1", COMPANIES, PARTICIPANTS, seed=3)
    engine.start_round("s1")
    engine.submit_bid("s1", "alice", "c1", 100, 2.0)
    engine.close_round("s1")
    engine.wait_for_round("s1", timeout=5)

    session = engine.reset_session("s1")

    assert session.phase == GamePhase.LOBBY
    assert session.round_number == 0
    assert all(entry.total_spent == 0 for entry in engine.ledger_snapshot("s1").values())
    assert engine.start_round("s1") == 1


def test_teardown_drops_session_and_late_results(engine):
    completions = []
    engine.subscribe(completions.append)
    engine.create_session("s1", COMPANIES, PARTICIPANTS)
    controller = engine.controller("s1")
    gate = threading.Event()
    inner = controller.bot_bid_generator

    class _Slow:
        def generate_bids(self, bot, session, available):
            gate.wait(5)
            return inner.generate_bids(bot, session, available)

    controller.bot_bid_generator = _Slow()
    engine.start_round("s1")
    engine.close_round("s1")

    engine.teardown_session("s1")
    gate.set()

    assert "s1" not in engine.sessions
    with pytest.raises(SessionNotFoundError):
        engine.controller("s1")
    assert completions == []


def test_failing_subscriber_does_not_block_others(engine):
    received = []

    def broken(completion):
        raise RuntimeError("subscriber failure")

    engine.subscribe(broken)
    engine.subscribe(received.append)
    engine.create_session("s1", COMPANIES, PARTICIPANTS)
    engine.start_round("s1")
    engine.close_round("s1")
    engine.wait_for_round("s1", timeout=5)

    assert len(received) == 1


def test_scavengers_are_topped_up_when_enabled():
    engine = IPOEngine(EngineSettings(processing_delay_sec=0.0, bidding_window_sec=None,
                                      ensure_scavengers=True))
    try:
        session = engine.create_session("s1", COMPANIES, PARTICIPANTS)
    finally:
        engine.shutdown()

    scavengers = [b for b in session.bots if b.profile.archetype.value == "scavenger"]
    assert len(scavengers) == 5
    assert len({b.participant_id for b in session.participants.values()}) == len(session.participants)


def test_participant_spec_validation():
    with pytest.raises(ValidationError):
        ParticipantSpec(participant_id="b", display_name="B", is_human=False)
    with pytest.raises(ValidationError):
        ParticipantSpec(participant_id="h", display_name="H", bot_profile="ceo")
    with pytest.raises(ValidationError):
        CompanySpec(company_id="c", name="C", total_shares=0)


def test_settings_from_scenario_params():
    settings = EngineSettings.from_params(get_scenario("bot_only_sweep").parameters)

    assert settings.starting_capital == pytest.approx(10000.0)
    assert settings.processing_delay_sec == 0.0
    assert settings.bidding_window_sec is None
    assert settings.lot_size == 100


def test_settings_reject_delay_longer_than_timeout():
    with pytest.raises(ValidationError):
        EngineSettings(processing_delay_sec=5.0, clearing_timeout_sec=2.0)


def test_scenarios_are_listed_and_validated():
    scenarios = list_scenarios()

    assert {"default_ipo", "oversubscribed", "thin_demand", "ceo_race", "bot_only_sweep"} <= set(scenarios)
    with pytest.raises(ValueError):
        get_scenario("no_such_scenario")

    specs = get_scenario("default_ipo").participant_specs()
    assert specs[0].participant_id == "player_1"
    assert "bot_scavenger_2" in {s.participant_id for s in specs}


def test_data_recorder_frames(engine, tmp_path):
    session = engine.create_session("s1", COMPANIES, PARTICIPANTS, seed=5)
    controller = engine.controller("s1")
    recorder = DataRecorder(session, controller.accountant)

    engine.start_round("s1")
    engine.submit_bid("s1", "alice", "c2", 200, 3.0)
    engine.close_round("s1")
    recorder.record_round(engine.wait_for_round("s1", timeout=5))

    companies = recorder.companies_frame()
    assert list(companies['company_id']) == ["c1", "c2"]
    allocations = recorder.allocations_frame()
    assert allocations['cost'].sum() == pytest.approx(companies['revenue'].sum())
    ledger = recorder.ledger_frame()
    assert len(ledger) == len(session.participants)
    assert set(recorder.deployment_by_type().index) == {"human", "ceo", "scavenger"}

    data_path = recorder.save(tmp_path)
    for name in ("ipo_allocations.csv", "company_summary.csv", "ledger.csv", "positions.csv"):
        assert (data_path / name).exists()
