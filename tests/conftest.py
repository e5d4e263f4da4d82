import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from agents.bot_profiles import DEFAULT_REGISTRY
from agents.participant import Participant
from market.company import Company
from market.state.session import GamePhase, Session


def make_session(companies=None, participants=None, seed=7, session_id="test_session"):
    if companies is None:
        companies = [Company("c1", "Lemonade Co", 1000), Company("c2", "Juice Corp", 1000)]
    if participants is None:
        participants = [
            Participant("alice", "Alice", 1000.0),
            Participant("bob", "Bob", 1000.0),
            Participant("carol", "Carol", 5000.0),
        ]
    return Session(session_id, companies, participants, seed=seed)


def open_round(session):
    """Put a session into an open IPO round without a controller"""
    session.round_number += 1
    session.epoch += 1
    session.round_settled = False
    session.open_bid_pool()
    session.phase = GamePhase.IPO
    session.bidding_open = True
    return session


def make_bot(participant_id, archetype, capital=1000.0, profile=None):
    profile = profile or DEFAULT_REGISTRY.get(archetype)
    return Participant(participant_id, f"{profile.display_name} {participant_id}", capital,
                       is_human=False, profile=profile)


@pytest.fixture
def session():
    return open_round(make_session())
