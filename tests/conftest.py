"""Shared fixtures for the APL test suite."""

from datetime import datetime, timezone

import pytest

from apl.config import clear_config_cache
from apl.constants import TOURNAMENTS, USER_TEAMS, USERS
from apl.keys import TeamKey
from apl.schemas import CurrentRoster, RosterPlayer, Tournament, TransferWindow
from apl.store import JsonFileStore
from apl.utils import to_document

UTC = timezone.utc


@pytest.fixture(autouse=True)
def fresh_config():
    """Reload league config for every test."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def store(tmp_path):
    """Empty JSON file store in a temp directory."""
    return JsonFileStore(tmp_path / 'store')


@pytest.fixture
def make_roster():
    """Build a roster from player names; captain / vice_captain are indexes."""

    def _make(names, captain=None, vice_captain=None):
        return [
            RosterPlayer(
                id=f'p{i}',
                name=name,
                role='batsman',
                is_captain=(i == captain),
                is_vice_captain=(i == vice_captain),
            )
            for i, name in enumerate(names)
        ]

    return _make


@pytest.fixture
def eleven(make_roster):
    """A valid 11-player roster: Player 0 captain, Player 1 vice-captain."""
    return make_roster([f'Player {i}' for i in range(11)], captain=0, vice_captain=1)


@pytest.fixture
def tournament():
    """IPL-style tournament with three weekly transfer windows, none marked active."""
    return Tournament(
        id='ipl2025',
        name='IPL 2025',
        start_date=datetime(2025, 3, 22, tzinfo=UTC),
        end_date=datetime(2025, 5, 25, tzinfo=UTC),
        status='active',
        transfer_windows=[
            TransferWindow(
                week_number=1,
                start_date=datetime(2025, 3, 20, tzinfo=UTC),
                end_date=datetime(2025, 3, 22, tzinfo=UTC),
            ),
            TransferWindow(
                week_number=2,
                start_date=datetime(2025, 3, 27, tzinfo=UTC),
                end_date=datetime(2025, 3, 29, tzinfo=UTC),
            ),
            TransferWindow(
                week_number=3,
                start_date=datetime(2025, 4, 3, tzinfo=UTC),
                end_date=datetime(2025, 4, 5, tzinfo=UTC),
            ),
        ],
        created_at=datetime(2025, 3, 1, tzinfo=UTC),
    )


@pytest.fixture
def saved_tournament(store, tournament):
    """The tournament fixture written to the store."""
    doc = to_document(tournament)
    doc.pop('id')
    store.set(TOURNAMENTS, tournament.id, doc)
    return tournament


@pytest.fixture
def add_team(store):
    """Write a user's current roster (and optionally a profile) to the store."""

    def _add(user_id, tournament_id, players, profile=None):
        team = CurrentRoster(user_id=user_id, tournament_id=tournament_id, players=players)
        store.set(USER_TEAMS, TeamKey(user_id, tournament_id).format(), to_document(team))
        if profile is not None:
            store.set(USERS, user_id, profile)
        return team

    return _add
