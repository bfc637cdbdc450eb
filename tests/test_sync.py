"""Unit tests for the batched player stats sync."""

from unittest.mock import patch

import pytest

from apl.constants import TRANSFER_HISTORY, USERS, WEEKLY_STATS
from apl.errors import StoreError
from apl.models import PerformanceRow
from apl.schemas import RosterSnapshot
from apl.sync import sync_player_stats, tournament_user_ids
from apl.team_resolver import get_team_for_week
from apl.utils import to_document

ROWS = [
    PerformanceRow(week=1, match_id='m1', player_name='Virat Kohli', total_points=40),
    PerformanceRow(week=1, match_id='m1', player_name='Jasprit Bumrah', total_points=30),
    PerformanceRow(week=1, match_id='m1', player_name='Unknown Debutant', total_points=12),
    PerformanceRow(week=2, match_id='m2', player_name='Virat Kohli', total_points=10),
]


@pytest.fixture
def league(add_team, make_roster):
    add_team('u1', 'ipl2025', make_roster(['Virat Kohli', 'Jasprit Bumrah'], captain=0))
    add_team('u2', 'ipl2025', make_roster(['Jasprit Bumrah'], vice_captain=0))
    add_team('u3', 'ipl2025', make_roster(['Rohit Sharma']))


class TestTournamentUserIds:
    """Tests for listing tournament users."""

    def test_sorted_ids(self, store, league, add_team, make_roster):
        add_team('u0', 'ipl2024', make_roster(['A']))
        assert tournament_user_ids(store, 'ipl2025') == ['u1', 'u2', 'u3']


class TestSyncPlayerStats:
    """Tests for sync_player_stats."""

    def test_all_weeks(self, store, tournament, league):
        report = sync_player_stats(store, ROWS, tournament)

        assert report.processed_rows == 4
        assert report.processed_users == 3
        assert not report.has_more_users
        assert report.next_start_index == 0
        assert [r.week for r in report.results] == [1, 2]
        assert report.results[0].teams_processed == 3
        assert report.results[0].players_processed == 3

        assert store.get(WEEKLY_STATS, 'u1_ipl2025_1')['points'] == 110
        assert store.get(WEEKLY_STATS, 'u2_ipl2025_1')['points'] == 45
        assert store.get(WEEKLY_STATS, 'u3_ipl2025_1')['points'] == 0
        assert store.get(WEEKLY_STATS, 'u1_ipl2025_2')['points'] == 20

    def test_rankings_updated(self, store, tournament, league):
        sync_player_stats(store, ROWS, tournament)

        assert store.get(WEEKLY_STATS, 'u1_ipl2025_1')['rank'] == 1
        assert store.get(WEEKLY_STATS, 'u2_ipl2025_1')['rank'] == 2
        assert store.get(USERS, 'u1') == {'totalPoints': 130, 'rank': 1}

    def test_single_week(self, store, tournament, league):
        report = sync_player_stats(store, ROWS, tournament, week=2)

        assert [r.week for r in report.results] == [2]
        assert report.processed_rows == 1
        assert store.get(WEEKLY_STATS, 'u1_ipl2025_1') is None
        assert store.get(WEEKLY_STATS, 'u1_ipl2025_2')['points'] == 20

    def test_week_without_rows_is_noop(self, store, tournament, league):
        report = sync_player_stats(store, ROWS, tournament, week=7)
        assert report.results == []
        assert store.list_ids(WEEKLY_STATS) == []

    def test_batches(self, store, tournament, league):
        first = sync_player_stats(store, ROWS, tournament, week=1, batch_size=2)

        assert first.processed_users == 2
        assert first.total_users == 3
        assert first.has_more_users
        assert first.next_start_index == 2
        assert store.get(WEEKLY_STATS, 'u3_ipl2025_1') is None

        second = sync_player_stats(
            store, ROWS, tournament, week=1, start_index=first.next_start_index, batch_size=2
        )

        assert second.processed_users == 1
        assert not second.has_more_users
        assert second.next_start_index == 0
        assert store.get(WEEKLY_STATS, 'u3_ipl2025_1') is not None

    def test_unmatched_players(self, store, tournament, league):
        report = sync_player_stats(store, ROWS, tournament)
        assert report.unmatched_players == ['Unknown Debutant']

    def test_user_error_recorded_and_others_continue(self, store, tournament, league):
        def flaky(store, user_id, tournament_id, week_number):
            if user_id == 'u2':
                raise StoreError('read failed')
            return get_team_for_week(store, user_id, tournament_id, week_number)

        with patch('apl.sync.get_team_for_week', side_effect=flaky):
            report = sync_player_stats(store, ROWS, tournament, week=1)

        assert report.errors == [{'userId': 'u2', 'week': 1, 'error': 'read failed'}]
        assert report.results[0].teams_processed == 2
        assert store.get(WEEKLY_STATS, 'u1_ipl2025_1')['points'] == 110

    def test_ranking_error_marks_week(self, store, tournament, league):
        with patch('apl.sync.update_weekly_rankings', side_effect=StoreError('rank failed')):
            report = sync_player_stats(store, ROWS, tournament, week=1)

        assert report.results[0].status == 'error'
        assert report.results[0].error == 'rank failed'

    def test_snapshot_roster_used(self, store, tournament, league, make_roster):
        """Week scoring uses the roster the user had that week."""
        snapshot = RosterSnapshot(
            user_id='u3', tournament_id='ipl2025', week_number=1,
            players=make_roster(['Virat Kohli']),
        )
        store.set(TRANSFER_HISTORY, 'u3_ipl2025_1', to_document(snapshot))

        sync_player_stats(store, ROWS, tournament, week=1)

        assert store.get(WEEKLY_STATS, 'u3_ipl2025_1')['points'] == 40
