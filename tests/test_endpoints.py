"""Unit tests for the HTTP endpoint handlers."""

import io
import json
from unittest.mock import Mock

import pytest

from apl.constants import WEEKLY_STATS
from apl.endpoints import (
    JsonHandler,
    camelize,
    handle_cap_points,
    handle_player_performance,
    handle_sync_player_stats,
    handle_update_matches,
    is_authorized_cron,
)
from apl.errors import SheetError
from apl.models import PerformanceRow

PERFORMANCE_VALUES = [
    ['Week', 'Match', 'Players', 'Team', 'Total Points'],
    ['1', '114960', 'Virat Kohli', 'RCB', '62'],
    ['1', '114960', 'Jasprit Bumrah', 'MI', '45'],
    ['2', '114961', 'Virat Kohli', 'RCB', '18'],
]

CAP_VALUES = [
    ['Week', 'Orange Cap', 'Purple Cap'],
    ['1', 'Virat Kohli', 'Jasprit Bumrah'],
]


@pytest.fixture(autouse=True)
def no_sheet_env(monkeypatch):
    monkeypatch.delenv('PLAYER_STATS_SHEET_ID', raising=False)
    monkeypatch.delenv('CRON_SECRET', raising=False)


def sheets_returning(values):
    sheets = Mock()
    sheets.fetch_tab.return_value = values
    return sheets


@pytest.fixture
def league(saved_tournament, add_team, make_roster):
    add_team('u1', 'ipl2025', make_roster(['Virat Kohli'], captain=0))
    add_team('u2', 'ipl2025', make_roster(['Jasprit Bumrah']))


class TestCamelize:
    """Tests for response key conversion."""

    def test_dataclass(self):
        row = PerformanceRow(week=1, match_id='m1', player_name='A', total_points=4)
        assert camelize(row) == {
            'week': 1,
            'matchId': 'm1',
            'playerName': 'A',
            'team': '',
            'totalPoints': 4,
        }

    def test_nested_and_non_string_keys(self):
        assert camelize({'weekly_points': {1: 10}, 'items': [{'user_id': 'u1'}]}) == {
            'weeklyPoints': {1: 10},
            'items': [{'userId': 'u1'}],
        }


class TestPlayerPerformance:
    """Tests for GET /api/player-performance."""

    def test_requires_sheet_id(self):
        status, body = handle_player_performance({}, sheets=Mock())
        assert status == 400
        assert body == {'success': False, 'error': 'No sheet ID provided'}

    def test_sheet_id_from_env(self, monkeypatch):
        monkeypatch.setenv('PLAYER_STATS_SHEET_ID', 'env-sheet')
        sheets = sheets_returning(PERFORMANCE_VALUES)

        status, _body = handle_player_performance({}, sheets=sheets)

        assert status == 200
        assert sheets.fetch_tab.call_args[0][0] == 'env-sheet'

    def test_rows(self):
        status, body = handle_player_performance(
            {'sheetId': 's1'}, sheets=sheets_returning(PERFORMANCE_VALUES)
        )
        assert status == 200
        assert body['success']
        assert len(body['processedRows']) == 3
        assert body['processedRows'][0]['playerName'] == 'Virat Kohli'

    def test_week_filter(self):
        _status, body = handle_player_performance(
            {'sheetId': 's1', 'week': '2'}, sheets=sheets_returning(PERFORMANCE_VALUES)
        )
        assert body['weekNumber'] == 2
        assert [r['totalPoints'] for r in body['processedRows']] == [18.0]

    def test_bad_week(self):
        status, body = handle_player_performance({'sheetId': 's1', 'week': 'two'}, sheets=Mock())
        assert status == 400
        assert 'week must be an integer' in body['error']

    def test_no_rows(self):
        status, body = handle_player_performance(
            {'sheetId': 's1'}, sheets=sheets_returning(PERFORMANCE_VALUES[:1])
        )
        assert status == 404
        assert body['error'] == 'No data found in the sheet'

    def test_sheet_error(self):
        sheets = Mock()
        sheets.fetch_tab.side_effect = SheetError('quota exceeded')

        status, body = handle_player_performance({'sheetId': 's1'}, sheets=sheets)

        assert status == 502
        assert body['error'] == 'Failed to fetch player performance data'
        assert body['details'] == 'quota exceeded'


class TestSyncPlayerStats:
    """Tests for GET /api/sync/player-stats."""

    def test_no_tournament(self, store):
        status, body = handle_sync_player_stats(
            {'sheetId': 's1'}, store=store, sheets=sheets_returning(PERFORMANCE_VALUES)
        )
        assert status == 404
        assert body['error'] == 'No active tournament found'

    def test_full_sync(self, store, league):
        status, body = handle_sync_player_stats(
            {'sheetId': 's1'}, store=store, sheets=sheets_returning(PERFORMANCE_VALUES)
        )

        assert status == 200
        assert body['message'] == 'Complete sync finished successfully'
        assert body['hasMoreUsers'] is False
        assert body['nextBatchUrl'] is None
        assert body['processedUsers'] == 2
        assert store.get(WEEKLY_STATS, 'u1_ipl2025_1')['points'] == 124

    def test_partial_batch(self, store, league):
        status, body = handle_sync_player_stats(
            {'sheetId': 's1', 'week': '1', 'batchSize': '1'},
            store=store,
            sheets=sheets_returning(PERFORMANCE_VALUES),
        )

        assert status == 200
        assert body['hasMoreUsers'] is True
        assert body['nextStartIndex'] == 1
        assert body['nextBatchUrl'] == '/api/sync/player-stats?sheetId=s1&week=1&startIndex=1&batchSize=1'
        assert body['message'].startswith('Partial sync completed (batch 1)')
        assert store.get(WEEKLY_STATS, 'u2_ipl2025_1') is None

    def test_bad_batch_size(self, store):
        status, _body = handle_sync_player_stats({'sheetId': 's1', 'batchSize': '0'}, store=store)
        assert status == 400


class TestCapPoints:
    """Tests for GET /api/cap-points."""

    def test_week_required(self, store):
        status, body = handle_cap_points({'sheetId': 's1'}, store=store)
        assert status == 400
        assert body['error'] == 'Week number is required'

    def test_no_tournament(self, store):
        status, _body = handle_cap_points(
            {'sheetId': 's1', 'week': '1'}, store=store, sheets=sheets_returning(CAP_VALUES)
        )
        assert status == 404

    def test_no_caps_for_week(self, store, league):
        status, body = handle_cap_points(
            {'sheetId': 's1', 'week': '3'}, store=store, sheets=sheets_returning(CAP_VALUES)
        )
        assert status == 404
        assert body['error'] == 'No cap data found for week 3'

    def test_awards(self, store, league):
        status, body = handle_cap_points(
            {'sheetId': 's1', 'week': '1'}, store=store, sheets=sheets_returning(CAP_VALUES)
        )

        assert status == 200
        assert body['orangeCaps'] == ['Virat Kohli']
        assert body['results']['usersProcessed'] == 2
        assert body['results']['pointsAwarded'] == 100


class TestUpdateMatches:
    """Tests for the match refresh cron endpoint."""

    def test_vercel_cron_header(self):
        assert is_authorized_cron({'X-Vercel-Cron': '1'})

    def test_bearer_secret(self, monkeypatch):
        monkeypatch.setenv('CRON_SECRET', 's3cret')
        assert is_authorized_cron({'authorization': 'Bearer s3cret'})
        assert not is_authorized_cron({'Authorization': 'Bearer wrong'})

    def test_no_secret_configured(self):
        assert not is_authorized_cron({'Authorization': 'Bearer None'})

    def test_secret_overrides_cron_header(self, monkeypatch):
        monkeypatch.setenv('CRON_SECRET', 's3cret')
        assert not is_authorized_cron({'x-vercel-cron': '1'})
        assert is_authorized_cron({'x-vercel-cron': '1', 'Authorization': 'Bearer s3cret'})

    def test_unauthorized(self, store):
        cricket = Mock()
        status, body = handle_update_matches({}, {}, store=store, cricket=cricket)
        assert status == 401
        cricket.recent_matches.assert_not_called()

    def test_sync_all(self, store):
        cricket = Mock()
        cricket.recent_matches.return_value = []

        status, body = handle_update_matches({}, {'x-vercel-cron': '1'}, store=store, cricket=cricket)

        assert status == 200
        assert body['updated'] == 0
        assert body['errors'] == []

    def test_single_match(self, store):
        cricket = Mock()
        cricket.scorecard.return_value = {}

        status, body = handle_update_matches(
            {'matchId': '100'}, {'x-vercel-cron': '1'}, store=store, cricket=cricket
        )

        assert status == 200
        assert body['matchId'] == '100'
        assert body['playersScored'] == 0
        assert body['weekNumber'] is None


class EchoHandler(JsonHandler):
    endpoint = staticmethod(lambda params: (200, {'params': params}))


class BrokenHandler(JsonHandler):
    endpoint = staticmethod(lambda params: 1 / 0)


def make_handler(cls, path):
    handler = cls.__new__(cls)
    handler.path = path
    handler.headers = {}
    handler.wfile = io.BytesIO()
    handler.send_response = Mock()
    handler.send_header = Mock()
    handler.end_headers = Mock()
    return handler


class TestJsonHandler:
    """Tests for the Vercel handler base class."""

    def test_get_passes_query_params(self):
        handler = make_handler(EchoHandler, '/api/cap-points?week=2&sheetId=abc')

        handler.do_GET()

        handler.send_response.assert_called_once_with(200)
        handler.send_header.assert_any_call('Access-Control-Allow-Origin', '*')
        assert json.loads(handler.wfile.getvalue()) == {'params': {'week': '2', 'sheetId': 'abc'}}

    def test_unhandled_error_is_500(self):
        handler = make_handler(BrokenHandler, '/api/broken')

        handler.do_GET()

        handler.send_response.assert_called_once_with(500)
        body = json.loads(handler.wfile.getvalue())
        assert body['success'] is False
        assert 'division by zero' in body['details']

    def test_options(self):
        handler = make_handler(EchoHandler, '/api/cap-points')
        handler.do_OPTIONS()
        handler.send_response.assert_called_once_with(200)
