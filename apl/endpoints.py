"""HTTP endpoint handlers.

Each ``handle_*`` function takes the request's query parameters (and
headers where needed) and returns ``(status_code, payload)``. The Vercel
functions under ``api/`` wrap them with :class:`JsonHandler`.
"""

import dataclasses
import functools
import json
import logging
from collections.abc import Callable, Mapping
from http.server import BaseHTTPRequestHandler
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

from pydantic.alias_generators import to_camel

from .cap_points import parse_cap_holders, process_cap_points
from .config import get_cron_secret, get_default_batch_size, get_sheet_id
from .cricket_api import CricketApiClient, refresh_match, sync_match_data
from .errors import AplError
from .players import build_alias_map
from .sheets import SheetsClient, fetch_cap_records, fetch_performance_rows
from .store import DocumentStore, open_store
from .sync import sync_player_stats
from .transfers import get_active_tournament
from .utils import now_iso

logger = logging.getLogger('apl.endpoints')

Response = tuple[int, dict[str, Any]]


class BadRequest(ValueError):
    """Invalid query parameter."""


def camelize(value: Any) -> Any:
    """Convert dataclasses and dict keys to camelCase JSON-ready values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    if isinstance(value, dict):
        return {to_camel(k) if isinstance(k, str) else k: camelize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [camelize(v) for v in value]
    return value


def _int_param(params: Mapping[str, str], name: str, default: int | None = None) -> int | None:
    raw = params.get(name)
    if raw in (None, ''):
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise BadRequest(f'{name} must be an integer, got {raw!r}') from e


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def json_errors(summary: str):
    """Turn BadRequest / AplError raised by a handler into JSON error responses."""

    def decorator(func: Callable[..., Response]) -> Callable[..., Response]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Response:
            try:
                return func(*args, **kwargs)
            except BadRequest as e:
                return 400, {'success': False, 'error': str(e)}
            except AplError as e:
                logger.error(f'{summary}: {e}')
                return e.status_code, {'success': False, 'error': summary, 'details': str(e)}

        return wrapper

    return decorator


@json_errors('Failed to fetch player performance data')
def handle_player_performance(
    params: Mapping[str, str], sheets: SheetsClient | None = None
) -> Response:
    """GET /api/player-performance?sheetId=&week="""
    sheet_id = params.get('sheetId') or get_sheet_id()
    if not sheet_id:
        raise BadRequest('No sheet ID provided')
    week = _int_param(params, 'week')

    rows = fetch_performance_rows(sheet_id, week=week, client=sheets)
    if not rows:
        return 404, {'success': False, 'error': 'No data found in the sheet'}

    return 200, {
        'success': True,
        'weekNumber': week,
        'processedRows': camelize(rows),
        'timestamp': now_iso(),
    }


@json_errors('Failed to sync player stats')
def handle_sync_player_stats(
    params: Mapping[str, str],
    store: DocumentStore | None = None,
    sheets: SheetsClient | None = None,
) -> Response:
    """GET /api/sync/player-stats?sheetId=&week=&startIndex=&batchSize="""
    sheet_id = params.get('sheetId') or get_sheet_id()
    if not sheet_id:
        raise BadRequest('No sheet ID provided')
    week = _int_param(params, 'week')
    start_index = _int_param(params, 'startIndex', 0)
    batch_size = _int_param(params, 'batchSize', get_default_batch_size())
    if start_index < 0 or batch_size < 1:
        raise BadRequest('startIndex must be >= 0 and batchSize >= 1')

    store = store or open_store()
    tournament = get_active_tournament(store)
    if tournament is None:
        return 404, {'success': False, 'error': 'No active tournament found'}

    rows = fetch_performance_rows(sheet_id, client=sheets)
    if not rows:
        return 404, {'success': False, 'error': 'No data found in the sheet'}

    report = sync_player_stats(
        store,
        rows,
        tournament,
        week=week,
        start_index=start_index,
        batch_size=batch_size,
        aliases=build_alias_map(store),
    )

    next_batch_url = None
    if report.has_more_users:
        query = {'sheetId': sheet_id}
        if week is not None:
            query['week'] = week
        query.update({'startIndex': report.next_start_index, 'batchSize': batch_size})
        next_batch_url = f'/api/sync/player-stats?{urlencode(query)}'

    message = (
        f'Partial sync completed (batch {start_index // batch_size + 1}). Please run next batch.'
        if report.has_more_users
        else 'Complete sync finished successfully'
    )
    return 200, {
        'success': True,
        'message': message,
        **camelize(report),
        'weekNumber': week,
        'nextBatchUrl': next_batch_url,
        'timestamp': now_iso(),
    }


@json_errors('Failed to process cap points')
def handle_cap_points(
    params: Mapping[str, str],
    store: DocumentStore | None = None,
    sheets: SheetsClient | None = None,
) -> Response:
    """GET /api/cap-points?sheetId=&week="""
    week = _int_param(params, 'week')
    if week is None:
        raise BadRequest('Week number is required')
    sheet_id = params.get('sheetId') or get_sheet_id()
    if not sheet_id:
        raise BadRequest('No sheet ID provided')

    store = store or open_store()
    tournament = get_active_tournament(store)
    if tournament is None:
        return 404, {'success': False, 'error': 'No active tournament found'}

    records = fetch_cap_records(sheet_id, client=sheets)
    if not records:
        return 404, {'success': False, 'error': 'No cap data found in the sheet'}

    orange, purple = parse_cap_holders(records, week)
    if not orange and not purple:
        return 404, {'success': False, 'error': f'No cap data found for week {week}'}

    report = process_cap_points(store, tournament.id, week, orange, purple)
    return 200, {
        'success': True,
        'weekNumber': week,
        'orangeCaps': orange,
        'purpleCaps': purple,
        'results': camelize(report),
        'timestamp': now_iso(),
    }


def is_authorized_cron(headers: Mapping[str, str]) -> bool:
    """
    Check a match refresh request.

    With CRON_SECRET set, only the matching bearer token is accepted.
    Without one, the x-vercel-cron header marks a scheduled call.
    """
    secret = get_cron_secret()
    if secret:
        return _header(headers, 'Authorization') == f'Bearer {secret}'
    return bool(_header(headers, 'x-vercel-cron'))


@json_errors('Failed to update matches')
def handle_update_matches(
    params: Mapping[str, str],
    headers: Mapping[str, str],
    store: DocumentStore | None = None,
    cricket: CricketApiClient | None = None,
) -> Response:
    """GET /api/cron/update-matches?matchId="""
    if not is_authorized_cron(headers):
        return 401, {'success': False, 'error': 'Unauthorized'}

    store = store or open_store()
    cricket = cricket or CricketApiClient()
    match_id = params.get('matchId')

    if match_id:
        result = refresh_match(store, match_id, get_active_tournament(store), client=cricket)
    else:
        result = sync_match_data(store, client=cricket)
    return 200, {'success': True, **result, 'timestamp': now_iso()}


class JsonHandler(BaseHTTPRequestHandler):
    """
    Vercel function base: routes GET to a handle_* function and writes its
    result as JSON with CORS headers.

    Subclasses set ``endpoint``; ``wants_headers`` passes request headers
    as the second argument.
    """

    endpoint: Callable[..., Response]
    wants_headers = False

    def do_OPTIONS(self):
        """Handle CORS preflight."""
        self.send_response(200)
        self.send_header('Access-Control-Allow-Origin', '*')
        self.send_header('Access-Control-Allow-Methods', 'GET, OPTIONS')
        self.send_header('Access-Control-Allow-Headers', 'Content-Type, Authorization')
        self.end_headers()

    def do_GET(self):
        query = parse_qs(urlparse(self.path).query)
        params = {key: values[0] for key, values in query.items()}
        try:
            if self.wants_headers:
                status, payload = type(self).endpoint(params, dict(self.headers.items()))
            else:
                status, payload = type(self).endpoint(params)
        except Exception as e:
            logger.exception(f'Unhandled error in {self.path}')
            status, payload = 500, {'success': False, 'error': 'Internal error', 'details': str(e)}
        self._send_json(status, payload)

    def _send_json(self, status_code: int, data: dict):
        """Send JSON response with CORS headers."""
        self.send_response(status_code)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Access-Control-Allow-Origin', '*')
        self.send_header('Access-Control-Allow-Methods', 'GET, OPTIONS')
        self.send_header('Access-Control-Allow-Headers', 'Content-Type, Authorization')
        self.end_headers()
        self.wfile.write(json.dumps(data, default=str).encode())

    def log_message(self, format, *args):
        """Route request logs through the apl logger."""
        logger.debug(format % args)
