"""Cricbuzz (RapidAPI) client and match data sync."""

import logging
from datetime import datetime, timezone
from typing import Any

import requests

from .config import get_rapid_api_key
from .constants import CRICKET_API_HOST, MATCHES
from .errors import AplError, CricketApiError, DocumentNotFound
from .players import update_player_roles
from .points import apply_match_points
from .schemas import Tournament
from .scoring import assign_match_week, calculate_match_points
from .store import DocumentStore
from .utils import now_iso

logger = logging.getLogger('apl.cricket_api')


class CricketApiClient:
    """Client for the Cricbuzz cricket API on RapidAPI."""

    def __init__(
        self,
        api_key: str | None = None,
        session: requests.Session | None = None,
        timeout: int = 30,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.session.headers.update(
            {
                'X-RapidAPI-Key': api_key or get_rapid_api_key() or '',
                'X-RapidAPI-Host': CRICKET_API_HOST,
            }
        )

    def _get(self, path: str) -> dict[str, Any]:
        url = f'https://{CRICKET_API_HOST}/{path}'
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise CricketApiError(f'Cricket API request to {path} failed: {e}') from e
        return response.json()

    def recent_matches(self) -> list[dict[str, Any]]:
        """
        Recently played matches.

        Returns:
            List of {'matchId', 'matchInfo'} flattened out of the API's
            type -> series -> match nesting
        """
        data = self._get('matches/v1/recent')
        matches = []
        for match_type in data.get('typeMatches', []):
            for series in match_type.get('seriesMatches', []):
                wrapper = series.get('seriesAdWrapper') or {}
                for match in wrapper.get('matches', []):
                    info = match.get('matchInfo') or {}
                    if 'matchId' in info:
                        matches.append({'matchId': str(info['matchId']), 'matchInfo': info})
        return matches

    def scorecard(self, match_id: str) -> dict[str, Any]:
        """Raw scorecard of a match."""
        return self._get(f'mcenter/v1/{match_id}/scard')

    def match_squad(self, match_id: str, team_id: str) -> list[dict[str, Any]]:
        """Players a team named for a match (playing XI first, then the bench)."""
        players = self._get(f'mcenter/v1/{match_id}/team/{team_id}').get('players') or {}
        return [p for group in ('playing XI', 'bench') for p in players.get(group) or []]


def normalize_scorecard(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Convert a Cricbuzz scorecard to the stored shape.

    Each innings becomes one of team1/team2 holding the innings' batsmen and
    the bowlers who bowled in it.
    """
    normalized = {}
    for index, innings in enumerate(raw.get('scoreCard', [])[:2], start=1):
        batting = (innings.get('batTeamDetails') or {}).get('batsmenData') or {}
        bowling = (innings.get('bowlTeamDetails') or {}).get('bowlersData') or {}
        batsmen = {
            str(b['batId']): {
                'id': str(b['batId']),
                'name': b.get('batName', ''),
                'runs': b.get('runs', 0),
                'balls': b.get('balls', 0),
                'fours': b.get('fours', 0),
                'sixes': b.get('sixes', 0),
                'dismissal': b.get('outDesc', ''),
                'wicketCode': b.get('wicketCode', ''),
                'fielderId1': b.get('fielderId1'),
                'fielderId2': b.get('fielderId2'),
            }
            for b in batting.values()
            if b.get('batId')
        }
        bowlers = {
            str(b['bowlerId']): {
                'id': str(b['bowlerId']),
                'name': b.get('bowlName', ''),
                'wickets': b.get('wickets', 0),
                'maidens': b.get('maidens', 0),
                'runs': b.get('runs', 0),
                'overs': b.get('overs', 0),
            }
            for b in bowling.values()
            if b.get('bowlerId')
        }
        normalized[f'team{index}'] = {'batsmen': batsmen, 'bowlers': bowlers}
    return normalized


def match_start(match_info: dict[str, Any]) -> datetime | None:
    """Match start time from matchInfo.startDate (epoch milliseconds)."""
    value = match_info.get('startDate')
    if value in (None, ''):
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError):
        logger.warning(f'Unparsable match start date: {value!r}')
        return None


def store_match(
    store: DocumentStore, match_id: str, match_info: dict[str, Any], scorecard: dict[str, Any]
) -> None:
    store.set(
        MATCHES,
        str(match_id),
        {
            'matchId': str(match_id),
            'matchInfo': match_info,
            'scorecard': scorecard,
            'lastUpdated': now_iso(),
        },
        merge=True,
    )


def sync_match_data(store: DocumentStore, client: CricketApiClient | None = None) -> dict[str, Any]:
    """
    Fetch recent matches and their scorecards into the matches collection.

    Per-match failures are collected rather than raised.

    Returns:
        {'updated': int, 'errors': [{'matchId', 'error'}]}
    """
    client = client or CricketApiClient()
    results: dict[str, Any] = {'updated': 0, 'errors': []}

    for match in client.recent_matches():
        match_id = match['matchId']
        try:
            scorecard = normalize_scorecard(client.scorecard(match_id))
            store_match(store, match_id, match['matchInfo'], scorecard)
            results['updated'] += 1
        except AplError as e:
            logger.error(f'Error updating match {match_id}: {e}')
            results['errors'].append({'matchId': match_id, 'error': str(e)})

    logger.info(f"Synced {results['updated']} matches ({len(results['errors'])} errors)")
    return results


def refresh_match(
    store: DocumentStore,
    match_id: str,
    tournament: Tournament | None = None,
    client: CricketApiClient | None = None,
) -> dict[str, Any]:
    """
    Refresh one match: store its scorecard, score it, map it to a week and
    credit users' weekly stats with it.

    Returns:
        {'matchId', 'playersScored', 'weekNumber', 'usersUpdated'}
        (weekNumber None when the match couldn't be placed in a week)
    """
    client = client or CricketApiClient()
    existing = store.get(MATCHES, str(match_id)) or {}
    match_info = existing.get('matchInfo') or {}

    scorecard = normalize_scorecard(client.scorecard(match_id))
    store_match(store, match_id, match_info, scorecard)
    scored = calculate_match_points(store, str(match_id), scorecard)

    mapping = None
    users_updated = 0
    if tournament is not None:
        mapping = assign_match_week(store, str(match_id), tournament, match_start(match_info))
        if mapping is not None:
            report = apply_match_points(store, tournament, str(match_id), week=mapping.week_number)
            users_updated = report.users_updated

    return {
        'matchId': str(match_id),
        'playersScored': len(scored),
        'weekNumber': mapping.week_number if mapping else None,
        'usersUpdated': users_updated,
    }


def refresh_player_roles(
    store: DocumentStore, match_id: str, client: CricketApiClient | None = None
) -> int:
    """
    Set player roles and teams from both squads of a stored match.

    Returns:
        Number of players updated

    Raises:
        DocumentNotFound: If the match hasn't been stored
    """
    doc = store.get(MATCHES, str(match_id))
    if doc is None:
        raise DocumentNotFound(MATCHES, str(match_id))

    client = client or CricketApiClient()
    info = doc.get('matchInfo') or {}
    count = 0
    for side in ('team1', 'team2'):
        team = info.get(side) or {}
        if not team.get('teamId'):
            continue
        squad = client.match_squad(str(match_id), str(team['teamId']))
        count += update_player_roles(store, squad, team=team.get('teamSName') or team.get('teamName'))
    return count
