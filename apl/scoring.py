"""Fantasy points for a player's performance in one match.

Scorecards use the shape stored in the ``matches`` collection::

    {'team1': {'batsmen': {id: batsman, ...}, 'bowlers': {id: bowler, ...}},
     'team2': {...}}

where a batsman carries id, name, runs, balls, fours, sixes, dismissal,
wicketCode and fielderId1/fielderId2, and a bowler carries id, name,
wickets, maidens, runs and overs.
"""

import logging
from datetime import datetime
from typing import Dict, Optional, Tuple

from .constants import MATCH_WEEKS, PLAYER_POINTS, POINTS
from .keys import PlayerMatchKey
from .players import sync_player_from_points
from .schemas import MatchWeek, PlayerMatchPoints, Tournament
from .store import DocumentStore
from .transfers import find_match_week
from .utils import to_document, utc_now

logger = logging.getLogger('apl.scoring')


def _num(stats: dict, key: str) -> int:
    return int(stats.get(key, 0) or 0)


def _is_out(dismissal) -> bool:
    return bool(dismissal) and str(dismissal).strip().lower() != 'not out'


def score_batting(stats: dict) -> Tuple[float, Dict[str, float]]:
    """
    Score a batting innings.

    Scoring:
        - Played: 5 points
        - Runs: 1 point each
        - Fours: 1 bonus point each
        - Sixes: 2 bonus points each
        - Milestones: 25 runs +4, 50 runs +8, 100 runs +16 (highest only)
        - Duck: -5 when out for 0 having faced a ball
    """
    rules = POINTS['batting']
    points = float(POINTS['match']['played'])
    breakdown = {'played': points}

    runs = _num(stats, 'runs')
    if runs:
        breakdown['runs'] = runs * rules['run']
        points += breakdown['runs']

    fours = _num(stats, 'fours')
    if fours:
        breakdown['fours'] = fours * rules['boundary_4']
        points += breakdown['fours']

    sixes = _num(stats, 'sixes')
    if sixes:
        breakdown['sixes'] = sixes * rules['boundary_6']
        points += breakdown['sixes']

    if runs >= 100:
        breakdown['milestone'] = rules['milestone_100']
    elif runs >= 50:
        breakdown['milestone'] = rules['milestone_50']
    elif runs >= 25:
        breakdown['milestone'] = rules['milestone_25']
    points += breakdown.get('milestone', 0)

    if runs == 0 and _num(stats, 'balls') > 0 and _is_out(stats.get('dismissal')):
        breakdown['duck'] = rules['duck']
        points += rules['duck']

    return points, breakdown


def score_bowling(stats: dict) -> Tuple[float, Dict[str, float]]:
    """
    Score a bowling spell.

    Scoring:
        - Wickets: 25 points each
        - Maidens: 8 points each
        - Haul bonus: 3 wickets +8, 4 wickets +16, 5+ wickets +25 (highest only)
    """
    rules = POINTS['bowling']
    points = 0.0
    breakdown = {}

    wickets = _num(stats, 'wickets')
    if wickets:
        breakdown['wickets'] = wickets * rules['wicket']
        points += breakdown['wickets']

    maidens = _num(stats, 'maidens')
    if maidens:
        breakdown['maidens'] = maidens * rules['maiden']
        points += breakdown['maidens']

    if wickets >= 5:
        breakdown['haul'] = rules['five_wickets']
    elif wickets >= 4:
        breakdown['haul'] = rules['four_wickets']
    elif wickets >= 3:
        breakdown['haul'] = rules['three_wickets']
    points += breakdown.get('haul', 0)

    return points, breakdown


def score_fielding(stats: dict) -> Tuple[float, Dict[str, float]]:
    """
    Score fielding contributions.

    Scoring:
        - Catches: 8 points each
        - Stumpings: 12 points each
        - Direct-hit run outs: 12 points each
    """
    rules = POINTS['fielding']
    points = 0.0
    breakdown = {}

    for key, rule in (('catches', 'catch'), ('stumpings', 'stumping'), ('runouts', 'direct_throw')):
        count = _num(stats, key)
        if count:
            breakdown[key] = count * rules[rule]
            points += breakdown[key]

    return points, breakdown


def collect_fielding_stats(scorecard: dict) -> Dict[str, dict]:
    """
    Credit catches, stumpings and direct-hit run outs to fielders from the
    dismissals in a scorecard.

    A run out with a second fielder involved is not a direct hit and earns
    nothing.
    """
    fielders: Dict[str, dict] = {}

    def credit(fielder_id, key):
        if not fielder_id or str(fielder_id) == '0':
            return
        entry = fielders.setdefault(
            str(fielder_id), {'id': str(fielder_id), 'catches': 0, 'stumpings': 0, 'runouts': 0}
        )
        entry[key] += 1

    for team in _teams(scorecard):
        for batsman in (team.get('batsmen') or {}).values():
            code = str(batsman.get('wicketCode') or '').upper()
            first = batsman.get('fielderId1')
            if code == 'CAUGHT':
                credit(first, 'catches')
            elif code == 'STUMPED':
                credit(first, 'stumpings')
            elif code == 'RUNOUT' and not batsman.get('fielderId2'):
                credit(first, 'runouts')

    return fielders


def _teams(scorecard: dict) -> list[dict]:
    return [scorecard[key] for key in ('team1', 'team2') if scorecard.get(key)]


def score_scorecard(scorecard: dict) -> Dict[str, Tuple[float, Dict[str, float], dict]]:
    """
    Score every player in a scorecard.

    A player who batted, bowled and fielded gets one combined total; the
    breakdown keys are prefixed with the discipline.

    Returns:
        Dict of player_id -> (points, breakdown, performance)
    """
    results: Dict[str, Tuple[float, Dict[str, float], dict]] = {}

    def add(player_id, discipline, scored, performance):
        points, breakdown = scored
        total, combined, perf = results.get(player_id, (0.0, {}, {}))
        combined.update({f'{discipline}_{k}': v for k, v in breakdown.items()})
        perf[discipline] = performance
        results[player_id] = (total + points, combined, perf)

    for team in _teams(scorecard):
        for batsman in (team.get('batsmen') or {}).values():
            add(
                str(batsman['id']),
                'batting',
                score_batting(batsman),
                {k: batsman.get(k, 0) for k in ('runs', 'balls', 'fours', 'sixes')},
            )
        for bowler in (team.get('bowlers') or {}).values():
            add(
                str(bowler['id']),
                'bowling',
                score_bowling(bowler),
                {k: bowler.get(k, 0) for k in ('wickets', 'maidens', 'runs', 'overs')},
            )

    for fielder_id, fielding in collect_fielding_stats(scorecard).items():
        add(
            fielder_id,
            'fielding',
            score_fielding(fielding),
            {k: fielding[k] for k in ('catches', 'stumpings', 'runouts')},
        )

    return results


def _player_names(scorecard: dict) -> Dict[str, str]:
    names = {}
    for team in _teams(scorecard):
        for group in ('batsmen', 'bowlers'):
            for player in (team.get(group) or {}).values():
                if player.get('name'):
                    names[str(player['id'])] = player['name']
    return names


def calculate_match_points(
    store: DocumentStore, match_id: str, scorecard: dict, update_players: bool = True
) -> list[PlayerMatchPoints]:
    """
    Score a match and store one playerPoints document per player.

    Re-running overwrites the same documents, and player master stats count
    each match once, so it is safe to repeat.

    Returns:
        The stored PlayerMatchPoints
    """
    stored = []
    now = utc_now()
    names = _player_names(scorecard)
    for player_id, (points, breakdown, performance) in score_scorecard(scorecard).items():
        record = PlayerMatchPoints(
            player_id=player_id,
            match_id=str(match_id),
            points=points,
            performance={**performance, 'breakdown': breakdown},
            timestamp=now,
        )
        store.set(PLAYER_POINTS, PlayerMatchKey(player_id, str(match_id)).format(), to_document(record))
        stored.append(record)
        if update_players:
            sync_player_from_points(store, record, names.get(player_id))

    logger.info(f'Stored points for {len(stored)} players in match {match_id}')
    return stored


def assign_match_week(
    store: DocumentStore,
    match_id: str,
    tournament: Tournament,
    match_date: Optional[datetime] = None,
    week_number: Optional[int] = None,
) -> Optional[MatchWeek]:
    """
    Map a match to a tournament week.

    An existing mapping wins. Otherwise an explicit week_number is stored as
    a manual assignment, or the week is calculated from the match date and
    the tournament's transfer windows.

    Returns:
        The MatchWeek mapping, or None if no week could be determined
    """
    existing = store.get(MATCH_WEEKS, str(match_id))
    if existing is not None:
        return MatchWeek.model_validate(existing)

    auto_assigned = week_number is None
    if week_number is None:
        if match_date is None:
            logger.warning(f'No date or week given for match {match_id}')
            return None
        week_number = find_match_week(match_date, tournament.transfer_windows)
        if week_number is None:
            logger.warning(f'Could not determine week for match {match_id}')
            return None

    mapping = MatchWeek(
        match_id=str(match_id),
        tournament_id=tournament.id,
        week_number=week_number,
        auto_assigned=auto_assigned,
        assigned_at=utc_now(),
    )
    store.set(MATCH_WEEKS, str(match_id), to_document(mapping))
    logger.info(f'Assigned match {match_id} to week {week_number} of {tournament.id}')
    return mapping
