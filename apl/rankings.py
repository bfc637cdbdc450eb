"""Weekly and overall rankings."""

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from .config import get_config
from .constants import STATUS_UPCOMING, TOURNAMENTS, USERS, WEEKLY_STATS
from .schemas import Tournament, UserProfile, WeeklyStat
from .store import DocumentStore

logger = logging.getLogger('apl.rankings')

T = TypeVar('T')


def assign_ranks(entries: Iterable[T], key: Callable[[T], float]) -> list[tuple[int, T]]:
    """
    Rank entries by descending score.

    Ranks run 1..N with no gaps; entries with equal scores keep their
    input order (sorted() is stable with reverse=True).

    Example:
        assign_ranks([('a', 10), ('b', 30), ('c', 10)], key=lambda e: e[1])
        # [(1, ('b', 30)), (2, ('a', 10)), (3, ('c', 10))]
    """
    ordered = sorted(entries, key=key, reverse=True)
    return [(position, entry) for position, entry in enumerate(ordered, start=1)]


def _weekly_stats(
    store: DocumentStore, tournament_id: str, week: int | None = None
) -> list[tuple[str, WeeklyStat]]:
    conditions = [('tournamentId', '==', tournament_id)]
    if week is not None:
        conditions.append(('weekNumber', '==', week))
    return [
        (doc_id, WeeklyStat.model_validate(doc))
        for doc_id, doc in store.query(WEEKLY_STATS, *conditions)
    ]


def update_weekly_rankings(
    store: DocumentStore, tournament_id: str, week: int
) -> list[tuple[int, str]]:
    """
    Rank all users' stats for one week and write each rank.

    Ranks are written document by document; a failure part-way leaves the
    earlier ranks written.

    Returns:
        List of (rank, user_id)
    """
    ranked = assign_ranks(_weekly_stats(store, tournament_id, week), key=lambda e: e[1].points)
    for rank, (doc_id, _stat) in ranked:
        store.update(WEEKLY_STATS, doc_id, {'rank': rank})

    logger.info(f'Updated weekly rankings for {tournament_id} week {week}: {len(ranked)} users')
    return [(rank, stat.user_id) for rank, (_doc_id, stat) in ranked]


def user_totals(store: DocumentStore, tournament_id: str) -> dict[str, float]:
    """Sum of weekly points per user for a tournament, in user id order."""
    totals: dict[str, float] = {}
    for _doc_id, stat in _weekly_stats(store, tournament_id):
        totals[stat.user_id] = totals.get(stat.user_id, 0.0) + stat.points
    return dict(sorted(totals.items()))


def update_overall_rankings(
    store: DocumentStore, tournament_id: str
) -> list[tuple[int, str, float]]:
    """
    Rank users by total tournament points and write totalPoints / rank to
    their profiles (profiles that don't exist yet are created).

    Returns:
        List of (rank, user_id, total_points)
    """
    ranked = assign_ranks(user_totals(store, tournament_id).items(), key=lambda e: e[1])
    for rank, (user_id, total) in ranked:
        store.set(USERS, user_id, {'totalPoints': total, 'rank': rank}, merge=True)

    logger.info(f'Updated overall rankings for {tournament_id}: {len(ranked)} users')
    return [(rank, user_id, total) for rank, (user_id, total) in ranked]


def _recent_weeks(
    store: DocumentStore, tournament_id: str, stats: list[WeeklyStat], count: int
) -> list[int]:
    doc = store.get(TOURNAMENTS, tournament_id)
    if doc is not None:
        tournament = Tournament.model_validate(doc)
        weeks = [w.week_number for w in tournament.transfer_windows if w.status != STATUS_UPCOMING]
    else:
        weeks = []
    if not weeks:
        weeks = sorted({s.week_number for s in stats})
    return weeks[-count:]


def leaderboard(
    store: DocumentStore, tournament_id: str, weeks: int | None = None
) -> list[dict[str, Any]]:
    """
    Overall standings with per-week points for the most recent weeks.

    Args:
        store: Document store
        tournament_id: Tournament id
        weeks: Number of recent weeks to include (default from config)

    Returns:
        Rows of {'rank', 'userId', 'name', 'teamName', 'totalPoints',
        'weeklyPoints'} ordered by rank; weeklyPoints maps week -> points
    """
    count = weeks or get_config().leaderboard_weeks
    stats = [stat for _doc_id, stat in _weekly_stats(store, tournament_id)]
    recent = _recent_weeks(store, tournament_id, stats, count)

    by_user: dict[str, dict[int, float]] = {}
    for stat in stats:
        by_user.setdefault(stat.user_id, {})[stat.week_number] = stat.points

    rows = []
    for user_id in sorted(by_user):
        profile = UserProfile.model_validate(store.get(USERS, user_id) or {})
        points = by_user[user_id]
        rows.append(
            {
                'userId': user_id,
                'name': profile.name,
                'teamName': profile.team_name,
                'totalPoints': sum(points.values()),
                'weeklyPoints': {week: points.get(week, 0.0) for week in recent},
            }
        )

    return [{'rank': rank, **row} for rank, row in assign_ranks(rows, key=lambda r: r['totalPoints'])]
