"""Admin maintenance commands.

Each command checks that the acting user is an admin before touching any
data.
"""

import logging
from collections.abc import Mapping
from typing import Any

from .constants import (
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_UPCOMING,
    TOURNAMENTS,
    TRANSFER_HISTORY,
    USER_TEAMS,
    USERS,
    WEEKLY_STATS,
)
from .errors import PermissionDenied, TransferError
from .keys import TeamKey, WeeklyKey
from .models import PerformanceRow, SyncReport
from .rankings import update_overall_rankings, update_weekly_rankings
from .schemas import RosterPlayer, RosterSnapshot, Tournament, UserProfile, WeeklyStat
from .store import DocumentStore
from .sync import sync_player_stats
from .transfers import load_tournament
from .utils import to_document, utc_now
from .validators import validate_team_selection

logger = logging.getLogger('apl.maintenance')


def require_admin(store: DocumentStore, actor_id: str) -> UserProfile:
    """Raises PermissionDenied unless the user's profile has isAdmin set."""
    doc = store.get(USERS, actor_id) if actor_id else None
    profile = UserProfile.model_validate(doc) if doc is not None else None
    if profile is None or not profile.is_admin:
        raise PermissionDenied(f'{actor_id or "anonymous"} is not an admin')
    return profile


def activate_transfer_window(
    store: DocumentStore, actor_id: str, tournament_id: str, week: int
) -> Tournament:
    """
    Make one transfer window the active one.

    Earlier windows become completed and later ones upcoming, so at most one
    window is ever active.
    """
    require_admin(store, actor_id)
    tournament = load_tournament(store, tournament_id)
    if tournament is None:
        raise TransferError(f'Tournament {tournament_id} not found')
    if tournament.window_for_week(week) is None:
        raise TransferError(f'Tournament {tournament_id} has no window for week {week}')

    windows = []
    for window in tournament.transfer_windows:
        if window.week_number < week:
            status = STATUS_COMPLETED
        elif window.week_number == week:
            status = STATUS_ACTIVE
        else:
            status = STATUS_UPCOMING
        windows.append(window.model_copy(update={'status': status}))

    tournament = tournament.model_copy(update={'transfer_windows': windows})
    store.update(
        TOURNAMENTS,
        tournament_id,
        {'transferWindows': [to_document(w) for w in windows]},
    )
    logger.info(f'{actor_id} activated week {week} window of {tournament_id}')
    return tournament


def reset_match_points(
    store: DocumentStore, actor_id: str, tournament_id: str, week: int, match_id: str
) -> int:
    """
    Remove one match's contribution from every weekly stat of a week.

    Breakdown entries for the match are dropped and their points subtracted;
    the match is removed from processedMatches so a later sync re-adds it.

    Returns:
        Number of weekly stats changed
    """
    require_admin(store, actor_id)
    changed = 0

    def strip_match(doc):
        stat = WeeklyStat.model_validate(doc)
        removed = [e for e in stat.points_breakdown if e.match_id == match_id]
        stat.points_breakdown = [e for e in stat.points_breakdown if e.match_id != match_id]
        stat.points = max(0.0, stat.points - sum(e.final_points for e in removed))
        stat.processed_matches = [m for m in stat.processed_matches if m != match_id]
        stat.updated_at = utc_now()
        return to_document(stat)

    stats = store.query(
        WEEKLY_STATS, ('tournamentId', '==', tournament_id), ('weekNumber', '==', week)
    )
    for doc_id, doc in stats:
        stat = WeeklyStat.model_validate(doc)
        if match_id not in stat.processed_matches and not any(
            e.match_id == match_id for e in stat.points_breakdown
        ):
            continue
        store.modify(WEEKLY_STATS, doc_id, strip_match)
        changed += 1

    if changed:
        update_weekly_rankings(store, tournament_id, week)
        update_overall_rankings(store, tournament_id)
    logger.info(f'{actor_id} reset match {match_id} in week {week}: {changed} stats changed')
    return changed


def edit_team_for_week(
    store: DocumentStore,
    actor_id: str,
    user_id: str,
    tournament_id: str,
    week: int,
    players: list[RosterPlayer | dict[str, Any]],
    update_current: bool = True,
) -> RosterSnapshot:
    """
    Overwrite a user's roster snapshot for a week, bypassing transfer rules.

    With update_current, the live roster's players are replaced too (its
    transfer count is left alone).

    Raises:
        TransferError: If the team selection is invalid
    """
    require_admin(store, actor_id)
    roster = [p if isinstance(p, RosterPlayer) else RosterPlayer.model_validate(p) for p in players]
    errors = validate_team_selection(roster)
    if errors:
        raise TransferError('; '.join(errors))

    now = utc_now()
    snapshot = RosterSnapshot(
        user_id=user_id,
        tournament_id=tournament_id,
        week_number=week,
        players=roster,
        transfer_date=now,
        created_at=now,
    )
    store.set(TRANSFER_HISTORY, WeeklyKey(user_id, tournament_id, week).format(), to_document(snapshot))

    if update_current:
        store.set(
            USER_TEAMS,
            TeamKey(user_id, tournament_id).format(),
            {
                'userId': user_id,
                'tournamentId': tournament_id,
                'players': [to_document(p) for p in roster],
            },
            merge=True,
        )

    logger.info(f'{actor_id} edited {user_id} team for week {week}')
    return snapshot


def recalculate_week(
    store: DocumentStore,
    actor_id: str,
    rows: list[PerformanceRow],
    tournament: Tournament,
    week: int,
    batch_size: int | None = None,
    aliases: Mapping[str, str] | None = None,
) -> list[SyncReport]:
    """Re-run the player stats sync for one week, batch after batch until done."""
    require_admin(store, actor_id)
    reports = []
    start = 0
    while True:
        report = sync_player_stats(
            store, rows, tournament, week=week, start_index=start, batch_size=batch_size, aliases=aliases
        )
        reports.append(report)
        if not report.has_more_users:
            break
        start = report.next_start_index

    logger.info(f'{actor_id} recalculated week {week} in {len(reports)} batch(es)')
    return reports
