"""Player stats sync: performance sheet -> weekly stats -> rankings.

Users are processed in batches so a serverless invocation stays within its
time limit; the caller requests the next batch with ``next_start_index``.
A sync that is never continued leaves earlier batches written.
"""

import logging
from collections.abc import Mapping

from .config import get_default_batch_size
from .constants import USER_TEAMS
from .errors import AplError
from .models import PerformanceRow, SyncReport, WeekSyncResult, WeeklyPoints
from .points import recompute_weekly_stat, unmatched_players_report
from .rankings import update_overall_rankings, update_weekly_rankings
from .schemas import CurrentRoster, Tournament
from .sheets import group_by_match, performance_frame, rows_for_week, weeks_in
from .store import DocumentStore
from .team_resolver import get_team_for_week

logger = logging.getLogger('apl.sync')


def tournament_user_ids(store: DocumentStore, tournament_id: str) -> list[str]:
    """Ids of users with a roster in the tournament, sorted for stable batching."""
    teams = store.query(USER_TEAMS, ('tournamentId', '==', tournament_id))
    return sorted({CurrentRoster.model_validate(doc).user_id for _doc_id, doc in teams})


def sync_player_stats(
    store: DocumentStore,
    rows: list[PerformanceRow],
    tournament: Tournament,
    week: int | None = None,
    start_index: int = 0,
    batch_size: int | None = None,
    aliases: Mapping[str, str] | None = None,
) -> SyncReport:
    """
    Recompute weekly stats for one batch of users from performance rows.

    Args:
        store: Document store
        rows: Parsed performance rows
        tournament: Tournament being scored
        week: Only sync this week (default: every week in the rows)
        start_index: Index of the first user in this batch
        batch_size: Users per batch (default from config)
        aliases: Optional lowercase alias -> canonical name map

    Returns:
        SyncReport with per-week results, per-user errors and the index of
        the next batch
    """
    batch_size = batch_size or get_default_batch_size()
    frame = performance_frame(rows)
    weeks = weeks_in(frame)
    if week is not None:
        weeks = [w for w in weeks if w == week]

    user_ids = tournament_user_ids(store, tournament.id)
    batch = user_ids[start_index:start_index + batch_size]
    next_index = start_index + len(batch)

    report = SyncReport(
        processed_users=len(batch),
        total_users=len(user_ids),
        has_more_users=next_index < len(user_ids),
        next_start_index=next_index if next_index < len(user_ids) else 0,
        week=week,
    )

    logger.info(
        f'Syncing {len(weeks)} week(s) for users {start_index}-{next_index} of {len(user_ids)}'
    )
    unmatched: set[str] = set()

    for week_number in weeks:
        week_rows = rows_for_week(frame, week_number)
        report.processed_rows += len(week_rows)
        rows_by_match = group_by_match(week_rows)
        result = WeekSyncResult(week=week_number, players_processed=len(week_rows))
        scored: list[WeeklyPoints] = []

        for user_id in batch:
            try:
                roster = get_team_for_week(store, user_id, tournament.id, week_number)
                _stat, points = recompute_weekly_stat(
                    store, user_id, tournament.id, week_number, roster, rows_by_match, aliases
                )
                scored.append(points)
                result.teams_processed += 1
            except (AplError, ValueError) as e:
                logger.error(f'Error processing {user_id} for week {week_number}: {e}')
                report.errors.append({'userId': user_id, 'week': week_number, 'error': str(e)})

        try:
            update_weekly_rankings(store, tournament.id, week_number)
        except AplError as e:
            logger.error(f'Error ranking week {week_number}: {e}')
            result.status = 'error'
            result.error = str(e)
        report.results.append(result)
        unmatched.update(unmatched_players_report(scored))

    update_overall_rankings(store, tournament.id)
    report.unmatched_players = sorted(unmatched)

    if report.unmatched_players:
        logger.info(f'{len(report.unmatched_players)} players in the sheet matched no roster')
    return report
