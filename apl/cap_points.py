"""Orange / Purple cap bonuses.

Each week the sheet names the Orange Cap (top run scorer) and Purple Cap
(top wicket taker) holders. Every user whose roster for that week includes
a holder gets a flat bonus per holder, at most once per week.
"""

import logging
import re
from typing import Any

from .constants import (
    CAP_HOLDERS,
    CAP_POINTS_BONUS,
    COL_ORANGE_CAP,
    COL_PURPLE_CAP,
    COL_WEEK,
    USER_TEAMS,
    WEEKLY_STATS,
)
from .errors import AplError, ConcurrencyConflict
from .keys import CapHoldersKey, WeeklyKey
from .models import CapPointsReport
from .rankings import update_overall_rankings, update_weekly_rankings
from .schemas import (
    BreakdownEntry,
    CapHolder,
    CapHoldersRecord,
    CurrentRoster,
    RosterPlayer,
    WeeklyStat,
)
from .sheets import parse_int
from .store import DocumentStore
from .team_resolver import get_team_for_week
from .utils import normalize_name, to_document, utc_now

logger = logging.getLogger('apl.cap_points')

MAX_AWARD_ATTEMPTS = 3


def _cell(value: Any) -> str:
    return str(value).strip() if value is not None else ''


def parse_cap_holders(records: list[dict[str, Any]], week: int) -> tuple[list[str], list[str]]:
    """
    Read the cap holders for a week from cap sheet records.

    Returns:
        Tuple of (orange cap names, purple cap names), trimmed, blanks dropped
    """
    orange, purple = [], []
    for record in records:
        if parse_int(record.get(COL_WEEK)) != week:
            continue
        if name := _cell(record.get(COL_ORANGE_CAP)):
            orange.append(name)
        if name := _cell(record.get(COL_PURPLE_CAP)):
            purple.append(name)
    return orange, purple


def cap_bonus_for_roster(
    roster: list[RosterPlayer], orange: list[str], purple: list[str]
) -> tuple[int, list[CapHolder]]:
    """
    Bonus a roster earns from the week's cap holders.

    Each holder on the roster is worth CAP_POINTS_BONUS; a player holding
    both caps counts twice.

    Returns:
        Tuple of (bonus points, holders found on the roster)
    """
    names = {normalize_name(p.name) for p in roster}
    holders = []
    for cap_type, caps in (('Orange', orange), ('Purple', purple)):
        for cap in caps:
            if normalize_name(cap) in names:
                holders.append(CapHolder(player=cap, cap_type=cap_type))
    return CAP_POINTS_BONUS * len(holders), holders


def cap_entry(holder: CapHolder) -> BreakdownEntry:
    """Breakdown entry recording one cap bonus."""
    slug = re.sub(r'\s+', '_', holder.player).lower()
    return BreakdownEntry(
        player_id=f'cap_{slug}',
        player_name=holder.player,
        base_points=CAP_POINTS_BONUS,
        final_points=CAP_POINTS_BONUS,
        is_cap=True,
        cap_type=holder.cap_type,
    )


def award_cap_points(
    store: DocumentStore,
    user_id: str,
    tournament_id: str,
    week: int,
    points: int,
    holders: list[CapHolder],
) -> bool:
    """
    Add a cap bonus to a user's weekly stat unless one was already awarded.

    The write is conditional on the version read. If another writer gets in
    between, the stat is re-read, so two concurrent runs can't both award.

    Returns:
        True if the bonus was written, False if it had already been awarded

    Raises:
        ConcurrencyConflict: If the document kept changing across retries
    """
    key = WeeklyKey(user_id, tournament_id, week).format()

    for attempt in range(MAX_AWARD_ATTEMPTS):
        doc, version = store.get_versioned(WEEKLY_STATS, key)
        now = utc_now()
        if doc is not None:
            stat = WeeklyStat.model_validate(doc)
            if stat.cap_points_awarded:
                logger.info(f'Cap points already awarded to {user_id} for week {week}')
                return False
        else:
            stat = WeeklyStat(
                user_id=user_id,
                tournament_id=tournament_id,
                week_number=week,
                transfer_window_id=str(week),
                created_at=now,
            )

        stat.points += points
        stat.points_breakdown = stat.points_breakdown + [cap_entry(h) for h in holders]
        stat.cap_points_awarded = True
        stat.cap_holders = holders
        stat.updated_at = now

        try:
            store.set_if_version(WEEKLY_STATS, key, to_document(stat), version)
        except ConcurrencyConflict:
            logger.warning(
                f'{key} changed while awarding cap points, retrying ({attempt + 1}/{MAX_AWARD_ATTEMPTS})'
            )
            continue

        logger.info(f'Added {points} cap points to {user_id} for week {week}')
        return True

    raise ConcurrencyConflict(f'Could not award cap points on {key} after {MAX_AWARD_ATTEMPTS} attempts')


def process_cap_points(
    store: DocumentStore,
    tournament_id: str,
    week: int,
    orange: list[str],
    purple: list[str],
) -> CapPointsReport:
    """
    Record the week's cap holders and award bonuses to every qualifying user.

    Per-user failures are collected in the report. Rankings are refreshed
    once all users are processed.
    """
    report = CapPointsReport(week=week, orange_caps=list(orange), purple_caps=list(purple))

    record = CapHoldersRecord(
        tournament_id=tournament_id,
        week_number=week,
        orange_caps=orange,
        purple_caps=purple,
        processed_at=utc_now(),
    )
    store.set(CAP_HOLDERS, CapHoldersKey(tournament_id, week).format(), to_document(record))

    teams = store.query(USER_TEAMS, ('tournamentId', '==', tournament_id))
    logger.info(f'Processing cap points for {len(teams)} teams, week {week}')

    for _doc_id, doc in teams:
        user_id = CurrentRoster.model_validate(doc).user_id
        try:
            roster = get_team_for_week(store, user_id, tournament_id, week)
            if not roster:
                logger.debug(f'No team found for {user_id} in week {week}')
                continue

            points, holders = cap_bonus_for_roster(roster, orange, purple)
            if points == 0:
                continue

            if award_cap_points(store, user_id, tournament_id, week, points, holders):
                report.users_processed += 1
                report.points_awarded += points
            else:
                report.skipped.append(user_id)
        except (AplError, ValueError) as e:
            logger.error(f'Error processing cap points for {user_id}: {e}')
            report.errors.append({'userId': user_id, 'error': str(e)})

    update_weekly_rankings(store, tournament_id, week)
    update_overall_rankings(store, tournament_id)

    logger.info(
        f'Cap points for week {week}: {report.users_processed} users, {report.points_awarded} points'
    )
    return report
