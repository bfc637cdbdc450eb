"""Resolve the roster a user had for a given week.

A snapshot is written each time a roster is saved in a transfer window, so
a week without its own snapshot uses the nearest earlier one. Users with no
snapshot at all fall back to their live roster.
"""

import logging

from .constants import TRANSFER_HISTORY, USER_TEAMS
from .keys import TeamKey, WeeklyKey
from .models import TeamSource
from .schemas import CurrentRoster, RosterPlayer, RosterSnapshot
from .store import DocumentStore

logger = logging.getLogger('apl.team_resolver')


def resolve_team_source(
    store: DocumentStore, user_id: str, tournament_id: str, week_number: int
) -> TeamSource:
    """
    Find the roster in effect for a user and week, and where it came from.

    Args:
        store: Document store
        user_id: User id
        tournament_id: Tournament id
        week_number: Week being scored; values below 1 go straight to the
            live roster

    Returns:
        TeamSource with kind 'snapshot' (and the snapshot's week), 'current',
        or 'none' with no players
    """
    week = week_number
    while week >= 1:
        doc = store.get(TRANSFER_HISTORY, WeeklyKey(user_id, tournament_id, week).format())
        if doc is not None:
            snapshot = RosterSnapshot.model_validate(doc)
            if week != week_number:
                logger.debug(f'{user_id}: week {week_number} uses snapshot from week {week}')
            return TeamSource(kind='snapshot', week=week, players=snapshot.players)
        week -= 1

    doc = store.get(USER_TEAMS, TeamKey(user_id, tournament_id).format())
    if doc is not None:
        logger.debug(f'{user_id}: no snapshot up to week {week_number}, using current roster')
        return TeamSource(kind='current', players=CurrentRoster.model_validate(doc).players)

    return TeamSource(kind='none')


def get_team_for_week(
    store: DocumentStore, user_id: str, tournament_id: str, week_number: int
) -> list[RosterPlayer]:
    """Players on a user's roster for a week; empty if the user has no team."""
    return resolve_team_source(store, user_id, tournament_id, week_number).players
