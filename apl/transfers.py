"""Tournaments, transfer windows and saving user teams."""

import logging
import re
from datetime import datetime, timezone
from typing import Any

from .config import get_transfers_per_tournament
from .constants import STATUS_ACTIVE, TOURNAMENTS, TRANSFER_HISTORY, USER_TEAMS, WEEKLY_STATS
from .errors import TransferError
from .keys import TeamKey, WeeklyKey
from .schemas import (
    CurrentRoster,
    RosterPlayer,
    RosterSnapshot,
    Tournament,
    TransferWindow,
    WeeklyStat,
    WindowRef,
)
from .store import DocumentStore
from .utils import to_document, utc_now
from .validators import validate_team_selection

logger = logging.getLogger('apl.transfers')


def _aware(value: datetime) -> datetime:
    # Naive datetimes in stored documents are UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def load_tournament(store: DocumentStore, tournament_id: str) -> Tournament | None:
    doc = store.get(TOURNAMENTS, tournament_id)
    return Tournament.model_validate({**doc, 'id': tournament_id}) if doc is not None else None


def get_active_tournament(store: DocumentStore) -> Tournament | None:
    """
    The tournament currently being played.

    Returns the first tournament with status 'active', otherwise the most
    recently created one, or None if there are no tournaments.
    """
    tournaments = [
        Tournament.model_validate({**doc, 'id': doc_id})
        for doc_id, doc in store.query(TOURNAMENTS)
    ]
    if not tournaments:
        return None

    for tournament in tournaments:
        if tournament.status == STATUS_ACTIVE:
            return tournament

    return max(tournaments, key=lambda t: _aware(t.created_at or t.start_date))


def get_active_window(tournament: Tournament, now: datetime | None = None) -> TransferWindow | None:
    """The window marked active, else the one whose dates contain now."""
    now = _aware(now or utc_now())
    for window in tournament.transfer_windows:
        if window.status == STATUS_ACTIVE:
            return window
    for window in tournament.transfer_windows:
        if _aware(window.start_date) <= now <= _aware(window.end_date):
            return window
    return None


def is_transfer_window_active(
    tournament: Tournament, now: datetime | None = None
) -> tuple[bool, TransferWindow | None]:
    window = get_active_window(tournament, now)
    return window is not None, window


def find_match_week(match_date: datetime, windows: list[TransferWindow]) -> int | None:
    """
    Week a match belongs to: the last window starting on or before the match.

    A match before the first window has no week.
    """
    match_date = _aware(match_date)
    week = None
    for window in sorted(windows, key=lambda w: _aware(w.start_date)):
        if _aware(window.start_date) <= match_date:
            week = window.week_number
        else:
            break
    return week


def get_user_team(store: DocumentStore, user_id: str, tournament_id: str) -> CurrentRoster | None:
    doc = store.get(USER_TEAMS, TeamKey(user_id, tournament_id).format())
    return CurrentRoster.model_validate(doc) if doc is not None else None


def _window_ref(window: TransferWindow) -> WindowRef:
    return WindowRef(
        week_number=window.week_number, start_date=window.start_date, end_date=window.end_date
    )


def save_user_team(
    store: DocumentStore,
    user_id: str,
    players: list[RosterPlayer | dict[str, Any]],
    tournament: Tournament | None = None,
    now: datetime | None = None,
) -> CurrentRoster:
    """
    Save a user's team for the active tournament.

    A first save registers the team. Later saves need an open transfer
    window; changing the players (not just the captaincy) uses one transfer
    per window. The week's snapshot is written alongside the live roster.

    Args:
        store: Document store
        user_id: User id
        players: Selected players (RosterPlayer or raw dicts)
        tournament: Tournament (default: the active tournament)
        now: Current time (default: now, UTC)

    Returns:
        The saved CurrentRoster

    Raises:
        TransferError: If the team is invalid or the change isn't allowed
    """
    now = _aware(now or utc_now())
    tournament = tournament or get_active_tournament(store)
    if tournament is None:
        raise TransferError('No active tournament found')

    roster = [p if isinstance(p, RosterPlayer) else RosterPlayer.model_validate(p) for p in players]
    errors = validate_team_selection(roster)
    if errors:
        raise TransferError('; '.join(errors))

    team_key = TeamKey(user_id, tournament.id).format()
    existing = get_user_team(store, user_id, tournament.id)
    window = get_active_window(tournament, now)

    if existing is None:
        deadline = tournament.registration_deadline
        late = deadline is not None and now > _aware(deadline)
        if late and window is None:
            raise TransferError('Registration is closed until the next transfer window')
        week = window.week_number if window else _first_week(tournament)
        team = CurrentRoster(
            user_id=user_id,
            tournament_id=tournament.id,
            players=roster,
            transfers_remaining=get_transfers_per_tournament(),
            registration_date=now,
            is_late_registration=late,
        )
        logger.info(f'Registered team for {user_id} in {tournament.id} (week {week})')
    else:
        if window is None:
            raise TransferError('Transfer window is not active')
        week = window.week_number
        team = existing.model_copy(update={'players': roster})

        changed = {p.id for p in roster} != {p.id for p in existing.players}
        already_used = (
            existing.last_transfer_window is not None
            and existing.last_transfer_window.week_number == week
        )
        if changed and not already_used:
            if existing.transfers_remaining <= 0:
                raise TransferError('No transfers remaining')
            team.transfers_remaining = existing.transfers_remaining - 1
            team.last_transfer_date = now
            team.last_transfer_window = _window_ref(window)
            logger.info(
                f'{user_id} used a transfer in week {week}, {team.transfers_remaining} remaining'
            )

    snapshot = RosterSnapshot(
        user_id=user_id,
        tournament_id=tournament.id,
        week_number=week,
        players=roster,
        transfer_date=now,
        transfer_window=_window_ref(window) if window else None,
        created_at=now,
    )
    store.set(USER_TEAMS, team_key, to_document(team))
    store.set(TRANSFER_HISTORY, WeeklyKey(user_id, tournament.id, week).format(), to_document(snapshot))
    return team


def _first_week(tournament: Tournament) -> int:
    weeks = [w.week_number for w in tournament.transfer_windows]
    return min(weeks) if weeks else 1


def get_user_weekly_stats(
    store: DocumentStore, user_id: str, tournament_id: str | None = None
) -> list[WeeklyStat]:
    """A user's weekly stats, ordered by week."""
    conditions = [('userId', '==', user_id)]
    if tournament_id:
        conditions.append(('tournamentId', '==', tournament_id))
    stats = [WeeklyStat.model_validate(doc) for _id, doc in store.query(WEEKLY_STATS, *conditions)]
    return sorted(stats, key=lambda s: s.week_number)


def _slug(name: str) -> str:
    return re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')


def create_tournament(
    store: DocumentStore, data: dict[str, Any] | Tournament, tournament_id: str | None = None
) -> Tournament:
    """
    Store a tournament.

    The id defaults to a slug of the name (e.g., 'IPL 2025' -> 'ipl-2025').
    Windows without a status start out 'upcoming'.
    """
    tournament = data if isinstance(data, Tournament) else Tournament.model_validate(data)
    tournament_id = tournament_id or tournament.id or _slug(tournament.name)
    tournament = tournament.model_copy(
        update={'id': tournament_id, 'created_at': tournament.created_at or utc_now()}
    )

    doc = to_document(tournament)
    doc.pop('id')
    store.set(TOURNAMENTS, tournament_id, doc)
    logger.info(
        f'Created tournament {tournament_id} with {len(tournament.transfer_windows)} transfer windows'
    )
    return tournament
