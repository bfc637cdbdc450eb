"""Weekly points aggregation.

Scores a roster against one week of performance rows and writes the
per-user-per-week aggregate. Aggregates are always recomputed from scratch,
so re-running a sync with the same sheet gives the same totals.

Matches scored from the cricket API are added to the aggregate one at a
time instead, with processedMatches recording which ones are already in.
"""

import logging
from collections.abc import Iterable, Mapping

from .constants import MATCH_WEEKS, PLAYER_POINTS, USER_TEAMS, WEEKLY_STATS
from .errors import AplError, ConcurrencyConflict, DocumentNotFound
from .keys import PlayerMatchKey, WeeklyKey
from .models import MatchedRow, MatchPointsReport, PerformanceRow, UnmatchedRow, WeeklyPoints
from .rankings import update_overall_rankings, update_weekly_rankings
from .schemas import (
    BreakdownEntry,
    CurrentRoster,
    MatchWeek,
    PlayerMatchPoints,
    RosterPlayer,
    Tournament,
    WeeklyStat,
)
from .store import DocumentStore
from .team_resolver import get_team_for_week
from .utils import normalize_name, to_document, utc_now

logger = logging.getLogger('apl.points')

MAX_WRITE_ATTEMPTS = 3


def canonical_name(name: str, aliases: Mapping[str, str] | None = None) -> str:
    """Match key for a player name, resolving known aliases first."""
    key = normalize_name(name)
    if aliases and key in aliases:
        return normalize_name(aliases[key])
    return key


def score_roster_for_week(
    roster: list[RosterPlayer],
    rows_by_match: Mapping[str, list[PerformanceRow]],
    week: int = 0,
    aliases: Mapping[str, str] | None = None,
) -> WeeklyPoints:
    """
    Score a roster against a week's performance rows.

    For each match, each roster player is credited with the first row whose
    name matches theirs (case-insensitive). Multipliers apply per match.

    Args:
        roster: Players on the user's roster for the week
        rows_by_match: Performance rows grouped by match id, in match order
        week: Week number, recorded on the result
        aliases: Optional lowercase alias -> canonical name map

    Returns:
        WeeklyPoints with every row of the week classified as matched or
        unmatched
    """
    result = WeeklyPoints(week=week)

    for match_id, rows in rows_by_match.items():
        result.matches.append(match_id)
        keys = [canonical_name(row.player_name, aliases) for row in rows]
        claimed: set[int] = set()

        for player in roster:
            player_key = canonical_name(player.name, aliases)
            index = next((i for i, key in enumerate(keys) if key == player_key), None)
            if index is None:
                continue

            row = rows[index]
            claimed.add(index)
            multiplier = player.multiplier
            entry = BreakdownEntry(
                player_id=player.id,
                player_name=player.name,
                match_id=match_id,
                base_points=row.total_points,
                final_points=row.total_points * multiplier,
                multiplier=multiplier,
                is_captain=player.is_captain,
                is_vice_captain=player.is_vice_captain,
            )
            result.matched.append(MatchedRow(row=row, player=player, entry=entry))
            result.total += entry.final_points

        result.unmatched.extend(
            UnmatchedRow(row=row) for i, row in enumerate(rows) if i not in claimed
        )

    return result


def _cap_carryover(existing: WeeklyStat | None) -> tuple[list[BreakdownEntry], float]:
    """Cap entries (and their points) that a recompute must keep."""
    if existing is None or not existing.cap_points_awarded:
        return [], 0.0
    entries = [e for e in existing.points_breakdown if e.is_cap]
    return entries, sum(e.final_points for e in entries)


def recompute_weekly_stat(
    store: DocumentStore,
    user_id: str,
    tournament_id: str,
    week: int,
    roster: list[RosterPlayer],
    rows_by_match: Mapping[str, list[PerformanceRow]],
    aliases: Mapping[str, str] | None = None,
) -> tuple[WeeklyStat, WeeklyPoints]:
    """
    Recompute and overwrite a user's weekly stat from performance rows.

    Points, breakdown and processed matches are replaced. A cap bonus that
    was already awarded is carried over, and the write is conditional on
    the version read so a concurrent cap award is never overwritten.

    Returns:
        Tuple of (stored WeeklyStat, WeeklyPoints used to build it)

    Raises:
        ConcurrencyConflict: If the document kept changing across retries
    """
    key = WeeklyKey(user_id, tournament_id, week).format()
    scored = score_roster_for_week(roster, rows_by_match, week=week, aliases=aliases)

    for attempt in range(MAX_WRITE_ATTEMPTS):
        doc, version = store.get_versioned(WEEKLY_STATS, key)
        existing = WeeklyStat.model_validate(doc) if doc is not None else None
        cap_entries, cap_points = _cap_carryover(existing)
        now = utc_now()

        stat = WeeklyStat(
            user_id=user_id,
            tournament_id=tournament_id,
            week_number=week,
            points=scored.total + cap_points,
            points_breakdown=scored.breakdown + cap_entries,
            rank=existing.rank if existing else 0,
            processed_matches=list(scored.matches),
            cap_points_awarded=existing.cap_points_awarded if existing else False,
            cap_holders=existing.cap_holders if existing else [],
            transfer_window_id=existing.transfer_window_id if existing else str(week),
            created_at=existing.created_at if existing and existing.created_at else now,
            updated_at=now,
        )
        try:
            store.set_if_version(WEEKLY_STATS, key, to_document(stat), version)
            return stat, scored
        except ConcurrencyConflict:
            logger.warning(
                f'{key} changed during recompute, retrying ({attempt + 1}/{MAX_WRITE_ATTEMPTS})'
            )

    raise ConcurrencyConflict(f'Could not write {key} after {MAX_WRITE_ATTEMPTS} attempts')


def unmatched_players_report(results: Iterable[WeeklyPoints]) -> list[str]:
    """Names of players in the sheet that no roster claimed, sorted."""
    unmatched: set[str] | None = None
    for result in results:
        names = result.unmatched_names
        unmatched = names if unmatched is None else unmatched & names
    return sorted(unmatched or [])


def match_breakdown(
    store: DocumentStore, roster: list[RosterPlayer], match_id: str
) -> list[BreakdownEntry]:
    """Breakdown entries for the roster players with stored points for a match."""
    entries = []
    for player in roster:
        doc = store.get(PLAYER_POINTS, PlayerMatchKey(player.id, match_id).format())
        if doc is None:
            continue
        base = PlayerMatchPoints.model_validate(doc).points
        multiplier = player.multiplier
        entries.append(
            BreakdownEntry(
                player_id=player.id,
                player_name=player.name,
                match_id=match_id,
                base_points=base,
                final_points=base * multiplier,
                multiplier=multiplier,
                is_captain=player.is_captain,
                is_vice_captain=player.is_vice_captain,
            )
        )
    return entries


def add_match_to_weekly_stat(
    store: DocumentStore,
    user_id: str,
    tournament_id: str,
    week: int,
    match_id: str,
    entries: list[BreakdownEntry],
) -> bool:
    """
    Add one match's entries to a user's weekly stat.

    Existing entries, a cap bonus included, are kept. The write is
    conditional on the version read, so a match is never counted twice
    even when two refreshes overlap.

    Returns:
        True if the match was added, False if it was already counted

    Raises:
        ConcurrencyConflict: If the document kept changing across retries
    """
    key = WeeklyKey(user_id, tournament_id, week).format()

    for attempt in range(MAX_WRITE_ATTEMPTS):
        doc, version = store.get_versioned(WEEKLY_STATS, key)
        now = utc_now()
        if doc is not None:
            stat = WeeklyStat.model_validate(doc)
            if match_id in stat.processed_matches:
                logger.info(f'Match {match_id} already counted for {user_id} in week {week}')
                return False
        else:
            stat = WeeklyStat(
                user_id=user_id,
                tournament_id=tournament_id,
                week_number=week,
                transfer_window_id=str(week),
                created_at=now,
            )

        stat.points += sum(e.final_points for e in entries)
        stat.points_breakdown = stat.points_breakdown + entries
        stat.processed_matches = stat.processed_matches + [match_id]
        stat.updated_at = now

        try:
            store.set_if_version(WEEKLY_STATS, key, to_document(stat), version)
            return True
        except ConcurrencyConflict:
            logger.warning(
                f'{key} changed while adding match {match_id}, retrying ({attempt + 1}/{MAX_WRITE_ATTEMPTS})'
            )

    raise ConcurrencyConflict(f'Could not add match {match_id} to {key} after {MAX_WRITE_ATTEMPTS} attempts')


def apply_match_points(
    store: DocumentStore,
    tournament: Tournament,
    match_id: str,
    week: int | None = None,
) -> MatchPointsReport:
    """
    Credit every user with their roster's points from one scored match.

    Player points come from the match's playerPoints documents, so the match
    has to be scored first. Captain and vice-captain multipliers apply as in
    the sheet sync. Applying a match again changes nothing. A later sheet
    sync of the same week replaces these entries with the sheet's.

    Args:
        store: Document store
        tournament: Tournament the match belongs to
        match_id: Match id
        week: Week to credit (default: the match's matchWeeks assignment)

    Returns:
        MatchPointsReport with users updated and users already credited

    Raises:
        DocumentNotFound: If no week is given and the match has no matchWeeks entry
    """
    match_id = str(match_id)
    if week is None:
        doc = store.get(MATCH_WEEKS, match_id)
        if doc is None:
            raise DocumentNotFound(MATCH_WEEKS, match_id)
        week = MatchWeek.model_validate(doc).week_number

    report = MatchPointsReport(match_id=match_id, week=week)
    teams = store.query(USER_TEAMS, ('tournamentId', '==', tournament.id))
    logger.info(f'Applying match {match_id} to {len(teams)} teams, week {week}')

    for _doc_id, doc in teams:
        user_id = CurrentRoster.model_validate(doc).user_id
        try:
            roster = get_team_for_week(store, user_id, tournament.id, week)
            if not roster:
                logger.debug(f'No team found for {user_id} in week {week}')
                continue

            entries = match_breakdown(store, roster, match_id)
            if add_match_to_weekly_stat(store, user_id, tournament.id, week, match_id, entries):
                report.users_updated += 1
                report.points_awarded += sum(e.final_points for e in entries)
            else:
                report.already_processed.append(user_id)
        except (AplError, ValueError) as e:
            logger.error(f'Error applying match {match_id} for {user_id}: {e}')
            report.errors.append({'userId': user_id, 'error': str(e)})

    update_weekly_rankings(store, tournament.id, week)
    update_overall_rankings(store, tournament.id)
    return report
