"""Private leagues and league invitations."""

import logging
import time
from typing import Any

from .constants import (
    INVITE_ACCEPTED,
    INVITE_DECLINED,
    INVITE_PENDING,
    LEAGUE_INVITES,
    LEAGUES,
    USERS,
)
from .errors import DocumentNotFound, LeagueError
from .keys import InviteKey
from .rankings import assign_ranks
from .schemas import League, LeagueInvite, UserProfile
from .store import DocumentStore
from .utils import now_iso, to_document, utc_now

logger = logging.getLogger('apl.leagues')

MIN_SEARCH_LENGTH = 3


def _league_from(doc_id: str, doc: dict[str, Any]) -> League:
    return League.model_validate({**doc, 'id': doc_id})


def get_league(store: DocumentStore, league_id: str) -> League:
    """Raises LeagueError if the league doesn't exist."""
    doc = store.get(LEAGUES, league_id)
    if doc is None:
        raise LeagueError('League not found')
    return _league_from(league_id, doc)


def _invite(store: DocumentStore, league: League, inviter_id: str, user_id: str) -> None:
    invite = LeagueInvite(
        league_id=league.id,
        league_name=league.name,
        invited_by=inviter_id,
        user_id=user_id,
        status=INVITE_PENDING,
        created_at=utc_now(),
    )
    store.set(LEAGUE_INVITES, InviteKey(league.id, user_id).format(), to_document(invite))


def create_league(
    store: DocumentStore, name: str, creator_id: str, invited_user_ids: list[str] | None = None
) -> League:
    """
    Create a league with the creator as its only member and invite users.

    The id is 'league_{epoch ms}_{first 5 chars of the creator id}'.
    """
    invited = [u for u in dict.fromkeys(invited_user_ids or []) if u != creator_id]
    league_id = f'league_{int(time.time() * 1000)}_{creator_id[:5]}'
    league = League(
        id=league_id,
        name=name,
        creator_id=creator_id,
        members=[creator_id],
        pending_invites=invited,
        created_at=utc_now(),
    )

    doc = to_document(league)
    doc.pop('id')
    store.set(LEAGUES, league_id, doc)
    for user_id in invited:
        _invite(store, league, creator_id, user_id)

    logger.info(f'{creator_id} created league {league_id} with {len(invited)} invites')
    return league


def add_members_to_league(
    store: DocumentStore, league_id: str, creator_id: str, invited_user_ids: list[str]
) -> list[str]:
    """
    Invite more users to a league. Only the creator can do this.

    Users who are already members or have a pending invite are skipped.

    Returns:
        The user ids newly invited

    Raises:
        LeagueError: If the league doesn't exist, the caller isn't its
            creator, or nobody new was invited
    """
    league = get_league(store, league_id)
    if league.creator_id != creator_id:
        raise LeagueError('Only the league creator can add members')

    new_invitees = [
        u
        for u in dict.fromkeys(invited_user_ids)
        if u not in league.members and u not in league.pending_invites
    ]
    if not new_invitees:
        raise LeagueError('All selected users are already members or have pending invites')

    def add_pending(doc):
        pending = doc.get('pendingInvites') or []
        return {**doc, 'pendingInvites': pending + [u for u in new_invitees if u not in pending]}

    store.modify(LEAGUES, league_id, add_pending)
    for user_id in new_invitees:
        _invite(store, league, creator_id, user_id)

    logger.info(f'Invited {len(new_invitees)} new members to {league_id}')
    return new_invitees


def get_created_leagues(store: DocumentStore, user_id: str) -> list[League]:
    return [_league_from(i, d) for i, d in store.query(LEAGUES, ('creatorId', '==', user_id))]


def get_user_leagues(store: DocumentStore, user_id: str) -> list[League]:
    return [
        _league_from(i, d) for i, d in store.query(LEAGUES, ('members', 'array-contains', user_id))
    ]


def get_pending_invites(store: DocumentStore, user_id: str) -> list[LeagueInvite]:
    return [
        LeagueInvite.model_validate(doc)
        for _doc_id, doc in store.query(
            LEAGUE_INVITES, ('userId', '==', user_id), ('status', '==', INVITE_PENDING)
        )
    ]


def _respond(store: DocumentStore, league_id: str, user_id: str, status: str) -> None:
    invite_id = InviteKey(league_id, user_id).format()
    try:
        invite = LeagueInvite.model_validate(store.require(LEAGUE_INVITES, invite_id))
    except DocumentNotFound as e:
        raise LeagueError('Invite not found') from e
    if invite.status != INVITE_PENDING:
        raise LeagueError(f'Invite has already been {invite.status}')

    store.update(LEAGUE_INVITES, invite_id, {'status': status, 'respondedAt': now_iso()})

    def move(doc):
        members = doc.get('members') or []
        pending = [u for u in doc.get('pendingInvites') or [] if u != user_id]
        if status == INVITE_ACCEPTED and user_id not in members:
            members = members + [user_id]
        return {**doc, 'members': members, 'pendingInvites': pending}

    try:
        store.modify(LEAGUES, league_id, move)
    except DocumentNotFound as e:
        raise LeagueError('League not found') from e


def accept_invite(store: DocumentStore, league_id: str, user_id: str) -> None:
    """Accept a pending invite: the user becomes a member."""
    _respond(store, league_id, user_id, INVITE_ACCEPTED)
    logger.info(f'{user_id} joined league {league_id}')


def decline_invite(store: DocumentStore, league_id: str, user_id: str) -> None:
    """Decline a pending invite: the user is dropped from the pending list."""
    _respond(store, league_id, user_id, INVITE_DECLINED)


def get_league_leaderboard(store: DocumentStore, league_id: str) -> list[dict[str, Any]]:
    """
    League members ordered by total points, each with a leagueRank.

    Members without a profile are left out.
    """
    league = get_league(store, league_id)
    rows = []
    for user_id in league.members:
        doc = store.get(USERS, user_id)
        if doc is None:
            continue
        profile = UserProfile.model_validate(doc)
        rows.append(
            {
                'id': user_id,
                'name': profile.name,
                'teamName': profile.team_name or 'Unknown Team',
                'totalPoints': profile.total_points,
                'rank': profile.rank,
            }
        )
    return [{**row, 'leagueRank': rank} for rank, row in assign_ranks(rows, key=lambda r: r['totalPoints'])]


def delete_league(store: DocumentStore, league_id: str, user_id: str) -> None:
    """Delete a league and its invites. Only the creator can do this."""
    league = get_league(store, league_id)
    if league.creator_id != user_id:
        raise LeagueError('Only the league creator can delete a league')

    store.delete(LEAGUES, league_id)
    for invite_id, _doc in store.query(LEAGUE_INVITES, ('leagueId', '==', league_id)):
        store.delete(LEAGUE_INVITES, invite_id)
    logger.info(f'{user_id} deleted league {league_id}')


def search_users(store: DocumentStore, term: str) -> list[dict[str, Any]]:
    """
    Find users with a team by team name or user name (case-insensitive).

    Terms shorter than three characters return nothing.
    """
    if not term or len(term) < MIN_SEARCH_LENGTH:
        return []

    needle = term.lower()
    results = []
    for user_id, doc in store.query(USERS):
        profile = UserProfile.model_validate(doc)
        if not profile.team_name:
            continue
        if needle in profile.team_name.lower() or needle in profile.name.lower():
            results.append({'id': user_id, 'name': profile.name, 'teamName': profile.team_name})
    return results
