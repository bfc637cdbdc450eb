"""Player master records.

The same player can appear under different ids (cricket API ids, sheet
names, scraped ids). The master record keeps one primary id and a list of
alternate ids, and its stats are built from the playerPoints documents of
all of them.
"""

import logging
from typing import Any

from .constants import PLAYER_POINTS, PLAYERS_MASTER
from .errors import DocumentNotFound
from .schemas import PlayerMaster, PlayerMatchPoints, PlayerStats
from .store import DocumentStore
from .utils import normalize_name, to_document, utc_now

logger = logging.getLogger('apl.players')

STAT_FIELDS = tuple(PlayerStats.model_fields)


def upsert_player(store: DocumentStore, data: dict[str, Any] | PlayerMaster) -> PlayerMaster:
    """Create or update a player, keeping existing stats and processed matches."""
    player = data if isinstance(data, PlayerMaster) else PlayerMaster.model_validate(data)
    existing = store.get(PLAYERS_MASTER, player.id)
    if existing is not None:
        current = PlayerMaster.model_validate(existing)
        player = player.model_copy(
            update={'stats': current.stats, 'processed_matches': current.processed_matches}
        )
    player = player.model_copy(update={'active': True, 'last_updated': utc_now()})
    store.set(PLAYERS_MASTER, player.id, to_document(player))
    return player


def determine_role(player_data: dict[str, Any]) -> str:
    """
    Fantasy role for a player from cricket API squad data.

    The API's role text (e.g. 'WK-Batsman', 'Batting Allrounder') wins.
    Without it, the keeper flag and batting / bowling styles decide, and a
    player with nothing to go on is a batsman.
    """
    api_role = str(player_data.get('role') or '').lower().replace('-', '')
    keeper = bool(player_data.get('keeper'))

    if api_role:
        if 'wk' in api_role or keeper:
            return 'wicketkeeper'
        if 'allrounder' in api_role:
            return 'allrounder'
        if 'bats' in api_role:
            return 'batsman'
        if 'bowl' in api_role:
            return 'bowler'

    if keeper:
        return 'wicketkeeper'
    if player_data.get('bowlingStyle') and player_data.get('battingStyle'):
        return 'allrounder'
    if player_data.get('bowlingStyle'):
        return 'bowler'
    return 'batsman'


def update_player_roles(
    store: DocumentStore, players: list[dict[str, Any]], team: str | None = None
) -> int:
    """
    Set roles (and optionally the team) on master records from squad data.

    Players not in the master list yet are created.

    Returns:
        Number of players written
    """
    count = 0
    for data in players:
        if not data.get('id'):
            continue
        player_id = str(data['id'])
        update = {'role': determine_role(data)}
        if team:
            update['team'] = team

        existing = find_player_by_any_id(store, player_id)
        if existing is None:
            upsert_player(store, {'id': player_id, 'name': data.get('name') or player_id, **update})
        else:
            store.update(PLAYERS_MASTER, existing.id, {**update, 'lastUpdated': utc_now().isoformat()})
        count += 1

    logger.info(f'Updated roles for {count} players')
    return count


def find_player_by_any_id(store: DocumentStore, player_id: str) -> PlayerMaster | None:
    """Look a player up by primary id, then by alternate id."""
    doc = store.get(PLAYERS_MASTER, player_id)
    if doc is not None:
        return PlayerMaster.model_validate(doc)

    matches = store.query(PLAYERS_MASTER, ('alternateIds', 'array-contains', player_id))
    if matches:
        return PlayerMaster.model_validate(matches[0][1])
    return None


def match_stats_from_points(record: PlayerMatchPoints) -> dict[str, float]:
    """Stat increments contributed by one playerPoints document."""
    batting = record.performance.get('batting') or {}
    bowling = record.performance.get('bowling') or {}
    fielding = record.performance.get('fielding') or {}
    runs = int(batting.get('runs', 0) or 0)

    return {
        'batting_runs': runs,
        'fours': int(batting.get('fours', 0) or 0),
        'sixes': int(batting.get('sixes', 0) or 0),
        'fifties': 1 if batting and 50 <= runs < 100 else 0,
        'hundreds': 1 if batting and runs >= 100 else 0,
        'bowling_runs': int(bowling.get('runs', 0) or 0),
        'wickets': int(bowling.get('wickets', 0) or 0),
        'catches': int(fielding.get('catches', 0) or 0),
        'stumpings': int(fielding.get('stumpings', 0) or 0),
        'run_outs': int(fielding.get('runouts', 0) or 0),
        'points': record.points,
    }


def update_player_stats(
    store: DocumentStore,
    player_id: str,
    match_id: str,
    increments: dict[str, float],
    new_match: bool = True,
) -> str:
    """
    Add one match's stats to a player, at most once per match.

    Args:
        store: Document store
        player_id: Primary or alternate id
        match_id: Match the stats come from
        increments: Stat name -> amount to add (PlayerStats field names)
        new_match: Whether this counts as an extra match played

    Returns:
        'updated', 'skipped' (match already counted) or 'not_found'
    """
    player = find_player_by_any_id(store, player_id)
    if player is None:
        logger.error(f'Player not found with ID: {player_id}')
        return 'not_found'

    if match_id in player.processed_matches:
        logger.debug(f'Match {match_id} already processed for player {player.id}, skipping')
        return 'skipped'

    stats = player.stats.model_dump()
    for name, amount in increments.items():
        if name in STAT_FIELDS and name != 'matches':
            stats[name] += amount
    if new_match:
        stats['matches'] += 1

    store.update(
        PLAYERS_MASTER,
        player.id,
        {
            'stats': to_document(PlayerStats.model_validate(stats)),
            'processedMatches': player.processed_matches + [match_id],
            'lastUpdated': utc_now().isoformat(),
        },
    )
    return 'updated'


def sync_player_from_points(
    store: DocumentStore, record: PlayerMatchPoints, name: str | None = None
) -> str:
    """Fold a playerPoints document into the master record, creating the player if new."""
    if find_player_by_any_id(store, record.player_id) is None:
        upsert_player(store, {'id': record.player_id, 'name': name or record.player_id})
    return update_player_stats(
        store, record.player_id, record.match_id, match_stats_from_points(record)
    )


def map_related_players(
    store: DocumentStore, primary_id: str, alternate_ids: list[str], rebuild: bool = False
) -> list[str]:
    """
    Record alternate ids for a player.

    Args:
        store: Document store
        primary_id: Primary id of the master record
        alternate_ids: Ids to add; ones already present are ignored
        rebuild: Rebuild the player's stats when new ids were added

    Returns:
        The alternate ids that were added

    Raises:
        DocumentNotFound: If the primary player doesn't exist
    """
    player = PlayerMaster.model_validate(store.require(PLAYERS_MASTER, primary_id))
    added = []
    for alt in alternate_ids:
        if alt and alt != primary_id and alt not in player.alternate_ids and alt not in added:
            added.append(alt)

    if not added:
        logger.info(f'No new alternate IDs to add for {primary_id}')
        return []

    store.update(
        PLAYERS_MASTER,
        primary_id,
        {'alternateIds': player.alternate_ids + added, 'lastUpdated': utc_now().isoformat()},
    )
    logger.info(f'Added {len(added)} alternate IDs to {primary_id}')

    if rebuild:
        rebuild_player_stats(store, primary_id)
    return added


def batch_import_players(store: DocumentStore, players: list[dict[str, Any]]) -> int:
    """Write player records as given (overwriting). Returns the number written."""
    count = 0
    for data in players:
        player = PlayerMaster.model_validate(data)
        store.set(PLAYERS_MASTER, player.id, to_document(player))
        count += 1
    logger.info(f'Imported {count} players')
    return count


def rebuild_player_stats(store: DocumentStore, player_id: str) -> dict[str, Any]:
    """
    Reset a player's stats and replay every playerPoints document recorded
    under their primary or alternate ids, counting each match once.

    Returns:
        {'id', 'entriesProcessed', 'uniqueMatches'}

    Raises:
        DocumentNotFound: If no player has this id
    """
    player = find_player_by_any_id(store, player_id)
    if player is None:
        raise DocumentNotFound(PLAYERS_MASTER, player_id)

    store.update(
        PLAYERS_MASTER,
        player.id,
        {
            'stats': to_document(PlayerStats()),
            'processedMatches': [],
            'lastUpdated': utc_now().isoformat(),
        },
    )

    entries = []
    for pid in [player.id, *player.alternate_ids]:
        entries.extend(
            PlayerMatchPoints.model_validate(doc)
            for _doc_id, doc in store.query(PLAYER_POINTS, ('playerId', '==', pid))
        )
    entries.sort(key=lambda e: e.timestamp.timestamp() if e.timestamp else 0)

    matches = set()
    for entry in entries:
        if entry.match_id in matches:
            logger.debug(f'Skipping duplicate match {entry.match_id} for player {entry.player_id}')
            continue
        update_player_stats(store, player.id, entry.match_id, match_stats_from_points(entry))
        matches.add(entry.match_id)

    logger.info(f'Rebuilt stats for {player.id} from {len(entries)} entries')
    return {'id': player.id, 'entriesProcessed': len(entries), 'uniqueMatches': len(matches)}


def build_alias_map(store: DocumentStore) -> dict[str, str]:
    """
    Map lowercase names and alternate ids to each player's canonical name.

    Used to match sheet names that differ from roster names.
    """
    aliases: dict[str, str] = {}
    for _doc_id, doc in store.query(PLAYERS_MASTER):
        player = PlayerMaster.model_validate(doc)
        aliases[normalize_name(player.name)] = player.name
        for alt in player.alternate_ids:
            aliases.setdefault(normalize_name(alt), player.name)
    return aliases
