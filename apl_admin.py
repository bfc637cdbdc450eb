#!/usr/bin/env python3
"""
APL admin CLI

Runs the points pipeline and maintenance commands against the document
store ($APL_DATA_DIR, or the GitHub store when GITHUB_TOKEN is set).

Usage:
    python apl_admin.py sync --week 3
    python apl_admin.py sync --xlsx exports/stats.xlsx
    python apl_admin.py cap-points --week 3
    python apl_admin.py rankings --week 3
    python apl_admin.py player-totals --week 3 --top 10
    python apl_admin.py validate --week 3
    python apl_admin.py refresh-matches --match-id 114960
    python apl_admin.py recalculate-match --match-id 114960
    python apl_admin.py player-roles --match-id 114960
    python apl_admin.py activate-window --actor admin1 --week 4
    python apl_admin.py reset-match --actor admin1 --week 3 --match 114960
    python apl_admin.py edit-team --actor admin1 --user u1 --week 3 --players team.json
    python apl_admin.py recalculate --actor admin1 --week 3
    python apl_admin.py create-tournament tournament.json
"""

import argparse
import logging
import sys
from pathlib import Path

from apl.cap_points import parse_cap_holders, process_cap_points
from apl.config import get_config, get_sheet_id
from apl.constants import WEEKLY_STATS
from apl.cricket_api import refresh_match, refresh_player_roles, sync_match_data
from apl.errors import AplError
from apl.logging_config import setup_logging
from apl.maintenance import (
    activate_transfer_window,
    edit_team_for_week,
    recalculate_week,
    reset_match_points,
)
from apl.players import build_alias_map
from apl.points import apply_match_points
from apl.rankings import leaderboard, update_overall_rankings, update_weekly_rankings
from apl.schemas import WeeklyStat
from apl.sheets import (
    fetch_cap_records,
    fetch_performance_rows,
    load_workbook_records,
    parse_performance_rows,
    performance_frame,
    player_week_totals,
)
from apl.store import open_store
from apl.sync import sync_player_stats
from apl.transfers import create_tournament, get_active_tournament, load_tournament
from apl.utils import load_json
from apl.validators import validate_all_weekly_stats

logger = logging.getLogger('apl.admin')


def load_rows(args):
    """Performance rows from a local export (--xlsx) or the sheet."""
    if args.xlsx:
        records = load_workbook_records(args.xlsx, get_config().performance_tab)
        return parse_performance_rows(records)
    return fetch_performance_rows(args.sheet_id or get_sheet_id())


def load_cap_records(args):
    if args.xlsx:
        return load_workbook_records(args.xlsx, get_config().cap_points_tab)
    return fetch_cap_records(args.sheet_id or get_sheet_id())


def resolve_tournament(store, args):
    tournament = load_tournament(store, args.tournament) if args.tournament else get_active_tournament(store)
    if tournament is None:
        print('❌ No active tournament found')
        sys.exit(1)
    return tournament


def cmd_sync(store, args):
    tournament = resolve_tournament(store, args)
    rows = load_rows(args)
    print(f'Syncing {len(rows)} performance rows into {tournament.id}...')

    aliases = build_alias_map(store)
    start = 0
    while True:
        report = sync_player_stats(
            store, rows, tournament, week=args.week, start_index=start,
            batch_size=args.batch_size, aliases=aliases,
        )
        for result in report.results:
            print(f'  Week {result.week}: {result.teams_processed} teams, {result.players_processed} rows ({result.status})')
        for error in report.errors:
            print(f"  ⚠️  {error['userId']} week {error['week']}: {error['error']}")
        if not report.has_more_users:
            break
        start = report.next_start_index

    if report.unmatched_players:
        print(f'Players on no roster: {", ".join(report.unmatched_players)}')


def cmd_cap_points(store, args):
    tournament = resolve_tournament(store, args)
    orange, purple = parse_cap_holders(load_cap_records(args), args.week)
    if not orange and not purple:
        print(f'❌ No cap data found for week {args.week}')
        sys.exit(1)

    report = process_cap_points(store, tournament.id, args.week, orange, purple)
    print(f'Orange Cap: {", ".join(orange) or "-"}  Purple Cap: {", ".join(purple) or "-"}')
    print(f'Awarded {report.points_awarded} points to {report.users_processed} users ({len(report.skipped)} already awarded)')


def cmd_rankings(store, args):
    tournament = resolve_tournament(store, args)
    if args.week:
        update_weekly_rankings(store, tournament.id, args.week)
    update_overall_rankings(store, tournament.id)

    print('\n' + '=' * 60)
    print('LEADERBOARD')
    print('=' * 60)
    for row in leaderboard(store, tournament.id):
        print(f"  {row['rank']}. {row['teamName'] or row['name']}: {row['totalPoints']:.1f} pts")


def cmd_player_totals(store, args):
    totals = player_week_totals(performance_frame(load_rows(args)))
    if args.week:
        totals = totals.filter(totals['week'] == args.week)

    for week_totals in totals.partition_by('week', maintain_order=True):
        week = week_totals['week'][0]
        print(f'\nWeek {week}')
        for row in week_totals.head(args.top).iter_rows(named=True):
            print(f"  {row['player_name']:<25} {row['total_points']:>7.1f} pts  ({row['matches']} matches)")


def cmd_validate(store, args):
    tournament = resolve_tournament(store, args)
    conditions = [('tournamentId', '==', tournament.id)]
    if args.week:
        conditions.append(('weekNumber', '==', args.week))
    stats = [WeeklyStat.model_validate(doc) for _id, doc in store.query(WEEKLY_STATS, *conditions)]

    warnings = validate_all_weekly_stats(stats)
    for warning in warnings:
        print(f'  ⚠️  {warning}')
    if warnings:
        print(f'❌ {len(warnings)} issues in {len(stats)} weekly stats')
        sys.exit(1)
    print(f'✓ {len(stats)} weekly stats are consistent')


def cmd_refresh_matches(store, args):
    if args.match_id:
        tournament = get_active_tournament(store)
        result = refresh_match(store, args.match_id, tournament)
        print(
            f"Match {result['matchId']}: {result['playersScored']} players scored, "
            f"week {result['weekNumber']}, {result['usersUpdated']} users updated"
        )
    else:
        result = sync_match_data(store)
        print(f"Updated {result['updated']} matches, {len(result['errors'])} errors")


def cmd_recalculate_match(store, args):
    tournament = resolve_tournament(store, args)
    report = apply_match_points(store, tournament, args.match_id, week=args.week)
    for error in report.errors:
        print(f"  ⚠️  {error['userId']}: {error['error']}")
    print(
        f'✓ Match {report.match_id} week {report.week}: {report.points_awarded:.1f} points to '
        f'{report.users_updated} users ({len(report.already_processed)} already counted)'
    )


def cmd_player_roles(store, args):
    count = refresh_player_roles(store, args.match_id)
    print(f'✓ Updated roles for {count} players from match {args.match_id}')


def cmd_activate_window(store, args):
    tournament = resolve_tournament(store, args)
    activate_transfer_window(store, args.actor, tournament.id, args.week)
    print(f'✓ Week {args.week} transfer window is now active')


def cmd_reset_match(store, args):
    tournament = resolve_tournament(store, args)
    changed = reset_match_points(store, args.actor, tournament.id, args.week, args.match)
    print(f'✓ Reset match {args.match} for {changed} users')


def cmd_edit_team(store, args):
    tournament = resolve_tournament(store, args)
    players = load_json(args.players)
    edit_team_for_week(
        store, args.actor, args.user, tournament.id, args.week, players,
        update_current=not args.snapshot_only,
    )
    print(f'✓ Saved week {args.week} team for {args.user}')


def cmd_recalculate(store, args):
    tournament = resolve_tournament(store, args)
    reports = recalculate_week(
        store, args.actor, load_rows(args), tournament, args.week,
        batch_size=args.batch_size, aliases=build_alias_map(store),
    )
    errors = sum(len(r.errors) for r in reports)
    print(f'✓ Recalculated week {args.week} in {len(reports)} batches ({errors} errors)')


def cmd_create_tournament(store, args):
    tournament = create_tournament(store, load_json(args.file))
    print(f'✓ Created tournament {tournament.id} with {len(tournament.transfer_windows)} windows')


def build_parser():
    parser = argparse.ArgumentParser(description='APL fantasy cricket admin tools')
    parser.add_argument('--data-dir', '-d', default=None, help='JSON store directory (default $APL_DATA_DIR)')
    parser.add_argument('--tournament', '-t', default=None, help='Tournament id (default: active tournament)')
    parser.add_argument('--quiet', '-q', action='store_true', help='Only log warnings')
    sub = parser.add_subparsers(dest='command', required=True)

    def sheet_args(p):
        p.add_argument('--sheet-id', default=None, help='Spreadsheet id (default $PLAYER_STATS_SHEET_ID)')
        p.add_argument('--xlsx', type=Path, default=None, help='Read a local .xlsx export instead of the sheet')

    p = sub.add_parser('sync', help='Sync weekly stats from the performance sheet')
    sheet_args(p)
    p.add_argument('--week', '-w', type=int, default=None, help='Only this week')
    p.add_argument('--batch-size', type=int, default=None, help='Users per batch')
    p.set_defaults(func=cmd_sync)

    p = sub.add_parser('cap-points', help='Award Orange / Purple cap bonuses')
    sheet_args(p)
    p.add_argument('--week', '-w', type=int, required=True)
    p.set_defaults(func=cmd_cap_points)

    p = sub.add_parser('rankings', help='Recompute rankings and print the leaderboard')
    p.add_argument('--week', '-w', type=int, default=None)
    p.set_defaults(func=cmd_rankings)

    p = sub.add_parser('player-totals', help='Per-player weekly totals from the performance sheet')
    sheet_args(p)
    p.add_argument('--week', '-w', type=int, default=None)
    p.add_argument('--top', type=int, default=20, help='Players shown per week')
    p.set_defaults(func=cmd_player_totals)

    p = sub.add_parser('validate', help='Check weekly stats add up')
    p.add_argument('--week', '-w', type=int, default=None)
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser('refresh-matches', help='Refresh match data from the cricket API')
    p.add_argument('--match-id', default=None, help='Refresh and score a single match')
    p.set_defaults(func=cmd_refresh_matches)

    p = sub.add_parser('recalculate-match', help='Add a scored match to weekly stats')
    p.add_argument('--match-id', required=True)
    p.add_argument('--week', '-w', type=int, default=None, help='Week (default: stored match week)')
    p.set_defaults(func=cmd_recalculate_match)

    p = sub.add_parser('player-roles', help='Update player roles from a match squad')
    p.add_argument('--match-id', required=True)
    p.set_defaults(func=cmd_player_roles)

    p = sub.add_parser('activate-window', help='Make a week\'s transfer window active')
    p.add_argument('--actor', required=True, help='Admin user id')
    p.add_argument('--week', '-w', type=int, required=True)
    p.set_defaults(func=cmd_activate_window)

    p = sub.add_parser('reset-match', help='Remove a match\'s points from a week')
    p.add_argument('--actor', required=True, help='Admin user id')
    p.add_argument('--week', '-w', type=int, required=True)
    p.add_argument('--match', required=True, help='Match id')
    p.set_defaults(func=cmd_reset_match)

    p = sub.add_parser('edit-team', help='Overwrite a user\'s team for a week')
    p.add_argument('--actor', required=True, help='Admin user id')
    p.add_argument('--user', required=True)
    p.add_argument('--week', '-w', type=int, required=True)
    p.add_argument('--players', type=Path, required=True, help='JSON file with the player list')
    p.add_argument('--snapshot-only', action='store_true', help='Leave the live roster untouched')
    p.set_defaults(func=cmd_edit_team)

    p = sub.add_parser('recalculate', help='Re-run the sync for one week')
    sheet_args(p)
    p.add_argument('--actor', required=True, help='Admin user id')
    p.add_argument('--week', '-w', type=int, required=True)
    p.add_argument('--batch-size', type=int, default=None)
    p.set_defaults(func=cmd_recalculate)

    p = sub.add_parser('create-tournament', help='Create a tournament from a JSON file')
    p.add_argument('file', type=Path)
    p.set_defaults(func=cmd_create_tournament)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(level=logging.WARNING if args.quiet else logging.INFO)
    store = open_store(args.data_dir)

    try:
        args.func(store, args)
    except AplError as e:
        logger.error(str(e))
        print(f'❌ {e}')
        sys.exit(1)


if __name__ == '__main__':
    main()
