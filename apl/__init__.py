"""APL fantasy cricket backend: points pipeline, transfers, leagues."""

from .cap_points import award_cap_points, cap_bonus_for_roster, parse_cap_holders, process_cap_points
from .errors import (
    AplError,
    ConcurrencyConflict,
    CricketApiError,
    DocumentNotFound,
    LeagueError,
    PermissionDenied,
    SheetError,
    StoreError,
    TransferError,
)
from .keys import CapHoldersKey, InviteKey, PlayerMatchKey, TeamKey, WeeklyKey
from .models import PerformanceRow, SyncReport, WeeklyPoints
from .points import recompute_weekly_stat, score_roster_for_week, unmatched_players_report
from .rankings import assign_ranks, leaderboard, update_overall_rankings, update_weekly_rankings
from .sheets import SheetsClient, fetch_cap_records, fetch_performance_rows, parse_performance_rows
from .store import DocumentStore, GitHubContentsStore, JsonFileStore, open_store
from .sync import sync_player_stats
from .team_resolver import get_team_for_week, resolve_team_source

__all__ = [
    # Store
    'DocumentStore',
    'JsonFileStore',
    'GitHubContentsStore',
    'open_store',
    # Keys
    'WeeklyKey',
    'TeamKey',
    'PlayerMatchKey',
    'CapHoldersKey',
    'InviteKey',
    # Errors
    'AplError',
    'DocumentNotFound',
    'ConcurrencyConflict',
    'StoreError',
    'SheetError',
    'CricketApiError',
    'TransferError',
    'LeagueError',
    'PermissionDenied',
    # Performance ingestion
    'PerformanceRow',
    'SheetsClient',
    'parse_performance_rows',
    'fetch_performance_rows',
    'fetch_cap_records',
    # Points pipeline
    'get_team_for_week',
    'resolve_team_source',
    'WeeklyPoints',
    'score_roster_for_week',
    'recompute_weekly_stat',
    'unmatched_players_report',
    'assign_ranks',
    'update_weekly_rankings',
    'update_overall_rankings',
    'leaderboard',
    'parse_cap_holders',
    'cap_bonus_for_roster',
    'award_cap_points',
    'process_cap_points',
    'SyncReport',
    'sync_player_stats',
]
