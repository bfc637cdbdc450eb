"""In-process data models for the points pipeline."""

from dataclasses import dataclass, field

from .schemas import BreakdownEntry, RosterPlayer


@dataclass(frozen=True)
class PerformanceRow:
    """One player's points in one match, as read from the performance sheet."""
    week: int
    match_id: str
    player_name: str
    team: str = ''
    total_points: float = 0.0


@dataclass
class MatchedRow:
    """A performance row credited to a roster player."""
    row: PerformanceRow
    player: RosterPlayer
    entry: BreakdownEntry


@dataclass
class UnmatchedRow:
    """A performance row that no roster player claimed."""
    row: PerformanceRow
    reason: str = 'not_on_roster'


@dataclass
class WeeklyPoints:
    """Result of scoring one roster against one week of performance rows."""
    week: int
    total: float = 0.0
    matched: list[MatchedRow] = field(default_factory=list)
    unmatched: list[UnmatchedRow] = field(default_factory=list)
    matches: list[str] = field(default_factory=list)

    @property
    def breakdown(self) -> list[BreakdownEntry]:
        return [m.entry for m in self.matched]

    @property
    def unmatched_names(self) -> set[str]:
        return {u.row.player_name for u in self.unmatched}


@dataclass
class TeamSource:
    """Where a resolved roster came from: a week's snapshot, the live roster, or nothing."""
    kind: str  # 'snapshot' | 'current' | 'none'
    week: int | None = None
    players: list[RosterPlayer] = field(default_factory=list)


@dataclass
class WeekSyncResult:
    """Outcome of syncing one week."""
    week: int
    status: str = 'success'
    players_processed: int = 0
    teams_processed: int = 0
    error: str | None = None


@dataclass
class SyncReport:
    """Outcome of one batch of the player stats sync."""
    processed_rows: int = 0
    processed_users: int = 0
    total_users: int = 0
    has_more_users: bool = False
    next_start_index: int = 0
    week: int | None = None
    results: list[WeekSyncResult] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    unmatched_players: list[str] = field(default_factory=list)


@dataclass
class CapPointsReport:
    """Outcome of awarding cap bonuses for a week."""
    week: int
    orange_caps: list[str] = field(default_factory=list)
    purple_caps: list[str] = field(default_factory=list)
    users_processed: int = 0
    points_awarded: int = 0
    skipped: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)


@dataclass
class MatchPointsReport:
    """Outcome of applying one match's player points to weekly stats."""
    match_id: str
    week: int
    users_updated: int = 0
    points_awarded: float = 0.0
    already_processed: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
