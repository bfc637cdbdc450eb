"""Pydantic schemas for documents in the APL store.

Documents are stored with camelCase keys (``capPointsAwarded``,
``pointsBreakdown``); the models expose snake_case attributes and accept
either spelling on input.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from .constants import CAPTAIN_MULTIPLIER, VICE_CAPTAIN_MULTIPLIER


class Document(BaseModel):
    """Base for stored documents."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = 'ignore'


class RosterPlayer(Document):
    """Player on a user's fantasy roster."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    role: str = 'unknown'
    is_captain: bool = False
    is_vice_captain: bool = False

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v):
        """Cricket API ids arrive as integers."""
        return str(v) if isinstance(v, int) else v

    @property
    def multiplier(self) -> float:
        if self.is_captain:
            return CAPTAIN_MULTIPLIER
        if self.is_vice_captain:
            return VICE_CAPTAIN_MULTIPLIER
        return 1.0


class TransferWindow(Document):
    """Scheduled period during which users may change their roster."""

    week_number: int = Field(..., ge=1)
    start_date: datetime
    end_date: datetime
    status: str = Field(default='upcoming', pattern=r'^(upcoming|active|completed)$')


class Tournament(Document):
    """Tournament with its ordered transfer windows."""

    id: str = ''
    name: str = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime
    registration_deadline: datetime | None = None
    status: str = Field(default='upcoming', pattern=r'^(upcoming|active|completed)$')
    transfer_windows: list[TransferWindow] = Field(default_factory=list)
    created_at: datetime | None = None

    @field_validator('transfer_windows')
    @classmethod
    def validate_unique_weeks(cls, v):
        """Week numbers identify windows, so they must be unique."""
        weeks = [w.week_number for w in v]
        if len(weeks) != len(set(weeks)):
            raise ValueError(f'Duplicate transfer window week numbers: {sorted(weeks)}')
        return sorted(v, key=lambda w: w.week_number)

    def window_for_week(self, week_number: int) -> TransferWindow | None:
        return next((w for w in self.transfer_windows if w.week_number == week_number), None)


class WindowRef(Document):
    """Copy of the window a roster change was made in."""

    week_number: int
    start_date: datetime | None = None
    end_date: datetime | None = None


class RosterSnapshot(Document):
    """Immutable record of a user's roster for one week."""

    user_id: str
    tournament_id: str
    week_number: int = Field(..., ge=1)
    players: list[RosterPlayer] = Field(default_factory=list)
    transfer_date: datetime | None = None
    transfer_window: WindowRef | None = None
    created_at: datetime | None = None


class CurrentRoster(Document):
    """The live, mutable roster of a user in a tournament."""

    user_id: str
    tournament_id: str
    players: list[RosterPlayer] = Field(default_factory=list)
    transfers_remaining: int = Field(default=2, ge=0)
    registration_date: datetime | None = None
    is_late_registration: bool = False
    last_transfer_date: datetime | None = None
    last_transfer_window: WindowRef | None = None


class BreakdownEntry(Document):
    """One contribution to a weekly total."""

    player_id: str
    player_name: str
    match_id: str | None = None
    base_points: float = 0.0
    final_points: float = 0.0
    multiplier: float = 1.0
    is_captain: bool = False
    is_vice_captain: bool = False
    is_cap: bool = False
    cap_type: str | None = None


class CapHolder(Document):
    """A cap holder found on a user's roster."""

    player: str
    cap_type: str = Field(..., pattern=r'^(Orange|Purple)$')


class WeeklyStat(Document):
    """Aggregate point record for one user in one week."""

    user_id: str
    tournament_id: str
    week_number: int
    points: float = 0.0
    points_breakdown: list[BreakdownEntry] = Field(default_factory=list)
    rank: int = 0
    processed_matches: list[str] = Field(default_factory=list)
    cap_points_awarded: bool = False
    cap_holders: list[CapHolder] = Field(default_factory=list)
    transfer_window_id: str = ''
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PlayerStats(Document):
    """Cumulative stats held on a player master record."""

    matches: int = 0
    batting_runs: int = 0
    bowling_runs: int = 0
    wickets: int = 0
    catches: int = 0
    stumpings: int = 0
    run_outs: int = 0
    fifties: int = 0
    hundreds: int = 0
    fours: int = 0
    sixes: int = 0
    points: float = 0.0


class PlayerMaster(Document):
    """Canonical player record with alternate ids used for alias resolution."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    alternate_ids: list[str] = Field(default_factory=list)
    role: str = 'unknown'
    team: str = 'unknown'
    active: bool = True
    stats: PlayerStats = Field(default_factory=PlayerStats)
    processed_matches: list[str] = Field(default_factory=list)
    last_updated: datetime | None = None


class PlayerMatchPoints(Document):
    """Points a player scored in one match."""

    player_id: str
    match_id: str
    points: float
    performance: dict = Field(default_factory=dict)
    timestamp: datetime | None = None


class MatchWeek(Document):
    """Assignment of a match to a tournament week."""

    match_id: str
    tournament_id: str
    week_number: int = Field(..., ge=1)
    auto_assigned: bool = False
    assigned_at: datetime | None = None


class CapHoldersRecord(Document):
    """Cap holders published for a week."""

    tournament_id: str
    week_number: int
    orange_caps: list[str] = Field(default_factory=list)
    purple_caps: list[str] = Field(default_factory=list)
    processed_at: datetime | None = None


class UserProfile(Document):
    """User profile fields used by leaderboards and admin checks."""

    name: str = 'Unknown'
    team_name: str | None = None
    total_points: float = 0.0
    rank: int = 0
    is_admin: bool = False


class League(Document):
    """Private league."""

    id: str = ''
    name: str = Field(..., min_length=1)
    creator_id: str
    members: list[str] = Field(default_factory=list)
    pending_invites: list[str] = Field(default_factory=list)
    created_at: datetime | None = None


class LeagueInvite(Document):
    """Invitation of a user to a league."""

    league_id: str
    league_name: str
    invited_by: str
    user_id: str
    status: str = Field(default='pending', pattern=r'^(pending|accepted|declined)$')
    created_at: datetime | None = None
    responded_at: datetime | None = None


class LeagueConfig(BaseModel):
    """League configuration settings."""

    team_size: int = Field(default=11, ge=1, le=15)
    transfers_per_tournament: int = Field(default=2, ge=0)
    performance_tab: str = 'Player_Performance'
    performance_range: str = 'A1:V1000'
    cap_points_tab: str = 'Cap_Points'
    cap_points_range: str = 'A1:C100'
    default_batch_size: int = Field(default=50, ge=1, le=500)
    leaderboard_weeks: int = Field(default=5, ge=1)

    class Config:
        extra = 'forbid'
