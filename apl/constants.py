"""Constants and mappings for the APL fantasy cricket backend."""

# Store collections
TOURNAMENTS = 'tournaments'
USER_TEAMS = 'userTeams'
TRANSFER_HISTORY = 'userTransferHistory'
WEEKLY_STATS = 'userWeeklyStats'
USERS = 'users'
PLAYERS_MASTER = 'playersMaster'
PLAYER_POINTS = 'playerPoints'
MATCHES = 'matches'
MATCH_WEEKS = 'matchWeeks'
CAP_HOLDERS = 'capHolders'
LEAGUES = 'leagues'
LEAGUE_INVITES = 'leagueInvites'

# Captain / vice-captain multipliers, applied per match
CAPTAIN_MULTIPLIER = 2.0
VICE_CAPTAIN_MULTIPLIER = 1.5

# Flat bonus for each cap holder on a user's roster
CAP_POINTS_BONUS = 50
CAP_TYPES = ('Orange', 'Purple')

# Spreadsheet header names
COL_WEEK = 'Week'
COL_MATCH = 'Match'
COL_PLAYER = 'Players'
COL_TEAM = 'Team'
COL_TOTAL_POINTS = 'Total Points'
COL_ORANGE_CAP = 'Orange Cap'
COL_PURPLE_CAP = 'Purple Cap'

# Player roles
ROLES = ('batsman', 'bowler', 'allrounder', 'wicketkeeper')

# Tournament / window / invite status values
STATUS_UPCOMING = 'upcoming'
STATUS_ACTIVE = 'active'
STATUS_COMPLETED = 'completed'
INVITE_PENDING = 'pending'
INVITE_ACCEPTED = 'accepted'
INVITE_DECLINED = 'declined'

# Match scoring rules
POINTS = {
    'batting': {
        'run': 1,
        'boundary_4': 1,
        'boundary_6': 2,
        'milestone_25': 4,
        'milestone_50': 8,
        'milestone_100': 16,
        'duck': -5,
    },
    'bowling': {
        'wicket': 25,
        'three_wickets': 8,
        'four_wickets': 16,
        'five_wickets': 25,
        'maiden': 8,
    },
    'fielding': {
        'catch': 8,
        'stumping': 12,
        'direct_throw': 12,
    },
    'match': {
        'played': 5,
    },
}

# Cricket API
CRICKET_API_HOST = 'cricbuzz-cricket.p.rapidapi.com'
