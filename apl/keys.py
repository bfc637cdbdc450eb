"""Composite document keys.

Every document id built from several parts goes through one of these
classes, so producers and consumers share a single format and parser.
"""

from dataclasses import dataclass

SEPARATOR = '_'


def _check_part(name: str, value: str) -> None:
    if not value:
        raise ValueError(f'{name} must not be empty')


@dataclass(frozen=True)
class WeeklyKey:
    """Key of per-user-per-week documents: ``{userId}_{tournamentId}_{week}``.

    User ids may not contain the separator; tournament ids may, because
    parsing takes the user from the first separator and the week from the
    last one.
    """

    user_id: str
    tournament_id: str
    week_number: int

    def format(self) -> str:
        _check_part('user_id', self.user_id)
        _check_part('tournament_id', self.tournament_id)
        if SEPARATOR in self.user_id:
            raise ValueError(f'user_id may not contain {SEPARATOR!r}: {self.user_id}')
        if self.week_number < 1:
            raise ValueError(f'week_number must be >= 1, got {self.week_number}')
        return f'{self.user_id}{SEPARATOR}{self.tournament_id}{SEPARATOR}{self.week_number}'

    @classmethod
    def parse(cls, key: str) -> 'WeeklyKey':
        user_id, sep, rest = key.partition(SEPARATOR)
        tournament_id, sep2, week = rest.rpartition(SEPARATOR)
        if not sep or not sep2 or not user_id or not tournament_id or not week.isdigit():
            raise ValueError(f'Not a weekly key: {key!r}')
        return cls(user_id, tournament_id, int(week))

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True)
class TeamKey:
    """Key of a user's current roster: ``{userId}_{tournamentId}``."""

    user_id: str
    tournament_id: str

    def format(self) -> str:
        _check_part('user_id', self.user_id)
        _check_part('tournament_id', self.tournament_id)
        if SEPARATOR in self.user_id:
            raise ValueError(f'user_id may not contain {SEPARATOR!r}: {self.user_id}')
        return f'{self.user_id}{SEPARATOR}{self.tournament_id}'

    @classmethod
    def parse(cls, key: str) -> 'TeamKey':
        user_id, sep, tournament_id = key.partition(SEPARATOR)
        if not sep or not user_id or not tournament_id:
            raise ValueError(f'Not a team key: {key!r}')
        return cls(user_id, tournament_id)

    def week(self, week_number: int) -> WeeklyKey:
        return WeeklyKey(self.user_id, self.tournament_id, week_number)

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True)
class PlayerMatchKey:
    """Key of a player's points in one match: ``{playerId}_{matchId}``."""

    player_id: str
    match_id: str

    def format(self) -> str:
        _check_part('player_id', self.player_id)
        _check_part('match_id', self.match_id)
        return f'{self.player_id}{SEPARATOR}{self.match_id}'

    @classmethod
    def parse(cls, key: str) -> 'PlayerMatchKey':
        # Match ids are numeric, player ids may carry the separator
        player_id, sep, match_id = key.rpartition(SEPARATOR)
        if not sep or not player_id or not match_id:
            raise ValueError(f'Not a player-match key: {key!r}')
        return cls(player_id, match_id)

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True)
class CapHoldersKey:
    """Key of a week's cap holders: ``{tournamentId}_{week}``."""

    tournament_id: str
    week_number: int

    def format(self) -> str:
        _check_part('tournament_id', self.tournament_id)
        return f'{self.tournament_id}{SEPARATOR}{self.week_number}'

    @classmethod
    def parse(cls, key: str) -> 'CapHoldersKey':
        tournament_id, sep, week = key.rpartition(SEPARATOR)
        if not sep or not tournament_id or not week.isdigit():
            raise ValueError(f'Not a cap holders key: {key!r}')
        return cls(tournament_id, int(week))

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True)
class InviteKey:
    """Key of a league invite: ``{leagueId}_{userId}``."""

    league_id: str
    user_id: str

    def format(self) -> str:
        _check_part('league_id', self.league_id)
        _check_part('user_id', self.user_id)
        if SEPARATOR in self.user_id:
            raise ValueError(f'user_id may not contain {SEPARATOR!r}: {self.user_id}')
        return f'{self.league_id}{SEPARATOR}{self.user_id}'

    @classmethod
    def parse(cls, key: str) -> 'InviteKey':
        league_id, sep, user_id = key.rpartition(SEPARATOR)
        if not sep or not league_id or not user_id:
            raise ValueError(f'Not an invite key: {key!r}')
        return cls(league_id, user_id)

    def __str__(self) -> str:
        return self.format()
