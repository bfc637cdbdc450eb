"""Validation functions for team selections and weekly stats."""

from .config import get_team_size
from .constants import ROLES
from .schemas import RosterPlayer, WeeklyStat


def validate_team_selection(players: list[RosterPlayer], team_size: int | None = None) -> list[str]:
    """
    Validate a user's team selection.

    Checks:
    - Exactly team_size players (11 by default)
    - No player picked twice
    - Exactly one captain and one vice-captain, and they differ
    - Roles are known

    Args:
        players: Selected players
        team_size: Required team size (default from config)

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    team_size = team_size or get_team_size()

    if len(players) != team_size:
        errors.append(f'You must select exactly {team_size} players. Current: {len(players)}')

    seen = set()
    duplicates = set()
    for player in players:
        if player.id in seen:
            duplicates.add(player.name)
        seen.add(player.id)
    if duplicates:
        errors.append(f'Team has duplicate players: {", ".join(sorted(duplicates))}')

    captains = [p for p in players if p.is_captain]
    vice_captains = [p for p in players if p.is_vice_captain]
    if len(captains) != 1:
        errors.append(f'Team must have exactly one captain (has {len(captains)})')
    if len(vice_captains) != 1:
        errors.append(f'Team must have exactly one vice-captain (has {len(vice_captains)})')
    if any(p.is_captain and p.is_vice_captain for p in players):
        errors.append('Captain cannot be vice-captain')

    unknown = sorted({p.role for p in players if p.role not in ROLES and p.role != 'unknown'})
    if unknown:
        errors.append(f'Unknown player roles: {", ".join(unknown)}')

    return errors


def validate_weekly_stat(stat: WeeklyStat) -> list[str]:
    """
    Check that a weekly stat is internally consistent.

    Sanity checks:
    - Breakdown final points add up to the total (within 0.1 for rounding)
    - Each entry's final points equal base x multiplier
    - A cap bonus appears only when capPointsAwarded is set

    Args:
        stat: WeeklyStat to check

    Returns:
        List of warning messages (empty if no issues)
    """
    warnings = []
    label = f'{stat.user_id} week {stat.week_number}'

    breakdown_sum = sum(e.final_points for e in stat.points_breakdown)
    diff = abs(breakdown_sum - stat.points)
    if diff > 0.1:
        warnings.append(
            f'{label} breakdown sum ({breakdown_sum:.1f}) != total ({stat.points:.1f}) - difference: {diff:.1f}'
        )

    for entry in stat.points_breakdown:
        if entry.is_cap:
            continue
        expected = entry.base_points * entry.multiplier
        if abs(expected - entry.final_points) > 0.01:
            warnings.append(
                f'{label} {entry.player_name} in {entry.match_id}: final {entry.final_points} '
                f'!= base {entry.base_points} x {entry.multiplier}'
            )

    if any(e.is_cap for e in stat.points_breakdown) and not stat.cap_points_awarded:
        warnings.append(f'{label} has cap entries but capPointsAwarded is not set')

    return warnings


def validate_all_weekly_stats(stats: list[WeeklyStat]) -> list[str]:
    """Validate a week's stats; returns all warnings."""
    warnings: list[str] = []
    for stat in stats:
        warnings.extend(validate_weekly_stat(stat))
    return warnings
