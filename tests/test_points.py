"""Unit tests for weekly points aggregation."""

import pytest

from apl.constants import MATCH_WEEKS, PLAYER_POINTS, WEEKLY_STATS
from apl.errors import ConcurrencyConflict, DocumentNotFound
from apl.models import PerformanceRow, WeeklyPoints
from apl.points import (
    apply_match_points,
    canonical_name,
    recompute_weekly_stat,
    score_roster_for_week,
    unmatched_players_report,
)
from apl.schemas import BreakdownEntry, WeeklyStat
from apl.sheets import group_by_match
from apl.store import JsonFileStore
from apl.utils import to_document


def row(player, points, match='m1', week=1):
    return PerformanceRow(week=week, match_id=match, player_name=player, total_points=points)


class TestScoreRosterForWeek:
    """Tests for scoring a roster against performance rows."""

    def test_captain_doubles(self, make_roster):
        roster = make_roster(['Virat Kohli'], captain=0)
        result = score_roster_for_week(roster, group_by_match([row('Virat Kohli', 40)]), week=1)

        assert result.total == 80
        entry = result.breakdown[0]
        assert entry.base_points == 40
        assert entry.final_points == 80
        assert entry.multiplier == 2.0
        assert entry.is_captain
        assert entry.match_id == 'm1'

    def test_vice_captain_one_and_a_half(self, make_roster):
        roster = make_roster(['A', 'B'], vice_captain=1)
        result = score_roster_for_week(roster, group_by_match([row('A', 10), row('B', 10)]))
        assert result.total == 25
        assert [e.final_points for e in result.breakdown] == [10, 15]

    def test_name_match_ignores_case_and_whitespace(self, make_roster):
        roster = make_roster(['Virat Kohli'])
        result = score_roster_for_week(roster, group_by_match([row('  virat KOHLI ', 12)]))
        assert result.total == 12
        assert result.unmatched == []

    def test_multiplier_applies_per_match(self, make_roster):
        roster = make_roster(['A'], captain=0)
        rows = [row('A', 10, match='m1'), row('A', 20, match='m2')]

        result = score_roster_for_week(roster, group_by_match(rows))

        assert result.total == 60
        assert [e.match_id for e in result.breakdown] == ['m1', 'm2']
        assert result.matches == ['m1', 'm2']

    def test_first_row_wins_within_match(self, make_roster):
        roster = make_roster(['A'])
        result = score_roster_for_week(roster, group_by_match([row('A', 10), row('A', 99)]))
        assert result.total == 10
        assert len(result.unmatched) == 1
        assert result.unmatched[0].row.total_points == 99

    def test_unmatched_rows_reported(self, make_roster):
        roster = make_roster(['A'])
        result = score_roster_for_week(roster, group_by_match([row('A', 10), row('Nobody', 5)]))
        assert result.unmatched_names == {'Nobody'}
        assert result.unmatched[0].reason == 'not_on_roster'

    def test_player_without_rows_scores_nothing(self, make_roster):
        roster = make_roster(['A', 'Benched'])
        result = score_roster_for_week(roster, group_by_match([row('A', 10)]))
        assert [e.player_name for e in result.breakdown] == ['A']

    def test_aliases(self, make_roster):
        roster = make_roster(['Virat Kohli'])
        aliases = {'v kohli': 'Virat Kohli'}
        result = score_roster_for_week(roster, group_by_match([row('V Kohli', 30)]), aliases=aliases)
        assert result.total == 30

    def test_canonical_name(self):
        assert canonical_name(' MS Dhoni ') == 'ms dhoni'
        assert canonical_name('Mahi', {'mahi': 'MS Dhoni'}) == 'ms dhoni'

    def test_empty_roster(self):
        result = score_roster_for_week([], group_by_match([row('A', 10)]))
        assert result.total == 0
        assert len(result.unmatched) == 1


class TestRecomputeWeeklyStat:
    """Tests for writing weekly stats."""

    def test_creates_stat(self, store, make_roster):
        roster = make_roster(['A', 'B'], captain=0)
        rows = group_by_match([row('A', 40), row('B', 10, match='m2')])

        stat, _scored = recompute_weekly_stat(store, 'u1', 'ipl2025', 1, roster, rows)

        doc = store.get(WEEKLY_STATS, 'u1_ipl2025_1')
        assert doc['points'] == 90
        assert doc['processedMatches'] == ['m1', 'm2']
        assert doc['transferWindowId'] == '1'
        assert doc['capPointsAwarded'] is False
        assert stat.points == 90

    def test_recompute_is_idempotent(self, store, make_roster):
        roster = make_roster(['A'], captain=0)
        rows = group_by_match([row('A', 40)])

        recompute_weekly_stat(store, 'u1', 'ipl2025', 1, roster, rows)
        first = store.get(WEEKLY_STATS, 'u1_ipl2025_1')
        recompute_weekly_stat(store, 'u1', 'ipl2025', 1, roster, rows)
        second = store.get(WEEKLY_STATS, 'u1_ipl2025_1')

        assert second['points'] == first['points'] == 80
        assert second['pointsBreakdown'] == first['pointsBreakdown']
        assert second['createdAt'] == first['createdAt']

    def test_recompute_replaces_previous_points(self, store, make_roster):
        roster = make_roster(['A'])
        recompute_weekly_stat(store, 'u1', 'ipl2025', 1, roster, group_by_match([row('A', 40)]))
        recompute_weekly_stat(store, 'u1', 'ipl2025', 1, roster, group_by_match([row('A', 25)]))
        assert store.get(WEEKLY_STATS, 'u1_ipl2025_1')['points'] == 25

    def test_keeps_rank_and_window(self, store, make_roster):
        existing = WeeklyStat(
            user_id='u1',
            tournament_id='ipl2025',
            week_number=1,
            points=5,
            rank=4,
            transfer_window_id='w1',
        )
        store.set(WEEKLY_STATS, 'u1_ipl2025_1', to_document(existing))

        stat, _ = recompute_weekly_stat(
            store, 'u1', 'ipl2025', 1, make_roster(['A']), group_by_match([row('A', 10)])
        )

        assert stat.rank == 4
        assert stat.transfer_window_id == 'w1'
        assert stat.points == 10

    def test_cap_bonus_survives_recompute(self, store, make_roster):
        cap = BreakdownEntry(
            player_id='cap_a', player_name='A', base_points=50, final_points=50, is_cap=True,
            cap_type='Orange',
        )
        existing = WeeklyStat(
            user_id='u1',
            tournament_id='ipl2025',
            week_number=1,
            points=60,
            points_breakdown=[cap],
            cap_points_awarded=True,
        )
        store.set(WEEKLY_STATS, 'u1_ipl2025_1', to_document(existing))

        stat, _ = recompute_weekly_stat(
            store, 'u1', 'ipl2025', 1, make_roster(['A']), group_by_match([row('A', 30)])
        )

        assert stat.points == 80
        assert stat.cap_points_awarded
        assert [e.is_cap for e in stat.points_breakdown] == [False, True]

    def test_retries_on_conflict(self, tmp_path, make_roster):
        """A concurrent writer between read and write forces a re-read."""

        class RacingStore(JsonFileStore):
            raced = False

            def set_if_version(self, collection, doc_id, data, version):
                if not self.raced:
                    self.raced = True
                    self.set(collection, doc_id, {**data, 'rank': 7})
                return super().set_if_version(collection, doc_id, data, version)

        store = RacingStore(tmp_path / 'store')
        stat, _ = recompute_weekly_stat(
            store, 'u1', 'ipl2025', 1, make_roster(['A']), group_by_match([row('A', 10)])
        )

        assert stat.rank == 7
        assert store.get(WEEKLY_STATS, 'u1_ipl2025_1')['rank'] == 7

    def test_gives_up_after_max_attempts(self, tmp_path, make_roster):
        class AlwaysRacing(JsonFileStore):
            def set_if_version(self, collection, doc_id, data, version):
                self.set(collection, doc_id, data)
                return super().set_if_version(collection, doc_id, data, version)

        store = AlwaysRacing(tmp_path / 'store')
        with pytest.raises(ConcurrencyConflict):
            recompute_weekly_stat(
                store, 'u1', 'ipl2025', 1, make_roster(['A']), group_by_match([row('A', 10)])
            )


class TestUnmatchedPlayersReport:
    """Tests for the cross-roster unmatched report."""

    def test_only_names_no_roster_claimed(self, make_roster):
        rows = group_by_match([row('A', 1), row('B', 1), row('C', 1)])
        results = [
            score_roster_for_week(make_roster(['A']), rows),
            score_roster_for_week(make_roster(['B']), rows),
        ]
        assert unmatched_players_report(results) == ['C']

    def test_no_results(self):
        assert unmatched_players_report([]) == []

    def test_everything_claimed(self):
        assert unmatched_players_report([WeeklyPoints(week=1)]) == []


def score_player(store, player_id, match_id, points):
    store.set(
        PLAYER_POINTS,
        f'{player_id}_{match_id}',
        {'playerId': player_id, 'matchId': match_id, 'points': points},
    )


class TestApplyMatchPoints:
    """Tests for crediting users with one cricket-API match."""

    @pytest.fixture
    def scored_match(self, store, tournament, add_team, make_roster):
        add_team('u1', tournament.id, make_roster(['A', 'B'], captain=0))
        add_team('u2', tournament.id, make_roster(['B'], vice_captain=0))
        score_player(store, 'p0', 'm9', 40)
        score_player(store, 'p1', 'm9', 10)
        store.set(MATCH_WEEKS, 'm9', {'matchId': 'm9', 'tournamentId': tournament.id, 'weekNumber': 2})
        return 'm9'

    def test_credits_rosters_with_multipliers(self, store, tournament, scored_match):
        report = apply_match_points(store, tournament, scored_match)

        assert report.week == 2
        assert report.users_updated == 2
        u1 = store.get(WEEKLY_STATS, 'u1_ipl2025_2')
        assert u1['points'] == 90
        assert u1['processedMatches'] == ['m9']
        assert [e['multiplier'] for e in u1['pointsBreakdown']] == [2.0, 1.0]
        # roster ids restart at p0, so u2's vice-captain is the 40-point player
        assert store.get(WEEKLY_STATS, 'u2_ipl2025_2')['points'] == 60
        assert store.get(WEEKLY_STATS, 'u1_ipl2025_2')['rank'] == 1

    def test_second_apply_does_not_double(self, store, tournament, scored_match):
        apply_match_points(store, tournament, scored_match)
        report = apply_match_points(store, tournament, scored_match)

        assert report.users_updated == 0
        assert report.points_awarded == 0
        assert sorted(report.already_processed) == ['u1', 'u2']
        doc = store.get(WEEKLY_STATS, 'u1_ipl2025_2')
        assert doc['points'] == 90
        assert doc['processedMatches'] == ['m9']
        assert len(doc['pointsBreakdown']) == 2

    def test_adds_to_existing_week_and_keeps_cap(self, store, tournament, scored_match):
        cap = BreakdownEntry(
            player_id='cap_a', player_name='A', base_points=50, final_points=50, is_cap=True,
            cap_type='Orange',
        )
        existing = WeeklyStat(
            user_id='u1',
            tournament_id='ipl2025',
            week_number=2,
            points=50,
            points_breakdown=[cap],
            processed_matches=['m8'],
            cap_points_awarded=True,
        )
        store.set(WEEKLY_STATS, 'u1_ipl2025_2', to_document(existing))

        apply_match_points(store, tournament, scored_match)

        doc = store.get(WEEKLY_STATS, 'u1_ipl2025_2')
        assert doc['points'] == 140
        assert doc['processedMatches'] == ['m8', 'm9']
        assert doc['capPointsAwarded'] is True
        assert [e['isCap'] for e in doc['pointsBreakdown']] == [True, False, False]

    def test_explicit_week(self, store, tournament, scored_match):
        report = apply_match_points(store, tournament, scored_match, week=3)

        assert report.week == 3
        assert store.get(WEEKLY_STATS, 'u1_ipl2025_3')['points'] == 90
        assert store.get(WEEKLY_STATS, 'u1_ipl2025_2') is None

    def test_unassigned_match(self, store, tournament, scored_match):
        with pytest.raises(DocumentNotFound):
            apply_match_points(store, tournament, 'm10')

    def test_unscored_players_still_mark_match(self, store, tournament, add_team, make_roster):
        add_team('u3', tournament.id, make_roster(['Nobody']))
        report = apply_match_points(store, tournament, 'm11', week=1)

        assert report.users_updated == 1
        doc = store.get(WEEKLY_STATS, 'u3_ipl2025_1')
        assert doc['points'] == 0
        assert doc['processedMatches'] == ['m11']
