"""
Tests for the progression engine: result entry, domino correction, clearing
and manual slot assignment. All calls are pure; snapshots are never mutated.
"""

import copy

import pytest

from bracketflow.services.bracket_topology import build
from bracketflow.services.match_state import BYE, BYE_SCORE, TBD, MatchResult, MatchState, index_matches
from bracketflow.services.progression_engine import apply_result, assign_team, clear_result
from bracketflow.services.progression_errors import (
    InvalidConfiguration,
    InvalidScore,
    InvalidWinner,
    MatchNotFound,
    StaleTopology,
)


def _apply(matches, match_id, winner, score):
    """Apply a result and return the merged snapshot."""
    return apply_result(matches, match_id, winner, score).apply_to(matches)


@pytest.fixture
def four_team():
    return index_matches(build(4, seeded_team_names=["A", "B", "C", "D"]))


@pytest.fixture
def four_team_played(four_team):
    """A beat B, C beat D, A won the final."""
    matches = _apply(four_team, "W1M1", "A", "2-0")
    matches = _apply(matches, "W1M2", "C", "2-1")
    return _apply(matches, "W2M1", "A", "3-1")


class TestApplyResult:
    def test_winner_advances_to_designated_slot(self, four_team):
        diff = apply_result(four_team, "W1M1", "A", "2-0")
        assert set(diff.updated) == {"W1M1", "W2M1"}
        assert diff.updated["W2M1"].team_a == "A"
        assert diff.updated["W1M1"].result == MatchResult(winner="A", score="2-0")
        assert diff.cleared == []
        assert diff.invalidated == []

    def test_input_snapshot_untouched(self, four_team):
        before = copy.deepcopy(four_team)
        apply_result(four_team, "W1M1", "A", "2-0")
        assert four_team == before

    def test_idempotent(self, four_team):
        matches = _apply(four_team, "W1M1", "A", "2-0")
        diff = apply_result(matches, "W1M1", "A", "2-0")
        assert diff.is_empty
        assert diff.cleared == [] and diff.invalidated == []

    @pytest.mark.parametrize("score", ["02-0", "+2-0", "2-00", " 2-0 ", "2 - 0"])
    def test_non_canonical_score_not_stored(self, four_team, score):
        with pytest.raises(InvalidScore):
            apply_result(four_team, "W1M1", "A", score)
        assert four_team["W1M1"].result is None

    def test_score_only_change_touches_target(self, four_team_played):
        diff = apply_result(four_team_played, "W1M1", "A", "2-1")
        assert list(diff.updated) == ["W1M1"]
        assert diff.updated["W1M1"].result.score == "2-1"
        assert diff.cleared == []

    def test_loser_drops_into_losers_bracket(self):
        matches = index_matches(build(4, mode="double", seeded_team_names=["A", "B", "C", "D"]))
        diff = apply_result(matches, "W1M1", "B", "1-2")
        assert diff.updated["W2M1"].team_a == "B"
        assert diff.updated["L1M1"].team_a == "A"

    def test_bye_chain_in_losers_bracket(self):
        matches = index_matches(build(6, mode="double", seeded_team_names=["A", "B", "C", "D", "E", "F"]))
        assert matches["L1M1"].team_a == BYE
        diff = apply_result(matches, "W1M2", "B", "2-0")
        # C drops next to a BYE, wins it automatically and moves on
        l1 = diff.updated["L1M1"]
        assert l1.team_b == "C"
        assert l1.result == MatchResult(winner="C", score=BYE_SCORE)
        assert diff.updated["L2M1"].team_a == "C"

    def test_unknown_match(self, four_team):
        with pytest.raises(MatchNotFound):
            apply_result(four_team, "W9M9", "A", "2-0")

    def test_winner_must_be_participant(self, four_team):
        with pytest.raises(InvalidWinner):
            apply_result(four_team, "W1M1", "C", "2-0")

    def test_participants_must_be_known(self, four_team):
        with pytest.raises(StaleTopology):
            apply_result(four_team, "W2M1", "A", "3-0")


class TestScoreLegality:
    def test_bo3_team_a_scores(self, four_team):
        for score in ("2-0", "2-1"):
            apply_result(four_team, "W1M1", "A", score)

    @pytest.mark.parametrize("score", ["3-0", "1-2", "0-2", "2-2", "1-1", "two-zero", "BYE", ""])
    def test_bo3_team_a_rejects(self, four_team, score):
        with pytest.raises(InvalidScore):
            apply_result(four_team, "W1M1", "A", score)

    def test_final_uses_bo5(self, four_team):
        matches = _apply(four_team, "W1M1", "A", "2-0")
        matches = _apply(matches, "W1M2", "D", "0-2")
        with pytest.raises(InvalidScore):
            apply_result(matches, "W2M1", "A", "2-0")
        assert apply_result(matches, "W2M1", "D", "2-3").updated["W2M1"].result.winner == "D"

    def test_rejected_score_writes_nothing(self, four_team):
        before = copy.deepcopy(four_team)
        with pytest.raises(InvalidScore):
            apply_result(four_team, "W1M1", "A", "0-2")
        assert four_team == before


class TestCorrection:
    def test_domino_clears_played_final(self, four_team_played):
        diff = apply_result(four_team_played, "W1M1", "B", "1-2")

        final = diff.updated["W2M1"]
        assert (final.team_a, final.team_b) == ("B", "C")
        assert final.result is None
        assert diff.cleared == ["W2M1"]
        assert diff.invalidated == ["W2M1"]
        # The other semifinal is untouched
        assert "W1M2" not in diff.updated

    def test_correction_before_downstream_played(self, four_team):
        matches = _apply(four_team, "W1M1", "A", "2-0")
        diff = apply_result(matches, "W1M1", "B", "0-2")
        assert diff.updated["W2M1"].team_a == "B"
        assert diff.cleared == []
        assert diff.invalidated == ["W2M1"]

    def test_correction_retracts_dropped_loser(self):
        matches = index_matches(build(4, mode="double", seeded_team_names=["A", "B", "C", "D"]))
        matches = _apply(matches, "W1M1", "A", "2-0")
        matches = _apply(matches, "W1M2", "C", "2-0")
        matches = _apply(matches, "L1M1", "B", "2-1")
        assert matches["L2M1"].team_a == "B"

        diff = apply_result(matches, "W1M1", "B", "0-2")
        merged = diff.apply_to(matches)
        assert merged["W2M1"].team_a == "B"
        # A replaces B in the losers bracket, so L1M1 has to be replayed
        assert (merged["L1M1"].team_a, merged["L1M1"].team_b) == ("A", "D")
        assert merged["L1M1"].result is None
        assert merged["L2M1"].team_a == TBD
        assert "L1M1" in diff.cleared

    def test_deep_cascade_eight_teams(self):
        matches = index_matches(build(8, seeded_team_names=[f"T{i}" for i in range(1, 9)]))
        for code in ("W1M1", "W1M2", "W1M3", "W1M4"):
            m = matches[code]
            matches = _apply(matches, code, m.team_a, "2-0")
        for code in ("W2M1", "W2M2"):
            m = matches[code]
            matches = _apply(matches, code, m.team_a, "2-1")
        final = matches["W3M1"]
        matches = _apply(matches, "W3M1", final.team_a, "3-0")

        loser = matches["W1M1"].team_b
        diff = apply_result(matches, "W1M1", loser, "0-2")
        assert diff.cleared == ["W3M1", "W2M1"]
        merged = diff.apply_to(matches)
        assert merged["W2M1"].team_a == loser
        assert merged["W3M1"].team_a == TBD
        assert merged["W3M1"].team_b == matches["W3M1"].team_b
        assert merged["W2M2"].result == matches["W2M2"].result

    def test_cycle_is_stale_topology(self):
        snapshot = {
            "X": MatchState(id="X", team_a="A", team_b="B", next_match_id="Y", next_match_slot="team_a"),
            "Y": MatchState(
                id="Y",
                team_a="A",
                team_b="C",
                next_match_id="X",
                next_match_slot="team_a",
                result=MatchResult(winner="A", score="2-0"),
            ),
        }
        snapshot["X"].result = MatchResult(winner="A", score="2-0")
        with pytest.raises(StaleTopology):
            apply_result(snapshot, "X", "B", "0-2")


class TestClearResult:
    def test_clear_retracts_downstream(self, four_team):
        matches = _apply(four_team, "W1M1", "A", "2-0")
        diff = clear_result(matches, "W1M1")
        assert diff.updated["W1M1"].result is None
        assert diff.updated["W2M1"].team_a == TBD
        assert diff.cleared == ["W1M1"]
        assert diff.invalidated == ["W2M1"]

    def test_clear_unplayed_is_noop(self, four_team):
        assert clear_result(four_team, "W1M1").is_empty

    def test_bye_result_is_structural(self):
        matches = index_matches(build(6, seeded_team_names=["A", "B", "C", "D", "E", "F"]))
        with pytest.raises(StaleTopology):
            clear_result(matches, "W1M1")


class TestAssignTeam:
    def test_manual_seeding(self):
        matches = index_matches(build(4))
        diff = assign_team(matches, "W1M1", "team_a", "A")
        assert list(diff.updated) == ["W1M1"]
        assert diff.updated["W1M1"].team_a == "A"

    def test_team_cannot_play_twice_in_round(self):
        matches = assign_team(index_matches(build(4)), "W1M1", "team_a", "A").apply_to(build(4))
        with pytest.raises(InvalidConfiguration):
            assign_team(matches, "W1M2", "team_b", "A")

    def test_slot_opposite_bye_resolves(self):
        matches = index_matches(build(3))
        diff = assign_team(matches, "W1M1", "team_a", "A")
        assert diff.updated["W1M1"].result == MatchResult(winner="A", score=BYE_SCORE)
        assert diff.updated["W2M1"].team_a == "A"

    def test_reassign_bye_slot_moves_advancement(self):
        matches = assign_team(index_matches(build(3)), "W1M1", "team_a", "A").apply_to(build(3))
        diff = assign_team(matches, "W1M1", "team_a", "B")
        merged = diff.apply_to(matches)
        assert merged["W1M1"].result.winner == "B"
        assert merged["W2M1"].team_a == "B"

    def test_played_match_cannot_be_reseated(self, four_team):
        matches = _apply(four_team, "W1M1", "A", "2-0")
        with pytest.raises(StaleTopology):
            assign_team(matches, "W1M1", "team_a", "C")

    def test_bye_is_not_assignable(self):
        with pytest.raises(StaleTopology):
            assign_team(index_matches(build(4)), "W1M1", "team_a", BYE)

    def test_unknown_slot(self):
        with pytest.raises(ValueError):
            assign_team(index_matches(build(4)), "W1M1", "team_c", "A")
