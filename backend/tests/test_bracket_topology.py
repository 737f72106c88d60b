"""
Tests for the bracket topology builder: bye placement, advancement edges,
losers-bracket interleaving and build-time validation.
"""

import pytest

from bracketflow.services.bracket_graph import check_topology
from bracketflow.services.bracket_topology import (
    GRAND_FINAL_CODE,
    bracket_fold_positions,
    build,
    bye_positions,
    next_power_of_two,
    total_match_count,
)
from bracketflow.services.match_state import (
    BYE,
    BYE_SCORE,
    SLOTS,
    TBD,
    BracketSide,
    EliminationMode,
    MatchFormat,
    index_matches,
)
from bracketflow.services.progression_engine import apply_result
from bracketflow.services.progression_errors import InvalidConfiguration
from bracketflow.services.score_rules import possible_scores


def _names(n: int) -> list[str]:
    return [f"Team{i}" for i in range(1, n + 1)]


class TestSizing:
    def test_next_power_of_two(self):
        assert [next_power_of_two(n) for n in (2, 3, 4, 5, 8, 9, 16)] == [2, 4, 4, 8, 8, 16, 16]

    def test_fold_positions_match_standard_seeding(self):
        assert bracket_fold_positions(4) == [1, 4, 2, 3]
        assert bracket_fold_positions(8) == [1, 8, 4, 5, 3, 6, 2, 7]

    def test_fold_positions_cover_all_seeds(self):
        for n in (2, 4, 8, 16):
            assert sorted(bracket_fold_positions(n)) == list(range(1, n + 1))

    def test_bye_positions_are_spread(self):
        # 6 teams -> 8 slots, 2 byes at the hosts of seeds 1 and 2
        assert bye_positions(8, 2) == [0, 2]
        assert bye_positions(8, 0) == []

    @pytest.mark.parametrize("team_count", [2, 3, 5, 6, 8, 11, 16])
    @pytest.mark.parametrize("mode", [EliminationMode.single, EliminationMode.double])
    def test_match_count(self, team_count, mode):
        matches = build(team_count, mode=mode)
        assert len(matches) == total_match_count(team_count, mode)


class TestSingleElimination:
    def test_six_teams_two_byes_preresolved(self):
        matches = index_matches(build(6, seeded_team_names=["A", "B", "C", "D", "E", "F"]))

        round_one = [matches[f"W1M{i}"] for i in range(1, 5)]
        assert [(m.team_a, m.team_b) for m in round_one] == [("A", BYE), ("B", "C"), ("D", BYE), ("E", "F")]

        byes = [m for m in round_one if m.is_bye]
        assert [m.id for m in byes] == ["W1M1", "W1M3"]
        for m in byes:
            assert m.result is not None
            assert m.result.score == BYE_SCORE
            assert m.result.winner == m.team_a

        # Bye winners already sit in Round 2
        assert matches["W2M1"].team_a == "A"
        assert matches["W2M1"].team_b == TBD
        assert matches["W2M2"].team_a == "D"

    def test_no_bye_against_bye(self):
        for n in range(2, 17):
            for m in build(n):
                if m.round == 1:
                    assert (m.team_a, m.team_b) != (BYE, BYE)

    def test_winner_edges_alternate_slots(self):
        matches = index_matches(build(8, seeded_team_names=_names(8)))
        assert (matches["W1M1"].next_match_id, matches["W1M1"].next_match_slot) == ("W2M1", "team_a")
        assert (matches["W1M2"].next_match_id, matches["W1M2"].next_match_slot) == ("W2M1", "team_b")
        assert (matches["W2M2"].next_match_id, matches["W2M2"].next_match_slot) == ("W3M1", "team_b")
        assert matches["W3M1"].next_match_id is None
        assert matches["W3M1"].next_loser_match_id is None

    def test_topology_single_sink(self):
        for n in (2, 3, 7, 8, 13):
            assert check_topology(index_matches(build(n))) == f"W{(next_power_of_two(n).bit_length() - 1)}M1"

    def test_no_team_twice_per_round(self):
        matches = build(11, seeded_team_names=_names(11))
        placed = [t for m in matches if m.round == 1 for t in (m.team_a, m.team_b) if t != BYE]
        assert len(placed) == len(set(placed)) == 11

    def test_unseeded_build_leaves_real_slots_tbd(self):
        matches = index_matches(build(3))
        assert (matches["W1M1"].team_a, matches["W1M1"].team_b) == (TBD, BYE)
        assert matches["W1M1"].result is None
        assert (matches["W1M2"].team_a, matches["W1M2"].team_b) == (TBD, TBD)

    def test_final_format_applies_to_final_only(self):
        matches = index_matches(build(4, match_format=MatchFormat.BO1, final_format=MatchFormat.BO5))
        assert matches["W1M1"].match_format == MatchFormat.BO1
        assert matches["W2M1"].match_format == MatchFormat.BO5


class TestDoubleElimination:
    def test_two_teams_loser_drops_into_grand_final(self):
        matches = index_matches(build(2, mode="double", seeded_team_names=["A", "B"]))
        assert set(matches) == {"W1M1", GRAND_FINAL_CODE}
        final = matches["W1M1"]
        assert (final.next_match_id, final.next_match_slot) == (GRAND_FINAL_CODE, "team_a")
        assert (final.next_loser_match_id, final.next_loser_match_slot) == (GRAND_FINAL_CODE, "team_b")

    def test_four_team_layout(self):
        matches = index_matches(build(4, mode="double", seeded_team_names=["A", "B", "C", "D"]))
        assert sorted(matches) == ["GF", "L1M1", "L2M1", "W1M1", "W1M2", "W2M1"]

        assert (matches["W1M1"].next_loser_match_id, matches["W1M1"].next_loser_match_slot) == ("L1M1", "team_a")
        assert (matches["W1M2"].next_loser_match_id, matches["W1M2"].next_loser_match_slot) == ("L1M1", "team_b")
        assert (matches["W2M1"].next_loser_match_id, matches["W2M1"].next_loser_match_slot) == ("L2M1", "team_b")
        assert (matches["L1M1"].next_match_id, matches["L1M1"].next_match_slot) == ("L2M1", "team_a")
        assert (matches["L2M1"].next_match_id, matches["L2M1"].next_match_slot) == (GRAND_FINAL_CODE, "team_b")
        assert (matches["W2M1"].next_match_id, matches["W2M1"].next_match_slot) == (GRAND_FINAL_CODE, "team_a")

    def test_eight_team_drop_ins_are_reversed(self):
        matches = index_matches(build(8, mode="double"))
        # k=1: WR2 losers land in reverse order
        assert matches["W2M1"].next_loser_match_id == "L2M2"
        assert matches["W2M2"].next_loser_match_id == "L2M1"
        # winners final loser meets the losers-bracket survivor in L4
        assert (matches["W3M1"].next_loser_match_id, matches["W3M1"].next_loser_match_slot) == ("L4M1", "team_b")

    def test_sixteen_team_second_drop_in_swaps_halves(self):
        matches = index_matches(build(16, mode="double"))
        # k=2: WR3 losers cross to the other half of L4
        assert matches["W3M1"].next_loser_match_id == "L4M2"
        assert matches["W3M2"].next_loser_match_id == "L4M1"
        # k=3: WR4 loser into the single L6 match
        assert matches["W4M1"].next_loser_match_id == "L6M1"

    def test_no_destination_slot_fed_twice(self):
        for n in (4, 6, 8, 12, 16):
            feeds = []
            for m in build(n, mode="double"):
                if m.next_match_id:
                    feeds.append((m.next_match_id, m.next_match_slot))
                if m.next_loser_match_id:
                    feeds.append((m.next_loser_match_id, m.next_loser_match_slot))
            assert len(feeds) == len(set(feeds))

    def test_topology_merges_into_grand_final(self):
        for n in (2, 3, 4, 5, 6, 8, 9, 16):
            assert check_topology(index_matches(build(n, mode="double"))) == GRAND_FINAL_CODE

    def test_deciding_matches_use_final_format(self):
        matches = index_matches(build(4, mode="double", final_format=MatchFormat.BO7))
        assert matches["W2M1"].match_format == MatchFormat.BO7
        assert matches["L2M1"].match_format == MatchFormat.BO7
        assert matches[GRAND_FINAL_CODE].match_format == MatchFormat.BO7
        assert matches["L1M1"].match_format == MatchFormat.BO3

    def test_bye_losers_fill_losers_bracket(self):
        matches = index_matches(build(5, mode="double", seeded_team_names=["A", "B", "C", "D", "E"]))
        # W1M3 and W1M4 are both byes, so L1M2 is BYE vs BYE and resolves to a BYE
        assert (matches["L1M2"].team_a, matches["L1M2"].team_b) == (BYE, BYE)
        assert matches["L1M2"].result is not None
        assert matches["L1M2"].result.winner == BYE
        assert matches["L2M2"].team_a == BYE
        assert matches["L2M2"].result is None

    def test_grand_final_side(self):
        gf = index_matches(build(8, mode="double"))[GRAND_FINAL_CODE]
        assert gf.bracket_side == BracketSide.grand_final
        assert gf.next_match_id is None


def _repeat_rounds(matches, met=frozenset()):
    """Play every outcome up to the grand final; return the rounds where a pair meets again."""
    playable = next(
        (
            m
            for m in matches.values()
            if m.result is None and m.participants_known and m.bracket_side != BracketSide.grand_final
        ),
        None,
    )
    if playable is None:
        return set()

    pair = frozenset((playable.team_a, playable.team_b))
    found = {playable.id.split("M")[0]} if pair in met else set()
    for slot in SLOTS:
        winner = getattr(playable, slot)
        score = possible_scores(playable.match_format, slot)[0]
        after = apply_result(matches, playable.id, winner, score).apply_to(matches)
        found |= _repeat_rounds(after, met | {pair})
    return found


class TestDoubleEliminationRematches:
    @pytest.mark.parametrize(
        "size,unavoidable",
        [
            # L2 pairs the L1 winner with the WB final loser, who may be its round-1 opponent
            (4, {"L2"}),
            # L2 drop-ins cross halves; L3 and L4 hold teams from both halves
            (8, {"L3", "L4"}),
        ],
    )
    def test_repeats_only_where_bracket_is_too_small(self, size, unavoidable):
        matches = index_matches(build(size, mode="double", seeded_team_names=_names(size)))
        assert _repeat_rounds(matches) == unavoidable


class TestValidation:
    def test_too_few_teams(self):
        with pytest.raises(InvalidConfiguration):
            build(1)

    def test_unknown_mode(self):
        with pytest.raises(InvalidConfiguration):
            build(4, mode="triple")

    def test_seed_count_mismatch(self):
        with pytest.raises(InvalidConfiguration):
            build(4, seeded_team_names=["A", "B", "C"])

    def test_duplicate_names(self):
        with pytest.raises(InvalidConfiguration):
            build(4, seeded_team_names=["A", "B", "B", "C"])

    def test_reserved_names(self):
        with pytest.raises(InvalidConfiguration):
            build(2, seeded_team_names=["A", "BYE"])
