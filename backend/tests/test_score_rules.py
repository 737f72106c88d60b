"""
Tests for best-of-N score rules.
"""

import pytest

from bracketflow.services.match_state import MatchFormat
from bracketflow.services.progression_errors import InvalidScore
from bracketflow.services.score_rules import parse_score, possible_scores, validate_score, wins_required


class TestWinsRequired:
    @pytest.mark.parametrize("fmt,wins", [("BO1", 1), ("BO3", 2), ("BO5", 3), ("BO7", 4)])
    def test_formats(self, fmt, wins):
        assert wins_required(fmt) == wins

    def test_unknown_format(self):
        with pytest.raises(InvalidScore):
            wins_required("BO9")


class TestPossibleScores:
    def test_bo3(self):
        assert possible_scores(MatchFormat.BO3, "team_a") == ["2-0", "2-1"]
        assert possible_scores(MatchFormat.BO3, "team_b") == ["0-2", "1-2"]

    def test_bo1(self):
        assert possible_scores("BO1", "team_a") == ["1-0"]

    def test_bo7_team_b(self):
        assert possible_scores("BO7", "team_b") == ["0-4", "1-4", "2-4", "3-4"]


class TestParseScore:
    def test_valid(self):
        parsed = parse_score(" 2-1 ")
        assert (parsed.team_a_wins, parsed.team_b_wins) == (2, 1)
        assert parsed.leader_slot == "team_a"

    @pytest.mark.parametrize("raw", [None, "", "2", "2-1-0", "a-b", "-1-2", "+2-1", "2 - 1", "2-"])
    def test_invalid_returns_none(self, raw):
        assert parse_score(raw) is None


class TestValidateScore:
    def test_accepts_legal(self):
        assert validate_score("BO5", "3-2", "team_a") == (3, 2)

    def test_rejects_wrong_side(self):
        with pytest.raises(InvalidScore):
            validate_score("BO3", "0-2", "team_a")

    @pytest.mark.parametrize("raw", ["02-0", "+2-0", "2-00", " 2-0 ", "2 - 0"])
    def test_rejects_non_canonical_spelling(self, raw):
        with pytest.raises(InvalidScore):
            validate_score("BO3", raw, "team_a")

    def test_rejects_unreachable(self):
        with pytest.raises(InvalidScore):
            validate_score("BO3", "3-1", "team_a")

    def test_bye_score_only_on_bye_matches(self):
        assert validate_score("BO3", "BYE", "team_a", is_bye=True) == (0, 0)
        with pytest.raises(InvalidScore):
            validate_score("BO3", "BYE", "team_a")
        with pytest.raises(InvalidScore):
            validate_score("BO3", "2-0", "team_a", is_bye=True)
