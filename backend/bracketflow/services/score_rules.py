"""
Score rules for best-of-N series.

Score strings are "<team_a wins>-<team_b wins>":
  BO3, team_a wins  -> "2-0", "2-1"
  BO5, team_b wins  -> "0-3", "1-3", "2-3"
  bye matches       -> "BYE"

The winner always reaches the wins required by the format; the loser has
anywhere from 0 to one less.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from bracketflow.services.match_state import BYE_SCORE, SLOT_A, SLOT_B, MatchFormat
from bracketflow.services.progression_errors import InvalidScore

SCORE_PATTERN = re.compile(r"(\d+)-(\d+)")

WINS_REQUIRED: Dict[MatchFormat, int] = {
    MatchFormat.BO1: 1,
    MatchFormat.BO3: 2,
    MatchFormat.BO5: 3,
    MatchFormat.BO7: 4,
}


@dataclass
class ParsedScore:
    team_a_wins: int
    team_b_wins: int

    @property
    def leader_slot(self) -> Optional[str]:
        if self.team_a_wins > self.team_b_wins:
            return SLOT_A
        if self.team_b_wins > self.team_a_wins:
            return SLOT_B
        return None


def wins_required(match_format) -> int:
    try:
        return WINS_REQUIRED[MatchFormat(match_format)]
    except ValueError:
        raise InvalidScore(f"Unknown match format: {match_format}")


def possible_scores(match_format, winner_slot: str) -> List[str]:
    """All legal score strings for *winner_slot* winning a *match_format* series."""
    wins = wins_required(match_format)
    scores: List[str] = []
    for loser_wins in range(wins):
        if winner_slot == SLOT_A:
            scores.append(f"{wins}-{loser_wins}")
        elif winner_slot == SLOT_B:
            scores.append(f"{loser_wins}-{wins}")
        else:
            raise ValueError(f"Unknown slot: {winner_slot}")
    return scores


def parse_score(raw: Optional[str]) -> Optional[ParsedScore]:
    """Parse '2-1' style strings. Returns None on parse failure (non-fatal)."""
    if not raw or not raw.strip():
        return None
    match = SCORE_PATTERN.fullmatch(raw.strip())
    if match is None:
        return None
    return ParsedScore(team_a_wins=int(match.group(1)), team_b_wins=int(match.group(2)))


def validate_score(match_format, score: str, winner_slot: str, is_bye: bool = False) -> Tuple[int, int]:
    """
    Check *score* against the format and the winner's side.

    Returns (team_a_wins, team_b_wins); bye matches return (0, 0).

    Raises:
        InvalidScore: score is malformed, not reachable in the format, or
            credits the wrong side with the win
    """
    if score == BYE_SCORE:
        if not is_bye:
            raise InvalidScore("BYE score is only valid on bye matches")
        return (0, 0)
    if is_bye:
        raise InvalidScore(f"Bye matches only accept the score {BYE_SCORE!r}, got {score!r}")

    parsed = parse_score(score)
    if parsed is None:
        raise InvalidScore(f"Malformed score: {score!r}")

    # Scores are stored as typed; only the canonical spelling is legal
    legal = possible_scores(match_format, winner_slot)
    if score not in legal:
        raise InvalidScore(
            f"Score {score!r} is not valid for {MatchFormat(match_format).value} "
            f"with the winner in {winner_slot} (expected one of {legal})"
        )
    return (parsed.team_a_wins, parsed.team_b_wins)
