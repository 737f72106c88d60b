"""
Services Layer

- match_state / score_rules / bracket_* / progression_* / swiss_*: pure engines
  over MatchState snapshots. No sessions, no HTTP, inputs never mutated.
- advancement_service: the only module that loads and writes Match rows;
  runs the engines under a per-stage lock and commits each change once.
"""
