"""
Data checks applied to a match before it is persisted.

Each check returns a list of human readable problems; an empty list means
the match is acceptable.
"""
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from league_app.models.match import Match
from league_app.models.roster import MAX_ROSTER_SIZE, PlayerSelection, parse_roster, selected_players

MIN_SCORE = 0
MAX_SCORE = 99
MIN_JERSEY = 0
MAX_JERSEY = 99


def validate_score(value: Any, label: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, bool) or not isinstance(value, int):
        return [f"{label} must be a whole number"]
    if not MIN_SCORE <= value <= MAX_SCORE:
        return [f"{label} must be between {MIN_SCORE} and {MAX_SCORE}"]
    return []


def validate_roster(selections: List[PlayerSelection], label: str) -> List[str]:
    errors: List[str] = []
    picked = selected_players(selections)

    if len(selections) > MAX_ROSTER_SIZE:
        errors.append(f"{label}: at most {MAX_ROSTER_SIZE} slots are allowed (got {len(selections)})")
    if any(s.is_captain and s.player_id is None for s in selections):
        errors.append(f"{label}: an empty slot cannot be captain")

    seen_players = set()
    seen_jerseys = set()
    for selection in picked:
        if selection.player_id in seen_players:
            errors.append(f"{label}: player {selection.player_id} is selected more than once")
        seen_players.add(selection.player_id)

        number = selection.jersey_number
        if number is None:
            errors.append(f"{label}: player {selection.player_id} has no jersey number")
            continue
        if not MIN_JERSEY <= number <= MAX_JERSEY:
            errors.append(f"{label}: jersey number {number} must be between {MIN_JERSEY} and {MAX_JERSEY}")
        if number in seen_jerseys:
            errors.append(f"{label}: jersey number {number} is used more than once")
        seen_jerseys.add(number)

    captains = sum(1 for s in picked if s.is_captain)
    if picked and captains != 1:
        errors.append(f"{label}: exactly one captain is required (found {captains})")
    return errors


def load_roster(raw: Optional[List[Any]], label: str) -> Tuple[List[PlayerSelection], List[str]]:
    try:
        return parse_roster(raw), []
    except ValidationError as exc:
        return [], [f"{label}: invalid roster ({exc.error_count()} problem(s))"]


def validate_match(match: Match) -> List[str]:
    """All data problems of the match as it would be persisted."""
    errors: List[str] = []
    errors += validate_score(match.home_score, "Home score")
    errors += validate_score(match.away_score, "Away score")

    if match.submitted and not match.has_both_scores():
        errors.append("Both scores are required to submit a result")

    for raw, label in ((match.home_roster, "Home roster"), (match.away_roster, "Away roster")):
        selections, problems = load_roster(raw, label)
        errors += problems
        errors += validate_roster(selections, label)
    return errors
