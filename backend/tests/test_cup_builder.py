from datetime import datetime

import pytest

from league_app.services.actors import Actor, ActorRole
from league_app.services.bracket_engine import CupRound
from league_app.services.cup_builder import build_cup_bracket, plan_cup_bracket
from league_app.services.results import ErrorKind

ADMIN = Actor(ActorRole.ADMIN)

DATES = {
    CupRound.ROUND_OF_32: datetime(2026, 1, 10, 20),
    CupRound.ROUND_OF_16: datetime(2026, 2, 10, 20),
    CupRound.QUARTER_FINAL: datetime(2026, 3, 10, 20),
    CupRound.SEMI_FINAL: datetime(2026, 4, 10, 20),
    CupRound.FINAL: datetime(2026, 5, 10, 20),
}


def test_plan_eight_teams():
    matches = plan_cup_bracket(list(range(1, 9)), DATES, "Sportpark")

    assert [m.round_token for m in matches] == ["QF-1", "QF-2", "QF-3", "QF-4", "SF-1", "SF-2", "FINAL"]
    assert [(m.home_team_id, m.away_team_id) for m in matches[:4]] == [(1, 2), (3, 4), (5, 6), (7, 8)]
    assert all(m.home_team_id is None and m.away_team_id is None for m in matches[4:])
    assert all(m.is_cup_match for m in matches)
    assert matches[-1].scheduled_at == DATES[CupRound.FINAL]
    assert matches[1].matchday_label == "Kwartfinale 2"


def test_plan_thirty_two_teams_has_every_round():
    matches = plan_cup_bracket(list(range(1, 33)), DATES)
    assert len(matches) == 31
    assert matches[0].round_token == "1/16-1"


@pytest.mark.parametrize("count", [2, 6, 12, 64])
def test_plan_rejects_unsupported_team_counts(count):
    with pytest.raises(ValueError):
        plan_cup_bracket(list(range(count)), DATES)


def test_plan_rejects_duplicates_and_missing_dates():
    with pytest.raises(ValueError):
        plan_cup_bracket([1, 1, 2, 3], DATES)
    with pytest.raises(ValueError):
        plan_cup_bracket([1, 2, 3, 4], {CupRound.SEMI_FINAL: DATES[CupRound.SEMI_FINAL]})


def test_build_refuses_when_cup_exists(store, make_team):
    teams = [make_team(f"Builder {i}").id for i in range(4)]

    first = build_cup_bracket(store, ADMIN, teams, DATES)
    second = build_cup_bracket(store, ADMIN, teams, DATES)

    assert first.success is True
    assert len(first.matches) == 3
    assert store.read_match_by_token("SF-2").away_team_id == teams[3]
    assert second.error_kind is ErrorKind.VALIDATION


def test_build_checks_actor_and_teams(store, make_team):
    teams = [make_team(f"Checked {i}").id for i in range(3)] + [987654]

    assert build_cup_bracket(store, Actor(ActorRole.REFEREE), teams, DATES).error_kind is ErrorKind.UNAUTHORIZED
    assert build_cup_bracket(store, ADMIN, teams, DATES).error_kind is ErrorKind.NOT_FOUND
    assert store.list_cup_matches() == []
