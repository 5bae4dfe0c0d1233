"""Bracket mapping table, winner decision and advancement / clearing against a real session."""
from datetime import datetime

import pytest
from sqlmodel import Session

from league_app.models.match import Match
from league_app.models.roster import Side
from league_app.services.bracket_engine import (
    CupRound,
    DecisionKind,
    RoundId,
    advance_winner,
    bracket_table,
    canonical_token,
    clear_advancement,
    clear_advancement_cascade,
    decide_winner,
    feeder_token,
    next_slot,
    next_target,
    parse_round,
    propagate_result,
)
from league_app.services.record_store import RecordStore, StoreError
from league_app.services.results import AdvanceReason

# ============================================================================
# Mapping table
# ============================================================================

EXPECTED_NEXT = {
    # 1/16 -> 1/8
    "1/16-1": ("1/8-1", Side.AWAY),
    "1/16-2": ("1/8-1", Side.HOME),
    "1/16-3": ("1/8-2", Side.AWAY),
    "1/16-4": ("1/8-2", Side.HOME),
    "1/16-5": ("1/8-3", Side.AWAY),
    "1/16-6": ("1/8-3", Side.HOME),
    "1/16-7": ("1/8-4", Side.AWAY),
    "1/16-8": ("1/8-4", Side.HOME),
    "1/16-9": ("1/8-5", Side.AWAY),
    "1/16-10": ("1/8-5", Side.HOME),
    "1/16-11": ("1/8-6", Side.AWAY),
    "1/16-12": ("1/8-6", Side.HOME),
    "1/16-13": ("1/8-7", Side.AWAY),
    "1/16-14": ("1/8-7", Side.HOME),
    "1/16-15": ("1/8-8", Side.AWAY),
    "1/16-16": ("1/8-8", Side.HOME),
    # 1/8 -> QF
    "1/8-1": ("QF-1", Side.AWAY),
    "1/8-2": ("QF-1", Side.HOME),
    "1/8-3": ("QF-2", Side.AWAY),
    "1/8-4": ("QF-2", Side.HOME),
    "1/8-5": ("QF-3", Side.AWAY),
    "1/8-6": ("QF-3", Side.HOME),
    "1/8-7": ("QF-4", Side.AWAY),
    "1/8-8": ("QF-4", Side.HOME),
    # QF -> SF
    "QF-1": ("SF-1", Side.AWAY),
    "QF-2": ("SF-1", Side.HOME),
    "QF-3": ("SF-2", Side.AWAY),
    "QF-4": ("SF-2", Side.HOME),
    # SF -> FINAL
    "SF-1": ("FINAL", Side.AWAY),
    "SF-2": ("FINAL", Side.HOME),
}


@pytest.mark.parametrize("token,expected", sorted(EXPECTED_NEXT.items()))
def test_next_target_mapping_table(token, expected):
    assert next_target(token) == expected


def test_bracket_table_covers_every_slot_exactly_once():
    table = bracket_table()
    tokens = [slot.round_id.token for slot in table]
    assert len(tokens) == 16 + 8 + 4 + 2 + 1
    assert len(set(tokens)) == len(tokens)
    for slot in table:
        if slot.round_id.round is CupRound.FINAL:
            assert slot.next_token is None and slot.next_side is None
        else:
            assert (slot.next_token, slot.next_side) == EXPECTED_NEXT[slot.round_id.token]

    # Every slot below the first round is fed by exactly two matches, one per side
    fed = {}
    for slot in table:
        if slot.next_token:
            fed.setdefault(slot.next_token, []).append(slot.next_side)
    for token, sides in fed.items():
        assert sorted(sides) == [Side.AWAY, Side.HOME], token


def test_final_has_no_next_slot():
    assert next_slot("FINAL") is None
    assert next_target("final") is None


@pytest.mark.parametrize(
    "raw,canonical",
    [
        ("QF-2", "QF-2"),
        ("qf2", "QF-2"),
        (" QF 2 ", "QF-2"),
        ("sf-1", "SF-1"),
        ("1/8-4", "1/8-4"),
        ("1/84", "1/8-4"),
        ("1/16-12", "1/16-12"),
        ("Final", "FINAL"),
    ],
)
def test_parse_round_is_lenient_about_case_and_dash(raw, canonical):
    round_id = parse_round(raw)
    assert round_id is not None
    assert canonical_token(round_id) == canonical


@pytest.mark.parametrize("raw", [None, "", "QF-5", "QF-0", "SF-3", "1/8-9", "1/16-17", "R1", "Speeldag 3", "QF-x"])
def test_unparseable_tokens_are_not_bracket(raw):
    assert parse_round(raw) is None
    assert next_slot(raw) is None


def test_feeder_token_inverts_next_target():
    for token, (next_token, side) in EXPECTED_NEXT.items():
        assert feeder_token(next_token, side) == token


def test_round_labels():
    assert RoundId(CupRound.QUARTER_FINAL, 2).label == "Kwartfinale 2"
    assert RoundId(CupRound.FINAL, 1).label == "Finale"


# ============================================================================
# Winner decision
# ============================================================================


def _match(home=None, away=None, home_team=1, away_team=2) -> Match:
    return Match(
        scheduled_at=datetime(2026, 3, 1, 20, 0),
        is_cup_match=True,
        round_token="QF-2",
        home_team_id=home_team,
        away_team_id=away_team,
        home_score=home,
        away_score=away,
    )


def test_decide_winner():
    assert decide_winner(_match(2, 1)).winner_team_id == 1
    assert decide_winner(_match(0, 4)).winner_side is Side.AWAY
    assert decide_winner(_match(3, 3)).kind is DecisionKind.DECISION_REQUIRED
    assert decide_winner(_match(3, None)).kind is DecisionKind.INCOMPLETE


# ============================================================================
# Advancement against a store
# ============================================================================


@pytest.fixture
def cup(session: Session, make_team, make_match):
    """QF-1..4, SF-1..2 and FINAL with four QF pairings."""
    teams = [make_team(f"Cup Team {i}") for i in range(1, 9)]
    matches = {}
    for position in range(1, 5):
        matches[f"QF-{position}"] = make_match(
            round_token=f"QF-{position}",
            is_cup_match=True,
            home_team_id=teams[(position - 1) * 2].id,
            away_team_id=teams[(position - 1) * 2 + 1].id,
        )
    for token in ("SF-1", "SF-2", "FINAL"):
        matches[token] = make_match(round_token=token, is_cup_match=True)
    return {"teams": teams, "matches": matches}


def _score(session: Session, match: Match, home: int, away: int) -> None:
    match.home_score = home
    match.away_score = away
    match.submitted = True
    session.add(match)
    session.commit()
    session.refresh(match)


def test_advance_winner_fills_next_slot(session, store, cup):
    qf2 = cup["matches"]["QF-2"]
    _score(session, qf2, 2, 0)

    result = advance_winner(store, qf2.id)

    assert result.advanced is True
    assert result.wrote is True
    assert (result.next_token, result.side) == ("SF-1", "home")
    sf1 = store.read_match_by_token("SF-1")
    assert sf1.home_team_id == qf2.home_team_id
    assert sf1.away_team_id is None


def test_advance_winner_is_idempotent(session, store, cup):
    qf3 = cup["matches"]["QF-3"]
    _score(session, qf3, 0, 1)

    first = advance_winner(store, qf3.id)
    sf2_after_first = store.read_match_by_token("SF-2").updated_at
    second = advance_winner(store, qf3.id)

    assert first.wrote is True
    assert second.advanced is True
    assert second.wrote is False
    assert store.read_match_by_token("SF-2").updated_at == sf2_after_first


def test_advance_level_score_requires_decision(session, store, cup):
    qf1 = cup["matches"]["QF-1"]
    _score(session, qf1, 3, 3)

    result = advance_winner(store, qf1.id)

    assert result.advanced is False
    assert result.reason is AdvanceReason.DECISION_REQUIRED
    assert store.read_match_by_token("SF-1").away_team_id is None


def test_advance_reports_non_bracket_and_final(session, store, cup, make_match):
    league = make_match(round_token="Speeldag 1", home_team_id=cup["teams"][0].id, away_team_id=cup["teams"][1].id)
    assert advance_winner(store, league.id).reason is AdvanceReason.NOT_CUP_MATCH

    odd_cup = make_match(round_token="R1", is_cup_match=True)
    assert advance_winner(store, odd_cup.id).reason is AdvanceReason.NOT_BRACKET

    final = cup["matches"]["FINAL"]
    final.home_team_id, final.away_team_id = cup["teams"][0].id, cup["teams"][1].id
    _score(session, final, 1, 0)
    assert advance_winner(store, final.id).reason is AdvanceReason.FINAL

    assert advance_winner(store, 99999).reason is AdvanceReason.NOT_FOUND


def test_advance_reports_missing_next_match(session, store, make_team, make_match):
    a, b = make_team("Lonely A"), make_team("Lonely B")
    qf = make_match(round_token="QF-4", is_cup_match=True, home_team_id=a.id, away_team_id=b.id)
    _score(session, qf, 1, 0)

    result = advance_winner(store, qf.id)

    assert result.reason is AdvanceReason.NEXT_MATCH_MISSING
    assert result.is_failure


def test_replacing_winner_clears_what_the_old_winner_caused(session, store, cup):
    m = cup["matches"]
    _score(session, m["QF-1"], 2, 0)
    _score(session, m["QF-2"], 1, 0)
    advance_winner(store, m["QF-1"].id)
    advance_winner(store, m["QF-2"].id)

    # SF-1 played: QF-1's winner (away side) wins and reaches the final
    sf1 = store.read_match_by_token("SF-1")
    _score(session, sf1, 0, 1)
    assert advance_winner(store, sf1.id).next_token == "FINAL"
    assert store.read_match_by_token("FINAL").away_team_id == m["QF-1"].home_team_id

    # QF-1 corrected: the other team won
    _score(session, m["QF-1"], 0, 2)
    result = advance_winner(store, m["QF-1"].id)

    assert result.wrote is True
    assert result.cleared_tokens == ["FINAL"]
    sf1 = store.read_match_by_token("SF-1")
    assert sf1.away_team_id == m["QF-1"].away_team_id
    assert sf1.home_team_id == m["QF-2"].home_team_id
    assert store.read_match_by_token("FINAL").away_team_id is None


# ============================================================================
# Clearing
# ============================================================================


def _fill_bracket_to_final(session, store, cup):
    m = cup["matches"]
    for token in ("QF-1", "QF-2", "QF-3", "QF-4"):
        _score(session, m[token], 1, 0)
        advance_winner(store, m[token].id)
    for token in ("SF-1", "SF-2"):
        sf = store.read_match_by_token(token)
        _score(session, sf, 2, 1)
        advance_winner(store, sf.id)


def test_clear_advancement_only_touches_own_side(session, store, cup):
    _fill_bracket_to_final(session, store, cup)

    result = clear_advancement(store, "QF-2")

    assert result.success is True
    assert result.cleared_tokens == ["SF-1"]
    sf1 = store.read_match_by_token("SF-1")
    assert sf1.home_team_id is None
    assert sf1.away_team_id is not None
    # Not cascading: the final keeps SF-1's placement
    assert store.read_match_by_token("FINAL").away_team_id is not None


def test_clear_cascade_removes_derived_placements_only(session, store, cup):
    _fill_bracket_to_final(session, store, cup)
    final_before = store.read_match_by_token("FINAL")
    home_from_sf2 = final_before.home_team_id
    sf2_before = store.read_match_by_token("SF-2")

    result = clear_advancement_cascade(store, "qf2")

    assert result.success is True
    assert result.cleared_tokens == ["SF-1", "FINAL"]
    sf1 = store.read_match_by_token("SF-1")
    assert sf1.home_team_id is None
    assert sf1.away_team_id == cup["matches"]["QF-1"].home_team_id
    # Scores stay
    assert (sf1.home_score, sf1.away_score) == (2, 1)
    final = store.read_match_by_token("FINAL")
    assert final.away_team_id is None
    assert final.home_team_id == home_from_sf2
    sf2 = store.read_match_by_token("SF-2")
    assert (sf2.home_team_id, sf2.away_team_id) == (sf2_before.home_team_id, sf2_before.away_team_id)


def test_clear_cascade_stops_at_first_empty_slot(session, store, cup):
    m = cup["matches"]
    _score(session, m["QF-4"], 0, 1)
    advance_winner(store, m["QF-4"].id)

    result = clear_advancement_cascade(store, "QF-4")

    assert result.cleared_tokens == ["SF-2"]
    assert clear_advancement_cascade(store, "QF-4").cleared_tokens == []


def test_propagate_draw_after_win_withdraws_placement(session, store, cup):
    qf2 = cup["matches"]["QF-2"]
    _score(session, qf2, 2, 1)
    advance_winner(store, qf2.id)

    _score(session, qf2, 2, 2)
    result = propagate_result(store, qf2, had_scores_before=True)

    assert result.reason is AdvanceReason.DECISION_REQUIRED
    assert result.cleared_tokens == ["SF-1"]
    assert store.read_match_by_token("SF-1").home_team_id is None


class FailingWriteStore(RecordStore):
    def write_match(self, match):
        raise StoreError("disk full")


def test_store_failure_becomes_result(session, cup):
    qf1 = cup["matches"]["QF-1"]
    _score(session, qf1, 1, 0)
    store = FailingWriteStore(session)

    result = advance_winner(store, qf1.id)

    assert result.advanced is False
    assert result.reason is AdvanceReason.STORE_ERROR
    assert "disk full" in result.message
