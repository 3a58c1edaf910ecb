"""Tests for matchmaker/matchups.py team-vs-team matchmaking."""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from matchmaker.matchups import GeneratedMatch, analyze, build_matchups, matchup_cost, rank_key
from matchmaker.handicap import Handicap
from matchmaker.models.form import PlayerForm
from matchmaker.pairing import GeneratedPair, make_pair
from matchmaker.records import matchup_key


def _pf(pid, rating, form=0.0):
    return PlayerForm(id=pid, name=pid.upper(), base_rating=rating - form,
                      form=form, effective_rating=rating)


def _flat_team(name: str, strength: float):
    """Two identical players -> structure 0."""
    return make_pair(_pf(f"{name}1", strength / 2), _pf(f"{name}2", strength / 2))


def test_matchup_cost_formula():
    """gap^2 + 0.7 * structure gap^2 + 0.6 * (gap / 2)^2."""
    t1 = _flat_team("a", 7.0)
    t2 = make_pair(_pf("c", 3.5), _pf("d", 2.5))
    assert matchup_cost(t1, t2, set()) == pytest.approx(1.0 + 0.7 * 1.0 + 0.6 * 0.25)


def test_matchup_cost_margin_term_saturates():
    """The expected-margin term stops growing past a 2.0 gap."""
    t1 = _flat_team("a", 9.0)
    t2 = _flat_team("b", 6.0)
    assert matchup_cost(t1, t2, set()) == pytest.approx(9.0 + 0.6)


def test_strongest_teams_meet_each_other():
    """Top-down: the two strongest teams meet, then the next two."""
    teams = [_flat_team("d", 5.9), _flat_team("a", 8.0), _flat_team("c", 6.0), _flat_team("b", 7.9)]
    matches = build_matchups(teams, set(), [], synergy={})
    pairs = [(m.team1.player1.id[0], m.team2.player1.id[0]) for m in matches]
    assert pairs == [("a", "b"), ("c", "d")]


def test_odd_team_left_unmatched():
    teams = [_flat_team("a", 7.0), _flat_team("b", 6.8), _flat_team("c", 6.0)]
    matches = build_matchups(teams, set(), [], synergy={})
    assert len(matches) == 1
    assert {matches[0].team1.key, matches[0].team2.key} == {"a1-a2", "b1-b2"}


def test_recent_matchup_avoided():
    """Replaying a recent four-player matchup costs +50, so a fresh opponent wins."""
    a, b, c, d = (_flat_team("a", 7.0), _flat_team("b", 6.9),
                  _flat_team("c", 6.8), _flat_team("d", 5.0))
    recent = {matchup_key(a.ids + b.ids)}
    matches = build_matchups([a, b, c, d], recent, [], synergy={})
    assert matches[0].team2.key == c.key
    assert matches[1].team1.key == b.key and matches[1].team2.key == d.key


def test_handicap_and_quality_attached():
    """Each match carries its handicap and 100 - cost as quality."""
    strong = _flat_team("a", 8.0)
    weak = _flat_team("b", 6.5)
    [match] = build_matchups([weak, strong], set(), [], synergy={})
    assert match.team1.key == strong.key
    assert match.handicap is not None
    assert match.handicap.points == 4
    assert match.handicap.team == 2
    assert match.analysis.quality_score == pytest.approx(100.0 - match.match_cost)


def test_analysis_describes_team2():
    """Analysis reports team 2's synergy and combined form."""
    t1 = _flat_team("a", 7.0)
    t2 = make_pair(_pf("c", 3.6, form=0.1), _pf("d", 3.4, form=-0.05))
    [match] = build_matchups([t1, t2], set(), [], synergy={"c-d": 0.42})
    assert match.analysis.synergy == 0.42
    assert match.analysis.form == pytest.approx(0.05)


def test_synergy_computed_from_history_when_missing():
    """Without a synergy map the history is used."""
    t1 = _flat_team("a", 7.0)
    t2 = make_pair(_pf("c", 3.5), _pf("d", 3.5))
    history = [{"id": "m1", "date": "2026-02-01", "team1": ["c", "d"], "team2": ["x", "y"],
                "score1": 11, "score2": 2}]
    [match] = build_matchups([t1, t2], set(), history)
    assert match.analysis.synergy > 0


def test_rank_key_orders_balanced_first():
    """No handicap first, then fewer points, then lower cost."""
    t = _flat_team("a", 6.0)
    balanced_costly = GeneratedMatch(t, t, match_cost=5.0)
    one_point = GeneratedMatch(t, t, match_cost=0.1, handicap=Handicap(2, 1, "Spot 1 point"))
    two_points = GeneratedMatch(t, t, match_cost=0.0, handicap=Handicap(2, 2, "Spot 2 points"))
    balanced_cheap = GeneratedMatch(t, t, match_cost=1.0)
    ranked = sorted([two_points, one_point, balanced_costly, balanced_cheap], key=rank_key)
    assert ranked == [balanced_cheap, balanced_costly, one_point, two_points]


def test_analysis_single_player_team():
    """A one-player team is the same PlayerForm twice; its form counts once."""
    solo = _pf("s", 3.2, form=0.12)
    team = GeneratedPair(player1=solo, player2=solo, strength=3.2, structure=0.0)
    assert team.members == [solo]
    assert analyze(team, {}, 80.0).form == pytest.approx(0.12)
