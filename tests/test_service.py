"""Tests for matchmaker/services/matchmaker_service.py public queries."""

import json
import logging
import random
import sys
import os
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from matchmaker.config import get_config
from matchmaker.matchups import balance_cost, rank_key
from matchmaker.models.synergy import compute_synergy
from matchmaker.pairing import InputError, make_pair, pair_cost
from matchmaker.services.matchmaker_service import (
    MatchmakerService,
    predict_outcome,
    project_round_robin,
    run_auto_matchmaker,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

PLAYERS = [
    {"id": "a", "name": "Ana", "rating": 3.0},
    {"id": "b", "name": "Ben", "rating": 3.0},
    {"id": "c", "name": "Cid", "rating": 3.0},
    {"id": "d", "name": "Dee", "rating": 3.0},
    {"id": "e", "name": "Eve", "rating": 3.5},
    {"id": "f", "name": "Fay", "rating": 2.2},
    {"id": "g", "name": "Gus", "rating": 4.1},
    {"id": "h", "name": "Hal", "rating": 2.8},
]

MATCHES = [
    {"id": "m1", "date": "2026-02-10T19:00:00", "team1": ["a", "f"], "team2": ["g", "h"],
     "score1": 6, "score2": 11},
    {"id": "m2", "date": "2026-02-12T19:00:00", "team1": ["e", "b"], "team2": ["c", "d"],
     "score1": 11, "score2": 8},
    {"id": "m3", "date": "2026-02-14T19:00:00", "team1": ["g", "f"], "team2": ["a", "e"],
     "score1": 11, "score2": 10},
]


def _service(**kwargs):
    return MatchmakerService(now=NOW, **kwargs)


def _is_ranked(matches):
    keys = [rank_key(m) for m in matches]
    return keys == sorted(keys)


# ── predict ─────────────────────────────────────────────


def test_predict_equal_teams():
    """Equal teams with no history: no handicap and a perfect score."""
    result = _service().predict_outcome(["a", "b"], ["c", "d"], PLAYERS, [])
    assert result is not None
    assert result.handicap is None
    assert result.analysis.quality_score == 100.0
    assert result.match_cost == 0.0


def test_predict_singles_linear_quality():
    """Half a point apart: 100 - 50 * 0.5 = 75."""
    result = _service().predict_outcome(["a"], ["e"], PLAYERS, [])
    assert result.team1.strength == pytest.approx(3.0)
    assert result.team2.strength == pytest.approx(3.5)
    assert result.analysis.quality_score == pytest.approx(75.0)


def test_predict_single_player_form_counted_once():
    """A one-player team reports that player's form, not double it."""
    svc = _service()
    forms = svc.compute_forms(PLAYERS, MATCHES)
    assert forms["g"].form != 0
    result = svc.predict_outcome(["a"], ["g"], PLAYERS, MATCHES)
    assert result.analysis.form == pytest.approx(forms["g"].form)


def test_predict_quality_floors_at_zero():
    players = PLAYERS + [{"id": "z", "name": "Zed", "rating": 7.0}]
    result = _service().predict_outcome(["f"], ["z"], players, [])
    assert result.analysis.quality_score == 0.0


def test_predict_missing_inputs():
    svc = _service()
    assert svc.predict_outcome([], ["a"], PLAYERS, []) is None
    assert svc.predict_outcome(["a"], [], PLAYERS, []) is None
    assert svc.predict_outcome(["nobody"], ["a"], PLAYERS, []) is None


def test_predict_module_shortcut():
    result = predict_outcome(["g", "f"], ["a", "b"], PLAYERS, MATCHES, now=NOW)
    assert result is not None
    assert result.team1.key == "f-g"


# ── find opponents ──────────────────────────────────────


def test_opponents_limited_to_top_results():
    """Six free players give 15 candidate pairs, cut to 10."""
    pool = [p["id"] for p in PLAYERS]
    results = _service().find_opponents_for_team(["a", "b"], pool, PLAYERS, MATCHES)
    assert len(results) == 10
    assert _is_ranked(results)
    for m in results:
        assert m.team1.key == "a-b"
        assert not set(m.team2.ids) & {"a", "b"}, "fixed players cannot be opponents"


def test_opponents_small_pool():
    results = _service().find_opponents_for_team(["a", "b"], ["c", "d", "e"], PLAYERS, [])
    assert len(results) == 3


def test_opponents_quality_tracks_cost():
    results = _service().find_opponents_for_team(["a", "b"], ["c", "d", "e", "f"], PLAYERS, [])
    for m in results:
        assert m.analysis.quality_score == pytest.approx(max(0.0, 100.0 - m.match_cost))


def test_opponents_missing_fixed_player():
    assert _service().find_opponents_for_team(["a", "ghost"], ["c", "d"], PLAYERS, []) == []


def test_opponents_exact_cost():
    """Balance cost plus half the candidate pair's own cost."""
    [match] = _service().find_opponents_for_team(["a", "b"], ["e", "f"], PLAYERS, [])
    # a+b = 6.0 flat; e+f = 5.7 with a 1.3 gap
    expected = 0.3 ** 2 + 0.7 * 1.3 ** 2 + 0.6 * (0.3 / 2) ** 2 + 0.5 * (1.3 - 1.4) ** 2
    assert match.match_cost == pytest.approx(expected)


def test_opponents_recent_matchup_penalized():
    """Replaying a four-player set from recent history costs +50 and drops to the bottom."""
    players = [{"id": pid, "name": pid.upper(), "rating": 3.0} for pid in "abcde"]
    history = [{"id": "m1", "date": "2026-02-20T19:00:00", "team1": ["a", "b"], "team2": ["c", "d"],
                "score1": 11, "score2": 9}]
    svc = _service()
    results = svc.find_opponents_for_team(["a", "b"], ["c", "d", "e"], players, history)

    assert [m.team2.key for m in results][-1] == "c-d"
    assert all(m.handicap is None for m in results)

    cfg = svc.config
    forms = svc.compute_forms(players, history)
    synergy = compute_synergy(history, cfg)
    fixed = make_pair(forms["a"], forms["b"])
    replay = make_pair(forms["c"], forms["d"])
    expected = (balance_cost(fixed, replay, cfg)
                + 0.5 * pair_cost(forms["c"], forms["d"], synergy, set(), cfg)
                + 50.0)
    assert results[-1].match_cost == pytest.approx(expected)
    assert results[0].match_cost < 50.0


# ── find partners ───────────────────────────────────────


def test_partners_one_opponent_searches_both_partners():
    """Pool of 4 with one opponent: 4 x 3 combinations, cut to 10."""
    results = _service().find_best_partners("a", ["b"], ["c", "d", "e", "f"], PLAYERS, MATCHES)
    assert len(results) == 10
    assert _is_ranked(results)
    for m in results:
        assert "a" in m.team1.ids
        assert "b" in m.team2.ids
        assert not set(m.team1.ids) & set(m.team2.ids)


def test_partners_two_opponents():
    """Fixed opposing pair: one result per candidate partner."""
    results = _service().find_best_partners("a", ["b", "c"], ["d", "e", "f", "g"], PLAYERS, MATCHES)
    assert len(results) == 4
    assert all(m.team2.key == "b-c" for m in results)
    assert {m.team1.key for m in results} == {"a-d", "a-e", "a-f", "a-g"}


def test_partners_pool_excludes_self_and_opponents():
    results = _service().find_best_partners("a", ["b", "c"], ["a", "b", "c", "d"], PLAYERS, [])
    assert [m.team1.key for m in results] == ["a-d"]


def test_partners_bad_input():
    svc = _service()
    assert svc.find_best_partners("ghost", ["b"], ["c", "d"], PLAYERS, []) == []
    assert svc.find_best_partners("a", [], ["c", "d"], PLAYERS, []) == []
    assert svc.find_best_partners("a", ["a"], ["c", "d"], PLAYERS, []) == []


def test_partners_two_opponents_exact_cost():
    """gap^2 + 0.5 * structure gap^2 (no margin term) + 0.5 * my pair cost."""
    [match] = _service().find_best_partners("g", ["c", "d"], ["f"], PLAYERS, [])
    # g+f = 6.3 with a 1.9 gap; c+d = 6.0 flat
    expected = 0.3 ** 2 + 0.5 * 1.9 ** 2 + 0.5 * (1.9 - 1.4) ** 2
    assert match.match_cost == pytest.approx(expected)


def test_partners_one_opponent_exact_cost():
    """Both pair costs count at 0.3 when the opponent's partner is searched too."""
    results = _service().find_best_partners("g", ["c"], ["f", "d"], PLAYERS, [])
    assert len(results) == 2
    [match] = [m for m in results if m.team1.key == "f-g"]
    assert match.team2.key == "c-d"
    my_pair = (1.9 - 1.4) ** 2
    their_pair = 1.4 ** 2 + 1.5       # equal ratings: distance to target + similar-strength penalty
    expected = 0.3 ** 2 + 0.5 * 1.9 ** 2 + 0.3 * (my_pair + their_pair)
    assert match.match_cost == pytest.approx(expected)


# ── auto matchmaker ─────────────────────────────────────


def test_auto_rejects_odd_selection():
    with pytest.raises(InputError):
        _service().run_auto_matchmaker(["a", "b", "c"], PLAYERS, MATCHES)


def test_auto_covers_selection():
    selected = [p["id"] for p in PLAYERS]
    result = _service(rng=random.Random(4)).run_auto_matchmaker(selected, PLAYERS, MATCHES)
    assert len(result.pairs) == 4
    assert len(result.matches) == 2
    paired = sorted(pid for p in result.pairs for pid in p.ids)
    assert paired == sorted(selected)


def test_auto_is_deterministic_with_seed():
    selected = [p["id"] for p in PLAYERS]

    def run():
        result = run_auto_matchmaker(selected, PLAYERS, MATCHES, rng=random.Random(21), now=NOW)
        return [(m.team1.key, m.team2.key, m.handicap_points) for m in result.matches]

    assert run() == run()


def test_auto_v1_profile_skips_local_search():
    """v1 runs the greedy pass only, so the rng is never consulted."""
    selected = [p["id"] for p in PLAYERS]
    svc = _service(config=get_config("v1"), rng=random.Random(1))
    first = [p.key for p in svc.run_auto_matchmaker(selected, PLAYERS, MATCHES).pairs]
    svc = _service(config=get_config("v1"), rng=random.Random(999))
    second = [p.key for p in svc.run_auto_matchmaker(selected, PLAYERS, MATCHES).pairs]
    assert first == second


# ── round robin ─────────────────────────────────────────


def test_round_robin_expected_wins_sum():
    """n teams play n(n-1)/2 games, so expected wins sum to that."""
    teams = [
        {"id": "T1", "player_ids": ["a", "b"]},
        {"id": "T2", "player_ids": ["c", "d"]},
        {"id": "T3", "player_ids": ["e", "f"]},
        {"id": "T4", "player_ids": ["g", "h"]},
    ]
    table = project_round_robin(teams, PLAYERS, [])
    assert len(table) == 4
    assert sum(t.expected_wins for t in table) == pytest.approx(6.0)
    assert table[0].team_id == "T4", "strongest pair projects first"
    assert [t.expected_wins for t in table] == sorted((t.expected_wins for t in table), reverse=True)


def test_round_robin_equal_teams_split():
    teams = [{"id": "X", "player_ids": ["a", "b"]}, {"id": "Y", "player_ids": ["c", "d"]}]
    table = _service().project_round_robin(teams, PLAYERS, [])
    assert [t.expected_wins for t in table] == pytest.approx([0.5, 0.5])
    assert table[0].player_names in (["Ana", "Ben"], ["Cid", "Dee"])


def test_round_robin_rejects_player_on_two_teams():
    teams = [{"id": "X", "player_ids": ["a", "b"]}, {"id": "Y", "player_ids": ["b", "c"]}]
    with pytest.raises(InputError):
        _service().project_round_robin(teams, PLAYERS, [])


def test_round_robin_skips_unknown_team():
    teams = [{"id": "X", "player_ids": ["a", "b"]}, {"id": "Y", "player_ids": ["ghost"]},
             {"id": "Z", "player_ids": ["e"]}]
    table = _service().project_round_robin(teams, PLAYERS, [])
    assert {t.team_id for t in table} == {"X", "Z"}
    assert sum(t.expected_wins for t in table) == pytest.approx(1.0)


# ── history ─────────────────────────────────────────────


def test_label_history_through_service():
    labels = _service().label_history(MATCHES, PLAYERS)
    assert set(labels) == {"m1", "m2", "m3"}


def test_auto_logs_completion_event(caplog):
    """The auto run emits one JSON event with its elapsed time."""
    selected = [p["id"] for p in PLAYERS]
    with caplog.at_level(logging.INFO, logger="matchmaker.service"):
        _service(rng=random.Random(2)).run_auto_matchmaker(selected, PLAYERS, MATCHES)
    events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "matchmaker.service"]
    [done] = [e for e in events if e["event"] == "auto.complete"]
    assert done["pairs"] == 4
    assert 0 <= done["duration_ms"] < 60_000
