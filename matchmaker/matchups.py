"""
Matchup Engine

Pairs teams against each other, strongest first. Each pick minimizes a
quadratic imbalance cost:

  (strength gap)^2 + 0.7 * (structure gap)^2 + 0.6 * (expected margin)^2

plus a heavy penalty for replaying one of the recent four-player
matchups. Every emitted match carries its handicap and a short analysis
of the second team.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from matchmaker.config import EngineConfig, get_config
from matchmaker.handicap import Handicap, compute_handicap
from matchmaker.models.synergy import compute_synergy
from matchmaker.pairing import GeneratedPair
from matchmaker.records import clamp, load_matches, matchup_key

logger = logging.getLogger(__name__)


@dataclass
class MatchAnalysis:
    synergy: float = 0.0           # chemistry of team 2
    form: float = 0.0              # combined form of team 2
    quality_score: float = 0.0     # 0-100, higher = better balanced


@dataclass
class GeneratedMatch:
    team1: GeneratedPair
    team2: GeneratedPair
    match_cost: float
    handicap: Optional[Handicap] = None
    analysis: MatchAnalysis = field(default_factory=MatchAnalysis)

    @property
    def handicap_points(self) -> int:
        return self.handicap.points if self.handicap else 0


def balance_cost(t1: GeneratedPair, t2: GeneratedPair, config: EngineConfig,
                 structure_weight: Optional[float] = None,
                 include_margin: bool = True) -> float:
    """Quadratic imbalance between two teams (no repeat penalty)."""
    if structure_weight is None:
        structure_weight = config.match_structure_weight
    gap = t1.strength - t2.strength
    cost = gap ** 2 + structure_weight * (t1.structure - t2.structure) ** 2
    if include_margin:
        expected_margin = clamp(abs(gap) / config.match_margin_span, 0.0, 1.0)
        cost += config.match_margin_weight * expected_margin ** 2
    return cost


def matchup_cost(t1: GeneratedPair, t2: GeneratedPair, recent_matchups: set,
                 config: Optional[EngineConfig] = None) -> float:
    config = config or get_config()
    cost = balance_cost(t1, t2, config)
    if matchup_key(t1.ids + t2.ids) in recent_matchups:
        cost += config.repeat_matchup_penalty
    return cost


def analyze(team2: GeneratedPair, synergy: dict, quality_score: float) -> MatchAnalysis:
    return MatchAnalysis(
        synergy=synergy.get(team2.key, 0.0),
        form=sum(p.form for p in team2.members),
        quality_score=quality_score,
    )


def rank_key(match: GeneratedMatch) -> tuple:
    """No handicap first, then fewer handicap points, then lower cost."""
    points = match.handicap_points
    return (points > 0, points, match.match_cost)


def build_matchups(teams: list, recent_matchups: set, matches: Iterable,
                   config: Optional[EngineConfig] = None,
                   synergy: Optional[dict] = None,
                   now: Optional[datetime] = None) -> list:
    """
    Match teams against each other, strongest remaining team first.

    A leftover odd team stays unmatched. Returns a list of GeneratedMatch.
    """
    config = config or get_config()
    history = load_matches(matches)
    if synergy is None:
        synergy = compute_synergy(history, config)

    pool = sorted(teams, key=lambda t: t.strength, reverse=True)
    results = []
    while len(pool) >= 2:
        t1 = pool.pop(0)
        best_idx, best_cost = -1, float("inf")
        for idx, t2 in enumerate(pool):
            cost = matchup_cost(t1, t2, recent_matchups, config)
            if cost < best_cost:
                best_idx, best_cost = idx, cost
        t2 = pool.pop(best_idx)

        results.append(GeneratedMatch(
            team1=t1,
            team2=t2,
            match_cost=best_cost,
            handicap=compute_handicap(t1, t2, history, config, now=now),
            analysis=analyze(t2, synergy, max(0.0, 100.0 - best_cost)),
        ))

    if pool:
        logger.info("Team %s left without an opponent", pool[0].key)
    return results
