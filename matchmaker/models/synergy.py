"""Pair synergy from shared-team history.

Synergy is a shrunken log-odds of a pair's win rate as teammates, scaled
up when their non-binary results were decisive and down when they were
close. Positive = the pair wins together more than a coin flip; large
magnitude either way marks extreme chemistry.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Optional

from matchmaker.config import EngineConfig, get_config
from matchmaker.records import clamp, load_matches, margin_ratio, pair_key

logger = logging.getLogger(__name__)


@dataclass
class _PairStats:
    games: int = 0
    wins: int = 0
    non_binary_games: int = 0
    total_margin_ratio: float = 0.0


def _synergy_score(stats: _PairStats, config: EngineConfig) -> float:
    p = (stats.wins + config.win_rate_prior_wins) / (stats.games + config.win_rate_prior_games)
    p = clamp(p, config.synergy_p_floor, config.synergy_p_ceil)
    base = math.log(p / (1 - p)) * (stats.games / (stats.games + config.synergy_shrink_games))

    quality = 1.0
    if stats.non_binary_games > 0:
        avg_margin = stats.total_margin_ratio / stats.non_binary_games
        quality = config.synergy_quality_base + config.synergy_quality_span * clamp(avg_margin, 0.0, 1.0)
    return base * quality


def compute_synergy(matches: Iterable, config: Optional[EngineConfig] = None) -> dict:
    """
    Compute synergy for every pair that has played together as a 2-player side.

    Returns: {"id1-id2": float} with ids sorted inside the key.
    """
    config = config or get_config()
    pair_stats = defaultdict(_PairStats)

    for m in load_matches(matches):
        ratio = margin_ratio(m, config)
        winner = m.winning_side
        for side, team in ((1, m.team1), (2, m.team2)):
            if len(team) != 2:
                continue
            s = pair_stats[pair_key(*team)]
            s.games += 1
            if winner == side:
                s.wins += 1
            if not m.is_binary:
                s.non_binary_games += 1
                s.total_margin_ratio += ratio

    synergy = {key: _synergy_score(s, config) for key, s in pair_stats.items()}
    logger.debug("Computed synergy for %d pairs", len(synergy))
    return synergy
