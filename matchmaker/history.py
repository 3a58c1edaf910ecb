"""Causal replay of match history: was each past match balanced going in?"""

import logging
from typing import Iterable, Optional

from matchmaker.config import EngineConfig, get_config
from matchmaker.models.form import compute_forms
from matchmaker.records import load_matches, load_players

logger = logging.getLogger(__name__)

BALANCED = "balanced"
T1_FAVORITE = "t1_favorite"
T2_FAVORITE = "t2_favorite"


def _side_rating(ids: tuple, forms: dict, config: EngineConfig) -> float:
    if not ids:
        return 0.0
    total = sum(
        forms[pid].effective_rating if pid in forms else config.default_base_rating
        for pid in ids
    )
    return total / len(ids)


def label_historical_handicaps(matches: Iterable, players: Iterable,
                               config: Optional[EngineConfig] = None) -> dict:
    """
    Label every match 'balanced', 't1_favorite' or 't2_favorite'.

    Ratings for match k come only from matches strictly before k in date
    order, recomputed from scratch each time, so later results can never
    leak into an earlier label. Quadratic in history length.

    Returns: {match_id: label}
    """
    config = config or get_config()
    roster = load_players(players, config)
    ordered = sorted(load_matches(matches), key=lambda m: m.date)

    labels = {}
    for i, match in enumerate(ordered):
        forms = compute_forms(roster, ordered[:i], config)
        diff = _side_rating(match.team1, forms, config) - _side_rating(match.team2, forms, config)
        if abs(diff) <= config.balanced_threshold:
            labels[match.id] = BALANCED
        else:
            labels[match.id] = T1_FAVORITE if diff > 0 else T2_FAVORITE

    logger.debug("Labelled %d historical matches", len(labels))
    return labels
