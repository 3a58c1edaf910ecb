"""
Form Score

Layers a bounded recent-performance adjustment on top of each player's
base rating, using only their last 10 matches.

Three components, weighted 80 / 15 / 5:
  - win/loss core: Laplace-smoothed win rate over the window
  - margin: how decisively non-binary matches were won or lost
    (1-0 results say nothing about margin and are skipped)
  - upset: wins against stronger sides / losses to weaker sides,
    judged on BASE ratings so form never feeds back into itself

Output: per-player PlayerForm with form in [-FORM_MAX, FORM_MAX] and
effective_rating = round(base_rating + form, 2).
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from matchmaker.config import EngineConfig, get_config
from matchmaker.records import (
    Match,
    clamp,
    is_score_aware,
    load_matches,
    load_players,
    margin_ratio,
)

logger = logging.getLogger(__name__)


@dataclass
class PlayerForm:
    id: str
    name: str
    base_rating: float
    form: float = 0.0
    effective_rating: float = 0.0
    last10_win_rate: float = 0.0
    # blowout index inputs: score-aware, non-binary losses only
    non_binary_losses: int = 0
    total_margin_ratio_in_losses: float = 0.0

    @property
    def loss_margin_ratio(self) -> float:
        """Average margin of this player's non-binary losses (0 with none)."""
        if self.non_binary_losses == 0:
            return 0.0
        return self.total_margin_ratio_in_losses / self.non_binary_losses


def win_probability(own_rating: float, opp_rating: float, config: EngineConfig) -> float:
    """Logistic expectancy of a side rated ``own_rating`` beating ``opp_rating``."""
    return 1.0 / (1.0 + 10 ** ((opp_rating - own_rating) / config.expectancy_scale))


def _recent_window(player_id: str, matches: list[Match], size: int) -> list[Match]:
    played = [m for m in matches if m.side_of(player_id) is not None]
    played.sort(key=lambda m: m.date, reverse=True)
    return played[:size]


def _win_core(wins: int, games: int, config: EngineConfig) -> float:
    win_rate = (wins + config.win_rate_prior_wins) / (games + config.win_rate_prior_games)
    return (win_rate - 0.5) / 0.5


def _margin_component(stats: PlayerForm, window: list[Match], results: list[bool],
                      config: EngineConfig) -> float:
    """Average capped signed margin over non-binary matches, normalized to [-1, 1].

    Also accumulates the blowout-index inputs on ``stats``.
    """
    margin_sum = 0.0
    non_binary = 0
    for m, won in zip(window, results):
        if m.is_binary:
            continue
        non_binary += 1
        ratio = margin_ratio(m, config)
        signed = ratio if won else -ratio
        margin_sum += clamp(signed, -config.margin_cap_ratio, config.margin_cap_ratio)

        if not won and is_score_aware(m, config):
            stats.non_binary_losses += 1
            stats.total_margin_ratio_in_losses += ratio

    if non_binary == 0:
        return 0.0
    return (margin_sum / non_binary) / config.margin_cap_ratio


def _upset_component(player_id: str, window: list[Match], results: list[bool],
                     base_ratings: dict, config: EngineConfig) -> float:
    upset_sum = 0.0
    for m, won in zip(window, results):
        t1 = sum(base_ratings.get(pid, config.default_base_rating) for pid in m.team1)
        t2 = sum(base_ratings.get(pid, config.default_base_rating) for pid in m.team2)
        if m.side_of(player_id) == 1:
            expected = win_probability(t1, t2, config)
        else:
            expected = win_probability(t2, t1, config)

        signal = (0.5 - expected) if won else -(expected - 0.5)
        upset_sum += clamp(signal, -config.upset_cap, config.upset_cap)

    return (upset_sum / len(window)) / config.upset_cap


def compute_forms(players: Iterable, matches: Iterable,
                  config: Optional[EngineConfig] = None) -> dict:
    """
    Compute form and effective rating for every roster player.

    Returns: {player_id: PlayerForm}
    """
    config = config or get_config()
    roster = load_players(players, config)
    history = load_matches(matches)

    base_ratings = {p.id: p.base_rating for p in roster}
    forms = {}

    for player in roster:
        stats = PlayerForm(
            id=player.id,
            name=player.name,
            base_rating=player.base_rating,
            effective_rating=player.base_rating,
        )
        forms[player.id] = stats

        window = _recent_window(player.id, history, config.form_window)
        if not window:
            continue

        results = [m.winning_side == m.side_of(player.id) for m in window]
        wins = sum(results)
        games = len(window)
        stats.last10_win_rate = wins / games

        win_core = _win_core(wins, games, config)
        margin_norm = _margin_component(stats, window, results, config)
        upset_norm = _upset_component(player.id, window, results, base_ratings, config)

        raw = (config.w_winloss * win_core
               + config.w_margin * margin_norm
               + config.w_upset * upset_norm)
        form = clamp(raw * config.form_scale_factor, -config.form_max, config.form_max)

        # Snap tiny values so they never display as -0.00
        if abs(form) < config.form_snap_epsilon:
            form = 0.0

        stats.form = form
        stats.effective_rating = round(stats.base_rating + form, 2)

    logger.debug("Computed forms for %d players from %d matches", len(forms), len(history))
    return forms
