"""
Handicap Calculator

Turns a strength gap between two teams into a 1-4 point head start for the
weaker team, with one explanation line per rule that moved the total:

  1. rating-diff tier        +1 .. +4
  2. support override        +1  weak side has more support players
  3. form override           -1 / -2  weak side is winning more lately
  4. blowout risk            +1  weak side tends to lose big (only if total > 0)
  5. head-to-head (30 days)  -0.5 / -1  strong side already lost to them

The total is rounded half up and capped at 4. Zero or less means no
handicap at all (None), never a zero-point handicap.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from matchmaker.config import EngineConfig, get_config
from matchmaker.pairing import GeneratedPair
from matchmaker.records import load_matches

logger = logging.getLogger(__name__)


@dataclass
class Handicap:
    team: int                      # 1 or 2: the side receiving the points
    points: int
    reason: str
    details: list = field(default_factory=list)


def _rating_tier(diff: float, config: EngineConfig) -> int:
    for threshold, points in config.handicap_tiers:
        if diff > threshold:
            return points
    return 0


def _support_count(team: GeneratedPair, config: EngineConfig) -> int:
    return sum(1 for p in team.members if p.effective_rating < config.support_cutoff)


def _avg_win_rate(team: GeneratedPair) -> float:
    return (team.player1.last10_win_rate + team.player2.last10_win_rate) / 2


def _blowout_index(team: GeneratedPair) -> float:
    return (team.player1.loss_margin_ratio + team.player2.loss_margin_ratio) / 2


def _recent_head_to_head(weak: GeneratedPair, strong: GeneratedPair, matches: list,
                         since: datetime) -> tuple:
    """Return (meetings, strong_losses) between exactly these two teams since ``since``."""
    weak_ids = set(weak.ids)
    strong_ids = set(strong.ids)
    meetings = 0
    strong_losses = 0
    for m in matches:
        if m.date < since:
            continue
        t1, t2 = set(m.team1), set(m.team2)
        if t1 == strong_ids and t2 == weak_ids:
            strong_side = 1
        elif t2 == strong_ids and t1 == weak_ids:
            strong_side = 2
        else:
            continue
        meetings += 1
        if m.winning_side != strong_side:
            strong_losses += 1
    return meetings, strong_losses


def compute_handicap(team1: GeneratedPair, team2: GeneratedPair, matches: Iterable,
                     config: Optional[EngineConfig] = None,
                     now: Optional[datetime] = None) -> Optional[Handicap]:
    """
    Compute the handicap the weaker of two teams should receive.

    team1 counts as the strong side only when strictly stronger.
    Returns None when the matchup needs no handicap.
    """
    config = config or get_config()
    now = now or datetime.now(timezone.utc)

    if team1.strength > team2.strength:
        strong, weak, weak_side = team1, team2, 2
    else:
        strong, weak, weak_side = team2, team1, 1

    points = 0.0
    details = []

    diff = abs(team1.strength - team2.strength)
    tier = _rating_tier(diff, config)
    if tier > 0:
        points += tier
        details.append(f"Rating diff ({diff:.2f}): +{tier}")

    if _support_count(weak, config) > _support_count(strong, config):
        points += 1
        details.append("Support override: +1 (weak team has more support players)")

    wr_gap = _avg_win_rate(weak) - _avg_win_rate(strong)
    if wr_gap >= config.form_override_gap:
        deduction = 2 if wr_gap >= config.form_override_strong_gap else 1
        points -= deduction
        details.append(f"Form override: -{deduction} (weak team is on a hot streak)")

    if _blowout_index(weak) > config.blowout_threshold and points > 0:
        points += 1
        details.append("Blowout risk: +1 (weak team prone to heavy losses)")

    since = now - timedelta(days=config.h2h_window_days)
    meetings, strong_losses = _recent_head_to_head(weak, strong, load_matches(matches), since)
    if strong_losses > 0:
        deduction = config.h2h_single_deduction if meetings == 1 else config.h2h_multi_deduction
        points -= deduction
        details.append(f"Head-to-head: -{deduction:g} (strong team lost recently)")

    final_points = min(math.floor(points + 0.5), config.handicap_max_points)
    if final_points <= 0:
        return None

    logger.debug("Handicap %d for team %d: %s", final_points, weak_side, "; ".join(details))
    return Handicap(
        team=weak_side,
        points=final_points,
        reason=f"Spot {final_points} point{'s' if final_points > 1 else ''}",
        details=details,
    )
