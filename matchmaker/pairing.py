"""
Teammate pairing.

Splits a pool of players into doubles teams. The cost of a pair rewards a
deliberate skill gap (a strong player carrying a weaker one) and
penalizes stacking, extreme mismatches, two support players together,
extreme chemistry either way and repeating a recent pairing.

The optimizer is greedy (weakest player first picks the cheapest partner)
followed by a bounded random local search over second-member swaps. It
does not promise the global optimum.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Optional

from matchmaker.config import EngineConfig, get_config
from matchmaker.models.form import PlayerForm
from matchmaker.records import pair_key

logger = logging.getLogger(__name__)


class InputError(ValueError):
    """Structural problem with the caller's input, rejected before computing."""


@dataclass
class GeneratedPair:
    player1: PlayerForm
    player2: PlayerForm
    strength: float
    structure: float
    cost: float = 0.0

    @property
    def ids(self) -> tuple:
        return (self.player1.id, self.player2.id)

    @property
    def key(self) -> str:
        return pair_key(self.player1.id, self.player2.id)

    @property
    def members(self) -> list:
        """Distinct players; a one-player team repeats the same PlayerForm."""
        if self.player1.id == self.player2.id:
            return [self.player1]
        return [self.player1, self.player2]


def make_pair(p1: PlayerForm, p2: PlayerForm, cost: float = 0.0) -> GeneratedPair:
    return GeneratedPair(
        player1=p1,
        player2=p2,
        strength=p1.effective_rating + p2.effective_rating,
        structure=abs(p1.effective_rating - p2.effective_rating),
        cost=cost,
    )


def pair_cost(p1: PlayerForm, p2: PlayerForm, synergy: dict, recent_pairs: set,
              config: Optional[EngineConfig] = None) -> float:
    """How bad p1 and p2 are as teammates (lower is better)."""
    config = config or get_config()
    diff = abs(p1.effective_rating - p2.effective_rating)

    cost = (diff - config.target_diff) ** 2
    if diff < config.pair_similar_gap:
        cost += config.pair_similar_penalty
    if diff > config.pair_extreme_gap:
        cost += config.pair_extreme_penalty
    if p1.effective_rating < config.support_cutoff and p2.effective_rating < config.support_cutoff:
        cost += config.two_supports_penalty

    key = pair_key(p1.id, p2.id)
    syn = synergy.get(key, 0.0)
    if abs(syn) > config.synergy_extreme:
        cost += abs(syn) * config.synergy_penalty_weight
    if key in recent_pairs:
        cost += config.repeat_pair_penalty
    return cost


def _greedy_pairs(pool: list, synergy: dict, recent_pairs: set,
                  config: EngineConfig) -> list:
    ordered = sorted(pool, key=lambda p: p.effective_rating)
    used = set()
    pairs = []
    for i, p1 in enumerate(ordered):
        if p1.id in used:
            continue
        best, best_cost = None, float("inf")
        for p2 in ordered[i + 1:]:
            if p2.id in used:
                continue
            c = pair_cost(p1, p2, synergy, recent_pairs, config)
            if c < best_cost:
                best, best_cost = p2, c
        if best is not None:
            used.update((p1.id, best.id))
            pairs.append(make_pair(p1, best, best_cost))
    return pairs


def _refine_pairs(pairs: list, synergy: dict, recent_pairs: set,
                  config: EngineConfig, rng: random.Random) -> float:
    """Random second-member swaps, kept only when they lower the combined cost.

    Mutates ``pairs`` in place and returns the final total cost.
    """
    total = sum(p.cost for p in pairs)
    if len(pairs) < 2:
        return total

    swaps = 0
    for _ in range(config.swap_iterations):
        i = rng.randrange(len(pairs))
        j = rng.randrange(len(pairs) - 1)
        if j >= i:
            j += 1
        a, b = pairs[i], pairs[j]

        cost_a = pair_cost(a.player1, b.player2, synergy, recent_pairs, config)
        cost_b = pair_cost(b.player1, a.player2, synergy, recent_pairs, config)
        if cost_a + cost_b < a.cost + b.cost:
            total += (cost_a + cost_b) - (a.cost + b.cost)
            pairs[i] = make_pair(a.player1, b.player2, cost_a)
            pairs[j] = make_pair(b.player1, a.player2, cost_b)
            swaps += 1

    logger.debug("Local search kept %d of %d swaps", swaps, config.swap_iterations)
    return total


def build_pairings(pool: list, synergy: dict, recent_pairs: set,
                   config: Optional[EngineConfig] = None,
                   rng: Optional[random.Random] = None) -> list:
    """
    Partition ``pool`` (PlayerForm list) into teams of two.

    ``rng`` drives the swap step; pass a seeded ``random.Random`` for
    reproducible output. Without one, ``config.swap_seed`` seeds a new one.

    Raises InputError on an odd pool or a player listed twice.
    """
    config = config or get_config()
    if len(pool) % 2 != 0:
        raise InputError(f"Pairing needs an even number of players, got {len(pool)}.")
    ids = [p.id for p in pool]
    if len(set(ids)) != len(ids):
        raise InputError("Pairing pool lists the same player more than once.")

    if rng is None:
        rng = random.Random(config.swap_seed)

    started = time.perf_counter()
    pairs = _greedy_pairs(pool, synergy, recent_pairs, config)
    total = _refine_pairs(pairs, synergy, recent_pairs, config, rng)

    logger.info(
        "Built %d pairs (total cost %.3f)", len(pairs), total,
        extra={"pool_size": len(pool),
               "duration_ms": round((time.perf_counter() - started) * 1000, 2)},
    )
    return pairs
