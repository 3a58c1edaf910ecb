"""
Centralized configuration for the doubles matchmaker engine.

Single source of truth for the tuned constants used by the form, synergy,
pairing, matchup and handicap code. Algorithms read them through an
EngineConfig instance so tests can vary thresholds without touching the
algorithm code. Environment variables are noted where they apply.
"""

import os
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Optional

# ---------------------------------------------------------------------------
# Config version (two constant sets circulated; both are kept as profiles)
# ---------------------------------------------------------------------------
CONFIG_VERSION = "v2"
DEFAULT_PROFILE = os.environ.get("MATCHMAKER_PROFILE", CONFIG_VERSION)

# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------
DEFAULT_BASE_RATING = 3.0
LEGACY_RATING_CEILING = 20.0     # source ratings above this are an old scale
SUPPORT_CUTOFF = 2.6             # effective rating below this = support player
EXPECTANCY_SCALE = 1.2           # logistic divisor on team rating sums

# ---------------------------------------------------------------------------
# Form (recent results layered on top of base rating)
# ---------------------------------------------------------------------------
FORM_WINDOW = 10
FORM_MAX = 0.30
FORM_SCALE_FACTOR = 0.20
FORM_SNAP_EPSILON = 0.005        # |form| below this is shown as 0.00
W_WINLOSS = 0.80
W_MARGIN = 0.15
W_UPSET = 0.05
MARGIN_CAP_RATIO = 0.60
UPSET_CAP = 0.30
WIN_RATE_PRIOR_WINS = 2
WIN_RATE_PRIOR_GAMES = 4

# ---------------------------------------------------------------------------
# Score margins
# ---------------------------------------------------------------------------
GAME_TO = 11
# Matches before this timestamp only recorded a winner, not a real score.
SCORE_AWARE_CUTOVER = datetime(2026, 1, 1, tzinfo=timezone.utc)
LEGACY_MARGIN_RATIO = 0.5

# ---------------------------------------------------------------------------
# Synergy
# ---------------------------------------------------------------------------
SYNERGY_SHRINK_GAMES = 6
SYNERGY_P_FLOOR = 0.01
SYNERGY_P_CEIL = 0.99
SYNERGY_QUALITY_BASE = 0.75
SYNERGY_QUALITY_SPAN = 0.50

# ---------------------------------------------------------------------------
# Pair cost
# ---------------------------------------------------------------------------
TARGET_DIFF = 1.4                # strong player carries a weaker partner
PAIR_SIMILAR_GAP = 0.6
PAIR_SIMILAR_PENALTY = 1.5
PAIR_EXTREME_GAP = 2.0
PAIR_EXTREME_PENALTY = 3.0
TWO_SUPPORTS_PENALTY = 10.0
SYNERGY_EXTREME = 0.35
SYNERGY_PENALTY_WEIGHT = 2.0
REPEAT_PAIR_PENALTY = 15.0

# ---------------------------------------------------------------------------
# Pairing optimizer
# ---------------------------------------------------------------------------
SWAP_ITERATIONS = 200
_seed = os.environ.get("MATCHMAKER_SWAP_SEED")
SWAP_SEED: Optional[int] = int(_seed) if _seed else None

# ---------------------------------------------------------------------------
# Matchups
# ---------------------------------------------------------------------------
MATCH_STRUCTURE_WEIGHT = 0.7
MATCH_MARGIN_WEIGHT = 0.6
MATCH_MARGIN_SPAN = 2.0
REPEAT_MATCHUP_PENALTY = 50.0
RECENT_PAIRS_WINDOW = 20         # auto matchmaker: last N matches
RECENT_MATCHUPS_WINDOW = 50      # find opponents: last N matches
CANDIDATE_PAIR_COST_WEIGHT = 0.5
PARTNER_STRUCTURE_WEIGHT = 0.5
PARTNER_OPEN_PAIR_COST_WEIGHT = 0.3    # 1 vs 1: both partners searched
PARTNER_FIXED_PAIR_COST_WEIGHT = 0.5   # 1 vs fixed pair
TOP_RESULTS = 10

# ---------------------------------------------------------------------------
# Handicap
# ---------------------------------------------------------------------------
# (threshold on |strength diff|, points), checked in order
HANDICAP_TIERS: tuple = ((1.2, 4), (0.9, 3), (0.6, 2), (0.3, 1))
HANDICAP_MAX_POINTS = 4
FORM_OVERRIDE_GAP = 0.20
FORM_OVERRIDE_STRONG_GAP = 0.30
BLOWOUT_THRESHOLD = 0.35
H2H_WINDOW_DAYS = 30
H2H_SINGLE_DEDUCTION = 0.5
H2H_MULTI_DEDUCTION = 1.0

# ---------------------------------------------------------------------------
# Prediction / history
# ---------------------------------------------------------------------------
PREDICT_QUALITY_SLOPE = 50.0     # linear, unlike the quadratic matchup cost
BALANCED_THRESHOLD = 0.25


@dataclass(frozen=True)
class EngineConfig:
    """Every tunable the engine reads. Defaults are the v2 constant set."""

    version: str = CONFIG_VERSION

    default_base_rating: float = DEFAULT_BASE_RATING
    legacy_rating_ceiling: float = LEGACY_RATING_CEILING
    support_cutoff: float = SUPPORT_CUTOFF
    expectancy_scale: float = EXPECTANCY_SCALE

    form_window: int = FORM_WINDOW
    form_max: float = FORM_MAX
    form_scale_factor: float = FORM_SCALE_FACTOR
    form_snap_epsilon: float = FORM_SNAP_EPSILON
    w_winloss: float = W_WINLOSS
    w_margin: float = W_MARGIN
    w_upset: float = W_UPSET
    margin_cap_ratio: float = MARGIN_CAP_RATIO
    upset_cap: float = UPSET_CAP
    win_rate_prior_wins: int = WIN_RATE_PRIOR_WINS
    win_rate_prior_games: int = WIN_RATE_PRIOR_GAMES

    game_to: int = GAME_TO
    score_aware_cutover: datetime = SCORE_AWARE_CUTOVER
    legacy_margin_ratio: float = LEGACY_MARGIN_RATIO

    synergy_shrink_games: int = SYNERGY_SHRINK_GAMES
    synergy_p_floor: float = SYNERGY_P_FLOOR
    synergy_p_ceil: float = SYNERGY_P_CEIL
    synergy_quality_base: float = SYNERGY_QUALITY_BASE
    synergy_quality_span: float = SYNERGY_QUALITY_SPAN

    target_diff: float = TARGET_DIFF
    pair_similar_gap: float = PAIR_SIMILAR_GAP
    pair_similar_penalty: float = PAIR_SIMILAR_PENALTY
    pair_extreme_gap: float = PAIR_EXTREME_GAP
    pair_extreme_penalty: float = PAIR_EXTREME_PENALTY
    two_supports_penalty: float = TWO_SUPPORTS_PENALTY
    synergy_extreme: float = SYNERGY_EXTREME
    synergy_penalty_weight: float = SYNERGY_PENALTY_WEIGHT
    repeat_pair_penalty: float = REPEAT_PAIR_PENALTY

    swap_iterations: int = SWAP_ITERATIONS
    swap_seed: Optional[int] = SWAP_SEED

    match_structure_weight: float = MATCH_STRUCTURE_WEIGHT
    match_margin_weight: float = MATCH_MARGIN_WEIGHT
    match_margin_span: float = MATCH_MARGIN_SPAN
    repeat_matchup_penalty: float = REPEAT_MATCHUP_PENALTY
    recent_pairs_window: int = RECENT_PAIRS_WINDOW
    recent_matchups_window: int = RECENT_MATCHUPS_WINDOW
    candidate_pair_cost_weight: float = CANDIDATE_PAIR_COST_WEIGHT
    partner_structure_weight: float = PARTNER_STRUCTURE_WEIGHT
    partner_open_pair_cost_weight: float = PARTNER_OPEN_PAIR_COST_WEIGHT
    partner_fixed_pair_cost_weight: float = PARTNER_FIXED_PAIR_COST_WEIGHT
    top_results: int = TOP_RESULTS

    handicap_tiers: tuple = HANDICAP_TIERS
    handicap_max_points: int = HANDICAP_MAX_POINTS
    form_override_gap: float = FORM_OVERRIDE_GAP
    form_override_strong_gap: float = FORM_OVERRIDE_STRONG_GAP
    blowout_threshold: float = BLOWOUT_THRESHOLD
    h2h_window_days: int = H2H_WINDOW_DAYS
    h2h_single_deduction: float = H2H_SINGLE_DEDUCTION
    h2h_multi_deduction: float = H2H_MULTI_DEDUCTION

    predict_quality_slope: float = PREDICT_QUALITY_SLOPE
    balanced_threshold: float = BALANCED_THRESHOLD

    def replace(self, **overrides) -> "EngineConfig":
        """Return a copy with the given fields changed. Unknown keys raise."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise KeyError(f"Unknown config field(s): {', '.join(unknown)}")
        return replace(self, **overrides)


# v1 is the earlier constant set: tighter form cap, larger scale factor and
# no local-search refinement after the greedy pairing.
PROFILES: dict[str, EngineConfig] = {
    "v2": EngineConfig(),
    "v1": EngineConfig(
        version="v1",
        form_max=0.25,
        form_scale_factor=0.27,
        swap_iterations=0,
    ),
}


def get_config(name: Optional[str] = None) -> EngineConfig:
    """Return a built-in profile by name.

    With no name the default is MATCHMAKER_PROFILE (or v2). That default may
    also name a profiles.yaml entry, which is resolved through the loader.
    """
    if name is None and DEFAULT_PROFILE not in PROFILES:
        from matchmaker import config_loader  # imports this module
        return config_loader.resolve_profile(DEFAULT_PROFILE, path=config_loader.DEFAULT_PROFILES_PATH)
    key = name or DEFAULT_PROFILE
    if key not in PROFILES:
        raise KeyError(f"Unknown built-in profile '{key}'. Choose one of {sorted(PROFILES)}.")
    return PROFILES[key]
