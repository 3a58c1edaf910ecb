"""Public matchmaking queries composed from the rating, pairing and handicap engines."""
from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from matchmaker.config import EngineConfig, get_config
from matchmaker.config_loader import DEFAULT_PROFILES_PATH, resolve_profile
from matchmaker.handicap import compute_handicap
from matchmaker.history import label_historical_handicaps
from matchmaker.matchups import (
    GeneratedMatch,
    analyze,
    balance_cost,
    build_matchups,
    rank_key,
)
from matchmaker.models.form import PlayerForm, compute_forms, win_probability
from matchmaker.models.synergy import compute_synergy
from matchmaker.pairing import GeneratedPair, InputError, build_pairings, make_pair, pair_cost
from matchmaker.records import (
    load_matches,
    load_players,
    matchup_key,
    recent_matchup_keys,
    recent_pair_keys,
)

LOGGER = logging.getLogger("matchmaker.service")


@dataclass
class AutoMatchResult:
    players: List[PlayerForm]
    pairs: List[GeneratedPair]
    matches: List[GeneratedMatch]


@dataclass
class TeamProjection:
    team_id: str
    player_ids: List[str]
    player_names: List[str]
    strength: float
    expected_wins: float = 0.0


@dataclass
class _Snapshot:
    history: list
    forms: Dict[str, PlayerForm]
    synergy: Dict[str, float] = field(default_factory=dict)

    def resolve(self, ids: Iterable, exclude: Iterable = ()) -> List[PlayerForm]:
        """Known players for ``ids`` in order, skipping unknown, excluded and repeated ids."""
        skip = {str(i) for i in exclude}
        found = []
        for pid in ids:
            pid = str(pid)
            if pid in skip or pid not in self.forms:
                continue
            skip.add(pid)
            found.append(self.forms[pid])
        return found


class MatchmakerService:
    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        profile: Optional[str] = None,
        profiles_path: Path = DEFAULT_PROFILES_PATH,
        rng: Optional[random.Random] = None,
        now: Optional[datetime] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if config is None:
            config = resolve_profile(profile, path=profiles_path) if profile else get_config()
        self.config = config
        self.rng = rng
        self.now = now
        self.logger = logger or LOGGER

    # ── Public API ──────────────────────────────────────────

    def compute_forms(self, players: Iterable, matches: Iterable) -> Dict[str, PlayerForm]:
        return compute_forms(players, matches, self.config)

    def find_opponents_for_team(
        self,
        fixed_ids: List[str],
        pool_ids: List[str],
        players: Iterable,
        matches: Iterable,
    ) -> List[GeneratedMatch]:
        """Rank every pair from the pool as an opponent for a fixed team. Top N."""
        snap = self._snapshot(players, matches)
        fixed = snap.resolve(fixed_ids[:2])
        if len(fixed) != 2:
            self._log("opponents.missing_player", fixed_ids=list(fixed_ids))
            return []
        fixed_team = make_pair(fixed[0], fixed[1])

        pool = snap.resolve(pool_ids, exclude=fixed_team.ids)
        recent = recent_matchup_keys(snap.history, self.config.recent_matchups_window)

        results = []
        for i, opp1 in enumerate(pool):
            for opp2 in pool[i + 1:]:
                candidate = make_pair(
                    opp1, opp2, pair_cost(opp1, opp2, snap.synergy, set(), self.config)
                )
                cost = (balance_cost(fixed_team, candidate, self.config)
                        + candidate.cost * self.config.candidate_pair_cost_weight)
                if matchup_key(fixed_team.ids + candidate.ids) in recent:
                    cost += self.config.repeat_matchup_penalty
                results.append(self._match(fixed_team, candidate, cost, snap))

        ranked = sorted(results, key=rank_key)[: self.config.top_results]
        self._log("opponents.ranked", candidates=len(results), returned=len(ranked))
        return ranked

    def find_best_partners(
        self,
        my_id: str,
        opponent_ids: List[str],
        pool_ids: List[str],
        players: Iterable,
        matches: Iterable,
    ) -> List[GeneratedMatch]:
        """Best partner for ``my_id`` against one or two fixed opponents. Top N.

        With one opponent the opponent's partner is searched as well.
        """
        snap = self._snapshot(players, matches)
        me = snap.forms.get(str(my_id))
        if me is None:
            self._log("partners.missing_player", player=my_id)
            return []
        opponents = snap.resolve(opponent_ids, exclude=[me.id])
        if len(opponents) not in (1, 2):
            self._log("partners.bad_opponents", resolved=len(opponents))
            return []

        pool = snap.resolve(pool_ids, exclude=[me.id] + [o.id for o in opponents])
        no_recent: set = set()
        cfg = self.config

        def team(a: PlayerForm, b: PlayerForm) -> GeneratedPair:
            return make_pair(a, b, pair_cost(a, b, snap.synergy, no_recent, cfg))

        results = []
        if len(opponents) == 1:
            for i, my_mate in enumerate(pool):
                my_team = team(me, my_mate)
                for j, opp_mate in enumerate(pool):
                    if i == j:
                        continue
                    opp_team = team(opponents[0], opp_mate)
                    cost = (balance_cost(my_team, opp_team, cfg, cfg.partner_structure_weight, False)
                            + (my_team.cost + opp_team.cost) * cfg.partner_open_pair_cost_weight)
                    results.append(self._match(my_team, opp_team, cost, snap))
        else:
            opp_team = team(opponents[0], opponents[1])
            for my_mate in pool:
                my_team = team(me, my_mate)
                cost = (balance_cost(my_team, opp_team, cfg, cfg.partner_structure_weight, False)
                        + my_team.cost * cfg.partner_fixed_pair_cost_weight)
                results.append(self._match(my_team, opp_team, cost, snap))

        ranked = sorted(results, key=rank_key)[: cfg.top_results]
        self._log("partners.ranked", opponents=len(opponents), candidates=len(results),
                  returned=len(ranked))
        return ranked

    def predict_outcome(
        self,
        team1_ids: List[str],
        team2_ids: List[str],
        players: Iterable,
        matches: Iterable,
    ) -> Optional[GeneratedMatch]:
        """Handicap and a linear 0-100 balance score for two given teams (1 or 2 players each)."""
        if not team1_ids or not team2_ids:
            return None
        snap = self._snapshot(players, matches)
        team1 = self._fixed_team(team1_ids, snap)
        team2 = self._fixed_team(team2_ids, snap)
        if team1 is None or team2 is None:
            self._log("predict.missing_player", team1=list(team1_ids), team2=list(team2_ids))
            return None

        diff = abs(team1.strength - team2.strength)
        quality = max(0.0, 100.0 - self.config.predict_quality_slope * diff)
        return GeneratedMatch(
            team1=team1,
            team2=team2,
            match_cost=0.0,
            handicap=compute_handicap(team1, team2, snap.history, self.config, now=self.now),
            analysis=analyze(team2, snap.synergy, quality),
        )

    def run_auto_matchmaker(
        self,
        selected_ids: List[str],
        players: Iterable,
        matches: Iterable,
    ) -> AutoMatchResult:
        """Pair the selected players into teams, then pit the teams against each other.

        Raises InputError when an odd number of roster players is selected.
        """
        roster = load_players(players, self.config)
        wanted = {str(i) for i in selected_ids}
        selected = [p for p in roster if p.id in wanted]
        if len(selected) % 2 != 0:
            raise InputError(f"Select an even number of players, got {len(selected)}.")

        started = time.perf_counter()
        snap = self._snapshot(roster, matches)
        pool = [snap.forms[p.id] for p in selected]
        window = self.config.recent_pairs_window
        recent_pairs = recent_pair_keys(snap.history, window)
        recent_matchups = recent_matchup_keys(snap.history, window)

        pairs = build_pairings(pool, snap.synergy, recent_pairs, self.config, self.rng)
        generated = build_matchups(pairs, recent_matchups, snap.history, self.config,
                                   synergy=snap.synergy, now=self.now)

        self._log("auto.complete", players=len(pool), pairs=len(pairs), matches=len(generated),
                  duration_ms=round((time.perf_counter() - started) * 1000, 2))
        return AutoMatchResult(players=pool, pairs=pairs, matches=generated)

    def project_round_robin(
        self,
        teams: List[Dict[str, Any]],
        players: Iterable,
        matches: Iterable,
    ) -> List[TeamProjection]:
        """Expected wins for each team if every entered team played every other once.

        ``teams`` items look like {"id": "A", "player_ids": ["1", "2"]}.
        Raises InputError when a player is entered on two teams.
        """
        all_ids = [str(pid) for t in teams for pid in t.get("player_ids", ())]
        if len(set(all_ids)) != len(all_ids):
            raise InputError("A player can only be entered on one team.")

        snap = self._snapshot(players, matches)
        projections = []
        for t in teams:
            pair = self._fixed_team(t.get("player_ids") or [], snap)
            if pair is None:
                self._log("round_robin.missing_player", team=t.get("id"))
                continue
            projections.append(TeamProjection(
                team_id=str(t.get("id")),
                player_ids=[p.id for p in pair.members],
                player_names=[p.name for p in pair.members],
                strength=pair.strength,
            ))

        for i, a in enumerate(projections):
            for b in projections[i + 1:]:
                p_a = win_probability(a.strength, b.strength, self.config)
                a.expected_wins += p_a
                b.expected_wins += 1.0 - p_a

        return sorted(projections, key=lambda p: p.expected_wins, reverse=True)

    def label_history(self, matches: Iterable, players: Iterable) -> Dict[str, str]:
        return label_historical_handicaps(matches, players, self.config)

    # ── Internals ───────────────────────────────────────────

    def _snapshot(self, players: Iterable, matches: Iterable) -> _Snapshot:
        history = load_matches(matches)
        return _Snapshot(
            history=history,
            forms=compute_forms(players, history, self.config),
            synergy=compute_synergy(history, self.config),
        )

    def _fixed_team(self, ids: List[str], snap: _Snapshot) -> Optional[GeneratedPair]:
        if not ids:
            return None
        p1 = snap.forms.get(str(ids[0]))
        if p1 is None:
            return None
        p2 = snap.forms.get(str(ids[1])) if len(ids) > 1 else None
        if p2 is None or p2.id == p1.id:
            return GeneratedPair(player1=p1, player2=p1, strength=p1.effective_rating, structure=0.0)
        return make_pair(p1, p2)

    def _match(self, team1: GeneratedPair, team2: GeneratedPair, cost: float,
               snap: _Snapshot) -> GeneratedMatch:
        return GeneratedMatch(
            team1=team1,
            team2=team2,
            match_cost=cost,
            handicap=compute_handicap(team1, team2, snap.history, self.config, now=self.now),
            analysis=analyze(team2, snap.synergy, max(0.0, 100.0 - cost)),
        )

    def _log(self, event: str, **kwargs):
        payload = {"event": event, **kwargs}
        self.logger.info(json.dumps(payload, default=str), extra={"profile": self.config.version})


# ── Module-level shortcuts (default config) ─────────────────


def find_opponents_for_team(fixed_ids, pool_ids, players, matches,
                            config: Optional[EngineConfig] = None,
                            now: Optional[datetime] = None) -> List[GeneratedMatch]:
    return MatchmakerService(config, now=now).find_opponents_for_team(fixed_ids, pool_ids, players, matches)


def find_best_partners(my_id, opponent_ids, pool_ids, players, matches,
                       config: Optional[EngineConfig] = None,
                       now: Optional[datetime] = None) -> List[GeneratedMatch]:
    return MatchmakerService(config, now=now).find_best_partners(
        my_id, opponent_ids, pool_ids, players, matches
    )


def predict_outcome(team1_ids, team2_ids, players, matches,
                    config: Optional[EngineConfig] = None,
                    now: Optional[datetime] = None) -> Optional[GeneratedMatch]:
    return MatchmakerService(config, now=now).predict_outcome(team1_ids, team2_ids, players, matches)


def run_auto_matchmaker(selected_ids, players, matches,
                        config: Optional[EngineConfig] = None,
                        rng: Optional[random.Random] = None,
                        now: Optional[datetime] = None) -> AutoMatchResult:
    return MatchmakerService(config, rng=rng, now=now).run_auto_matchmaker(selected_ids, players, matches)


def project_round_robin(teams, players, matches,
                        config: Optional[EngineConfig] = None) -> List[TeamProjection]:
    return MatchmakerService(config).project_round_robin(teams, players, matches)
