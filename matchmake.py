#!/usr/bin/env python3
"""
Command-line entry point: load a league snapshot and run one matchmaking query.

The snapshot is a JSON file exported from the roster store:
    {"players": [{"id": "1", "name": "An", "rating": 3.4, "active": true}, ...],
     "matches": [{"id": "m1", "date": "2026-02-01T19:00:00", "team1": ["1", "2"],
                  "team2": ["3", "4"], "score1": 11, "score2": 7}, ...]}

Usage:
    # Current ratings and form for every player:
    python matchmake.py forms league.json

    # Pair the selected players and build balanced matches:
    python matchmake.py auto league.json 1 2 3 4 5 6 7 8 --seed 7

    # Best opponents for a fixed team (pool = every other active player):
    python matchmake.py opponents league.json --team 1 2

    # Best partner for me against one or two opponents:
    python matchmake.py partners league.json --me 1 --vs 5

    # Handicap for a specific match:
    python matchmake.py predict league.json --team1 1 2 --team2 3 4

    # Label every past match balanced / favorite without lookahead:
    python matchmake.py history league.json

    # Expected round-robin standings ("A=1,2" means team A is players 1 and 2):
    python matchmake.py round-robin league.json A=1,2 B=3,4 C=5,6

    # Named profiles (built-in and profiles.yaml):
    python matchmake.py profiles
"""

import argparse
import json
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# .env must be loaded before matchmaker.config reads MATCHMAKER_* at import
from dotenv import find_dotenv, load_dotenv
load_dotenv(find_dotenv(usecwd=True))

from matchmaker.config import DEFAULT_PROFILE
from matchmaker.config_loader import ProfileNotFoundError, list_profiles, resolve_profile, serialize_overrides
from matchmaker.logging_config import setup_logging
from matchmaker.pairing import InputError
from matchmaker.records import load_players
from matchmaker.services.matchmaker_service import MatchmakerService

logger = logging.getLogger("matchmaker.cli")


def _load_snapshot(path: str) -> tuple[list, list]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return data.get("players", []), data.get("matches", [])


def _active_ids(players: list, service: MatchmakerService, exclude=()) -> list[str]:
    skip = {str(i) for i in exclude}
    return [p.id for p in load_players(players, service.config) if p.active and p.id not in skip]


def _team_label(team) -> str:
    if team.player1.id == team.player2.id:
        return team.player1.name
    return f"{team.player1.name} + {team.player2.name}"


def _print_matches(matches: list):
    if not matches:
        print("  No suitable matchups found.")
        return
    for n, m in enumerate(matches, 1):
        print(f"\n  {n}. {_team_label(m.team1)} ({m.team1.strength:.2f})"
              f"  vs  {_team_label(m.team2)} ({m.team2.strength:.2f})")
        print(f"     cost {m.match_cost:.3f}   quality {m.analysis.quality_score:.1f}"
              f"   opp. synergy {m.analysis.synergy:+.2f}   opp. form {m.analysis.form:+.2f}")
        if m.handicap:
            print(f"     Handicap: team {m.handicap.team} - {m.handicap.reason}")
            for line in m.handicap.details:
                print(f"       - {line}")
        else:
            print("     Balanced: no handicap")


def _parse_teams(entries: list[str]) -> list[dict]:
    teams = []
    for entry in entries:
        team_id, _, members = entry.partition("=")
        if not members:
            raise InputError(f"Team entry '{entry}' should look like NAME=ID1,ID2")
        teams.append({"id": team_id, "player_ids": [m for m in members.split(",") if m]})
    return teams


def main():
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("snapshot", help="JSON file with players and matches")
    common.add_argument("--profile", default=None, help="Config profile (v2, v1, or one from profiles.yaml)")
    common.add_argument("--seed", type=int, default=None, help="Seed for the pairing local search")
    common.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "WARNING"))

    parser = argparse.ArgumentParser(description="Doubles Matchmaker: balanced pairings and handicaps")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("profiles", help="List config profiles")
    sub.add_parser("forms", parents=[common], help="Show effective ratings")

    auto = sub.add_parser("auto", parents=[common], help="Pair selected players and build matches")
    auto.add_argument("player_ids", nargs="+")

    opp = sub.add_parser("opponents", parents=[common], help="Find opponents for a fixed team")
    opp.add_argument("--team", nargs=2, required=True, metavar="ID")

    partners = sub.add_parser("partners", parents=[common], help="Find my best partner")
    partners.add_argument("--me", required=True)
    partners.add_argument("--vs", nargs="+", required=True, metavar="ID")

    predict = sub.add_parser("predict", parents=[common], help="Handicap for a given match")
    predict.add_argument("--team1", nargs="+", required=True, metavar="ID")
    predict.add_argument("--team2", nargs="+", required=True, metavar="ID")

    sub.add_parser("history", parents=[common], help="Label past matches without lookahead")

    rr = sub.add_parser("round-robin", parents=[common], help="Project round-robin standings")
    rr.add_argument("teams", nargs="+", metavar="NAME=ID1,ID2")

    args = parser.parse_args()

    setup_logging(getattr(args, "log_level", "WARNING"))

    if args.command == "profiles":
        for name, profile in sorted(list_profiles().items()):
            print(f"  {name:<20} base {profile.base:<4} {profile.description or ''}")
        return

    players, matches = _load_snapshot(args.snapshot)
    overrides = {"swap_seed": args.seed}
    try:
        config = resolve_profile(args.profile or DEFAULT_PROFILE, overrides)
        logger.debug("Resolved profile %s with overrides %s", config.version,
                     serialize_overrides(overrides))
        service = MatchmakerService(config=config)
    except ProfileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    print(f"\n{'='*60}")
    print(f"  DOUBLES MATCHMAKER  (profile {service.config.version})")
    print(f"{'='*60}")

    try:
        if args.command == "forms":
            forms = service.compute_forms(players, matches)
            print(f"\n  {'Player':<20} {'Base':>6} {'Form':>7} {'Eff.':>6} {'L10 W%':>7}")
            print(f"  {'─'*50}")
            for f in sorted(forms.values(), key=lambda f: f.effective_rating, reverse=True):
                print(f"  {f.name:<20} {f.base_rating:>6.2f} {f.form:>+7.2f} "
                      f"{f.effective_rating:>6.2f} {f.last10_win_rate:>7.0%}")

        elif args.command == "auto":
            result = service.run_auto_matchmaker(args.player_ids, players, matches)
            print(f"\n  TEAMS ({len(result.pairs)})")
            for pair in result.pairs:
                print(f"    {_team_label(pair):<36} strength {pair.strength:.2f}  cost {pair.cost:.2f}")
            print(f"\n  MATCHES ({len(result.matches)})")
            _print_matches(result.matches)

        elif args.command == "opponents":
            pool = _active_ids(players, service, exclude=args.team)
            _print_matches(service.find_opponents_for_team(args.team, pool, players, matches))

        elif args.command == "partners":
            pool = _active_ids(players, service, exclude=[args.me, *args.vs])
            _print_matches(service.find_best_partners(args.me, args.vs, pool, players, matches))

        elif args.command == "predict":
            result = service.predict_outcome(args.team1, args.team2, players, matches)
            _print_matches([result] if result else [])

        elif args.command == "history":
            labels = service.label_history(matches, players)
            counts = {}
            for match_id, label in labels.items():
                counts[label] = counts.get(label, 0) + 1
                print(f"    {match_id:<24} {label}")
            print(f"\n  Totals: " + ", ".join(f"{k} {v}" for k, v in sorted(counts.items())))

        elif args.command == "round-robin":
            standings = service.project_round_robin(_parse_teams(args.teams), players, matches)
            print(f"\n  {'Team':<10} {'Players':<32} {'Str.':>6} {'Exp. W':>7}")
            print(f"  {'─'*58}")
            for s in standings:
                print(f"  {s.team_id:<10} {' + '.join(s.player_names):<32} "
                      f"{s.strength:>6.2f} {s.expected_wins:>7.2f}")

    except InputError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print()


if __name__ == "__main__":
    main()
