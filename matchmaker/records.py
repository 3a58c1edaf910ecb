"""
Normalize roster and match records handed to the engine.

The roster store and match log are external. They hand over plain dicts
(JSON exports, sheet rows) whose ids may be numbers or strings, whose
scores may be blank and whose dates may be malformed. Everything here
turns those into Player / Match records the engine can trust:

  - ids are always strings ("02" and 2 never collide silently)
  - unparsable scores become 0
  - unparsable dates become "now"
  - base ratings on an old 1000-point scale fall back to the default

None of these anomalies raise; they are logged at DEBUG and recovered.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from matchmaker.config import EngineConfig

logger = logging.getLogger(__name__)

RATING_KEYS = ("rating", "tournament_rating", "initial_points")


@dataclass(frozen=True)
class Player:
    id: str
    name: str
    base_rating: float
    active: bool = True


@dataclass(frozen=True)
class Match:
    id: str
    date: datetime
    team1: tuple
    team2: tuple
    score1: int = 0
    score2: int = 0
    winner: Optional[int] = None
    type: Optional[str] = None
    ranking_points: Optional[float] = None

    @property
    def winning_side(self) -> int:
        """1 or 2. Tied scores fall back to the recorded winner, then side 1."""
        if self.score1 > self.score2:
            return 1
        if self.score2 > self.score1:
            return 2
        return 2 if self.winner == 2 else 1

    @property
    def is_binary(self) -> bool:
        """A 1-0 / 0-1 result carries no margin information."""
        return {self.score1, self.score2} == {0, 1}

    def side_of(self, player_id: str) -> Optional[int]:
        if player_id in self.team1:
            return 1
        if player_id in self.team2:
            return 2
        return None


def _safe_score(value, match_id: str) -> int:
    if value is None or value == "":
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug("Unparsable score %r in match %s, using 0", value, match_id)
        return 0
    if math.isnan(number) or math.isinf(number):
        logger.debug("Non-finite score %r in match %s, using 0", value, match_id)
        return 0
    return int(number)


def parse_date(value, match_id: str = "?") -> datetime:
    """Parse a match date to an aware UTC datetime. Bad input means now."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparsable date %r in match %s, using now", value, match_id)
            return datetime.now(timezone.utc)
    else:
        logger.debug("Missing date in match %s, using now", match_id)
        return datetime.now(timezone.utc)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_base_rating(raw, config: EngineConfig) -> float:
    """Missing, zero or legacy-scale (> 20) ratings fall back to the default."""
    try:
        rating = float(raw) if raw not in (None, "") else 0.0
    except (TypeError, ValueError):
        rating = 0.0
    if math.isnan(rating) or rating == 0 or rating > config.legacy_rating_ceiling:
        return config.default_base_rating
    return rating


def to_player(raw, config: EngineConfig) -> Player:
    if isinstance(raw, Player):
        return raw
    source = None
    for key in RATING_KEYS:
        if raw.get(key):
            source = raw[key]
            break
    return Player(
        id=str(raw["id"]),
        name=raw.get("name") or str(raw["id"]),
        base_rating=normalize_base_rating(source, config),
        active=raw.get("active", raw.get("is_active", True)) is not False,
    )


def to_match(raw) -> Match:
    if isinstance(raw, Match):
        return raw
    match_id = str(raw.get("id", "?"))
    winner = raw.get("winner")
    try:
        winner = int(winner) if winner not in (None, "") else None
    except (TypeError, ValueError):
        winner = None
    return Match(
        id=match_id,
        date=parse_date(raw.get("date"), match_id),
        team1=tuple(str(i) for i in (raw.get("team1") or ())),
        team2=tuple(str(i) for i in (raw.get("team2") or ())),
        score1=_safe_score(raw.get("score1"), match_id),
        score2=_safe_score(raw.get("score2"), match_id),
        winner=winner,
        type=raw.get("type"),
        ranking_points=raw.get("ranking_points"),
    )


def load_players(players: Iterable, config: EngineConfig) -> list[Player]:
    return [to_player(p, config) for p in players or ()]


def load_matches(matches: Iterable) -> list[Match]:
    return [to_match(m) for m in matches or ()]


def margin_ratio(match: Match, config: EngineConfig) -> float:
    """Score margin as a share of a game to 11; flat placeholder before cutover."""
    if match.date < config.score_aware_cutover:
        return config.legacy_margin_ratio
    return clamp(abs(match.score1 - match.score2) / config.game_to, 0.0, 1.0)


def is_score_aware(match: Match, config: EngineConfig) -> bool:
    return match.date >= config.score_aware_cutover


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def pair_key(id1: str, id2: str) -> str:
    """Order-independent key for two players: "a-b" with ids sorted."""
    return "-".join(sorted((str(id1), str(id2))))


def matchup_key(ids: Iterable) -> str:
    """Order-independent key for the four players of a doubles match."""
    return "-".join(sorted(str(i) for i in ids))


def most_recent(matches: list[Match], limit: int) -> list[Match]:
    return sorted(matches, key=lambda m: m.date, reverse=True)[:limit]


def recent_pair_keys(matches: list[Match], limit: int) -> set[str]:
    """Teammate pairs from the ``limit`` most recent matches."""
    keys = set()
    for m in most_recent(matches, limit):
        for team in (m.team1, m.team2):
            if len(team) == 2:
                keys.add(pair_key(*team))
    return keys


def recent_matchup_keys(matches: list[Match], limit: int) -> set[str]:
    """Four-player sets from the ``limit`` most recent 2v2 matches."""
    keys = set()
    for m in most_recent(matches, limit):
        if len(m.team1) == 2 and len(m.team2) == 2:
            keys.add(matchup_key(m.team1 + m.team2))
    return keys
