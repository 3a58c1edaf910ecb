"""Configuration helpers (profiles.yaml, CLI overrides)."""
from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from matchmaker.config import PROFILES, EngineConfig

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_PROFILES_PATH = PROJECT_ROOT / "profiles.yaml"


@dataclass
class ProfileConfig:
    """Represents a profile as written in profiles.yaml (not yet resolved)."""

    name: str
    base: str = "v2"
    values: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None


class ProfileNotFoundError(RuntimeError):
    pass


def _coerce_value(name: str, value: Any) -> Any:
    # YAML gives lists and strings where EngineConfig wants tuples/datetimes
    if name == "handicap_tiers" and value is not None:
        return tuple((float(t), int(p)) for t, p in value)
    if name == "score_aware_cutover" and value is not None:
        if isinstance(value, str):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        elif not isinstance(value, datetime):
            # yaml parses bare dates to datetime.date
            value = datetime(value.year, value.month, value.day)
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
    return value


def _load_profiles_file(path: Path = DEFAULT_PROFILES_PATH) -> Dict[str, ProfileConfig]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    profiles_section = raw.get("profiles", raw)
    profiles: Dict[str, ProfileConfig] = {}
    for name, body in profiles_section.items():
        if not isinstance(body, dict):
            continue
        description = body.get("description")
        base = body.get("base", "v2")
        values = {k: v for k, v in body.items() if k not in ("description", "base")}
        profiles[name] = ProfileConfig(name=name, base=base, values=values, description=description)
    return profiles


def list_profiles(path: Path = DEFAULT_PROFILES_PATH) -> Dict[str, ProfileConfig]:
    """Return built-in profiles plus any defined in the file."""
    profiles = {
        name: ProfileConfig(name=name, base=name, description="built-in")
        for name in PROFILES
    }
    profiles.update(_load_profiles_file(path))
    return profiles


def resolve_profile(
    profile_name: str,
    overrides: Optional[Dict[str, Any]] = None,
    path: Path = DEFAULT_PROFILES_PATH,
) -> EngineConfig:
    """Return an EngineConfig merged from the profile plus explicit overrides.

    File profiles start from their ``base`` built-in profile; a file entry
    with the same name as a built-in profile overrides it.
    """
    file_profiles = _load_profiles_file(path)
    profile = file_profiles.get(profile_name)
    if profile is None and profile_name not in PROFILES:
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in {path}. "
            "Create it or choose another profile."
        )

    if profile is None:
        config = PROFILES[profile_name]
        values: Dict[str, Any] = {}
    else:
        base_name = profile_name if profile_name in PROFILES else profile.base
        if base_name not in PROFILES:
            raise ProfileNotFoundError(
                f"Profile '{profile_name}' extends unknown base '{profile.base}'."
            )
        config = PROFILES[base_name]
        values = dict(profile.values)
        values.setdefault("version", profile_name)

    if overrides:
        for key, value in overrides.items():
            if value is not None:
                values[key] = value

    known = {f.name for f in fields(EngineConfig)}
    coerced = {k: _coerce_value(k, v) for k, v in values.items() if k in known}
    return config.replace(**coerced)


def serialize_overrides(overrides: Dict[str, Any]) -> str:
    """Return a JSON string for logging debug purposes."""
    return json.dumps(overrides, sort_keys=True, default=str)
