"""Runtime settings for elementary assertion derivation."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .errors import InputContractError

WTI_ENDPOINT_ENV_VAR = "WIKIPEDIA_TITLE_INDEX_ENDPOINT"
DEFAULT_WTI_TIMEOUT_MS = 2000
DEFAULT_WTI_HEALTH_PATH = "/health"


def _check_keys(section: str, data: Mapping[str, Any], allowed) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise InputContractError(f"Unknown {section} settings: {', '.join(unknown)}")


def _positive_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InputContractError(f"{section}.{key} must be a positive integer")
    return value


@dataclass(frozen=True)
class HeuristicWindows:
    """Token windows used by the fallback bucket heuristics.

    ``theme`` bounds how far (in token index) a fallback theme may start after
    its predicate. ``location_preposition`` bounds the scan for a spatial
    preposition after the predicate and ``location_noun`` how far past that
    preposition the location mention may start. ``copula_attribute`` and
    ``make_sure_lookahead`` are the number of tokens inspected after a copula
    and after ``make`` respectively. Theme mentions with at least
    ``oversized_theme_tokens`` tokens are candidates for trimming.
    """

    theme: int = 8
    location_preposition: int = 9
    location_noun: int = 5
    copula_attribute: int = 3
    make_sure_lookahead: int = 3
    oversized_theme_tokens: int = 5

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "HeuristicWindows":
        data = data or {}
        names = [f.name for f in fields(cls)]
        _check_keys("heuristics", data, names)
        return cls(**{k: _positive_int("heuristics", k, v) for k, v in data.items()})


@dataclass(frozen=True)
class WtiSettings:
    """Connection settings for the wikipedia-title-index service."""

    endpoint: Optional[str] = None
    timeout_ms: int = DEFAULT_WTI_TIMEOUT_MS
    health_path: str = DEFAULT_WTI_HEALTH_PATH

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "WtiSettings":
        data = data or {}
        _check_keys("wti", data, ("endpoint", "timeout_ms", "health_path"))
        endpoint = data.get("endpoint")
        if endpoint is not None and not isinstance(endpoint, str):
            raise InputContractError("wti.endpoint must be a string")
        timeout_ms = data.get("timeout_ms", DEFAULT_WTI_TIMEOUT_MS)
        health_path = data.get("health_path", DEFAULT_WTI_HEALTH_PATH)
        if not isinstance(health_path, str) or not health_path.startswith("/"):
            raise InputContractError("wti.health_path must be a string starting with '/'")
        return cls(
            endpoint=(endpoint.strip() or None) if endpoint else None,
            timeout_ms=_positive_int("wti", "timeout_ms", timeout_ms),
            health_path=health_path,
        )


@dataclass(frozen=True)
class Settings:
    wti: WtiSettings = field(default_factory=WtiSettings)
    heuristics: HeuristicWindows = field(default_factory=HeuristicWindows)

    def to_dict(self) -> Dict[str, Any]:
        return {"wti": self.wti.to_dict(), "heuristics": self.heuristics.to_dict()}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Settings":
        data = data or {}
        if not isinstance(data, Mapping):
            raise InputContractError("Settings must be a mapping")
        _check_keys("top-level", data, ("wti", "heuristics"))
        return cls(
            wti=WtiSettings.from_dict(data.get("wti")),
            heuristics=HeuristicWindows.from_dict(data.get("heuristics")),
        )


def load_settings(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, then apply the environment.

    ``WIKIPEDIA_TITLE_INDEX_ENDPOINT`` overrides ``wti.endpoint`` when set to a
    non-blank value.
    """

    env = os.environ if env is None else env
    raw: Any = {}
    if path is not None:
        settings_path = Path(path)
        try:
            with settings_path.open("r", encoding="utf-8") as handle:
                raw = yaml.safe_load(handle)
        except (OSError, yaml.YAMLError) as exc:
            raise InputContractError(f"Error reading settings {settings_path}: {exc}") from exc
        if raw is None:
            raw = {}
    settings = Settings.from_dict(raw)

    endpoint = (env.get(WTI_ENDPOINT_ENV_VAR) or "").strip()
    if endpoint:
        settings = Settings(
            wti=WtiSettings(
                endpoint=endpoint,
                timeout_ms=settings.wti.timeout_ms,
                health_path=settings.wti.health_path,
            ),
            heuristics=settings.heuristics,
        )
    return settings


__all__ = [
    "DEFAULT_WTI_HEALTH_PATH",
    "DEFAULT_WTI_TIMEOUT_MS",
    "HeuristicWindows",
    "Settings",
    "WTI_ENDPOINT_ENV_VAR",
    "WtiSettings",
    "load_settings",
]
