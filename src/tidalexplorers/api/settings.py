"""Configuration helpers for deploying the FastAPI game service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from ..scoring import ScoringPolicy


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _parse_bool(value: str | None, *, name: str, default: bool) -> bool:
    if value is None or not value.strip():
        return default

    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean flag (true/false).")


@dataclass(frozen=True)
class GameApiSettings:
    """Deployment settings for the FastAPI application.

    The helper reads from environment variables so the API can be configured without
    modifying application code. Paths are expanded to support ``~`` prefixes while
    empty strings are treated as if the variable was unset.
    """

    site_package: str = "tidalexplorers.data"
    site_resource_name: str = "excavation_sites.json"
    site_path: Path | None = None
    session_root: Path | None = None
    progress_root: Path | None = None
    scoring_policy: ScoringPolicy = ScoringPolicy.MEAN
    randomize_artifacts: bool = False
    random_seed: int | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GameApiSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        site_package = _normalise_string(
            source.get("TIDAL_SITE_PACKAGE"),
            default="tidalexplorers.data",
        )
        site_resource = _normalise_string(
            source.get("TIDAL_SITE_RESOURCE"),
            default="excavation_sites.json",
        )
        site_path = _normalise_path(source.get("TIDAL_SITE_PATH"))
        session_root = _normalise_path(source.get("TIDAL_SESSION_ROOT"))
        progress_root = _normalise_path(source.get("TIDAL_PROGRESS_ROOT"))

        policy_raw = _normalise_string(
            source.get("TIDAL_SCORING_POLICY"), default=ScoringPolicy.MEAN.value
        )
        try:
            scoring_policy = ScoringPolicy(policy_raw.lower())
        except ValueError as exc:
            raise ValueError(
                "TIDAL_SCORING_POLICY must be either 'mean' or 'weighted'."
            ) from exc

        randomize_artifacts = _parse_bool(
            source.get("TIDAL_RANDOMIZE_ARTIFACTS"),
            name="TIDAL_RANDOMIZE_ARTIFACTS",
            default=False,
        )

        random_seed: int | None = None
        seed_raw = source.get("TIDAL_RANDOM_SEED")
        if seed_raw is not None and seed_raw.strip():
            try:
                random_seed = int(seed_raw.strip())
            except ValueError as exc:
                raise ValueError("TIDAL_RANDOM_SEED must be an integer.") from exc

        return cls(
            site_package=site_package,
            site_resource_name=site_resource,
            site_path=site_path,
            session_root=session_root,
            progress_root=progress_root,
            scoring_policy=scoring_policy,
            randomize_artifacts=randomize_artifacts,
            random_seed=random_seed,
        )


__all__ = ["GameApiSettings"]
