"""Excavation site catalogue and per-session artifact placement."""

from __future__ import annotations

import json
import random
from dataclasses import dataclass, field
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import Any, Iterable, Mapping, MutableMapping


class Difficulty(str, Enum):
    """Difficulty levels a session can be played at."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ArtifactCondition(str, Enum):
    """Preservation state of a submerged artifact."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


_MIN_PLACED_DEPTH = 0.3
_MAX_PLACED_DEPTH = 0.95
_DEPTH_JITTER = 0.15


@dataclass(frozen=True)
class EnvironmentalConditions:
    """Dive conditions at the site, shown to the player and in reports."""

    visibility: float = 100.0
    current_strength: float = 0.0
    temperature: float = 20.0
    depth: float = 10.0
    sediment_type: str = "sand"
    time_constraints: int = 1800

    def to_payload(self) -> dict[str, Any]:
        return {
            "visibility": self.visibility,
            "current_strength": self.current_strength,
            "temperature": self.temperature,
            "depth": self.depth,
            "sediment_type": self.sediment_type,
            "time_constraints": self.time_constraints,
        }


@dataclass(frozen=True)
class ArtifactPlacement:
    """Authored position of an artifact within a site."""

    artifact_id: str
    x: int
    y: int
    depth: float
    condition: ArtifactCondition


@dataclass
class SiteArtifact:
    """An artifact as placed for one play-through.

    ``depth`` is the excavation depth at which the artifact is revealed.
    """

    artifact_id: str
    x: int
    y: int
    depth: float
    condition: ArtifactCondition
    is_discovered: bool = False

    @property
    def grid_position(self) -> tuple[int, int]:
        return (self.x, self.y)


@dataclass(frozen=True)
class ExcavationSite:
    """A dig site authored by an administrator."""

    id: str
    name: str
    location: str
    historical_period: str
    description: str
    grid_width: int
    grid_height: int
    difficulty: Difficulty
    environmental_conditions: EnvironmentalConditions = field(
        default_factory=EnvironmentalConditions
    )
    artifacts: tuple[ArtifactPlacement, ...] = ()
    is_active: bool = True

    @property
    def total_cells(self) -> int:
        return self.grid_width * self.grid_height

    def contains(self, x: int, y: int) -> bool:
        return 0 <= x < self.grid_width and 0 <= y < self.grid_height


def _require_str(payload: Mapping[str, Any], key: str, *, site_id: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Site '{site_id}' must define a non-empty '{key}' string.")
    return value.strip()


def _require_positive_int(payload: Mapping[str, Any], key: str, *, site_id: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"Site '{site_id}' must define '{key}' as a positive integer.")
    return value


def _parse_conditions(payload: Any, *, site_id: str) -> EnvironmentalConditions:
    if payload is None:
        return EnvironmentalConditions()
    if not isinstance(payload, Mapping):
        raise ValueError(
            f"Site '{site_id}' must define 'environmental_conditions' as an object."
        )

    defaults = EnvironmentalConditions()
    try:
        return EnvironmentalConditions(
            visibility=float(payload.get("visibility", defaults.visibility)),
            current_strength=float(
                payload.get("current_strength", defaults.current_strength)
            ),
            temperature=float(payload.get("temperature", defaults.temperature)),
            depth=float(payload.get("depth", defaults.depth)),
            sediment_type=str(payload.get("sediment_type", defaults.sediment_type)),
            time_constraints=int(
                payload.get("time_constraints", defaults.time_constraints)
            ),
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Site '{site_id}' has invalid environmental conditions: {exc}"
        ) from exc


def _parse_artifacts(
    payload: Any, *, site_id: str, width: int, height: int
) -> tuple[ArtifactPlacement, ...]:
    if payload is None:
        return ()
    if not isinstance(payload, list):
        raise ValueError(f"Site '{site_id}' must define 'artifacts' as a list.")

    placements: list[ArtifactPlacement] = []
    seen_ids: set[str] = set()
    seen_positions: set[tuple[int, int]] = set()
    for index, entry in enumerate(payload):
        if not isinstance(entry, Mapping):
            raise ValueError(
                f"Artifact #{index} in site '{site_id}' must be an object definition."
            )

        artifact_id = entry.get("artifact_id")
        if not isinstance(artifact_id, str) or not artifact_id.strip():
            raise ValueError(
                f"Artifact #{index} in site '{site_id}' requires an 'artifact_id'."
            )
        artifact_id = artifact_id.strip()
        if artifact_id in seen_ids:
            raise ValueError(
                f"Site '{site_id}' places artifact '{artifact_id}' more than once."
            )
        seen_ids.add(artifact_id)

        x, y = entry.get("x"), entry.get("y")
        if not isinstance(x, int) or not isinstance(y, int):
            raise ValueError(
                f"Artifact '{artifact_id}' in site '{site_id}' needs integer 'x'/'y'."
            )
        if not (0 <= x < width and 0 <= y < height):
            raise ValueError(
                f"Artifact '{artifact_id}' in site '{site_id}' lies outside the grid."
            )
        if (x, y) in seen_positions:
            raise ValueError(
                f"Site '{site_id}' places two artifacts in cell ({x}, {y})."
            )
        seen_positions.add((x, y))

        depth = entry.get("depth", 0.5)
        if isinstance(depth, bool) or not isinstance(depth, (int, float)):
            raise ValueError(
                f"Artifact '{artifact_id}' in site '{site_id}' needs a numeric 'depth'."
            )
        if not 0 < depth <= 1:
            raise ValueError(
                f"Artifact '{artifact_id}' in site '{site_id}' must have 0 < depth <= 1."
            )

        try:
            condition = ArtifactCondition(entry.get("condition", "good"))
        except ValueError as exc:
            raise ValueError(
                f"Artifact '{artifact_id}' in site '{site_id}' has an unknown condition."
            ) from exc

        placements.append(
            ArtifactPlacement(
                artifact_id=artifact_id,
                x=x,
                y=y,
                depth=float(depth),
                condition=condition,
            )
        )

    return tuple(placements)


def load_sites_from_mapping(
    definitions: Mapping[str, Any],
) -> MutableMapping[str, ExcavationSite]:
    """Convert a mapping of site definitions into :class:`ExcavationSite` objects.

    The mapping is keyed by site identifier. Each entry carries ``name``,
    ``location``, ``historical_period``, ``description``, ``grid_width``,
    ``grid_height``, ``difficulty`` and optionally ``environmental_conditions``,
    ``artifacts`` and ``is_active``.
    """

    sites: dict[str, ExcavationSite] = {}
    for site_id, payload in definitions.items():
        if not isinstance(site_id, str) or not site_id.strip():
            raise ValueError("Site keys must be non-empty strings.")
        if not isinstance(payload, Mapping):
            raise ValueError(f"Site '{site_id}' must map to an object definition.")

        width = _require_positive_int(payload, "grid_width", site_id=site_id)
        height = _require_positive_int(payload, "grid_height", site_id=site_id)

        try:
            difficulty = Difficulty(payload.get("difficulty", "beginner"))
        except ValueError as exc:
            raise ValueError(f"Site '{site_id}' has an unknown difficulty.") from exc

        is_active = payload.get("is_active", True)
        if not isinstance(is_active, bool):
            raise ValueError(f"Site '{site_id}' must define 'is_active' as a boolean.")

        sites[site_id] = ExcavationSite(
            id=site_id,
            name=_require_str(payload, "name", site_id=site_id),
            location=_require_str(payload, "location", site_id=site_id),
            historical_period=_require_str(
                payload, "historical_period", site_id=site_id
            ),
            description=_require_str(payload, "description", site_id=site_id),
            grid_width=width,
            grid_height=height,
            difficulty=difficulty,
            environmental_conditions=_parse_conditions(
                payload.get("environmental_conditions"), site_id=site_id
            ),
            artifacts=_parse_artifacts(
                payload.get("artifacts"), site_id=site_id, width=width, height=height
            ),
            is_active=is_active,
        )

    return sites


def load_sites_from_file(path: str | Path) -> MutableMapping[str, ExcavationSite]:
    """Load site definitions from a JSON file on disk."""

    data_path = Path(path)
    with data_path.open("r", encoding="utf-8") as handle:
        raw_data = json.load(handle)

    if not isinstance(raw_data, Mapping):
        raise ValueError("Site files must contain an object at the top level.")

    return load_sites_from_mapping(raw_data)


def load_bundled_sites(
    package: str = "tidalexplorers.data",
    resource_name: str = "excavation_sites.json",
) -> MutableMapping[str, ExcavationSite]:
    """Read the demo sites shipped inside the package."""

    data_resource = resources.files(package).joinpath(resource_name)
    with data_resource.open("r", encoding="utf-8") as handle:
        raw_data = json.load(handle)

    if not isinstance(raw_data, Mapping):
        raise ValueError("Bundled sites must contain an object at the top level.")

    return load_sites_from_mapping(raw_data)


def place_artifacts(
    site: ExcavationSite,
    *,
    rng: random.Random | None = None,
) -> list[SiteArtifact]:
    """Return the artifacts for a new play-through of ``site``.

    Without ``rng`` the authored positions and depths are used as-is. With an
    ``rng`` each artifact moves to a distinct random cell and its reveal depth
    is jittered by up to 0.15 within [0.3, 0.95].
    """

    if rng is None:
        return [
            SiteArtifact(
                artifact_id=placement.artifact_id,
                x=placement.x,
                y=placement.y,
                depth=placement.depth,
                condition=placement.condition,
            )
            for placement in site.artifacts
        ]

    if len(site.artifacts) > site.total_cells:
        raise ValueError(f"Site '{site.id}' has more artifacts than grid cells.")

    cells = [(x, y) for x in range(site.grid_width) for y in range(site.grid_height)]
    positions = rng.sample(cells, len(site.artifacts))

    placed: list[SiteArtifact] = []
    for placement, (x, y) in zip(site.artifacts, positions):
        jitter = (rng.random() - 0.5) * 2 * _DEPTH_JITTER
        depth = max(_MIN_PLACED_DEPTH, min(_MAX_PLACED_DEPTH, placement.depth + jitter))
        placed.append(
            SiteArtifact(
                artifact_id=placement.artifact_id,
                x=x,
                y=y,
                depth=depth,
                condition=placement.condition,
            )
        )
    return placed


def active_sites(sites: Iterable[ExcavationSite]) -> list[ExcavationSite]:
    """Return active sites ordered by identifier."""

    return sorted((site for site in sites if site.is_active), key=lambda site: site.id)


__all__ = [
    "ArtifactCondition",
    "ArtifactPlacement",
    "Difficulty",
    "EnvironmentalConditions",
    "ExcavationSite",
    "SiteArtifact",
    "active_sites",
    "load_bundled_sites",
    "load_sites_from_file",
    "load_sites_from_mapping",
    "place_artifacts",
]
