"""Test configuration for the Tidal Explorers project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from tidalexplorers import (
    ExcavationGameService,
    ExcavationSite,
    InMemorySessionStore,
    load_sites_from_mapping,
)


def site_definitions() -> dict[str, Any]:
    """Return a small catalogue with one playable site and one retired site."""

    return {
        "harbour": {
            "name": "Harbour Test Site",
            "location": "Test Bay",
            "historical_period": "17th century",
            "description": "A shallow harbour with a handful of finds.",
            "grid_width": 5,
            "grid_height": 5,
            "difficulty": "beginner",
            "environmental_conditions": {
                "visibility": 80,
                "current_strength": 2,
                "temperature": 24,
                "depth": 6,
                "sediment_type": "silt",
                "time_constraints": 600,
            },
            "artifacts": [
                {
                    "artifact_id": "plate",
                    "x": 2,
                    "y": 2,
                    "depth": 0.5,
                    "condition": "good",
                },
                {
                    "artifact_id": "pipe",
                    "x": 0,
                    "y": 4,
                    "depth": 0.4,
                    "condition": "fair",
                },
                {
                    "artifact_id": "watch",
                    "x": 4,
                    "y": 1,
                    "depth": 0.6,
                    "condition": "excellent",
                },
            ],
        },
        "retired": {
            "name": "Retired Site",
            "location": "Nowhere",
            "historical_period": "Unknown",
            "description": "No longer open for dives.",
            "grid_width": 3,
            "grid_height": 3,
            "difficulty": "advanced",
            "is_active": False,
        },
    }


class FakeClock:
    """Monotonic clock advancing one second per call."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        self.value += 1.0
        return self.value


@pytest.fixture()
def site_payload() -> dict[str, Any]:
    return site_definitions()


@pytest.fixture()
def sites(site_payload: dict[str, Any]) -> dict[str, ExcavationSite]:
    return dict(load_sites_from_mapping(site_payload))


@pytest.fixture()
def make_service(sites: dict[str, ExcavationSite]) -> Callable[..., ExcavationGameService]:
    """Factory fixture building services with deterministic ids and clocks."""

    def _factory(**overrides: Any) -> ExcavationGameService:
        counter = iter(range(1, 10_000))
        options: dict[str, Any] = {
            "store": InMemorySessionStore(),
            "clock": FakeClock(),
            "now": lambda: datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
            "id_factory": lambda: f"session-{next(counter)}",
        }
        options.update(overrides)
        return ExcavationGameService(sites, **options)

    return _factory


@pytest.fixture()
def service(make_service: Callable[..., ExcavationGameService]) -> ExcavationGameService:
    return make_service()


__all__ = ["FakeClock", "site_definitions"]
