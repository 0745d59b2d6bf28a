"""FastAPI application exposing the excavation game endpoints."""

from .app import build_game_service, create_app
from .settings import GameApiSettings

__all__ = ["build_game_service", "create_app", "GameApiSettings"]
