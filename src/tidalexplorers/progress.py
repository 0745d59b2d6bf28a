"""Per-user progress records updated whenever a session is completed."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def normalise_user_id(identifier: str) -> str:
    if not isinstance(identifier, str):
        raise TypeError("user_id must be a string")
    trimmed = identifier.strip()
    if not trimmed:
        raise ValueError("user_id must be a non-empty string")
    if not _USER_ID_PATTERN.match(trimmed):
        raise ValueError(
            "user_id may only contain letters, numbers, hyphens, or underscores."
        )
    return trimmed


@dataclass(frozen=True)
class UserProgress:
    user_id: str
    game_type: str
    sessions_completed: int
    best_score: int
    average_score: float
    last_played: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "game_type": self.game_type,
            "sessions_completed": self.sessions_completed,
            "best_score": self.best_score,
            "average_score": self.average_score,
            "last_played": self.last_played.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "UserProgress":
        if not isinstance(payload, dict):
            raise ValueError("Progress payload must be an object.")
        try:
            return cls(
                user_id=str(payload["user_id"]),
                game_type=str(payload["game_type"]),
                sessions_completed=int(payload["sessions_completed"]),
                best_score=int(payload["best_score"]),
                average_score=float(payload["average_score"]),
                last_played=datetime.fromisoformat(str(payload["last_played"])),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid progress payload: {exc}") from exc


class ProgressTracker:
    """Track best and average scores per user and game type.

    Records live in memory unless ``root`` is given, in which case each user
    gets a JSON file under that directory.
    """

    def __init__(self, root: Path | None = None) -> None:
        self._root = root
        self._records: dict[tuple[str, str], UserProgress] = {}

    def get(self, user_id: str, game_type: str) -> UserProgress | None:
        normalised = normalise_user_id(user_id)
        if self._root is None:
            return self._records.get((normalised, game_type))
        return _read_user(self._root, normalised).get(game_type)

    def list_for_user(self, user_id: str) -> list[UserProgress]:
        normalised = normalise_user_id(user_id)
        if self._root is None:
            records = [
                record
                for (owner, _), record in self._records.items()
                if owner == normalised
            ]
        else:
            records = list(_read_user(self._root, normalised).values())
        return sorted(records, key=lambda record: record.game_type)

    def record_completion(
        self,
        user_id: str,
        game_type: str,
        score: int,
        *,
        played_at: datetime | None = None,
    ) -> UserProgress:
        """Fold a finished session's score into the user's record."""

        normalised = normalise_user_id(user_id)
        timestamp = played_at or datetime.now(timezone.utc)
        existing = self.get(normalised, game_type)

        if existing is None:
            updated = UserProgress(
                user_id=normalised,
                game_type=game_type,
                sessions_completed=1,
                best_score=score,
                average_score=float(score),
                last_played=timestamp,
            )
        else:
            completed = existing.sessions_completed + 1
            updated = replace(
                existing,
                sessions_completed=completed,
                best_score=max(existing.best_score, score),
                average_score=(
                    existing.average_score * existing.sessions_completed + score
                )
                / completed,
                last_played=timestamp,
            )

        if self._root is None:
            self._records[(normalised, game_type)] = updated
        else:
            records = _read_user(self._root, normalised)
            records[game_type] = updated
            _write_user(self._root, normalised, records)
        return updated


def _path_for(root: Path, user_id: str) -> Path:
    return root / f"{user_id}.json"


def _read_user(root: Path, user_id: str) -> dict[str, UserProgress]:
    path = _path_for(root, user_id)
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Progress file for '{user_id}' is not valid JSON.") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"Progress file for '{user_id}' must contain an object.")
    return {
        game_type: UserProgress.from_payload(entry)
        for game_type, entry in payload.items()
    }


def _write_user(root: Path, user_id: str, records: dict[str, UserProgress]) -> None:
    root.mkdir(parents=True, exist_ok=True)
    payload = {game_type: record.to_payload() for game_type, record in records.items()}
    _path_for(root, user_id).write_text(json.dumps(payload, indent=2), encoding="utf-8")


__all__ = ["ProgressTracker", "UserProgress", "normalise_user_id"]
