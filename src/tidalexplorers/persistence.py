"""Session persistence utilities for excavation game sessions."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from .excavation import (
    GAME_TYPE,
    DocumentationEntry,
    DocumentationQuest,
    EntryType,
    ExcavationGameState,
    GridCell,
    ProtocolViolation,
    QuestType,
    ViolationType,
)
from .scoring import SiteReport
from .sites import ArtifactCondition, Difficulty, EnvironmentalConditions, SiteArtifact
from .tools import ViolationSeverity

logger = logging.getLogger("tidalexplorers.persistence")


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class CorruptGameStateError(ValueError):
    """Raised when a stored session cannot be decoded.

    Corrupt sessions are never silently replaced with an empty game, since
    that would throw away the player's progress.
    """

    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(f"Session '{session_id}' has corrupt game state: {message}")
        self.session_id = session_id


@dataclass(frozen=True)
class SessionAction:
    """One entry in a session's append-only action log."""

    timestamp: float
    type: str
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class GameSession:
    """A single play-through of an excavation site."""

    id: str
    user_id: str
    difficulty: Difficulty
    state: ExcavationGameState
    start_time: datetime
    status: SessionStatus = SessionStatus.ACTIVE
    end_time: datetime | None = None
    current_score: int = 0
    max_score: int = 1000
    completion_percentage: float = 0.0
    actions: List[SessionAction] = field(default_factory=list)
    final_report: SiteReport | None = None

    @property
    def game_type(self) -> str:
        return self.state.game_type

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    def record_action(self, action: SessionAction) -> None:
        self.actions.append(action)

    def add_score(self, points: int) -> None:
        """Add ``points`` while keeping the score within ``[0, max_score]``."""

        self.current_score = max(0, min(self.max_score, self.current_score + points))


def _state_to_payload(state: ExcavationGameState) -> Dict[str, object]:
    return {
        "game_type": state.game_type,
        "site_id": state.site_id,
        "grid_width": state.grid_width,
        "grid_height": state.grid_height,
        "current_tool_id": state.current_tool_id,
        "conditions": state.conditions.to_payload(),
        "time_limit": state.time_limit,
        "time_remaining": state.time_remaining,
        "cells": [
            {
                "x": cell.x,
                "y": cell.y,
                "excavated": cell.excavated,
                "excavation_depth": cell.excavation_depth,
                "contains_artifact": cell.contains_artifact,
                "artifact_id": cell.artifact_id,
                "notes": cell.notes,
            }
            for cell in state.cells
        ],
        "site_artifacts": [
            {
                "artifact_id": artifact.artifact_id,
                "x": artifact.x,
                "y": artifact.y,
                "depth": artifact.depth,
                "condition": artifact.condition.value,
                "is_discovered": artifact.is_discovered,
            }
            for artifact in state.site_artifacts
        ],
        "discovered_artifacts": list(state.discovered_artifacts),
        "documentation_entries": [
            {
                "id": entry.id,
                "timestamp": entry.timestamp,
                "x": entry.x,
                "y": entry.y,
                "entry_type": entry.entry_type.value,
                "content": entry.content,
                "artifact_id": entry.artifact_id,
                "is_required": entry.is_required,
                "is_complete": entry.is_complete,
            }
            for entry in state.documentation_entries
        ],
        "documentation_quests": [
            {
                "id": quest.id,
                "title": quest.title,
                "description": quest.description,
                "quest_type": quest.quest_type.value,
                "target_count": quest.target_count,
                "current_count": quest.current_count,
                "is_complete": quest.is_complete,
                "reward": quest.reward,
            }
            for quest in state.documentation_quests
        ],
        "protocol_violations": [
            {
                "id": violation.id,
                "timestamp": violation.timestamp,
                "violation_type": violation.violation_type.value,
                "description": violation.description,
                "severity": violation.severity.value,
                "points_penalty": violation.points_penalty,
                "x": violation.x,
                "y": violation.y,
            }
            for violation in state.protocol_violations
        ],
    }


def _list_of_objects(payload: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    value = payload.get(key, [])
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise ValueError(f"'{key}' must be a list")
    items = list(value)
    for item in items:
        if not isinstance(item, Mapping):
            raise ValueError(f"'{key}' entries must be objects")
    return items


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


def _state_from_payload(payload: Any) -> ExcavationGameState:
    if not isinstance(payload, Mapping):
        raise ValueError("game state must be an object")

    game_type = payload.get("game_type")
    if game_type != GAME_TYPE:
        raise ValueError(f"unsupported game type {game_type!r}")

    conditions_payload = payload.get("conditions", {})
    if not isinstance(conditions_payload, Mapping):
        raise ValueError("'conditions' must be an object")

    cells = [
        GridCell(
            x=int(cell["x"]),
            y=int(cell["y"]),
            excavated=bool(cell["excavated"]),
            excavation_depth=float(cell["excavation_depth"]),
            contains_artifact=bool(cell["contains_artifact"]),
            artifact_id=_optional_str(cell.get("artifact_id")),
            notes=_optional_str(cell.get("notes")),
        )
        for cell in _list_of_objects(payload, "cells")
    ]

    grid_width = int(payload["grid_width"])
    grid_height = int(payload["grid_height"])
    if len(cells) != grid_width * grid_height:
        raise ValueError("cell count does not match the grid dimensions")
    for cell in cells:
        if not 0.0 <= cell.excavation_depth <= 1.0:
            raise ValueError(f"cell ({cell.x}, {cell.y}) has depth outside [0, 1]")

    artifacts = [
        SiteArtifact(
            artifact_id=str(artifact["artifact_id"]),
            x=int(artifact["x"]),
            y=int(artifact["y"]),
            depth=float(artifact["depth"]),
            condition=ArtifactCondition(artifact["condition"]),
            is_discovered=bool(artifact.get("is_discovered", False)),
        )
        for artifact in _list_of_objects(payload, "site_artifacts")
    ]

    discovered = payload.get("discovered_artifacts", [])
    if isinstance(discovered, (str, bytes)) or not isinstance(discovered, Iterable):
        raise ValueError("'discovered_artifacts' must be a list")
    discovered_ids = [str(artifact_id) for artifact_id in discovered]
    if len(set(discovered_ids)) != len(discovered_ids):
        raise ValueError("'discovered_artifacts' contains duplicates")
    known_ids = {artifact.artifact_id for artifact in artifacts}
    if not set(discovered_ids) <= known_ids:
        raise ValueError("'discovered_artifacts' references unknown artifacts")

    entries = [
        DocumentationEntry(
            id=str(entry["id"]),
            timestamp=float(entry["timestamp"]),
            x=int(entry["x"]),
            y=int(entry["y"]),
            entry_type=EntryType(entry["entry_type"]),
            content=str(entry["content"]),
            artifact_id=_optional_str(entry.get("artifact_id")),
            is_required=bool(entry.get("is_required", False)),
            is_complete=bool(entry.get("is_complete", True)),
        )
        for entry in _list_of_objects(payload, "documentation_entries")
    ]

    quests = [
        DocumentationQuest(
            id=str(quest["id"]),
            title=str(quest["title"]),
            description=str(quest.get("description", "")),
            quest_type=QuestType(quest["quest_type"]),
            target_count=int(quest["target_count"]),
            current_count=int(quest.get("current_count", 0)),
            is_complete=bool(quest.get("is_complete", False)),
            reward=int(quest.get("reward", 0)),
        )
        for quest in _list_of_objects(payload, "documentation_quests")
    ]

    violations = [
        ProtocolViolation(
            id=str(violation["id"]),
            timestamp=float(violation["timestamp"]),
            violation_type=ViolationType(violation["violation_type"]),
            description=str(violation["description"]),
            severity=ViolationSeverity(violation["severity"]),
            points_penalty=int(violation["points_penalty"]),
            x=_optional_int(violation.get("x")),
            y=_optional_int(violation.get("y")),
        )
        for violation in _list_of_objects(payload, "protocol_violations")
    ]

    return ExcavationGameState(
        site_id=str(payload["site_id"]),
        grid_width=grid_width,
        grid_height=grid_height,
        cells=cells,
        site_artifacts=artifacts,
        conditions=EnvironmentalConditions(
            visibility=float(conditions_payload.get("visibility", 100.0)),
            current_strength=float(conditions_payload.get("current_strength", 0.0)),
            temperature=float(conditions_payload.get("temperature", 20.0)),
            depth=float(conditions_payload.get("depth", 10.0)),
            sediment_type=str(conditions_payload.get("sediment_type", "sand")),
            time_constraints=int(conditions_payload.get("time_constraints", 1800)),
        ),
        current_tool_id=str(payload["current_tool_id"]),
        discovered_artifacts=discovered_ids,
        documentation_entries=entries,
        documentation_quests=quests,
        protocol_violations=violations,
        time_limit=int(payload.get("time_limit", 0)),
        time_remaining=int(payload.get("time_remaining", 0)),
    )


def session_to_payload(session: GameSession) -> Dict[str, object]:
    """Return a JSON-serialisable representation of ``session``."""

    return {
        "id": session.id,
        "user_id": session.user_id,
        "game_type": session.game_type,
        "difficulty": session.difficulty.value,
        "status": session.status.value,
        "start_time": session.start_time.isoformat(),
        "end_time": session.end_time.isoformat() if session.end_time else None,
        "current_score": session.current_score,
        "max_score": session.max_score,
        "completion_percentage": session.completion_percentage,
        "state": _state_to_payload(session.state),
        "actions": [
            {"timestamp": action.timestamp, "type": action.type, "data": dict(action.data)}
            for action in session.actions
        ],
        "final_report": (
            session.final_report.to_payload() if session.final_report else None
        ),
    }


def session_from_payload(session_id: str, payload: Any) -> GameSession:
    """Rebuild a :class:`GameSession` from its stored payload.

    Raises:
        CorruptGameStateError: If any part of the payload is malformed.
    """

    try:
        if not isinstance(payload, Mapping):
            raise ValueError("session payload must be an object")

        end_time_raw = payload.get("end_time")
        report_raw = payload.get("final_report")
        actions = [
            SessionAction(
                timestamp=float(action["timestamp"]),
                type=str(action["type"]),
                data=dict(action.get("data") or {}),
            )
            for action in _list_of_objects(payload, "actions")
        ]

        return GameSession(
            id=str(payload["id"]),
            user_id=str(payload["user_id"]),
            difficulty=Difficulty(payload["difficulty"]),
            state=_state_from_payload(payload.get("state")),
            start_time=datetime.fromisoformat(str(payload["start_time"])),
            status=SessionStatus(payload["status"]),
            end_time=(
                datetime.fromisoformat(str(end_time_raw)) if end_time_raw else None
            ),
            current_score=int(payload.get("current_score", 0)),
            max_score=int(payload.get("max_score", 1000)),
            completion_percentage=float(payload.get("completion_percentage", 0.0)),
            actions=actions,
            final_report=(
                SiteReport.from_payload(report_raw) if report_raw is not None else None
            ),
        )
    except (KeyError, TypeError, ValueError) as exc:
        logger.error(
            "corrupt_game_state", extra={"session_id": session_id, "error": str(exc)}
        )
        raise CorruptGameStateError(session_id, str(exc)) from exc


def decode_session(session_id: str, blob: str) -> GameSession:
    """Parse a serialised session blob, failing loudly on malformed JSON."""

    try:
        payload = json.loads(blob)
    except json.JSONDecodeError as exc:
        logger.error(
            "corrupt_game_state", extra={"session_id": session_id, "error": str(exc)}
        )
        raise CorruptGameStateError(session_id, f"invalid JSON ({exc.msg})") from exc
    return session_from_payload(session_id, payload)


def encode_session(session: GameSession) -> str:
    return json.dumps(session_to_payload(session), indent=2)


class SessionStore(ABC):
    """Interface describing how game sessions are persisted."""

    @abstractmethod
    def save(self, session: GameSession) -> None:
        """Persist the session for later retrieval."""

    @abstractmethod
    def load(self, session_id: str) -> GameSession:
        """Return the session with the given identifier.

        Raises:
            KeyError: If the session cannot be found.
            CorruptGameStateError: If the stored data cannot be decoded.
        """

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Remove the stored session if it exists."""

    @abstractmethod
    def list_sessions(self) -> List[str]:
        """Return all session identifiers stored in this persistence layer."""

    def find_active_for_user(self, user_id: str) -> List[GameSession]:
        """Return the user's sessions that are still in progress.

        Unreadable sessions are skipped with a warning; loading one directly
        still raises :class:`CorruptGameStateError`.
        """

        matches: List[GameSession] = []
        for session_id in self.list_sessions():
            try:
                session = self.load(session_id)
            except CorruptGameStateError:
                logger.warning(
                    "corrupt_session_skipped", extra={"session_id": session_id}
                )
                continue
            if session.user_id == user_id and session.is_active:
                matches.append(session)
        return matches


class InMemorySessionStore(SessionStore):
    """Keep serialised sessions in local process memory.

    Sessions are stored encoded so every load hands out an independent copy,
    matching the read-modify-write behaviour of the file store.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, str] = {}

    def save(self, session: GameSession) -> None:
        self._sessions[_validate_session_id(session.id)] = encode_session(session)

    def load(self, session_id: str) -> GameSession:
        key = _validate_session_id(session_id)
        try:
            blob = self._sessions[key]
        except KeyError as exc:
            raise KeyError(f"Session '{session_id}' does not exist") from exc
        return decode_session(key, blob)

    def delete(self, session_id: str) -> None:
        key = _validate_session_id(session_id)
        self._sessions.pop(key, None)

    def list_sessions(self) -> List[str]:
        return sorted(self._sessions.keys())


class FileSessionStore(SessionStore):
    """Persist sessions as JSON files on disk."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def save(self, session: GameSession) -> None:
        session_file = self._session_path(session.id)
        session_file.write_text(encode_session(session), encoding="utf-8")

    def load(self, session_id: str) -> GameSession:
        session_file = self._session_path(session_id)
        if not session_file.exists():
            raise KeyError(f"Session '{session_id}' does not exist")
        return decode_session(
            _validate_session_id(session_id), session_file.read_text(encoding="utf-8")
        )

    def delete(self, session_id: str) -> None:
        session_file = self._session_path(session_id)
        if session_file.exists():
            session_file.unlink()

    def list_sessions(self) -> List[str]:
        return sorted(
            session_path.stem
            for session_path in self.storage_dir.glob("*.json")
            if session_path.is_file()
        )

    def _session_path(self, session_id: str) -> Path:
        validated = _validate_session_id(session_id)
        return self.storage_dir / f"{validated}.json"


def _validate_session_id(session_id: str) -> str:
    if not isinstance(session_id, str):
        raise TypeError("session_id must be a string")
    stripped = session_id.strip()
    if not stripped:
        raise ValueError("session_id must be a non-empty string")
    if "/" in stripped or "\\" in stripped or stripped.startswith("."):
        raise ValueError("session_id contains unsupported characters")
    return stripped


__all__ = [
    "CorruptGameStateError",
    "FileSessionStore",
    "GameSession",
    "InMemorySessionStore",
    "SessionAction",
    "SessionStatus",
    "SessionStore",
    "decode_session",
    "encode_session",
    "session_from_payload",
    "session_to_payload",
]
