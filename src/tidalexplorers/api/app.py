"""FastAPI application exposing the excavation game endpoints."""

from __future__ import annotations

import random
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field, field_serializer, field_validator

from ..excavation import (
    DocumentationEntry,
    DocumentationQuest,
    EntryType,
    ExcavationGameState,
    ProtocolViolation,
)
from ..game_engine import ExcavationGameService, SessionNotActiveError
from ..persistence import (
    CorruptGameStateError,
    FileSessionStore,
    GameSession,
    InMemorySessionStore,
    SessionStore,
)
from ..progress import ProgressTracker, UserProgress
from ..scoring import SiteReport, score_state
from ..sites import (
    Difficulty,
    ExcavationSite,
    load_bundled_sites,
    load_sites_from_file,
)
from ..tools import TOOL_CATALOGUE, ExcavationTool
from .settings import GameApiSettings


def _require_text(value: Any, *, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string.")
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(f"{field_name} must not be empty.")
    return trimmed


class GameStartRequest(BaseModel):
    """Payload used to begin a new excavation session."""

    user_id: str
    site_id: str
    difficulty: Difficulty = Difficulty.BEGINNER

    @field_validator("user_id", "site_id", mode="before")
    @classmethod
    def _validate_identifier(cls, value: Any) -> str:
        return _require_text(value, field_name="Identifier")


class GameStartResponse(BaseModel):
    session_id: str


class ExcavationActionRequest(BaseModel):
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    tool_id: str


class ToolChangeRequest(BaseModel):
    tool_id: str


class DocumentationEntryRequest(BaseModel):
    """Payload for filing a documentation entry against a grid cell."""

    entry_type: EntryType
    content: str
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    artifact_id: str | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _validate_content(cls, value: Any) -> str:
        return _require_text(value, field_name="Documentation content")


class TimerSyncRequest(BaseModel):
    time_remaining: int = Field(..., ge=0)


class ProtocolViolationResource(BaseModel):
    id: str
    violation_type: str
    description: str
    severity: str
    points_penalty: int
    x: int | None = None
    y: int | None = None


class ExcavationActionResponse(BaseModel):
    """Feedback for a single tool use, including any protocol violations."""

    success: bool
    discoveries: list[str]
    violations: list[ProtocolViolationResource]
    score: int
    messages: list[str]
    quests_completed: list[str]
    current_score: int
    completion_percentage: float


class DocumentationEntryResource(BaseModel):
    id: str
    entry_type: EntryType
    content: str
    x: int
    y: int
    artifact_id: str | None = None
    is_required: bool
    is_complete: bool


class DocumentationEntryResponse(BaseModel):
    entry: DocumentationEntryResource
    quests_completed: list[str]
    bonus_score: int


class DocumentationQuestResource(BaseModel):
    id: str
    title: str
    description: str
    quest_type: str
    target_count: int
    current_count: int
    is_complete: bool
    reward: int


class SiteReportResource(BaseModel):
    overall_score: int
    completion_percentage: int
    artifacts_found: int
    total_artifacts: int
    documentation_quality: int
    protocol_compliance: int
    recommendations: list[str]
    digital_report: str


class GameSessionResource(BaseModel):
    """Summary of a game session without the full game state."""

    id: str
    user_id: str
    game_type: str
    difficulty: Difficulty
    status: str
    start_time: datetime
    end_time: datetime | None = None
    current_score: int
    max_score: int
    completion_percentage: float
    action_count: int

    @field_serializer("start_time")
    def _serialise_start_time(self, value: datetime) -> str:
        return value.isoformat()

    @field_serializer("end_time")
    def _serialise_end_time(self, value: datetime | None) -> str | None:
        return value.isoformat() if value is not None else None


class GridCellResource(BaseModel):
    x: int
    y: int
    excavated: bool
    excavation_depth: float
    contains_artifact: bool
    artifact_id: str | None = None


class SiteArtifactResource(BaseModel):
    artifact_id: str
    x: int
    y: int
    depth: float
    condition: str
    is_discovered: bool


class CompletionResource(BaseModel):
    excavation: float
    artifacts: float
    documentation: float
    overall: float
    compliance: float
    policy: str


class GameDataResource(BaseModel):
    current_tool_id: str
    time_limit: int
    time_remaining: int
    cells: list[GridCellResource]
    site_artifacts: list[SiteArtifactResource]
    discovered_artifacts: list[str]
    documentation_entries: list[DocumentationEntryResource]
    documentation_quests: list[DocumentationQuestResource]
    protocol_violations: list[ProtocolViolationResource]
    completion: CompletionResource


class ExcavationSiteResource(BaseModel):
    id: str
    name: str
    location: str
    historical_period: str
    description: str
    grid_width: int
    grid_height: int
    difficulty: Difficulty
    environmental_conditions: dict[str, Any]
    artifact_count: int


class SiteListResponse(BaseModel):
    data: list[ExcavationSiteResource]


class GameStateResponse(BaseModel):
    session: GameSessionResource
    site: ExcavationSiteResource
    game_data: GameDataResource
    final_report: SiteReportResource | None = None


class ToolResource(BaseModel):
    id: str
    name: str
    type: str
    description: str
    effectiveness: float
    depth_increment: float
    appropriate_for: list[str]


class ToolListResponse(BaseModel):
    data: list[ToolResource]


class ToolCheckResponse(BaseModel):
    tool_id: str
    x: int
    y: int
    allowed: bool
    reason: str | None = None


class UserProgressResource(BaseModel):
    user_id: str
    game_type: str
    sessions_completed: int
    best_score: int
    average_score: float
    last_played: datetime

    @field_serializer("last_played")
    def _serialise_last_played(self, value: datetime) -> str:
        return value.isoformat()


class UserProgressListResponse(BaseModel):
    data: list[UserProgressResource]


def _build_violation_resource(violation: ProtocolViolation) -> ProtocolViolationResource:
    return ProtocolViolationResource(
        id=violation.id,
        violation_type=violation.violation_type.value,
        description=violation.description,
        severity=violation.severity.value,
        points_penalty=violation.points_penalty,
        x=violation.x,
        y=violation.y,
    )


def _build_entry_resource(entry: DocumentationEntry) -> DocumentationEntryResource:
    return DocumentationEntryResource(
        id=entry.id,
        entry_type=entry.entry_type,
        content=entry.content,
        x=entry.x,
        y=entry.y,
        artifact_id=entry.artifact_id,
        is_required=entry.is_required,
        is_complete=entry.is_complete,
    )


def _build_quest_resource(quest: DocumentationQuest) -> DocumentationQuestResource:
    return DocumentationQuestResource(
        id=quest.id,
        title=quest.title,
        description=quest.description,
        quest_type=quest.quest_type.value,
        target_count=quest.target_count,
        current_count=quest.current_count,
        is_complete=quest.is_complete,
        reward=quest.reward,
    )


def _build_report_resource(report: SiteReport) -> SiteReportResource:
    return SiteReportResource(**report.to_payload())


def _build_session_resource(session: GameSession) -> GameSessionResource:
    return GameSessionResource(
        id=session.id,
        user_id=session.user_id,
        game_type=session.game_type,
        difficulty=session.difficulty,
        status=session.status.value,
        start_time=session.start_time,
        end_time=session.end_time,
        current_score=session.current_score,
        max_score=session.max_score,
        completion_percentage=session.completion_percentage,
        action_count=len(session.actions),
    )


def _build_site_resource(site: ExcavationSite) -> ExcavationSiteResource:
    return ExcavationSiteResource(
        id=site.id,
        name=site.name,
        location=site.location,
        historical_period=site.historical_period,
        description=site.description,
        grid_width=site.grid_width,
        grid_height=site.grid_height,
        difficulty=site.difficulty,
        environmental_conditions=site.environmental_conditions.to_payload(),
        artifact_count=len(site.artifacts),
    )


def _build_game_data_resource(
    state: ExcavationGameState, service: ExcavationGameService
) -> GameDataResource:
    breakdown = score_state(state, service.policy)
    return GameDataResource(
        current_tool_id=state.current_tool_id,
        time_limit=state.time_limit,
        time_remaining=state.time_remaining,
        cells=[
            GridCellResource(
                x=cell.x,
                y=cell.y,
                excavated=cell.excavated,
                excavation_depth=cell.excavation_depth,
                contains_artifact=cell.contains_artifact,
                artifact_id=cell.artifact_id,
            )
            for cell in state.cells
        ],
        site_artifacts=[
            SiteArtifactResource(
                artifact_id=artifact.artifact_id,
                x=artifact.x,
                y=artifact.y,
                depth=artifact.depth,
                condition=artifact.condition.value,
                is_discovered=artifact.is_discovered,
            )
            for artifact in state.site_artifacts
        ],
        discovered_artifacts=list(state.discovered_artifacts),
        documentation_entries=[
            _build_entry_resource(entry) for entry in state.documentation_entries
        ],
        documentation_quests=[
            _build_quest_resource(quest) for quest in state.documentation_quests
        ],
        protocol_violations=[
            _build_violation_resource(violation)
            for violation in state.protocol_violations
        ],
        completion=CompletionResource(
            excavation=breakdown.excavation,
            artifacts=breakdown.artifacts,
            documentation=breakdown.documentation,
            overall=breakdown.overall,
            compliance=breakdown.compliance,
            policy=service.policy.value,
        ),
    )


def _build_tool_resource(tool: ExcavationTool) -> ToolResource:
    return ToolResource(
        id=tool.id,
        name=tool.name,
        type=tool.type.value,
        description=tool.description,
        effectiveness=tool.effectiveness,
        depth_increment=tool.depth_increment,
        appropriate_for=list(tool.appropriate_for),
    )


def _build_progress_resource(record: UserProgress) -> UserProgressResource:
    return UserProgressResource(**record.to_payload())


def build_game_service(settings: GameApiSettings) -> ExcavationGameService:
    """Assemble the game service described by ``settings``."""

    if settings.site_path is not None:
        sites = load_sites_from_file(settings.site_path)
    else:
        sites = load_bundled_sites(settings.site_package, settings.site_resource_name)

    store: SessionStore
    if settings.session_root is not None:
        store = FileSessionStore(settings.session_root)
    else:
        store = InMemorySessionStore()

    rng: random.Random | None = None
    if settings.randomize_artifacts:
        rng = random.Random(settings.random_seed)

    return ExcavationGameService(
        sites,
        store=store,
        progress=ProgressTracker(root=settings.progress_root),
        policy=settings.scoring_policy,
        rng=rng,
    )


def create_app(
    game_service: ExcavationGameService | None = None,
    *,
    settings: GameApiSettings | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing the excavation game endpoints."""

    service = game_service
    if service is None:
        service = build_game_service(settings or GameApiSettings.from_env())

    tags_metadata = [
        {
            "name": "Games",
            "description": (
                "Start, play, complete and abandon excavation game sessions."
            ),
        },
        {
            "name": "Catalogue",
            "description": "Excavation sites and the tools available to divers.",
        },
        {
            "name": "Progress",
            "description": "Best and average scores for each student.",
        },
    ]

    app = FastAPI(
        title="Tidal Explorers Game API",
        version="0.1.0",
        description=(
            "HTTP API powering the Tidal Explorers excavation simulation. "
            "Each mutation is a single atomic update of the stored session."
        ),
        openapi_tags=tags_metadata,
    )

    @app.get("/api/sites", response_model=SiteListResponse, tags=["Catalogue"])
    def list_sites() -> SiteListResponse:
        return SiteListResponse(
            data=[_build_site_resource(site) for site in service.list_sites()]
        )

    @app.get("/api/tools", response_model=ToolListResponse, tags=["Catalogue"])
    def list_tools() -> ToolListResponse:
        return ToolListResponse(
            data=[_build_tool_resource(tool) for tool in TOOL_CATALOGUE.values()]
        )

    @app.post(
        "/api/games",
        response_model=GameStartResponse,
        status_code=201,
        tags=["Games"],
    )
    def start_game(payload: GameStartRequest) -> GameStartResponse:
        try:
            session_id = service.start_game(
                payload.user_id, payload.site_id, payload.difficulty
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except CorruptGameStateError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return GameStartResponse(session_id=session_id)

    @app.get(
        "/api/games/{session_id}",
        response_model=GameStateResponse,
        tags=["Games"],
    )
    def get_game_state(session_id: str) -> GameStateResponse:
        try:
            view = service.get_game_state(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except CorruptGameStateError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        report = view.session.final_report
        return GameStateResponse(
            session=_build_session_resource(view.session),
            site=_build_site_resource(view.site),
            game_data=_build_game_data_resource(view.state, service),
            final_report=_build_report_resource(report) if report else None,
        )

    @app.post(
        "/api/games/{session_id}/excavate",
        response_model=ExcavationActionResponse,
        tags=["Games"],
    )
    def excavate(
        session_id: str, payload: ExcavationActionRequest
    ) -> ExcavationActionResponse:
        try:
            outcome = service.process_excavation_action(
                session_id, payload.x, payload.y, payload.tool_id
            )
            view = service.get_game_state(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except SessionNotActiveError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except CorruptGameStateError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        penalty = sum(violation.points_penalty for violation in outcome.violations)
        return ExcavationActionResponse(
            success=outcome.success,
            discoveries=list(outcome.discoveries),
            violations=[
                _build_violation_resource(violation) for violation in outcome.violations
            ],
            score=outcome.score_delta - penalty,
            messages=list(outcome.messages),
            quests_completed=list(outcome.quests_completed),
            current_score=view.session.current_score,
            completion_percentage=view.session.completion_percentage,
        )

    @app.put("/api/games/{session_id}/tool", status_code=204, tags=["Games"])
    def change_tool(session_id: str, payload: ToolChangeRequest) -> None:
        try:
            service.change_tool(session_id, payload.tool_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except SessionNotActiveError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except CorruptGameStateError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get(
        "/api/games/{session_id}/tool-check",
        response_model=ToolCheckResponse,
        tags=["Games"],
    )
    def check_tool(
        session_id: str,
        *,
        x: int = Query(..., ge=0),
        y: int = Query(..., ge=0),
        tool_id: str = Query(..., description="Tool the player is hovering with."),
    ) -> ToolCheckResponse:
        try:
            check = service.check_tool(session_id, x, y, tool_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except CorruptGameStateError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return ToolCheckResponse(
            tool_id=check.tool_id,
            x=check.x,
            y=check.y,
            allowed=check.allowed,
            reason=check.reason,
        )

    @app.post(
        "/api/games/{session_id}/documentation",
        response_model=DocumentationEntryResponse,
        status_code=201,
        tags=["Games"],
    )
    def add_documentation(
        session_id: str, payload: DocumentationEntryRequest
    ) -> DocumentationEntryResponse:
        try:
            outcome = service.add_documentation_entry(
                session_id,
                payload.entry_type,
                payload.content,
                payload.x,
                payload.y,
                artifact_id=payload.artifact_id,
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except SessionNotActiveError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except CorruptGameStateError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        return DocumentationEntryResponse(
            entry=_build_entry_resource(outcome.entry),
            quests_completed=list(outcome.quests_completed),
            bonus_score=outcome.bonus_score,
        )

    @app.post(
        "/api/games/{session_id}/complete",
        response_model=SiteReportResource,
        tags=["Games"],
    )
    def complete_game(session_id: str) -> SiteReportResource:
        try:
            report = service.complete_game(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except SessionNotActiveError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except CorruptGameStateError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _build_report_resource(report)

    @app.post("/api/games/{session_id}/abandon", status_code=204, tags=["Games"])
    def abandon_game(session_id: str) -> None:
        try:
            service.abandon_game(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except SessionNotActiveError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except CorruptGameStateError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.put(
        "/api/games/{session_id}/timer",
        response_model=GameSessionResource,
        tags=["Games"],
    )
    def sync_timer(session_id: str, payload: TimerSyncRequest) -> GameSessionResource:
        try:
            session = service.sync_time_remaining(session_id, payload.time_remaining)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except SessionNotActiveError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except CorruptGameStateError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _build_session_resource(session)

    @app.get(
        "/api/users/{user_id}/progress",
        response_model=UserProgressListResponse,
        tags=["Progress"],
    )
    def get_user_progress(user_id: str) -> UserProgressListResponse:
        try:
            records = service.progress.list_for_user(user_id)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return UserProgressListResponse(
            data=[_build_progress_resource(record) for record in records]
        )

    return app


__all__ = ["build_game_service", "create_app"]
