"""Core package for the Tidal Explorers excavation game."""

from .tools import (
    ExcavationTool,
    TOOL_CATALOGUE,
    ToolType,
    ViolationSeverity,
    get_tool,
    is_tool_compatible,
)
from .sites import (
    ArtifactCondition,
    Difficulty,
    EnvironmentalConditions,
    ExcavationSite,
    SiteArtifact,
    load_bundled_sites,
    load_sites_from_file,
    load_sites_from_mapping,
    place_artifacts,
)
from .excavation import (
    DocumentationEntry,
    DocumentationOutcome,
    EntryType,
    ExcavationGameState,
    ExcavationOutcome,
    GridCell,
    ProtocolViolation,
    apply_excavation_action,
    record_documentation,
)
from .scoring import (
    CompletionBreakdown,
    ScoringPolicy,
    SiteReport,
    build_site_report,
    completion_breakdown,
    compliance_score,
    score_state,
)
from .timer import CountdownTimer
from .persistence import (
    CorruptGameStateError,
    FileSessionStore,
    GameSession,
    InMemorySessionStore,
    SessionStatus,
    SessionStore,
)
from .progress import ProgressTracker, UserProgress
from .game_engine import (
    ExcavationGameService,
    GameStateView,
    SessionNotActiveError,
    ToolCheck,
)

__all__ = [
    "ExcavationTool",
    "TOOL_CATALOGUE",
    "ToolType",
    "ViolationSeverity",
    "get_tool",
    "is_tool_compatible",
    "ArtifactCondition",
    "Difficulty",
    "EnvironmentalConditions",
    "ExcavationSite",
    "SiteArtifact",
    "load_bundled_sites",
    "load_sites_from_file",
    "load_sites_from_mapping",
    "place_artifacts",
    "DocumentationEntry",
    "DocumentationOutcome",
    "EntryType",
    "ExcavationGameState",
    "ExcavationOutcome",
    "GridCell",
    "ProtocolViolation",
    "apply_excavation_action",
    "record_documentation",
    "CompletionBreakdown",
    "ScoringPolicy",
    "SiteReport",
    "build_site_report",
    "completion_breakdown",
    "compliance_score",
    "score_state",
    "CountdownTimer",
    "CorruptGameStateError",
    "FileSessionStore",
    "GameSession",
    "InMemorySessionStore",
    "SessionStatus",
    "SessionStore",
    "ProgressTracker",
    "UserProgress",
    "ExcavationGameService",
    "GameStateView",
    "SessionNotActiveError",
    "ToolCheck",
]
