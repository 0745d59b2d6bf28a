"""Typed excavation game state and the transitions that mutate it."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List

from .sites import (
    ArtifactCondition,
    Difficulty,
    EnvironmentalConditions,
    SiteArtifact,
)
from .tools import (
    DEFAULT_TOOL_ID,
    ExcavationTool,
    ViolationSeverity,
    explain_incompatibility,
    violation_severity_for,
)

GAME_TYPE = "excavation_simulation"

DOCUMENTATION_TOOL_BONUS = 10
SIEVE_BONUS = 10

VIOLATION_PENALTIES = {
    ViolationSeverity.MINOR: 5,
    ViolationSeverity.MODERATE: 10,
    ViolationSeverity.SEVERE: 25,
}

_CONDITION_BONUS = {
    ArtifactCondition.EXCELLENT: 50,
    ArtifactCondition.GOOD: 30,
    ArtifactCondition.FAIR: 15,
    ArtifactCondition.POOR: 5,
}

Clock = Callable[[], float]


class EntryType(str, Enum):
    """Kinds of field record a diver can file."""

    DISCOVERY = "discovery"
    MEASUREMENT = "measurement"
    PHOTO = "photo"
    NOTE = "note"
    SAMPLE = "sample"


REQUIRED_ENTRY_TYPES = frozenset(
    {EntryType.DISCOVERY, EntryType.MEASUREMENT, EntryType.PHOTO}
)


class QuestType(str, Enum):
    TAKE_PHOTOS = "take_photos"
    RECORD_MEASUREMENTS = "record_measurements"
    DOCUMENT_ARTIFACTS = "document_artifacts"
    COMPLETE_GRID_SURVEY = "complete_grid_survey"
    WRITE_FIELD_NOTES = "write_field_notes"


class ViolationType(str, Enum):
    IMPROPER_TOOL = "improper_tool"
    MISSING_DOCUMENTATION = "missing_documentation"
    RUSHED_EXCAVATION = "rushed_excavation"
    CONTAMINATION = "contamination"
    DAMAGE = "damage"


@dataclass
class GridCell:
    """One square of the dig site."""

    x: int
    y: int
    excavated: bool = False
    excavation_depth: float = 0.0
    contains_artifact: bool = False
    artifact_id: str | None = None
    notes: str | None = None

    def dig(self, increment: float) -> float:
        """Deepen the cell by ``increment`` and return the new depth.

        Depth never decreases and never exceeds 1.
        """

        if increment < 0:
            raise ValueError("excavation increment must not be negative")
        self.excavation_depth = min(1.0, self.excavation_depth + increment)
        if self.excavation_depth > 0:
            self.excavated = True
        return self.excavation_depth


@dataclass(frozen=True)
class DocumentationEntry:
    id: str
    timestamp: float
    x: int
    y: int
    entry_type: EntryType
    content: str
    artifact_id: str | None = None
    is_required: bool = False
    is_complete: bool = True


@dataclass
class DocumentationQuest:
    """A documentation goal that pays a bonus when reached."""

    id: str
    title: str
    description: str
    quest_type: QuestType
    target_count: int
    current_count: int = 0
    is_complete: bool = False
    reward: int = 0

    def advance(self, *, to: int | None = None) -> bool:
        """Increment (or set) progress; return ``True`` when this call completes it."""

        if self.is_complete:
            return False
        self.current_count = self.current_count + 1 if to is None else to
        if self.current_count >= self.target_count:
            self.is_complete = True
            return True
        return False


@dataclass(frozen=True)
class ProtocolViolation:
    id: str
    timestamp: float
    violation_type: ViolationType
    description: str
    severity: ViolationSeverity
    points_penalty: int
    x: int | None = None
    y: int | None = None


@dataclass
class ExcavationGameState:
    """Everything that changes while a site is being excavated.

    The state is owned by a single session and is only mutated through
    :func:`apply_excavation_action` and :func:`record_documentation` (plus tool
    changes), so its invariants hold between actions:

    * every cell depth is within ``[0, 1]`` and never decreases;
    * ``discovered_artifacts`` holds each site artifact id at most once;
    * ``protocol_violations`` only grows.
    """

    site_id: str
    grid_width: int
    grid_height: int
    cells: List[GridCell]
    site_artifacts: List[SiteArtifact]
    conditions: EnvironmentalConditions = field(default_factory=EnvironmentalConditions)
    current_tool_id: str = DEFAULT_TOOL_ID
    discovered_artifacts: List[str] = field(default_factory=list)
    documentation_entries: List[DocumentationEntry] = field(default_factory=list)
    documentation_quests: List[DocumentationQuest] = field(default_factory=list)
    protocol_violations: List[ProtocolViolation] = field(default_factory=list)
    time_limit: int = 0
    time_remaining: int = 0
    game_type: str = GAME_TYPE

    @classmethod
    def new(
        cls,
        *,
        site_id: str,
        grid_width: int,
        grid_height: int,
        site_artifacts: Iterable[SiteArtifact],
        difficulty: Difficulty,
        conditions: EnvironmentalConditions | None = None,
    ) -> "ExcavationGameState":
        """Create a fresh, untouched grid for a new session."""

        resolved_conditions = conditions or EnvironmentalConditions()
        artifacts = list(site_artifacts)
        cells = [
            GridCell(x=x, y=y) for x in range(grid_width) for y in range(grid_height)
        ]
        return cls(
            site_id=site_id,
            grid_width=grid_width,
            grid_height=grid_height,
            cells=cells,
            site_artifacts=artifacts,
            conditions=resolved_conditions,
            documentation_quests=initial_quests(
                Difficulty(difficulty), len(artifacts), len(cells)
            ),
            time_limit=resolved_conditions.time_constraints,
            time_remaining=resolved_conditions.time_constraints,
        )

    @property
    def total_cells(self) -> int:
        return len(self.cells)

    @property
    def excavated_cell_count(self) -> int:
        return sum(1 for cell in self.cells if cell.excavated)

    @property
    def severe_violation_count(self) -> int:
        return sum(
            1
            for violation in self.protocol_violations
            if violation.severity is ViolationSeverity.SEVERE
        )

    def cell_at(self, x: int, y: int) -> GridCell:
        """Return the cell at ``(x, y)``.

        Raises:
            ValueError: If the position lies outside the grid.
        """

        if not (0 <= x < self.grid_width and 0 <= y < self.grid_height):
            raise ValueError(
                f"Grid position ({x}, {y}) is outside the "
                f"{self.grid_width}x{self.grid_height} site."
            )
        return self.cells[x * self.grid_height + y]

    def artifact_at(self, x: int, y: int) -> SiteArtifact | None:
        for artifact in self.site_artifacts:
            if artifact.x == x and artifact.y == y:
                return artifact
        return None

    def find_artifact(self, artifact_id: str) -> SiteArtifact | None:
        for artifact in self.site_artifacts:
            if artifact.artifact_id == artifact_id:
                return artifact
        return None

    def required_documentation_total(self) -> int:
        """Number of required records a complete survey of this site needs.

        Each artifact needs a discovery record, a photo and a measurement; a
        site without artifacts still needs one of each.
        """

        return len(REQUIRED_ENTRY_TYPES) * max(1, len(self.site_artifacts))

    def completed_required_documentation(self) -> int:
        """Count finished required records, capped per entry type."""

        per_type_quota = max(1, len(self.site_artifacts))
        counts = {entry_type: 0 for entry_type in REQUIRED_ENTRY_TYPES}
        for entry in self.documentation_entries:
            if entry.is_required and entry.is_complete and entry.entry_type in counts:
                counts[entry.entry_type] += 1
        return sum(min(count, per_type_quota) for count in counts.values())


@dataclass
class ExcavationOutcome:
    """Feedback returned to the player after a tool is used on a cell."""

    success: bool
    discoveries: List[str] = field(default_factory=list)
    violations: List[ProtocolViolation] = field(default_factory=list)
    score_delta: int = 0
    messages: List[str] = field(default_factory=list)
    quests_completed: List[str] = field(default_factory=list)


@dataclass
class DocumentationOutcome:
    entry: DocumentationEntry
    quests_completed: List[str] = field(default_factory=list)
    bonus_score: int = 0


def _new_identifier(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def initial_quests(
    difficulty: Difficulty, artifact_count: int, total_cells: int
) -> list[DocumentationQuest]:
    """Seed the documentation quests for a session at ``difficulty``."""

    photo_targets = {
        Difficulty.BEGINNER: 3,
        Difficulty.INTERMEDIATE: 5,
        Difficulty.ADVANCED: 8,
    }
    measurement_targets = {
        Difficulty.BEGINNER: 4,
        Difficulty.INTERMEDIATE: 6,
        Difficulty.ADVANCED: 10,
    }

    quests = [
        DocumentationQuest(
            id="quest_photos",
            title="Site Photography",
            description="Take photos to document the excavation site",
            quest_type=QuestType.TAKE_PHOTOS,
            target_count=photo_targets[difficulty],
            reward=50,
        ),
        DocumentationQuest(
            id="quest_measurements",
            title="Record Measurements",
            description="Take accurate measurements of artifacts and features",
            quest_type=QuestType.RECORD_MEASUREMENTS,
            target_count=measurement_targets[difficulty],
            reward=50,
        ),
        DocumentationQuest(
            id="quest_artifacts",
            title="Document Artifacts",
            description="Create detailed documentation for discovered artifacts",
            quest_type=QuestType.DOCUMENT_ARTIFACTS,
            target_count=max(1, artifact_count // 2),
            reward=100,
        ),
    ]

    if difficulty in (Difficulty.INTERMEDIATE, Difficulty.ADVANCED):
        quests.append(
            DocumentationQuest(
                id="quest_field_notes",
                title="Field Notes",
                description=(
                    "Write detailed field notes about excavation methods and "
                    "observations"
                ),
                quest_type=QuestType.WRITE_FIELD_NOTES,
                target_count=3 if difficulty is Difficulty.INTERMEDIATE else 5,
                reward=75,
            )
        )

    if difficulty is Difficulty.ADVANCED:
        quests.append(
            DocumentationQuest(
                id="quest_grid_survey",
                title="Complete Grid Survey",
                description="Document at least 50% of the excavation grid",
                quest_type=QuestType.COMPLETE_GRID_SURVEY,
                target_count=max(1, total_cells // 2),
                reward=150,
            )
        )

    return quests


def discovery_score(
    artifact: SiteArtifact,
    tool: ExcavationTool,
    conditions: EnvironmentalConditions,
) -> int:
    """Points awarded for revealing ``artifact`` with ``tool``."""

    score = 100
    fragile = artifact.condition in (ArtifactCondition.FAIR, ArtifactCondition.POOR)
    if not (fragile and tool.id == "hard_brush"):
        score += 25
    score += _CONDITION_BONUS[artifact.condition]

    if conditions.visibility < 50:
        score += 20
    if conditions.current_strength > 5:
        score += 15
    if conditions.depth > 20:
        score += 10
    return score


def _update_grid_survey(state: ExcavationGameState, outcome: ExcavationOutcome) -> None:
    excavated = state.excavated_cell_count
    for quest in state.documentation_quests:
        if quest.quest_type is not QuestType.COMPLETE_GRID_SURVEY:
            continue
        if quest.advance(to=excavated):
            outcome.score_delta += quest.reward
            outcome.quests_completed.append(quest.title)
            outcome.messages.append(f"Quest completed: {quest.title}!")


def apply_excavation_action(
    state: ExcavationGameState,
    x: int,
    y: int,
    tool: ExcavationTool,
    *,
    clock: Clock = time.time,
) -> ExcavationOutcome:
    """Use ``tool`` on the cell at ``(x, y)``.

    An inappropriate tool is not rejected: the action is recorded as a
    protocol violation and the cell is left untouched.

    Raises:
        ValueError: If ``(x, y)`` lies outside the grid.
    """

    cell = state.cell_at(x, y)
    outcome = ExcavationOutcome(success=True)

    reason = explain_incompatibility(tool, cell)
    if reason is not None:
        severity = violation_severity_for(tool, cell)
        violation = ProtocolViolation(
            id=_new_identifier("violation"),
            timestamp=clock(),
            violation_type=ViolationType.IMPROPER_TOOL,
            description=reason,
            severity=severity,
            points_penalty=VIOLATION_PENALTIES[severity],
            x=x,
            y=y,
        )
        state.protocol_violations.append(violation)
        outcome.success = False
        outcome.violations.append(violation)
        outcome.messages.append(reason)
        return outcome

    if tool.is_documentation_tool:
        outcome.score_delta += DOCUMENTATION_TOOL_BONUS
        outcome.messages.append(f"Documented cell at position ({x}, {y})")
        return outcome

    if not tool.is_excavation_tool:
        outcome.score_delta += SIEVE_BONUS
        outcome.messages.append(f"Sieved sediment from position ({x}, {y})")
        return outcome

    depth = cell.dig(tool.depth_increment)

    artifact = state.artifact_at(x, y)
    if (
        artifact is not None
        and not artifact.is_discovered
        and depth >= artifact.depth
        and artifact.artifact_id not in state.discovered_artifacts
    ):
        artifact.is_discovered = True
        cell.contains_artifact = True
        cell.artifact_id = artifact.artifact_id
        state.discovered_artifacts.append(artifact.artifact_id)
        outcome.discoveries.append(artifact.artifact_id)
        outcome.score_delta += discovery_score(artifact, tool, state.conditions)
        outcome.messages.append(f"Artifact discovered at position ({x}, {y})")

    _update_grid_survey(state, outcome)
    return outcome


def record_documentation(
    state: ExcavationGameState,
    entry_type: EntryType | str,
    content: str,
    x: int,
    y: int,
    *,
    artifact_id: str | None = None,
    clock: Clock = time.time,
) -> DocumentationOutcome:
    """Append a field record to the session's documentation.

    Raises:
        ValueError: If the content is blank, the position is outside the
            grid, the artifact is unknown, or a photo targets an unexcavated
            cell.
    """

    kind = EntryType(entry_type)
    if not isinstance(content, str) or not content.strip():
        raise ValueError("Documentation content must be a non-empty string.")

    cell = state.cell_at(x, y)
    if kind is EntryType.PHOTO and not cell.excavated:
        raise ValueError(
            f"Cannot photograph cell ({x}, {y}) before it has been excavated."
        )
    if artifact_id is not None and state.find_artifact(artifact_id) is None:
        raise ValueError(f"Unknown artifact '{artifact_id}' for this site.")

    entry = DocumentationEntry(
        id=_new_identifier("doc"),
        timestamp=clock(),
        x=x,
        y=y,
        entry_type=kind,
        content=content.strip(),
        artifact_id=artifact_id,
        is_required=kind in REQUIRED_ENTRY_TYPES,
        is_complete=True,
    )
    state.documentation_entries.append(entry)

    outcome = DocumentationOutcome(entry=entry)
    for quest in state.documentation_quests:
        if quest.is_complete:
            continue
        matches = (
            (quest.quest_type is QuestType.TAKE_PHOTOS and kind is EntryType.PHOTO)
            or (
                quest.quest_type is QuestType.RECORD_MEASUREMENTS
                and kind is EntryType.MEASUREMENT
            )
            or (
                quest.quest_type is QuestType.DOCUMENT_ARTIFACTS
                and kind is EntryType.DISCOVERY
                and artifact_id is not None
            )
            or (quest.quest_type is QuestType.WRITE_FIELD_NOTES and kind is EntryType.NOTE)
        )
        if matches and quest.advance():
            outcome.quests_completed.append(quest.title)
            outcome.bonus_score += quest.reward

    return outcome


__all__ = [
    "DocumentationEntry",
    "DocumentationOutcome",
    "DocumentationQuest",
    "EntryType",
    "ExcavationGameState",
    "ExcavationOutcome",
    "GAME_TYPE",
    "GridCell",
    "ProtocolViolation",
    "QuestType",
    "REQUIRED_ENTRY_TYPES",
    "VIOLATION_PENALTIES",
    "ViolationType",
    "apply_excavation_action",
    "discovery_score",
    "initial_quests",
    "record_documentation",
]
