"""Tests for the excavation and documentation transitions."""

from __future__ import annotations

import pytest

from tidalexplorers.excavation import (
    EntryType,
    ExcavationGameState,
    QuestType,
    ViolationType,
    apply_excavation_action,
    discovery_score,
    initial_quests,
    record_documentation,
)
from tidalexplorers.sites import (
    ArtifactCondition,
    Difficulty,
    EnvironmentalConditions,
    SiteArtifact,
)
from tidalexplorers.tools import TOOL_CATALOGUE, ViolationSeverity, get_tool


def _clock() -> float:
    return 42.0


def _state(
    *,
    artifacts: list[SiteArtifact] | None = None,
    difficulty: Difficulty = Difficulty.BEGINNER,
    width: int = 5,
    height: int = 5,
) -> ExcavationGameState:
    if artifacts is None:
        artifacts = [
            SiteArtifact(
                artifact_id="plate",
                x=2,
                y=2,
                depth=0.5,
                condition=ArtifactCondition.GOOD,
            )
        ]
    return ExcavationGameState.new(
        site_id="harbour",
        grid_width=width,
        grid_height=height,
        site_artifacts=artifacts,
        difficulty=difficulty,
        conditions=EnvironmentalConditions(time_constraints=300),
    )


def test_new_state_starts_untouched() -> None:
    state = _state()

    assert state.total_cells == 25
    assert state.excavated_cell_count == 0
    assert state.current_tool_id == "soft_brush"
    assert state.time_limit == state.time_remaining == 300
    assert state.game_type == "excavation_simulation"
    assert all(cell.excavation_depth == 0 for cell in state.cells)
    assert state.cell_at(3, 1).x == 3 and state.cell_at(3, 1).y == 1


def test_cell_at_rejects_positions_outside_grid() -> None:
    state = _state()
    with pytest.raises(ValueError):
        state.cell_at(5, 0)
    with pytest.raises(ValueError):
        state.cell_at(0, -1)


def test_trowel_reveals_artifact_once_and_caps_depth() -> None:
    state = _state()
    trowel = get_tool("trowel")

    first = apply_excavation_action(state, 2, 2, trowel, clock=_clock)
    cell = state.cell_at(2, 2)
    assert cell.excavation_depth == pytest.approx(0.6)
    assert cell.excavated
    assert first.discoveries == ["plate"]
    assert cell.contains_artifact and cell.artifact_id == "plate"
    assert state.discovered_artifacts == ["plate"]
    assert first.score_delta > 0

    second = apply_excavation_action(state, 2, 2, trowel, clock=_clock)
    assert cell.excavation_depth == 1.0
    assert second.discoveries == []
    assert second.violations == []
    assert state.discovered_artifacts == ["plate"]


def test_camera_on_unexcavated_cell_is_severe_violation() -> None:
    state = _state()

    outcome = apply_excavation_action(
        state, 1, 1, get_tool("underwater_camera"), clock=_clock
    )

    assert state.cell_at(1, 1).excavation_depth == 0
    assert not state.cell_at(1, 1).excavated
    assert outcome.success is False
    assert outcome.discoveries == []
    assert len(outcome.violations) == 1
    violation = outcome.violations[0]
    assert violation.severity is ViolationSeverity.SEVERE
    assert violation.violation_type is ViolationType.IMPROPER_TOOL
    assert violation.points_penalty == 25
    assert (violation.x, violation.y) == (1, 1)
    assert state.protocol_violations == [violation]


def test_digging_a_finished_cell_is_moderate_violation() -> None:
    state = _state()
    trowel = get_tool("trowel")
    apply_excavation_action(state, 0, 0, trowel, clock=_clock)
    apply_excavation_action(state, 0, 0, trowel, clock=_clock)

    outcome = apply_excavation_action(state, 0, 0, trowel, clock=_clock)

    assert state.cell_at(0, 0).excavation_depth == 1.0
    assert [v.severity for v in outcome.violations] == [ViolationSeverity.MODERATE]
    assert outcome.violations[0].points_penalty == 10


def test_documentation_tool_and_sieve_do_not_change_depth() -> None:
    state = _state()
    apply_excavation_action(state, 1, 0, get_tool("soft_brush"), clock=_clock)
    depth = state.cell_at(1, 0).excavation_depth

    for tool_id in ("underwater_camera", "measuring_tape", "sieve"):
        outcome = apply_excavation_action(state, 1, 0, get_tool(tool_id), clock=_clock)
        assert outcome.violations == []
        assert outcome.score_delta == 10
        assert state.cell_at(1, 0).excavation_depth == depth


def test_depth_never_decreases_and_discoveries_bounded() -> None:
    state = _state(
        artifacts=[
            SiteArtifact("a", 0, 0, 0.3, ArtifactCondition.POOR),
            SiteArtifact("b", 1, 1, 0.9, ArtifactCondition.EXCELLENT),
        ],
        width=2,
        height=2,
    )
    previous = {(cell.x, cell.y): cell.excavation_depth for cell in state.cells}
    sequence = ["probe", "trowel", "underwater_camera", "hard_brush", "sieve"] * 3

    for index, tool_id in enumerate(sequence):
        x, y = index % 2, (index // 2) % 2
        apply_excavation_action(state, x, y, TOOL_CATALOGUE[tool_id], clock=_clock)
        for cell in state.cells:
            assert 0.0 <= cell.excavation_depth <= 1.0
            assert cell.excavation_depth >= previous[(cell.x, cell.y)]
            previous[(cell.x, cell.y)] = cell.excavation_depth
        assert len(state.discovered_artifacts) <= len(state.site_artifacts)
        assert len(set(state.discovered_artifacts)) == len(state.discovered_artifacts)


def test_discovery_score_rewards_condition_and_conditions() -> None:
    artifact = SiteArtifact("a", 0, 0, 0.5, ArtifactCondition.EXCELLENT)
    calm = EnvironmentalConditions()
    harsh = EnvironmentalConditions(visibility=30, current_strength=8, depth=25)

    assert discovery_score(artifact, get_tool("trowel"), calm) == 175
    assert discovery_score(artifact, get_tool("trowel"), harsh) == 220

    fragile = SiteArtifact("b", 0, 0, 0.5, ArtifactCondition.POOR)
    assert discovery_score(fragile, get_tool("hard_brush"), calm) == 105
    assert discovery_score(fragile, get_tool("soft_brush"), calm) == 130


def test_record_documentation_appends_required_entry() -> None:
    state = _state()
    apply_excavation_action(state, 2, 2, get_tool("trowel"), clock=_clock)

    outcome = record_documentation(
        state, "discovery", "  Pewter plate  ", 2, 2, artifact_id="plate", clock=_clock
    )

    assert outcome.entry.content == "Pewter plate"
    assert outcome.entry.entry_type is EntryType.DISCOVERY
    assert outcome.entry.is_required
    assert outcome.entry.timestamp == 42.0
    assert state.documentation_entries == [outcome.entry]
    assert state.completed_required_documentation() == 1
    assert state.required_documentation_total() == 3
    # one artifact => artifact quest target of 1
    assert outcome.quests_completed == ["Document Artifacts"]
    assert outcome.bonus_score == 100


def test_notes_are_not_required_documentation() -> None:
    state = _state()
    outcome = record_documentation(state, EntryType.NOTE, "Silty layer", 0, 0)

    assert not outcome.entry.is_required
    assert state.completed_required_documentation() == 0


def test_repeated_photos_count_once_per_artifact() -> None:
    artifacts = [
        SiteArtifact(artifact_id=name, x=x, y=4, depth=0.5, condition=ArtifactCondition.GOOD)
        for x, name in enumerate(["plate", "pipe", "watch"])
    ]
    state = _state(artifacts=artifacts)
    apply_excavation_action(state, 0, 0, get_tool("trowel"), clock=_clock)

    for _ in range(9):
        record_documentation(state, "photo", "Frame", 0, 0, clock=_clock)

    assert state.required_documentation_total() == 9
    assert state.completed_required_documentation() == 3

    record_documentation(state, "measurement", "40 cm", 0, 0, clock=_clock)
    record_documentation(state, "discovery", "Sherd", 0, 0, clock=_clock)
    assert state.completed_required_documentation() == 5


@pytest.mark.parametrize(
    ("entry_type", "content", "x", "y", "artifact_id"),
    [
        ("note", "   ", 0, 0, None),
        ("note", "Outside", 7, 0, None),
        ("photo", "Too early", 3, 3, None),
        ("discovery", "Mystery", 0, 0, "ghost"),
        ("sketch", "Unknown type", 0, 0, None),
    ],
)
def test_record_documentation_rejects_invalid_entries(
    entry_type: str, content: str, x: int, y: int, artifact_id: str | None
) -> None:
    state = _state()

    with pytest.raises(ValueError):
        record_documentation(state, entry_type, content, x, y, artifact_id=artifact_id)

    assert state.documentation_entries == []


def test_photo_quest_completes_after_target() -> None:
    state = _state()
    apply_excavation_action(state, 0, 0, get_tool("probe"), clock=_clock)

    completed: list[str] = []
    for _ in range(3):
        completed += record_documentation(state, "photo", "Frame", 0, 0).quests_completed

    assert completed == ["Site Photography"]
    quest = next(
        q for q in state.documentation_quests if q.quest_type is QuestType.TAKE_PHOTOS
    )
    assert quest.is_complete and quest.current_count == 3


def test_initial_quests_scale_with_difficulty() -> None:
    beginner = initial_quests(Difficulty.BEGINNER, 4, 36)
    advanced = initial_quests(Difficulty.ADVANCED, 4, 36)

    assert {quest.quest_type for quest in beginner} == {
        QuestType.TAKE_PHOTOS,
        QuestType.RECORD_MEASUREMENTS,
        QuestType.DOCUMENT_ARTIFACTS,
    }
    targets = {quest.quest_type: quest.target_count for quest in advanced}
    assert targets[QuestType.TAKE_PHOTOS] == 8
    assert targets[QuestType.WRITE_FIELD_NOTES] == 5
    assert targets[QuestType.COMPLETE_GRID_SURVEY] == 18
    assert targets[QuestType.DOCUMENT_ARTIFACTS] == 2


def test_grid_survey_quest_tracks_excavated_cells() -> None:
    state = _state(artifacts=[], difficulty=Difficulty.ADVANCED, width=2, height=2)
    probe = get_tool("probe")

    first = apply_excavation_action(state, 0, 0, probe, clock=_clock)
    assert first.quests_completed == []

    second = apply_excavation_action(state, 0, 1, probe, clock=_clock)
    assert second.quests_completed == ["Complete Grid Survey"]
    assert second.score_delta == 150
