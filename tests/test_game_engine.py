"""Tests for the excavation session state machine."""

from __future__ import annotations

import random

import pytest

from tidalexplorers import (
    CorruptGameStateError,
    ExcavationGameService,
    ProgressTracker,
    ScoringPolicy,
    SessionNotActiveError,
    SessionStatus,
)
from tidalexplorers.persistence import FileSessionStore


def _dig_everything(service: ExcavationGameService, session_id: str) -> None:
    state = service.get_game_state(session_id).state
    for cell in state.cells:
        service.process_excavation_action(session_id, cell.x, cell.y, "trowel")


def test_start_game_creates_active_session(service: ExcavationGameService) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")

    view = service.get_game_state(session_id)
    assert session_id == "session-1"
    assert view.session.status is SessionStatus.ACTIVE
    assert view.session.user_id == "diver"
    assert view.session.game_type == "excavation_simulation"
    assert view.site.id == "harbour"
    assert view.state.time_remaining == 600
    assert len(view.state.site_artifacts) == 3
    assert view.state.current_tool_id == "soft_brush"


def test_start_game_rejects_unknown_or_inactive_sites(
    service: ExcavationGameService,
) -> None:
    with pytest.raises(KeyError):
        service.start_game("diver", "atlantis", "beginner")
    with pytest.raises(ValueError):
        service.start_game("diver", "retired", "beginner")
    with pytest.raises(ValueError):
        service.start_game("diver", "harbour", "impossible")
    with pytest.raises(ValueError):
        service.start_game("not a valid id", "harbour", "beginner")


def test_list_sites_hides_inactive_sites(service: ExcavationGameService) -> None:
    assert [site.id for site in service.list_sites()] == ["harbour"]


def test_start_game_abandons_previous_active_session(
    service: ExcavationGameService,
) -> None:
    first = service.start_game("diver", "harbour", "beginner")
    other = service.start_game("someone", "harbour", "beginner")
    second = service.start_game("diver", "harbour", "advanced")

    assert service.get_game_state(first).session.status is SessionStatus.ABANDONED
    assert service.get_game_state(second).session.is_active
    assert service.get_game_state(other).session.is_active


def test_randomised_placement_is_seeded(make_service) -> None:
    first = make_service(rng=random.Random(3))
    second = make_service(rng=random.Random(3))

    a = first.get_game_state(first.start_game("diver", "harbour", "beginner"))
    b = second.get_game_state(second.start_game("diver", "harbour", "beginner"))

    assert [(x.x, x.y) for x in a.state.site_artifacts] == [
        (x.x, x.y) for x in b.state.site_artifacts
    ]


def test_excavation_updates_score_and_action_log(service: ExcavationGameService) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")

    outcome = service.process_excavation_action(session_id, 2, 2, "trowel")

    view = service.get_game_state(session_id)
    assert outcome.discoveries == ["plate"]
    assert view.session.current_score == outcome.score_delta
    assert view.session.completion_percentage > 0
    assert [action.type for action in view.session.actions] == ["excavation"]
    assert view.session.actions[0].data["discoveries"] == ["plate"]


def test_protocol_violation_deducts_penalty(service: ExcavationGameService) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")
    service.process_excavation_action(session_id, 2, 2, "trowel")
    before = service.get_game_state(session_id).session.current_score

    outcome = service.process_excavation_action(session_id, 0, 0, "underwater_camera")

    after = service.get_game_state(session_id).session.current_score
    assert outcome.violations[0].points_penalty == 25
    assert after == before - 25
    state = service.get_game_state(session_id).state
    assert state.cell_at(0, 0).excavation_depth == 0


def test_score_never_drops_below_zero(service: ExcavationGameService) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")
    service.process_excavation_action(session_id, 0, 0, "measuring_tape")

    assert service.get_game_state(session_id).session.current_score == 0


def test_unknown_tool_is_rejected(service: ExcavationGameService) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")

    with pytest.raises(ValueError):
        service.process_excavation_action(session_id, 0, 0, "jackhammer")
    with pytest.raises(ValueError):
        service.change_tool(session_id, "jackhammer")
    with pytest.raises(ValueError):
        service.check_tool(session_id, 0, 0, "jackhammer")
    with pytest.raises(ValueError):
        service.process_excavation_action(session_id, 9, 9, "trowel")

    assert service.get_game_state(session_id).session.actions == []


def test_change_tool_records_action_only_on_change(
    service: ExcavationGameService,
) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")

    service.change_tool(session_id, "soft_brush")
    service.change_tool(session_id, "probe")

    view = service.get_game_state(session_id)
    assert view.state.current_tool_id == "probe"
    assert [action.type for action in view.session.actions] == ["tool_change"]


def test_check_tool_is_advisory(service: ExcavationGameService) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")

    check = service.check_tool(session_id, 1, 1, "underwater_camera")
    assert check.allowed is False
    assert check.reason

    assert service.check_tool(session_id, 1, 1, "trowel").allowed
    assert service.get_game_state(session_id).state.protocol_violations == []


def test_documentation_awards_quest_bonus(service: ExcavationGameService) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")
    service.process_excavation_action(session_id, 2, 2, "trowel")
    before = service.get_game_state(session_id).session.current_score

    outcome = service.add_documentation_entry(
        session_id, "discovery", "Pewter plate", 2, 2, artifact_id="plate"
    )

    view = service.get_game_state(session_id)
    assert outcome.quests_completed == ["Document Artifacts"]
    assert view.session.current_score == before + outcome.bonus_score
    assert view.state.documentation_entries[0].id == outcome.entry.id
    assert view.session.actions[-1].type == "documentation"


def test_invalid_documentation_leaves_session_untouched(
    service: ExcavationGameService,
) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")

    with pytest.raises(ValueError):
        service.add_documentation_entry(session_id, "photo", "Too soon", 0, 0)

    view = service.get_game_state(session_id)
    assert view.state.documentation_entries == []
    assert view.session.actions == []


def test_complete_game_is_idempotent(service: ExcavationGameService) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")
    _dig_everything(service, session_id)

    report = service.complete_game(session_id)
    view = service.get_game_state(session_id)
    score = view.session.current_score
    action_count = len(view.session.actions)

    again = service.complete_game(session_id)

    view = service.get_game_state(session_id)
    assert again == report
    assert view.session.status is SessionStatus.COMPLETED
    assert view.session.end_time is not None
    assert view.session.current_score == score
    assert len(view.session.actions) == action_count
    assert view.session.actions[-1].type == "completed"
    progress = service.progress.get("diver", "excavation_simulation")
    assert progress is not None
    assert progress.sessions_completed == 1
    assert progress.best_score == report.overall_score


def test_complete_game_reports_scores(service: ExcavationGameService) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")
    _dig_everything(service, session_id)

    report = service.complete_game(session_id)

    assert report.artifacts_found == 3
    assert report.total_artifacts == 3
    assert report.protocol_compliance == 100
    # excavation 100, artifacts 100, documentation 0
    assert report.completion_percentage == 67
    assert report.overall_score == 67


def test_weighted_policy_changes_blend(make_service) -> None:
    service = make_service(policy=ScoringPolicy.WEIGHTED)
    session_id = service.start_game("diver", "harbour", "beginner")
    _dig_everything(service, session_id)

    assert service.complete_game(session_id).completion_percentage == 60


def test_terminal_sessions_reject_mutations(service: ExcavationGameService) -> None:
    abandoned = service.start_game("diver", "harbour", "beginner")
    service.abandon_game(abandoned)

    with pytest.raises(SessionNotActiveError):
        service.process_excavation_action(abandoned, 0, 0, "trowel")
    with pytest.raises(SessionNotActiveError):
        service.add_documentation_entry(abandoned, "note", "Late", 0, 0)
    with pytest.raises(SessionNotActiveError):
        service.change_tool(abandoned, "probe")
    with pytest.raises(SessionNotActiveError):
        service.abandon_game(abandoned)
    with pytest.raises(SessionNotActiveError):
        service.complete_game(abandoned)
    with pytest.raises(SessionNotActiveError):
        service.sync_time_remaining(abandoned, 10)

    completed = service.start_game("diver", "harbour", "beginner")
    service.complete_game(completed)
    with pytest.raises(SessionNotActiveError):
        service.abandon_game(completed)
    assert (
        service.get_game_state(completed).session.status is SessionStatus.COMPLETED
    )


def test_missing_session_raises_key_error(service: ExcavationGameService) -> None:
    with pytest.raises(KeyError):
        service.get_game_state("missing")
    with pytest.raises(KeyError):
        service.complete_game("missing")


def test_sync_time_remaining_is_clamped(service: ExcavationGameService) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")

    assert service.sync_time_remaining(session_id, 120).state.time_remaining == 120
    assert service.sync_time_remaining(session_id, 5_000).state.time_remaining == 600
    assert service.sync_time_remaining(session_id, -4).state.time_remaining == 0
    # the deadline is advisory; the session stays active until completed
    assert service.get_game_state(session_id).session.is_active


def test_sessions_survive_a_service_restart(make_service, tmp_path) -> None:
    first = make_service(store=FileSessionStore(tmp_path))
    session_id = first.start_game("diver", "harbour", "beginner")
    first.process_excavation_action(session_id, 2, 2, "trowel")

    second = make_service(store=FileSessionStore(tmp_path))
    view = second.get_game_state(session_id)
    assert view.state.discovered_artifacts == ["plate"]


def test_service_logs_lifecycle_events(service: ExcavationGameService, caplog) -> None:
    with caplog.at_level("INFO", logger="tidalexplorers.game_engine"):
        session_id = service.start_game("diver", "harbour", "beginner")
        service.complete_game(session_id)

    messages = [record.getMessage() for record in caplog.records]
    assert "session_started" in messages
    assert "session_completed" in messages


def test_corrupt_session_does_not_block_other_users(make_service, tmp_path) -> None:
    service = make_service(store=FileSessionStore(tmp_path))
    first = service.start_game("alice", "harbour", "beginner")
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")

    second = service.start_game("bob", "harbour", "beginner")

    assert service.get_game_state(second).session.is_active
    assert service.get_game_state(first).session.is_active
    with pytest.raises(CorruptGameStateError):
        service.get_game_state("broken")


def test_failed_progress_write_leaves_session_active(make_service, tmp_path) -> None:
    service = make_service(progress=ProgressTracker(root=tmp_path))
    (tmp_path / "alice.json").write_text("[]", encoding="utf-8")
    session_id = service.start_game("alice", "harbour", "beginner")

    with pytest.raises(ValueError):
        service.complete_game(session_id)

    view = service.get_game_state(session_id)
    assert view.session.status is SessionStatus.ACTIVE
    assert view.session.final_report is None
    assert view.session.end_time is None

    (tmp_path / "alice.json").unlink()
    report = service.complete_game(session_id)
    assert service.progress.get("alice", "excavation_simulation").best_score == (
        report.overall_score
    )
