"""Tests covering the terminal client and its command-line flags."""

from __future__ import annotations

import builtins
import json
from pathlib import Path

import pytest

from main import main, render_grid, run_cli
from tidalexplorers import SessionStatus


def _feed(monkeypatch, commands: list[str]) -> None:
    inputs = iter(commands)
    monkeypatch.setattr(builtins, "input", lambda prompt="": next(inputs))


def _write_sites(tmp_path: Path, payload) -> Path:
    path = tmp_path / "sites.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_main_plays_a_short_dive(tmp_path, monkeypatch, capsys, site_payload) -> None:
    site_path = _write_sites(tmp_path, site_payload)
    _feed(
        monkeypatch,
        [
            "help",
            "dig 2 2",
            "tool trowel",
            "dig 2 2",
            "doc discovery 2 2 @plate Pewter plate with maker's mark",
            "map",
            "status",
            "finish",
        ],
    )

    main(["--site-path", str(site_path), "--site", "harbour", "--user", "diver"])

    output = capsys.readouterr().out
    assert "Welcome to Harbour Test Site (Test Bay)." in output
    assert "You pick up the Archaeological Trowel." in output
    assert "Artifact discovered at position (2, 2)" in output
    assert "Quest completed: Document Artifacts! (+100)" in output
    assert "UNDERWATER ARCHAEOLOGICAL EXCAVATION REPORT" in output


def test_main_persists_sessions_when_directory_given(
    tmp_path, monkeypatch, site_payload
) -> None:
    site_path = _write_sites(tmp_path, site_payload)
    session_dir = tmp_path / "sessions"
    _feed(monkeypatch, ["dig 0 0", "quit"])

    main(
        [
            "--site-path",
            str(site_path),
            "--site",
            "harbour",
            "--session-dir",
            str(session_dir),
        ]
    )

    stored = list(session_dir.glob("*.json"))
    assert len(stored) == 1
    assert json.loads(stored[0].read_text(encoding="utf-8"))["status"] == "abandoned"


def test_main_lists_bundled_sites_without_a_site(capsys) -> None:
    main([])

    output = capsys.readouterr().out
    assert "port-royal-harbour" in output
    assert "mary-rose-survey" not in output


def test_main_rejects_unknown_site(tmp_path, capsys, site_payload) -> None:
    site_path = _write_sites(tmp_path, site_payload)

    with pytest.raises(SystemExit) as excinfo:
        main(["--site-path", str(site_path), "--site", "atlantis"])

    assert excinfo.value.code == 2
    assert "Cannot start a dive" in capsys.readouterr().out


def test_main_reports_unreadable_site_file(tmp_path, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--site-path", str(tmp_path / "missing.json"), "--site", "harbour"])

    assert excinfo.value.code == 2
    assert "Failed to load excavation sites" in capsys.readouterr().out


def test_run_cli_auto_completes_when_time_runs_out(service, capsys) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")
    ticks = iter([0.0, 10.0, 700.0])
    commands = iter(["dig 0 0", "status"])

    result = run_cli(
        service,
        session_id,
        input_func=lambda prompt: next(commands),
        clock=lambda: next(ticks),
    )

    assert result == "completed"
    output = capsys.readouterr().out
    assert "Time is up!" in output
    view = service.get_game_state(session_id)
    assert view.session.status is SessionStatus.COMPLETED
    assert view.state.time_remaining == 0
    assert view.state.cell_at(0, 0).excavated


def test_run_cli_reports_invalid_commands(service, capsys) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")
    commands = iter(["dig", "dig a b", "tool jackhammer", "doc photo 0 0 Frame", "fly", ""])

    def _read(prompt: str) -> str:
        try:
            return next(commands)
        except StopIteration:
            raise EOFError from None

    result = run_cli(service, session_id, input_func=_read, clock=lambda: 0.0)

    output = capsys.readouterr().out
    assert result == "abandoned"
    assert "Expected <x> <y> coordinates." in output
    assert "Coordinates must be whole numbers." in output
    assert "Invalid tool 'jackhammer'." in output
    assert "before it has been excavated" in output
    assert "Unknown command 'fly'" in output
    assert "Dive abandoned." in output


def test_render_grid_marks_progress(service) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")
    service.process_excavation_action(session_id, 2, 2, "trowel")
    service.process_excavation_action(session_id, 0, 0, "probe")

    grid = render_grid(service.get_game_state(session_id).state).splitlines()

    assert grid[0] == "   0 1 2 3 4"
    assert grid[1] == " 0 + . . . ."
    assert grid[3] == " 2 . . * . ."


def test_run_cli_stops_when_session_was_closed_elsewhere(service, capsys) -> None:
    session_id = service.start_game("diver", "harbour", "beginner")
    service.abandon_game(session_id)

    result = run_cli(
        service, session_id, input_func=lambda prompt: "map", clock=lambda: 0.0
    )

    assert result == "abandoned"
    assert "is abandoned, not active" in capsys.readouterr().out
