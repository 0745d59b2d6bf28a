"""Command-line entry point for playing an excavation in the terminal."""

from __future__ import annotations

import argparse
import logging
import random
import time
from pathlib import Path
from typing import Callable, Sequence

from tidalexplorers import (
    CountdownTimer,
    Difficulty,
    ExcavationGameService,
    FileSessionStore,
    InMemorySessionStore,
    ScoringPolicy,
    SessionNotActiveError,
    SessionStore,
    SiteReport,
    TOOL_CATALOGUE,
    load_bundled_sites,
    load_sites_from_file,
    score_state,
)
from tidalexplorers.excavation import ExcavationGameState

_HELP_LINES = (
    ("dig <x> <y>", "Use the selected tool on a grid cell."),
    ("tool <tool-id>", "Switch to another tool."),
    ("tools", "List the available tools."),
    ("check <x> <y>", "Ask whether the selected tool suits a cell."),
    (
        "doc <type> <x> <y> [@artifact-id] <text>",
        "File a discovery, measurement, photo, note or sample record.",
    ),
    ("map", "Show the dig grid."),
    ("status", "Show score, completion and time remaining."),
    ("finish", "Complete the dive and print the site report."),
    ("quit", "Abandon the dive without completing it."),
)


def render_grid(state: ExcavationGameState) -> str:
    """Draw the grid: ``.`` untouched, ``+`` partly dug, ``#`` dug out, ``*`` find."""

    header = "   " + " ".join(str(x) for x in range(state.grid_width))
    rows = [header]
    for y in range(state.grid_height):
        symbols = []
        for x in range(state.grid_width):
            cell = state.cell_at(x, y)
            if cell.contains_artifact:
                symbols.append("*")
            elif cell.excavation_depth >= 1:
                symbols.append("#")
            elif cell.excavated:
                symbols.append("+")
            else:
                symbols.append(".")
        rows.append(f"{y:>2} " + " ".join(symbols))
    return "\n".join(rows)


def format_report(report: SiteReport) -> str:
    return report.digital_report or (
        f"Overall score: {report.overall_score}/100 "
        f"({report.artifacts_found}/{report.total_artifacts} artifacts)"
    )


def _parse_coordinates(parts: Sequence[str]) -> tuple[int, int]:
    if len(parts) < 2:
        raise ValueError("Expected <x> <y> coordinates.")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise ValueError("Coordinates must be whole numbers.") from exc


def run_cli(
    service: ExcavationGameService,
    session_id: str,
    *,
    input_func: Callable[[str], str] | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> str:
    """Drive a small interactive loop; return the final session status."""

    read = input_func or input
    view = service.get_game_state(session_id)
    site = view.site
    expired = False

    def _on_expire() -> None:
        nonlocal expired
        expired = True

    timer = CountdownTimer(view.state.time_remaining, on_expire=_on_expire)
    last_tick = clock()

    print(f"Welcome to {site.name} ({site.location}).")
    print(site.description)
    print(
        f"Grid {site.grid_width}x{site.grid_height}, "
        f"{timer.remaining_seconds} seconds of air. Type 'help' for commands."
    )
    print()
    print(render_grid(view.state))

    while True:
        try:
            raw = read("> ")
        except EOFError:
            raw = "quit"

        now = clock()
        timer.tick(now - last_tick)
        last_tick = now

        try:
            service.sync_time_remaining(session_id, timer.remaining_seconds)
            if expired:
                print("Time is up! Surfacing and writing up the site report...")
                print(format_report(service.complete_game(session_id)))
                return "completed"

            parts = raw.strip().split()
            if not parts:
                continue
            command, args = parts[0].lower(), parts[1:]

            if command in {"quit", "q", "exit"}:
                timer.cancel()
                service.abandon_game(session_id)
                print("Dive abandoned.")
                return "abandoned"
            if command in {"finish", "complete"}:
                timer.cancel()
                print(format_report(service.complete_game(session_id)))
                return "completed"
            if command in {"help", "?"}:
                for usage, description in _HELP_LINES:
                    print(f"  {usage:<42} {description}")
            elif command == "tools":
                current = service.get_game_state(session_id).state.current_tool_id
                for tool in TOOL_CATALOGUE.values():
                    marker = "*" if tool.id == current else " "
                    print(f" {marker} {tool.id:<18} {tool.description}")
            elif command == "tool":
                if not args:
                    raise ValueError("Usage: tool <tool-id>")
                service.change_tool(session_id, args[0])
                print(f"You pick up the {TOOL_CATALOGUE[args[0]].name}.")
            elif command == "map":
                print(render_grid(service.get_game_state(session_id).state))
            elif command == "status":
                state_view = service.get_game_state(session_id)
                breakdown = score_state(state_view.state, service.policy)
                print(
                    f"Score {state_view.session.current_score} | "
                    f"completion {breakdown.overall:.0f}% | "
                    f"compliance {breakdown.compliance:.0f}% | "
                    f"{timer.remaining_seconds}s left"
                )
            elif command == "check":
                x, y = _parse_coordinates(args)
                tool_id = service.get_game_state(session_id).state.current_tool_id
                check = service.check_tool(session_id, x, y, tool_id)
                print("Looks fine." if check.allowed else check.reason)
            elif command == "dig":
                x, y = _parse_coordinates(args)
                tool_id = service.get_game_state(session_id).state.current_tool_id
                outcome = service.process_excavation_action(session_id, x, y, tool_id)
                for message in outcome.messages:
                    print(message)
                for violation in outcome.violations:
                    print(
                        f"Protocol violation ({violation.severity.value}): "
                        f"-{violation.points_penalty} points"
                    )
            elif command == "doc":
                if len(args) < 4:
                    raise ValueError("Usage: doc <type> <x> <y> [@artifact-id] <text>")
                x, y = _parse_coordinates(args[1:3])
                remainder = args[3:]
                artifact_id = None
                if remainder and remainder[0].startswith("@"):
                    artifact_id = remainder[0][1:] or None
                    remainder = remainder[1:]
                doc_outcome = service.add_documentation_entry(
                    session_id,
                    args[0].lower(),
                    " ".join(remainder),
                    x,
                    y,
                    artifact_id=artifact_id,
                )
                print(f"Recorded {doc_outcome.entry.entry_type.value} entry.")
                for title in doc_outcome.quests_completed:
                    print(f"Quest completed: {title}! (+{doc_outcome.bonus_score})")
            else:
                print(f"Unknown command '{command}'. Type 'help' for a list.")
        except SessionNotActiveError as exc:
            print(str(exc))
            return service.get_game_state(session_id).session.status.value
        except ValueError as exc:
            print(str(exc))


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Tidal Explorers excavation dive")
    parser.add_argument(
        "--user",
        default="student",
        help="Identifier of the student playing (default: student).",
    )
    parser.add_argument(
        "--site",
        help="Identifier of the excavation site to dive on.",
    )
    parser.add_argument(
        "--difficulty",
        choices=[level.value for level in Difficulty],
        default=Difficulty.BEGINNER.value,
        help="Difficulty level controlling documentation quests.",
    )
    parser.add_argument(
        "--site-path",
        type=Path,
        help="Path to a JSON file of excavation sites (defaults to bundled sites).",
    )
    parser.add_argument(
        "--session-dir",
        type=Path,
        help="Directory used to store sessions. Sessions stay in memory when unset.",
    )
    parser.add_argument(
        "--policy",
        choices=[policy.value for policy in ScoringPolicy],
        default=ScoringPolicy.MEAN.value,
        help="How completion sub-scores are blended.",
    )
    parser.add_argument(
        "--randomize",
        action="store_true",
        help="Shuffle artifact positions for this dive.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed used with --randomize.",
    )
    parser.add_argument(
        "--list-sites",
        action="store_true",
        help="List the available sites and exit.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level for diagnostic output (default: WARNING).",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    """Start an interactive excavation dive."""

    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        if args.site_path is not None:
            sites = load_sites_from_file(args.site_path)
        else:
            sites = load_bundled_sites()
    except (OSError, ValueError) as exc:
        print(f"Failed to load excavation sites: {exc}")
        raise SystemExit(2) from exc

    store: SessionStore
    if args.session_dir is not None:
        store = FileSessionStore(args.session_dir)
    else:
        store = InMemorySessionStore()

    service = ExcavationGameService(
        sites,
        store=store,
        policy=ScoringPolicy(args.policy),
        rng=random.Random(args.seed) if args.randomize else None,
    )

    if args.list_sites or not args.site:
        for site in service.list_sites():
            print(f"{site.id:<24} {site.name} ({site.difficulty.value})")
        return

    try:
        session_id = service.start_game(args.user, args.site, args.difficulty)
    except (KeyError, ValueError) as exc:
        print(f"Cannot start a dive: {exc}")
        raise SystemExit(2) from exc

    run_cli(service, session_id)


if __name__ == "__main__":
    main()
