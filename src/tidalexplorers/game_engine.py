"""Session state machine for the excavation game.

Each public method on :class:`ExcavationGameService` is one atomic
read-modify-write against the session store: load, apply a transition, save.
"""

from __future__ import annotations

import logging
import random
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping

from .excavation import (
    DocumentationOutcome,
    EntryType,
    ExcavationGameState,
    ExcavationOutcome,
    apply_excavation_action,
    record_documentation,
)
from .persistence import (
    GameSession,
    InMemorySessionStore,
    SessionAction,
    SessionStatus,
    SessionStore,
)
from .progress import ProgressTracker, normalise_user_id
from .scoring import ScoringPolicy, SiteReport, build_site_report, score_state
from .sites import Difficulty, ExcavationSite, active_sites, place_artifacts
from .tools import ExcavationTool, explain_incompatibility, get_tool

logger = logging.getLogger("tidalexplorers.game_engine")


class SessionNotActiveError(RuntimeError):
    """Raised when a mutation targets a completed or abandoned session."""

    def __init__(self, session_id: str, status: SessionStatus) -> None:
        super().__init__(f"Game session '{session_id}' is {status.value}, not active.")
        self.session_id = session_id
        self.status = status


@dataclass(frozen=True)
class GameStateView:
    session: GameSession
    site: ExcavationSite
    state: ExcavationGameState


@dataclass(frozen=True)
class ToolCheck:
    """Advisory answer for hover feedback; the mutation re-validates."""

    tool_id: str
    x: int
    y: int
    allowed: bool
    reason: str | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_session_id() -> str:
    return uuid.uuid4().hex


class ExcavationGameService:
    """Business logic backing the excavation game endpoints and CLI."""

    def __init__(
        self,
        sites: Mapping[str, ExcavationSite],
        *,
        store: SessionStore | None = None,
        progress: ProgressTracker | None = None,
        policy: ScoringPolicy = ScoringPolicy.MEAN,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        now: Callable[[], datetime] = _utc_now,
        id_factory: Callable[[], str] = _new_session_id,
    ) -> None:
        self._sites = dict(sites)
        self._store = store or InMemorySessionStore()
        self._progress = progress or ProgressTracker()
        self._policy = ScoringPolicy(policy)
        self._rng = rng
        self._clock = clock
        self._now = now
        self._id_factory = id_factory

    @property
    def policy(self) -> ScoringPolicy:
        return self._policy

    @property
    def progress(self) -> ProgressTracker:
        return self._progress

    def list_sites(self) -> list[ExcavationSite]:
        return active_sites(self._sites.values())

    def get_site(self, site_id: str) -> ExcavationSite:
        try:
            return self._sites[site_id]
        except KeyError as exc:
            raise KeyError(f"Excavation site '{site_id}' does not exist.") from exc

    def start_game(
        self, user_id: str, site_id: str, difficulty: Difficulty | str
    ) -> str:
        """Create a new session on ``site_id`` and return its identifier.

        Any session the user still has running is abandoned first.

        Raises:
            KeyError: If the site does not exist.
            ValueError: If the site is inactive or the arguments are invalid.
        """

        user_id = normalise_user_id(user_id)
        level = Difficulty(difficulty)

        site = self.get_site(site_id)
        if not site.is_active:
            raise ValueError(f"Excavation site '{site_id}' is not active.")

        for previous in self._store.find_active_for_user(user_id):
            self._finish(previous, SessionStatus.ABANDONED)
            self._store.save(previous)
            logger.info(
                "session_auto_abandoned",
                extra={"session_id": previous.id, "user_id": user_id},
            )

        state = ExcavationGameState.new(
            site_id=site.id,
            grid_width=site.grid_width,
            grid_height=site.grid_height,
            site_artifacts=place_artifacts(site, rng=self._rng),
            difficulty=level,
            conditions=site.environmental_conditions,
        )
        session = GameSession(
            id=self._id_factory(),
            user_id=user_id,
            difficulty=level,
            state=state,
            start_time=self._now(),
        )
        self._store.save(session)
        logger.info(
            "session_started",
            extra={"session_id": session.id, "user_id": user_id, "site_id": site.id},
        )
        return session.id

    def process_excavation_action(
        self, session_id: str, x: int, y: int, tool_id: str
    ) -> ExcavationOutcome:
        """Use ``tool_id`` on cell ``(x, y)`` of an active session.

        A tool that does not suit the cell is recorded as a protocol violation
        and its penalty is deducted from the score; it is never rejected.
        """

        session = self._load_active(session_id)
        tool = self._resolve_tool(tool_id)

        outcome = apply_excavation_action(session.state, x, y, tool, clock=self._clock)
        penalty = sum(violation.points_penalty for violation in outcome.violations)
        session.add_score(outcome.score_delta - penalty)
        self._refresh_completion(session)
        session.record_action(
            SessionAction(
                timestamp=self._clock(),
                type="excavation",
                data={
                    "x": x,
                    "y": y,
                    "tool_id": tool.id,
                    "discoveries": list(outcome.discoveries),
                    "violations": [
                        violation.severity.value for violation in outcome.violations
                    ],
                    "score": outcome.score_delta - penalty,
                },
            )
        )
        self._store.save(session)
        if outcome.violations:
            logger.info(
                "protocol_violation",
                extra={
                    "session_id": session.id,
                    "tool_id": tool.id,
                    "severity": outcome.violations[0].severity.value,
                },
            )
        return outcome

    def change_tool(self, session_id: str, tool_id: str) -> None:
        session = self._load_active(session_id)
        tool = self._resolve_tool(tool_id)
        if session.state.current_tool_id == tool.id:
            return

        session.state.current_tool_id = tool.id
        session.record_action(
            SessionAction(
                timestamp=self._clock(), type="tool_change", data={"tool_id": tool.id}
            )
        )
        self._store.save(session)

    def add_documentation_entry(
        self,
        session_id: str,
        entry_type: EntryType | str,
        content: str,
        x: int,
        y: int,
        artifact_id: str | None = None,
    ) -> DocumentationOutcome:
        """Record a field note, photo, measurement or sample for a cell.

        Raises:
            ValueError: If the entry fails validation; nothing is stored.
        """

        session = self._load_active(session_id)
        outcome = record_documentation(
            session.state,
            entry_type,
            content,
            x,
            y,
            artifact_id=artifact_id,
            clock=self._clock,
        )
        session.add_score(outcome.bonus_score)
        self._refresh_completion(session)
        session.record_action(
            SessionAction(
                timestamp=self._clock(),
                type="documentation",
                data={
                    "entry_id": outcome.entry.id,
                    "entry_type": outcome.entry.entry_type.value,
                    "x": x,
                    "y": y,
                    "quests_completed": list(outcome.quests_completed),
                },
            )
        )
        self._store.save(session)
        return outcome

    def complete_game(self, session_id: str) -> SiteReport:
        """Finish the session and return its site report.

        Completing an already-completed session returns the stored report
        without touching the score, the action log or the user's progress.

        Raises:
            SessionNotActiveError: If the session was abandoned.
        """

        session = self._store.load(session_id)
        if session.status is SessionStatus.COMPLETED and session.final_report:
            return session.final_report
        if session.status is SessionStatus.ABANDONED:
            raise SessionNotActiveError(session.id, session.status)

        site = self.get_site(session.state.site_id)
        ended_at = self._now()
        report = build_site_report(
            session.state, site, policy=self._policy, generated_at=ended_at
        )
        # Progress goes first so a failed write leaves the session active.
        self._progress.record_completion(
            session.user_id,
            session.game_type,
            report.overall_score,
            played_at=ended_at,
        )

        session.final_report = report
        session.completion_percentage = float(report.completion_percentage)
        self._finish(session, SessionStatus.COMPLETED, ended_at=ended_at)
        self._store.save(session)
        logger.info(
            "session_completed",
            extra={"session_id": session.id, "overall_score": report.overall_score},
        )
        return report

    def abandon_game(self, session_id: str) -> None:
        session = self._load_active(session_id)
        self._finish(session, SessionStatus.ABANDONED)
        self._store.save(session)
        logger.info("session_abandoned", extra={"session_id": session.id})

    def sync_time_remaining(self, session_id: str, seconds: int) -> GameSession:
        """Store the countdown value reported by the client.

        The deadline is not enforced here; the client calls
        :meth:`complete_game` once its countdown reaches zero.
        """

        session = self._load_active(session_id)
        state = session.state
        state.time_remaining = max(0, min(int(seconds), state.time_limit))
        self._store.save(session)
        return session

    def get_game_state(self, session_id: str) -> GameStateView:
        session = self._store.load(session_id)
        site = self.get_site(session.state.site_id)
        return GameStateView(session=session, site=site, state=session.state)

    def check_tool(self, session_id: str, x: int, y: int, tool_id: str) -> ToolCheck:
        session = self._store.load(session_id)
        tool = self._resolve_tool(tool_id)
        cell = session.state.cell_at(x, y)
        reason = explain_incompatibility(tool, cell)
        return ToolCheck(
            tool_id=tool.id, x=x, y=y, allowed=reason is None, reason=reason
        )

    def _load_active(self, session_id: str) -> GameSession:
        session = self._store.load(session_id)
        if not session.is_active:
            raise SessionNotActiveError(session.id, session.status)
        return session

    def _refresh_completion(self, session: GameSession) -> None:
        session.completion_percentage = score_state(session.state, self._policy).overall

    def _finish(
        self,
        session: GameSession,
        status: SessionStatus,
        *,
        ended_at: datetime | None = None,
    ) -> None:
        session.status = status
        session.end_time = ended_at or self._now()
        session.record_action(
            SessionAction(timestamp=self._clock(), type=status.value)
        )

    @staticmethod
    def _resolve_tool(tool_id: str) -> ExcavationTool:
        try:
            return get_tool(tool_id)
        except KeyError as exc:
            raise ValueError(f"Invalid tool '{tool_id}'.") from exc


__all__ = [
    "ExcavationGameService",
    "GameStateView",
    "SessionNotActiveError",
    "ToolCheck",
]
