"""Completion and compliance scoring for excavation sessions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import List

from .excavation import ExcavationGameState
from .sites import ExcavationSite

WEIGHTED_BLEND = (0.3, 0.3, 0.4)

VIOLATION_WEIGHT = 5
SEVERE_VIOLATION_WEIGHT = 15


class ScoringPolicy(str, Enum):
    """How the three completion sub-scores are combined.

    ``mean`` weighs excavation, artifacts and documentation equally;
    ``weighted`` uses a 0.3/0.3/0.4 blend that favours documentation.
    """

    MEAN = "mean"
    WEIGHTED = "weighted"


def _clamp_percentage(value: float) -> float:
    return max(0.0, min(100.0, value))


def ratio_percentage(numerator: float, denominator: float) -> float:
    """Return ``numerator / denominator`` as a percentage in ``[0, 100]``.

    A zero (or negative) denominator yields ``0`` rather than an error.
    """

    if denominator <= 0:
        return 0.0
    return _clamp_percentage(numerator / denominator * 100)


def compliance_score(violation_count: int, severe_violation_count: int) -> float:
    """Protocol compliance: 100 minus 5 per violation and 15 more per severe one."""

    penalty = (
        VIOLATION_WEIGHT * max(0, violation_count)
        + SEVERE_VIOLATION_WEIGHT * max(0, severe_violation_count)
    )
    return _clamp_percentage(100.0 - penalty)


@dataclass(frozen=True)
class CompletionBreakdown:
    excavation: float
    artifacts: float
    documentation: float
    overall: float
    compliance: float


def blend(
    excavation: float,
    artifacts: float,
    documentation: float,
    policy: ScoringPolicy = ScoringPolicy.MEAN,
) -> float:
    """Combine the clamped sub-scores according to ``policy``."""

    parts = (
        _clamp_percentage(excavation),
        _clamp_percentage(artifacts),
        _clamp_percentage(documentation),
    )
    if ScoringPolicy(policy) is ScoringPolicy.WEIGHTED:
        combined = sum(weight * part for weight, part in zip(WEIGHTED_BLEND, parts))
    else:
        combined = sum(parts) / len(parts)
    return _clamp_percentage(combined)


def completion_breakdown(
    *,
    excavated_cells: int,
    total_cells: int,
    discovered_artifacts: int,
    total_artifacts: int,
    completed_required_docs: int,
    total_required_docs: int,
    violation_count: int = 0,
    severe_violation_count: int = 0,
    policy: ScoringPolicy = ScoringPolicy.MEAN,
) -> CompletionBreakdown:
    excavation = ratio_percentage(excavated_cells, total_cells)
    artifacts = ratio_percentage(discovered_artifacts, total_artifacts)
    documentation = ratio_percentage(completed_required_docs, total_required_docs)
    return CompletionBreakdown(
        excavation=excavation,
        artifacts=artifacts,
        documentation=documentation,
        overall=blend(excavation, artifacts, documentation, policy),
        compliance=compliance_score(violation_count, severe_violation_count),
    )


def score_state(
    state: ExcavationGameState, policy: ScoringPolicy = ScoringPolicy.MEAN
) -> CompletionBreakdown:
    """Score the current progress of an excavation session."""

    return completion_breakdown(
        excavated_cells=state.excavated_cell_count,
        total_cells=state.total_cells,
        discovered_artifacts=len(state.discovered_artifacts),
        total_artifacts=len(state.site_artifacts),
        completed_required_docs=state.completed_required_documentation(),
        total_required_docs=state.required_documentation_total(),
        violation_count=len(state.protocol_violations),
        severe_violation_count=state.severe_violation_count,
        policy=policy,
    )


@dataclass(frozen=True)
class SiteReport:
    """Summary handed back when a session is completed."""

    overall_score: int
    completion_percentage: int
    artifacts_found: int
    total_artifacts: int
    documentation_quality: int
    protocol_compliance: int
    recommendations: List[str] = field(default_factory=list)
    digital_report: str = ""

    def to_payload(self) -> dict[str, object]:
        return {
            "overall_score": self.overall_score,
            "completion_percentage": self.completion_percentage,
            "artifacts_found": self.artifacts_found,
            "total_artifacts": self.total_artifacts,
            "documentation_quality": self.documentation_quality,
            "protocol_compliance": self.protocol_compliance,
            "recommendations": list(self.recommendations),
            "digital_report": self.digital_report,
        }

    @classmethod
    def from_payload(cls, payload: object) -> "SiteReport":
        if not isinstance(payload, dict):
            raise ValueError("Site report payload must be an object")
        recommendations = payload.get("recommendations", [])
        if not isinstance(recommendations, list):
            raise ValueError("Site report recommendations must be a list")
        try:
            return cls(
                overall_score=int(payload["overall_score"]),
                completion_percentage=int(payload["completion_percentage"]),
                artifacts_found=int(payload["artifacts_found"]),
                total_artifacts=int(payload["total_artifacts"]),
                documentation_quality=int(payload["documentation_quality"]),
                protocol_compliance=int(payload["protocol_compliance"]),
                recommendations=[str(item) for item in recommendations],
                digital_report=str(payload.get("digital_report", "")),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid site report payload: {exc}") from exc


def _recommendations(
    breakdown: CompletionBreakdown, artifacts_found: int, total_artifacts: int
) -> list[str]:
    recommendations: list[str] = []
    if breakdown.excavation < 70:
        recommendations.append(
            "Consider more systematic excavation to improve site coverage"
        )
    if breakdown.documentation < 80:
        recommendations.append(
            "Improve documentation by taking more photos and measurements"
        )
    if breakdown.compliance < 90:
        recommendations.append("Review archaeological protocols to avoid violations")
    if artifacts_found < total_artifacts:
        recommendations.append(
            "Use probes and careful excavation to locate remaining artifacts"
        )
    return recommendations


def render_digital_report(
    state: ExcavationGameState,
    site: ExcavationSite,
    report: SiteReport,
    *,
    generated_at: datetime | None = None,
) -> str:
    """Render the plain-text excavation report shown at the end of a dive."""

    timestamp = generated_at or datetime.now(timezone.utc)
    conditions = state.conditions

    artifact_lines = [
        f"{index}. Artifact ID: {artifact_id}"
        for index, artifact_id in enumerate(state.discovered_artifacts, start=1)
    ] or ["None recovered"]
    entry_lines = [
        f"{index}. {entry.entry_type.value.upper()} at ({entry.x}, {entry.y}): "
        f"{entry.content}"
        for index, entry in enumerate(state.documentation_entries, start=1)
    ] or ["None recorded"]
    violation_lines = [
        f"{index}. {violation.severity.value.upper()}: {violation.description}"
        for index, violation in enumerate(state.protocol_violations, start=1)
    ] or ["None recorded"]
    recommendation_lines = [
        f"{index}. {recommendation}"
        for index, recommendation in enumerate(report.recommendations, start=1)
    ] or ["None"]

    sections = [
        "UNDERWATER ARCHAEOLOGICAL EXCAVATION REPORT",
        "",
        f"Site: {site.name}",
        f"Location: {site.location}",
        f"Historical Period: {site.historical_period}",
        f"Date: {timestamp.date().isoformat()}",
        "",
        "EXCAVATION SUMMARY:",
        f"- Site Completion: {report.completion_percentage}%",
        f"- Artifacts Discovered: {report.artifacts_found}/{report.total_artifacts}",
        f"- Documentation Quality: {report.documentation_quality}%",
        f"- Protocol Compliance: {report.protocol_compliance}%",
        f"- Overall Score: {report.overall_score}/100",
        "",
        "ENVIRONMENTAL CONDITIONS:",
        f"- Visibility: {conditions.visibility:g}%",
        f"- Current Strength: {conditions.current_strength:g}/10",
        f"- Temperature: {conditions.temperature:g}C",
        f"- Depth: {conditions.depth:g}m",
        f"- Sediment: {conditions.sediment_type}",
        "",
        "ARTIFACTS DISCOVERED:",
        *artifact_lines,
        "",
        "DOCUMENTATION ENTRIES:",
        *entry_lines,
        "",
        "PROTOCOL VIOLATIONS:",
        *violation_lines,
        "",
        "RECOMMENDATIONS:",
        *recommendation_lines,
    ]
    return "\n".join(sections)


def build_site_report(
    state: ExcavationGameState,
    site: ExcavationSite,
    *,
    policy: ScoringPolicy = ScoringPolicy.MEAN,
    generated_at: datetime | None = None,
) -> SiteReport:
    """Produce the final report for a finished session.

    The overall score is the blended completion scaled by protocol compliance,
    so careless digging costs points even on a fully excavated site.
    """

    breakdown = score_state(state, policy)
    artifacts_found = len(state.discovered_artifacts)
    total_artifacts = len(state.site_artifacts)

    report = SiteReport(
        overall_score=round(breakdown.overall * breakdown.compliance / 100),
        completion_percentage=round(breakdown.overall),
        artifacts_found=artifacts_found,
        total_artifacts=total_artifacts,
        documentation_quality=round(breakdown.documentation),
        protocol_compliance=round(breakdown.compliance),
        recommendations=_recommendations(breakdown, artifacts_found, total_artifacts),
    )
    return replace(
        report,
        digital_report=render_digital_report(
            state, site, report, generated_at=generated_at
        ),
    )


__all__ = [
    "CompletionBreakdown",
    "ScoringPolicy",
    "SiteReport",
    "WEIGHTED_BLEND",
    "blend",
    "build_site_report",
    "completion_breakdown",
    "compliance_score",
    "ratio_percentage",
    "render_digital_report",
    "score_state",
]
