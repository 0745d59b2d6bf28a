"""Excavation tool catalogue and the tool/cell compatibility rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Protocol, Sequence


def _validate_text(value: str, *, field_name: str) -> str:
    """Ensure the provided value is a non-empty piece of text."""

    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string, got {type(value)!r}")

    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{field_name} must be a non-empty string")

    return stripped


class ToolType(str, Enum):
    """Categories of equipment available to the diver."""

    TROWEL = "trowel"
    BRUSH = "brush"
    PROBE = "probe"
    MEASURING_TAPE = "measuring_tape"
    CAMERA = "camera"
    SIEVE = "sieve"


EXCAVATION_TOOL_TYPES = frozenset({ToolType.TROWEL, ToolType.BRUSH, ToolType.PROBE})
DOCUMENTATION_TOOL_TYPES = frozenset({ToolType.CAMERA, ToolType.MEASURING_TAPE})


class ViolationSeverity(str, Enum):
    """How badly a protocol was breached."""

    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


class _CellLike(Protocol):
    excavated: bool
    excavation_depth: float
    contains_artifact: bool


@dataclass(frozen=True)
class ExcavationTool:
    """A single piece of equipment the player can select."""

    id: str
    name: str
    type: ToolType
    description: str
    effectiveness: float
    depth_increment: float = 0.0
    appropriate_for: Sequence[str] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _validate_text(self.id, field_name="tool id"))
        object.__setattr__(
            self, "name", _validate_text(self.name, field_name="tool name")
        )
        object.__setattr__(self, "type", ToolType(self.type))
        if not 0.0 <= self.depth_increment <= 1.0:
            raise ValueError("depth_increment must be between 0 and 1")
        object.__setattr__(self, "appropriate_for", tuple(self.appropriate_for))

    @property
    def is_excavation_tool(self) -> bool:
        return self.type in EXCAVATION_TOOL_TYPES

    @property
    def is_documentation_tool(self) -> bool:
        return self.type in DOCUMENTATION_TOOL_TYPES


_CATALOGUE: tuple[ExcavationTool, ...] = (
    ExcavationTool(
        id="soft_brush",
        name="Soft Brush",
        type=ToolType.BRUSH,
        description="Gentle cleaning tool for delicate artifacts",
        effectiveness=0.8,
        depth_increment=0.2,
        appropriate_for=("delicate", "fragile", "detailed_cleaning"),
    ),
    ExcavationTool(
        id="hard_brush",
        name="Hard Brush",
        type=ToolType.BRUSH,
        description="Sturdy brush for removing sediment",
        effectiveness=0.6,
        depth_increment=0.3,
        appropriate_for=("heavy_sediment", "initial_cleaning", "robust_artifacts"),
    ),
    ExcavationTool(
        id="trowel",
        name="Archaeological Trowel",
        type=ToolType.TROWEL,
        description="Precision tool for careful excavation",
        effectiveness=0.9,
        depth_increment=0.6,
        appropriate_for=("precision_work", "artifact_extraction", "grid_excavation"),
    ),
    ExcavationTool(
        id="measuring_tape",
        name="Measuring Tape",
        type=ToolType.MEASURING_TAPE,
        description="For accurate measurements and grid mapping",
        effectiveness=1.0,
        appropriate_for=("documentation", "mapping", "measurements"),
    ),
    ExcavationTool(
        id="underwater_camera",
        name="Underwater Camera",
        type=ToolType.CAMERA,
        description="Waterproof camera for site documentation",
        effectiveness=1.0,
        appropriate_for=("photography", "documentation", "evidence"),
    ),
    ExcavationTool(
        id="sieve",
        name="Archaeological Sieve",
        type=ToolType.SIEVE,
        description="For separating small artifacts from sediment",
        effectiveness=0.7,
        appropriate_for=("small_artifacts", "sediment_processing", "thorough_search"),
    ),
    ExcavationTool(
        id="probe",
        name="Archaeological Probe",
        type=ToolType.PROBE,
        description="For detecting buried objects without damage",
        effectiveness=0.5,
        depth_increment=0.1,
        appropriate_for=("detection", "preliminary_survey", "safe_exploration"),
    ),
)

TOOL_CATALOGUE: Mapping[str, ExcavationTool] = MappingProxyType(
    {tool.id: tool for tool in _CATALOGUE}
)

DEFAULT_TOOL_ID = "soft_brush"


def get_tool(tool_id: str) -> ExcavationTool:
    """Return the catalogue entry for ``tool_id``.

    Raises:
        KeyError: If no tool with that identifier exists.
    """

    try:
        return TOOL_CATALOGUE[tool_id]
    except KeyError as exc:
        raise KeyError(f"Unknown tool '{tool_id}'.") from exc


def is_tool_compatible(tool_type: ToolType | str, cell: _CellLike) -> bool:
    """Return ``True`` when a tool of ``tool_type`` may act on ``cell``.

    Documentation tools need an excavated cell, the sieve additionally needs
    the artifact to have been lifted out, and digging tools need depth left to
    remove.
    """

    kind = ToolType(tool_type)
    if kind in DOCUMENTATION_TOOL_TYPES:
        return cell.excavated
    if kind is ToolType.SIEVE:
        return cell.excavated and not cell.contains_artifact
    return not cell.excavated or cell.excavation_depth < 1


def explain_incompatibility(tool: ExcavationTool, cell: _CellLike) -> str | None:
    """Return feedback describing why ``tool`` cannot act on ``cell``."""

    if is_tool_compatible(tool.type, cell):
        return None

    if tool.is_documentation_tool:
        return (
            f"{tool.name} can only be used on excavated cells. "
            "Excavate this cell first with a Trowel or Brush."
        )
    if tool.type is ToolType.SIEVE:
        if not cell.excavated:
            return (
                f"{tool.name} is for processing excavated sediment. "
                "Use Archaeological Trowel or Soft Brush to excavate first."
            )
        return (
            f"{tool.name} cannot be used while an artifact is still in the cell. "
            "Document and lift the artifact first."
        )
    return f"This cell is fully excavated; {tool.name} would only disturb the context."


def violation_severity_for(tool: ExcavationTool, cell: _CellLike) -> ViolationSeverity:
    """Grade a misuse: documentation kit on undug sediment is the worst case."""

    if tool.is_documentation_tool and not cell.excavated:
        return ViolationSeverity.SEVERE
    return ViolationSeverity.MODERATE


__all__ = [
    "DEFAULT_TOOL_ID",
    "DOCUMENTATION_TOOL_TYPES",
    "EXCAVATION_TOOL_TYPES",
    "ExcavationTool",
    "TOOL_CATALOGUE",
    "ToolType",
    "ViolationSeverity",
    "explain_incompatibility",
    "get_tool",
    "is_tool_compatible",
    "violation_severity_for",
]
