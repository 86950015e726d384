"""
Domain records held by the script store.
Plain dataclasses so any ScriptStore backing (memory or durable) can carry them.
"""
from __future__ import annotations

import dataclasses
import enum
from datetime import datetime, timezone
from typing import List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enums
class IterationStatus(str, enum.Enum):
    """Lifecycle of one generation pass."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ScriptStatus(str, enum.Enum):
    """Lifecycle of a script project as a whole."""

    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ScriptLength(str, enum.Enum):
    """Target length band of the finished script."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"

    @property
    def description(self) -> str:
        return _LENGTH_DESCRIPTIONS[self]


_LENGTH_DESCRIPTIONS = {
    ScriptLength.SHORT: "short (around 3 minutes)",
    ScriptLength.MEDIUM: "medium (around 7 minutes)",
    ScriptLength.LONG: "long (around 12 minutes)",
}


# Value bundles
@dataclasses.dataclass(frozen=True)
class ScriptSections:
    """Which structural sections the script should contain."""

    introduction: bool = True
    hook: bool = True
    main_points: bool = True
    examples: bool = True
    conclusion: bool = True
    call_to_action: bool = True

    def included(self) -> List[str]:
        """Display labels of the enabled sections, in script order."""
        return [
            label
            for field, label in _SECTION_LABELS
            if getattr(self, field)
        ]


_SECTION_LABELS = (
    ("introduction", "Introduction"),
    ("hook", "Hook"),
    ("main_points", "Main Points"),
    ("examples", "Examples"),
    ("conclusion", "Conclusion"),
    ("call_to_action", "Call To Action"),
)


@dataclasses.dataclass(frozen=True)
class ScriptSettings:
    """Refinement preferences applied to improvement passes."""

    reduce_redundancy: bool = True
    enhance_clarity: bool = True
    improve_engagement: bool = True


@dataclasses.dataclass(frozen=True)
class IterationMetrics:
    word_count: int
    estimated_duration: int  # seconds
    readability_score: Optional[float] = None
    redundancy_reduction: Optional[float] = None
    improvement_areas: Optional[List[str]] = None


# Records
@dataclasses.dataclass
class Script:
    """One document-generation project and its configuration."""

    id: int
    user_id: str
    title: str
    instructions: str
    model: str
    tone: str
    length: ScriptLength
    total_iterations: int
    outline: Optional[str] = None
    style: Optional[str] = None
    sections: ScriptSections = dataclasses.field(default_factory=ScriptSections)
    settings: ScriptSettings = dataclasses.field(default_factory=ScriptSettings)
    status: ScriptStatus = ScriptStatus.DRAFT
    current_iteration: int = 0
    created_at: datetime = dataclasses.field(default_factory=utcnow)
    updated_at: datetime = dataclasses.field(default_factory=utcnow)


@dataclasses.dataclass
class Iteration:
    """One generation / refinement pass belonging to a Script."""

    id: int
    script_id: int
    iteration_number: int
    content: str
    status: IterationStatus = IterationStatus.IN_PROGRESS
    metrics: Optional[IterationMetrics] = None
    improvements: Optional[str] = None
    backend: Optional[str] = None
    created_at: datetime = dataclasses.field(default_factory=utcnow)
    updated_at: datetime = dataclasses.field(default_factory=utcnow)
