"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from scriptwizard.config import settings
from scriptwizard.models.records import (
    IterationStatus,
    ScriptLength,
    ScriptSections,
    ScriptSettings,
    ScriptStatus,
)
from scriptwizard.services.export import ExportFormat, ExportOptions


_LENGTH_BY_ORDINAL = {
    1: ScriptLength.SHORT,
    2: ScriptLength.MEDIUM,
    3: ScriptLength.LONG,
}


# Nested bundles
class ScriptSectionsSchema(BaseModel):
    """Structural sections to include in the generated script."""

    introduction: bool = True
    hook: bool = True
    main_points: bool = True
    examples: bool = True
    conclusion: bool = True
    call_to_action: bool = True

    model_config = ConfigDict(from_attributes=True)

    def to_record(self) -> ScriptSections:
        return ScriptSections(**self.model_dump())


class ScriptSettingsSchema(BaseModel):
    """Refinement toggles applied to improvement passes."""

    reduce_redundancy: bool = True
    enhance_clarity: bool = True
    improve_engagement: bool = True

    model_config = ConfigDict(from_attributes=True)

    def to_record(self) -> ScriptSettings:
        return ScriptSettings(**self.model_dump())


class IterationMetricsSchema(BaseModel):
    """Quality metrics attached to a completed iteration."""

    word_count: int
    estimated_duration: int = Field(..., description="Estimated spoken duration in seconds")
    readability_score: Optional[float] = None
    redundancy_reduction: Optional[float] = None
    improvement_areas: Optional[List[str]] = None

    model_config = ConfigDict(from_attributes=True)


# Script Schemas
class ScriptCreate(BaseModel):
    """Schema for creating a new script."""

    title: str = Field(..., min_length=1, max_length=255)
    instructions: str = Field(..., min_length=1)
    structure: Optional[str] = Field(None, description="Optional free-text outline")
    sections: ScriptSectionsSchema = Field(default_factory=ScriptSectionsSchema)
    model: str = Field(..., min_length=1, max_length=100)
    tone: str = Field(..., min_length=1, max_length=100)
    style: Optional[str] = Field(None, max_length=100)
    length: ScriptLength = ScriptLength.MEDIUM
    iterations: int = 4
    settings: ScriptSettingsSchema = Field(default_factory=ScriptSettingsSchema)
    auto_start: bool = True

    @field_validator("title", "instructions")
    @classmethod
    def _require_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    @field_validator("length", mode="before")
    @classmethod
    def _normalise_length(cls, value: Any) -> Any:
        """Accept the ordinal form 1-3 alongside short/medium/long."""
        if isinstance(value, bool):
            return value
        if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
            ordinal = int(value)
            if ordinal not in _LENGTH_BY_ORDINAL:
                raise ValueError("length must be short, medium, long or 1-3")
            return _LENGTH_BY_ORDINAL[ordinal]
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("iterations")
    @classmethod
    def _check_iterations(cls, value: int) -> int:
        if not settings.MIN_ITERATIONS <= value <= settings.MAX_ITERATIONS:
            raise ValueError(
                f"iterations must be between {settings.MIN_ITERATIONS} "
                f"and {settings.MAX_ITERATIONS}"
            )
        return value


class ScriptResponse(BaseModel):
    """Schema for script responses."""

    id: int
    title: str
    instructions: str
    outline: Optional[str] = None
    sections: ScriptSectionsSchema
    model: str
    tone: str
    style: Optional[str] = None
    length: ScriptLength
    total_iterations: int
    current_iteration: int
    status: ScriptStatus
    settings: ScriptSettingsSchema
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Iteration Schemas
class IterationResponse(BaseModel):
    """Schema for iteration responses."""

    id: int
    script_id: int
    iteration_number: int
    content: str
    status: IterationStatus
    metrics: Optional[IterationMetricsSchema] = None
    improvements: Optional[str] = None
    backend: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class IterationStartResponse(IterationResponse):
    """A freshly started iteration plus whether it is the last requested pass."""

    is_complete: bool = False


class IterationUpdateRequest(BaseModel):
    """Manual edit of an iteration's content."""

    content: str = Field(..., min_length=1)


class ScriptCreatedResponse(BaseModel):
    """Response for POST /api/scripts."""

    script: ScriptResponse
    iteration: Optional[IterationResponse] = None


class ScriptDetailResponse(BaseModel):
    """A script with all of its iterations, ascending by number."""

    script: ScriptResponse
    iterations: List[IterationResponse]


# Export Schemas
class ExportRequest(BaseModel):
    """Export settings for POST /api/scripts/{id}/export."""

    format: ExportFormat = ExportFormat.GOOGLE_DOCS
    include_metadata: bool = True
    include_timestamps: bool = True
    include_sections: bool = True
    format_for_talent: bool = False

    def to_options(self) -> ExportOptions:
        return ExportOptions(
            format=self.format,
            include_metadata=self.include_metadata,
            include_timestamps=self.include_timestamps,
            include_sections=self.include_sections,
            format_for_talent=self.format_for_talent,
        )


# Health Schemas
class HealthCheckResponse(BaseModel):
    """Health check response."""

    status: str
    store: Dict[str, int]
    backends: Dict[str, str]
    timestamp: datetime
