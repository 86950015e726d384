"""Domain records and API schemas for ScriptWizard."""
from scriptwizard.models.records import (
    Script,
    Iteration,
    IterationMetrics,
    IterationStatus,
    ScriptLength,
    ScriptSections,
    ScriptSettings,
    ScriptStatus,
)
from scriptwizard.models.schemas import (
    ScriptCreate,
    ScriptResponse,
    ScriptCreatedResponse,
    ScriptDetailResponse,
    IterationResponse,
    IterationStartResponse,
    IterationUpdateRequest,
    ExportRequest,
    HealthCheckResponse,
)

__all__ = [
    # Records
    "Script",
    "Iteration",
    "IterationMetrics",
    "IterationStatus",
    "ScriptLength",
    "ScriptSections",
    "ScriptSettings",
    "ScriptStatus",
    # Pydantic schemas
    "ScriptCreate",
    "ScriptResponse",
    "ScriptCreatedResponse",
    "ScriptDetailResponse",
    "IterationResponse",
    "IterationStartResponse",
    "IterationUpdateRequest",
    "ExportRequest",
    "HealthCheckResponse",
]
