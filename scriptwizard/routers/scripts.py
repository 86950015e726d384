"""
Script endpoints.

Route summary
-------------
POST   /api/scripts                                   — create script (starts pass #1)
GET    /api/scripts                                   — list the session's scripts
GET    /api/scripts/{script_id}                       — script + iterations
DELETE /api/scripts/{script_id}                       — delete script (cascades)

POST   /api/scripts/{script_id}/generate              — start pass #1 explicitly
POST   /api/scripts/{script_id}/iterations            — start the next pass
GET    /api/scripts/{script_id}/iterations/{iter_id}  — poll one iteration
PUT    /api/scripts/{script_id}/iterations/{iter_id}  — manual edit

POST   /api/scripts/{script_id}/export                — download the latest draft
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from scriptwizard.dependencies.services import get_orchestrator, get_store
from scriptwizard.dependencies.session import get_user_id
from scriptwizard.exceptions import NotFoundException, PreconditionFailedException
from scriptwizard.models.records import IterationStatus, Script
from scriptwizard.models.schemas import (
    ExportRequest,
    IterationResponse,
    IterationStartResponse,
    IterationUpdateRequest,
    ScriptCreate,
    ScriptCreatedResponse,
    ScriptDetailResponse,
    ScriptResponse,
)
from scriptwizard.services.export import content_type_for, export_script, filename_for
from scriptwizard.services.orchestrator import MAX_ITERATIONS_ERROR_CODE, IterationOrchestrator
from scriptwizard.services.store import ScriptStore

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_script_or_404(store: ScriptStore, script_id: int) -> Script:
    script = await store.get_script(script_id)
    if script is None:
        raise NotFoundException(f"Script {script_id} not found")
    return script


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------

@router.post("", response_model=ScriptCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_script(
    body: ScriptCreate,
    user_id: str = Depends(get_user_id),
    store: ScriptStore = Depends(get_store),
    orchestrator: IterationOrchestrator = Depends(get_orchestrator),
):
    """
    Create a script and, unless ``auto_start`` is false, start its first pass.

    The returned iteration is still ``in_progress``; poll it for the draft.
    """
    script = await store.create_script(
        user_id=user_id,
        title=body.title,
        instructions=body.instructions,
        outline=body.structure,
        sections=body.sections.to_record(),
        model=body.model,
        tone=body.tone,
        style=body.style,
        length=body.length,
        total_iterations=body.iterations,
        settings=body.settings.to_record(),
    )
    logger.info("Created script id=%d title=%r for user %s", script.id, script.title, user_id)

    iteration = None
    if body.auto_start:
        iteration = await orchestrator.start_initial_generation(script.id)
        script = await _get_script_or_404(store, script.id)

    return ScriptCreatedResponse(
        script=ScriptResponse.model_validate(script),
        iteration=IterationResponse.model_validate(iteration) if iteration else None,
    )


@router.get("", response_model=List[ScriptResponse])
async def list_scripts(
    user_id: str = Depends(get_user_id),
    store: ScriptStore = Depends(get_store),
):
    """Scripts owned by the session user, newest first."""
    scripts = await store.list_scripts(user_id)
    return [ScriptResponse.model_validate(s) for s in scripts]


@router.get("/{script_id}", response_model=ScriptDetailResponse)
async def get_script(script_id: int, store: ScriptStore = Depends(get_store)):
    script = await _get_script_or_404(store, script_id)
    iterations = await store.list_iterations(script_id)
    return ScriptDetailResponse(
        script=ScriptResponse.model_validate(script),
        iterations=[IterationResponse.model_validate(i) for i in iterations],
    )


@router.delete("/{script_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_script(
    script_id: int,
    orchestrator: IterationOrchestrator = Depends(get_orchestrator),
):
    """Delete a script and all of its iterations."""
    if not await orchestrator.delete_script(script_id):
        raise NotFoundException(f"Script {script_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Iterations
# ---------------------------------------------------------------------------

@router.post(
    "/{script_id}/generate",
    response_model=IterationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_generation(
    script_id: int,
    orchestrator: IterationOrchestrator = Depends(get_orchestrator),
):
    """Start the first pass of a script created with ``auto_start=false``."""
    iteration = await orchestrator.start_initial_generation(script_id)
    return IterationResponse.model_validate(iteration)


@router.post(
    "/{script_id}/iterations",
    response_model=IterationStartResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_next_iteration(
    script_id: int,
    orchestrator: IterationOrchestrator = Depends(get_orchestrator),
):
    """
    Start the next refinement pass.

    ``is_complete`` is true when this is the last pass the script asked for.
    Returns 400 once the requested number of iterations is reached.
    """
    outcome = await orchestrator.start_next_iteration(script_id)
    if outcome.rejected_reason:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": outcome.rejected_reason, "error_code": MAX_ITERATIONS_ERROR_CODE},
        )
    return IterationStartResponse.model_validate(
        {
            **IterationResponse.model_validate(outcome.iteration).model_dump(),
            "is_complete": outcome.is_complete,
        }
    )


@router.get("/{script_id}/iterations/{iteration_id}", response_model=IterationResponse)
async def get_iteration(
    script_id: int,
    iteration_id: int,
    store: ScriptStore = Depends(get_store),
):
    iteration = await store.get_iteration(iteration_id)
    if iteration is None or iteration.script_id != script_id:
        raise NotFoundException("Iteration not found")
    return IterationResponse.model_validate(iteration)


@router.put("/{script_id}/iterations/{iteration_id}", response_model=IterationResponse)
async def update_iteration(
    script_id: int,
    iteration_id: int,
    body: IterationUpdateRequest,
    orchestrator: IterationOrchestrator = Depends(get_orchestrator),
):
    """Replace an iteration's content by hand. Metrics are not recomputed."""
    iteration = await orchestrator.apply_manual_edit(
        iteration_id, body.content, script_id=script_id
    )
    return IterationResponse.model_validate(iteration)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

@router.post("/{script_id}/export")
async def export(
    script_id: int,
    body: ExportRequest,
    store: ScriptStore = Depends(get_store),
):
    """Render the latest completed iteration as a downloadable document."""
    script = await _get_script_or_404(store, script_id)
    iterations = await store.list_iterations(script_id)
    completed = [i for i in iterations if i.status == IterationStatus.COMPLETED]
    if not completed:
        raise PreconditionFailedException("No completed iterations found")

    final = completed[-1]
    metadata = {
        "Created": script.created_at.strftime("%Y-%m-%d"),
        "AI Model": script.model,
        "Tone": script.tone,
        "Iterations": final.iteration_number,
    }
    options = body.to_options()
    document = export_script(final.content, script.title, options, metadata)

    filename = filename_for(script.title, options.format)
    filename = filename.encode("latin-1", "ignore").decode("latin-1")
    logger.info(
        "Exported script id=%d iteration #%d as %s",
        script_id,
        final.iteration_number,
        options.format.value,
    )
    return Response(
        content=document,
        media_type=content_type_for(options.format),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
