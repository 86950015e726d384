"""
Iteration orchestrator.

Sequences iteration creation for each Script and runs every generation pass
as a background ``asyncio.Task``.  The triggering request gets the freshly
created ``in_progress`` Iteration back immediately; the task delivers its
result only by updating the store, and clients observe it by polling.

Usage
-----
    orchestrator = IterationOrchestrator(store, registry)

    iteration = await orchestrator.start_initial_generation(script_id)
    outcome = await orchestrator.start_next_iteration(script_id)
    if outcome.rejected_reason:
        ...

Slot policy: a ``failed`` iteration frees its number.  The next number is one
past the highest non-failed iteration; a failed record sitting in that slot is
replaced by a fresh record (new identifier, same number).
"""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
from typing import Dict, List, Optional, Tuple

from scriptwizard.config import settings
from scriptwizard.exceptions import (
    NotFoundException,
    PreconditionFailedException,
    ValidationException,
)
from scriptwizard.models.records import (
    Iteration,
    IterationMetrics,
    IterationStatus,
    Script,
    ScriptStatus,
)
from scriptwizard.services.backends import BackendRegistry, GenerationBackend
from scriptwizard.services.prompts import GenerationRequest
from scriptwizard.services.store import ScriptStore

logger = logging.getLogger(__name__)

PLACEHOLDER_IN_PROGRESS = "Generating script..."
PLACEHOLDER_NEXT_ITERATION = "Generating next iteration..."
PLACEHOLDER_FAILED = "Error generating script content."
MAX_ITERATIONS_REACHED = "Maximum iterations reached"
MAX_ITERATIONS_ERROR_CODE = "MAX_ITERATIONS_REACHED"


@dataclasses.dataclass(frozen=True)
class IterationStart:
    """Outcome of ``start_next_iteration``."""

    iteration: Optional[Iteration]
    is_complete: bool = False
    rejected_reason: Optional[str] = None

    @classmethod
    def rejected(cls, reason: str) -> "IterationStart":
        return cls(iteration=None, rejected_reason=reason)


class IterationOrchestrator:
    """Starts, runs and settles generation passes for Scripts."""

    def __init__(
        self,
        store: ScriptStore,
        registry: BackendRegistry,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.timeout = float(timeout if timeout is not None else settings.GENERATION_TIMEOUT)
        self._locks: Dict[int, asyncio.Lock] = {}
        # script id -> coroutines holding or awaiting its lock
        self._lock_users: Dict[int, int] = {}
        # iteration id -> (script id, task)
        self._tasks: Dict[int, Tuple[int, asyncio.Task]] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def select_backend(self, model: str) -> GenerationBackend:
        return self.registry.select(model)

    @property
    def pending(self) -> int:
        """Number of generation tasks still running."""
        return len(self._tasks)

    async def start_initial_generation(self, script_id: int) -> Iteration:
        """
        Create Iteration #1 and start generating its first draft.

        Raises NotFoundException for an unknown script and
        PreconditionFailedException when a non-failed Iteration #1 already
        exists or another pass is still running.
        """
        async with self._script_lock(script_id):
            script = await self._require_script(script_id)
            iterations = await self.store.list_iterations(script_id)
            self._ensure_idle(script, iterations)

            if any(
                i.iteration_number == 1 and i.status != IterationStatus.FAILED
                for i in iterations
            ):
                raise PreconditionFailedException(
                    f"Initial generation already started for script {script_id}"
                )

            iteration = await self._create_slot(script, 1, iterations)
            self._spawn(script, iteration, previous=None)
            return iteration

    async def start_next_iteration(self, script_id: int) -> IterationStart:
        """
        Create the next Iteration and start improving the latest completed draft.

        Returns a rejected ``IterationStart`` when the script's requested
        iteration count is already reached.  Raises PreconditionFailedException
        when there is no completed draft to improve or a pass is still running.
        """
        async with self._script_lock(script_id):
            script = await self._require_script(script_id)
            iterations = await self.store.list_iterations(script_id)
            self._ensure_idle(script, iterations)

            number = _next_number(iterations)
            if number > script.total_iterations:
                logger.info(
                    "Script %d: maximum of %d iteration(s) reached",
                    script_id,
                    script.total_iterations,
                )
                return IterationStart.rejected(MAX_ITERATIONS_REACHED)

            previous = _latest_completed(iterations)
            if previous is None:
                raise PreconditionFailedException(
                    f"Script {script_id} has no completed iteration to improve upon"
                )

            iteration = await self._create_slot(script, number, iterations)
            self._spawn(script, iteration, previous=previous)
            return IterationStart(
                iteration=iteration,
                is_complete=number >= script.total_iterations,
            )

    async def apply_manual_edit(
        self,
        iteration_id: int,
        content: str,
        script_id: Optional[int] = None,
    ) -> Iteration:
        """
        Replace an iteration's content and force its status to completed.

        Metrics are left as they were.  When *script_id* is given the
        iteration must belong to that script.
        """
        if not content or not content.strip():
            raise ValidationException("Content must not be empty")

        iteration = await self.store.get_iteration(iteration_id)
        if iteration is None or (script_id is not None and iteration.script_id != script_id):
            raise NotFoundException("Iteration not found")

        async with self._script_lock(iteration.script_id):
            updated = await self.store.update_iteration(
                iteration_id, content=content, status=IterationStatus.COMPLETED
            )
            await self._record_progress(iteration.script_id, updated)

        logger.info(
            "Script %d: iteration #%d manually edited",
            updated.script_id,
            updated.iteration_number,
        )
        return updated

    async def delete_script(self, script_id: int) -> bool:
        """Cancel the script's running passes and remove it with its iterations."""
        for owner, task in list(self._tasks.values()):
            if owner == script_id:
                task.cancel()
        return await self.store.delete_script(script_id)

    async def drain(self) -> None:
        """Wait until every running pass has settled."""
        while self._tasks:
            tasks = [task for _, task in self._tasks.values()]
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every running pass; their iterations end up failed."""
        pending = list(self._tasks.items())
        if not pending:
            return
        logger.info("Cancelling %d pending generation task(s)", len(pending))
        for _, (_, task) in pending:
            task.cancel()
        await asyncio.gather(*(task for _, (_, task) in pending), return_exceptions=True)

        # A task cancelled before its first step never settles its iteration.
        for iteration_id, (script_id, _) in pending:
            iteration = await self.store.get_iteration(iteration_id)
            if iteration is not None and iteration.status == IterationStatus.IN_PROGRESS:
                await self._settle_failed(script_id, iteration)

    # ------------------------------------------------------------------
    # Slot management
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _script_lock(self, script_id: int):
        """Hold the script's lock; it is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(script_id, asyncio.Lock())
        self._lock_users[script_id] = self._lock_users.get(script_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[script_id] -= 1
            if not self._lock_users[script_id]:
                del self._lock_users[script_id]
                self._locks.pop(script_id, None)

    async def _require_script(self, script_id: int) -> Script:
        script = await self.store.get_script(script_id)
        if script is None:
            raise NotFoundException(f"Script {script_id} not found")
        return script

    @staticmethod
    def _ensure_idle(script: Script, iterations: List[Iteration]) -> None:
        running = [i for i in iterations if i.status == IterationStatus.IN_PROGRESS]
        if running:
            raise PreconditionFailedException(
                f"Iteration #{running[0].iteration_number} of script {script.id} "
                "is still being generated"
            )

    async def _create_slot(
        self, script: Script, number: int, iterations: List[Iteration]
    ) -> Iteration:
        for stale in iterations:
            if stale.iteration_number == number and stale.status == IterationStatus.FAILED:
                await self.store.delete_iteration(stale.id)
                logger.info(
                    "Script %d: retrying failed iteration #%d (was id=%d)",
                    script.id,
                    number,
                    stale.id,
                )

        backend = self.select_backend(script.model)
        iteration = await self.store.create_iteration(
            script_id=script.id,
            iteration_number=number,
            content=PLACEHOLDER_IN_PROGRESS if number == 1 else PLACEHOLDER_NEXT_ITERATION,
            backend=backend.kind.value,
        )
        await self.store.update_script(
            script.id,
            current_iteration=number,
            status=ScriptStatus.IN_PROGRESS,
        )
        return iteration

    def _spawn(self, script: Script, iteration: Iteration, previous: Optional[Iteration]) -> None:
        task = asyncio.create_task(
            self._run(script, iteration, previous),
            name=f"iteration-{iteration.id}",
        )
        self._tasks[iteration.id] = (script.id, task)
        task.add_done_callback(lambda _t: self._tasks.pop(iteration.id, None))

        logger.info(
            "Script %d: iteration #%d started on %s (id=%d)",
            script.id,
            iteration.iteration_number,
            iteration.backend,
            iteration.id,
        )

    # ------------------------------------------------------------------
    # Background task
    # ------------------------------------------------------------------

    async def _run(self, script: Script, iteration: Iteration, previous: Optional[Iteration]) -> None:
        backend = self.select_backend(script.model)
        try:
            content, improvements, metrics = await asyncio.wait_for(
                self._generate(backend, script, iteration, previous),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Script %d: iteration #%d timed out after %.0f s",
                script.id,
                iteration.iteration_number,
                self.timeout,
            )
            await self._settle_failed(script.id, iteration)
            return
        except asyncio.CancelledError:
            logger.warning(
                "Script %d: iteration #%d cancelled", script.id, iteration.iteration_number
            )
            await self._settle_failed(script.id, iteration)
            raise
        except Exception as exc:
            logger.error(
                "Script %d: iteration #%d failed: %s",
                script.id,
                iteration.iteration_number,
                exc,
                exc_info=True,
            )
            await self._settle_failed(script.id, iteration)
            return

        updated = await self._settle(
            script.id,
            iteration,
            content=content,
            status=IterationStatus.COMPLETED,
            metrics=metrics,
            improvements=improvements,
        )
        if updated is not None:
            logger.info(
                "Script %d: iteration #%d completed (%d words, %d s)",
                script.id,
                iteration.iteration_number,
                metrics.word_count,
                metrics.estimated_duration,
            )

    @staticmethod
    async def _generate(
        backend: GenerationBackend,
        script: Script,
        iteration: Iteration,
        previous: Optional[Iteration],
    ) -> Tuple[str, Optional[str], IterationMetrics]:
        number = iteration.iteration_number
        if previous is None:
            request = GenerationRequest.from_script(script, number)
            content = await backend.generate(request)
            improvements = None
        else:
            request = GenerationRequest.from_script(
                script, number, previous_content=previous.content
            )
            content, improvements = await backend.improve(request)

        metrics = await backend.score(content)
        if previous is not None:
            comparison = await backend.compare(previous.content, content)
            metrics = dataclasses.replace(
                metrics,
                redundancy_reduction=comparison.redundancy_reduction,
                improvement_areas=comparison.improvement_areas,
            )
        return content, improvements, metrics

    async def _settle_failed(self, script_id: int, iteration: Iteration) -> None:
        await self._settle(
            script_id,
            iteration,
            content=PLACEHOLDER_FAILED,
            status=IterationStatus.FAILED,
        )

    async def _settle(self, script_id: int, iteration: Iteration, **fields) -> Optional[Iteration]:
        """Write a task result back unless the iteration left in_progress meanwhile."""
        async with self._script_lock(script_id):
            current = await self.store.get_iteration(iteration.id)
            if current is None:
                logger.info(
                    "Script %d: iteration #%d was deleted, result discarded",
                    script_id,
                    iteration.iteration_number,
                )
                return None
            if current.status != IterationStatus.IN_PROGRESS:
                logger.info(
                    "Script %d: iteration #%d was edited during generation, result discarded",
                    script_id,
                    iteration.iteration_number,
                )
                return None

            updated = await self.store.update_iteration(iteration.id, **fields)
            await self._record_progress(script_id, updated)
            return updated

    async def _record_progress(self, script_id: int, iteration: Iteration) -> None:
        """Mark the script completed once its final requested iteration completes."""
        if iteration.status != IterationStatus.COMPLETED:
            return
        script = await self.store.get_script(script_id)
        if script is None or iteration.iteration_number < script.total_iterations:
            return
        if script.status != ScriptStatus.COMPLETED:
            await self.store.update_script(script_id, status=ScriptStatus.COMPLETED)
            logger.info("Script %d: all %d iteration(s) completed", script_id, script.total_iterations)


def _next_number(iterations: List[Iteration]) -> int:
    live = [i.iteration_number for i in iterations if i.status != IterationStatus.FAILED]
    return max(live, default=0) + 1


def _latest_completed(iterations: List[Iteration]) -> Optional[Iteration]:
    completed = [i for i in iterations if i.status == IterationStatus.COMPLETED]
    return max(completed, key=lambda i: i.iteration_number, default=None)
