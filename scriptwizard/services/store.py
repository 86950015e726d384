"""
Script / iteration store.

``ScriptStore`` is the contract the orchestrator and routers depend on;
``InMemoryScriptStore`` is the volatile implementation used by the service.
A durable implementation only has to honour the same async interface.

Every method of the in-memory store runs under one ``asyncio.Lock`` so the
background generation tasks and concurrent request handlers never observe a
half-applied write.  Records are copied on the way in and out: callers get
snapshots, never the stored object.
"""
from __future__ import annotations

import abc
import asyncio
import copy
import dataclasses
import itertools
import logging
from typing import Any, Dict, List, Optional

from scriptwizard.exceptions import NotFoundException, PreconditionFailedException
from scriptwizard.models.records import Iteration, Script, utcnow

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


class ScriptStore(abc.ABC):
    """Keyed collection of Script and Iteration records."""

    # -- scripts -------------------------------------------------------------

    @abc.abstractmethod
    async def create_script(self, **fields: Any) -> Script: ...

    @abc.abstractmethod
    async def get_script(self, script_id: int) -> Optional[Script]: ...

    @abc.abstractmethod
    async def list_scripts(self, user_id: Optional[str] = None) -> List[Script]: ...

    @abc.abstractmethod
    async def update_script(self, script_id: int, **fields: Any) -> Script: ...

    @abc.abstractmethod
    async def delete_script(self, script_id: int) -> bool: ...

    # -- iterations ----------------------------------------------------------

    @abc.abstractmethod
    async def create_iteration(self, **fields: Any) -> Iteration: ...

    @abc.abstractmethod
    async def get_iteration(self, iteration_id: int) -> Optional[Iteration]: ...

    @abc.abstractmethod
    async def list_iterations(self, script_id: int) -> List[Iteration]: ...

    @abc.abstractmethod
    async def update_iteration(self, iteration_id: int, **fields: Any) -> Iteration: ...

    @abc.abstractmethod
    async def delete_iteration(self, iteration_id: int) -> bool: ...

    # -- misc ----------------------------------------------------------------

    @abc.abstractmethod
    async def counts(self) -> Dict[str, int]: ...

    async def close(self) -> None:
        """Release any resources held by the store."""


class InMemoryScriptStore(ScriptStore):
    """Volatile store backed by two dicts and autoincrement counters."""

    def __init__(self) -> None:
        self._scripts: Dict[int, Script] = {}
        self._iterations: Dict[int, Iteration] = {}
        self._script_ids = itertools.count(1)
        self._iteration_ids = itertools.count(1)
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Scripts
    # ------------------------------------------------------------------

    async def create_script(self, **fields: Any) -> Script:
        async with self._lock:
            script = Script(id=next(self._script_ids), **fields)
            self._scripts[script.id] = script
            logger.debug("create_script: id=%d title=%r", script.id, script.title)
            return copy.deepcopy(script)

    async def get_script(self, script_id: int) -> Optional[Script]:
        async with self._lock:
            script = self._scripts.get(script_id)
            return copy.deepcopy(script) if script else None

    async def list_scripts(self, user_id: Optional[str] = None) -> List[Script]:
        async with self._lock:
            scripts = [
                s for s in self._scripts.values()
                if user_id is None or s.user_id == user_id
            ]
            scripts.sort(key=lambda s: s.id, reverse=True)
            return copy.deepcopy(scripts)

    async def update_script(self, script_id: int, **fields: Any) -> Script:
        async with self._lock:
            script = self._scripts.get(script_id)
            if script is None:
                raise NotFoundException(f"Script {script_id} not found")
            updated = _merge(script, fields)
            self._scripts[script_id] = updated
            return copy.deepcopy(updated)

    async def delete_script(self, script_id: int) -> bool:
        """Delete a script and every iteration it owns."""
        async with self._lock:
            if self._scripts.pop(script_id, None) is None:
                return False
            owned = [i.id for i in self._iterations.values() if i.script_id == script_id]
            for iteration_id in owned:
                del self._iterations[iteration_id]
            logger.info(
                "delete_script: id=%d (%d iteration(s) removed)", script_id, len(owned)
            )
            return True

    # ------------------------------------------------------------------
    # Iterations
    # ------------------------------------------------------------------

    async def create_iteration(self, **fields: Any) -> Iteration:
        """
        Insert a new iteration.

        Rejects an unknown owning script and a second record with the same
        ``(script_id, iteration_number)`` pair.
        """
        async with self._lock:
            script_id = fields["script_id"]
            number = fields["iteration_number"]
            if script_id not in self._scripts:
                raise NotFoundException(f"Script {script_id} not found")
            if any(
                i.script_id == script_id and i.iteration_number == number
                for i in self._iterations.values()
            ):
                raise PreconditionFailedException(
                    f"Iteration {number} already exists for script {script_id}"
                )
            iteration = Iteration(id=next(self._iteration_ids), **fields)
            self._iterations[iteration.id] = iteration
            return copy.deepcopy(iteration)

    async def get_iteration(self, iteration_id: int) -> Optional[Iteration]:
        async with self._lock:
            iteration = self._iterations.get(iteration_id)
            return copy.deepcopy(iteration) if iteration else None

    async def list_iterations(self, script_id: int) -> List[Iteration]:
        async with self._lock:
            iterations = [
                i for i in self._iterations.values() if i.script_id == script_id
            ]
            iterations.sort(key=lambda i: i.iteration_number)
            return copy.deepcopy(iterations)

    async def update_iteration(self, iteration_id: int, **fields: Any) -> Iteration:
        async with self._lock:
            iteration = self._iterations.get(iteration_id)
            if iteration is None:
                raise NotFoundException(f"Iteration {iteration_id} not found")
            updated = _merge(iteration, fields)
            self._iterations[iteration_id] = updated
            return copy.deepcopy(updated)

    async def delete_iteration(self, iteration_id: int) -> bool:
        async with self._lock:
            return self._iterations.pop(iteration_id, None) is not None

    async def counts(self) -> Dict[str, int]:
        async with self._lock:
            return {
                "scripts": len(self._scripts),
                "iterations": len(self._iterations),
            }


def _merge(record: Any, fields: Dict[str, Any]) -> Any:
    """Shallow-merge *fields* onto a copy of *record* and bump ``updated_at``."""
    bad = _IMMUTABLE_FIELDS.intersection(fields)
    if bad:
        raise ValueError(f"Cannot update immutable field(s): {sorted(bad)}")
    return dataclasses.replace(record, **{**fields, "updated_at": utcnow()})
