"""
Shared fixtures for ScriptWizard tests.

Every test gets a fresh in-memory store and an orchestrator wired to a
scripted backend, so no provider is contacted.  The API client runs the
FastAPI app in-process with the service dependencies overridden.
"""
from __future__ import annotations

import asyncio
from typing import Any, AsyncGenerator, List, Optional, Tuple, Union

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from scriptwizard.dependencies.services import get_orchestrator, get_store
from scriptwizard.exceptions import GenerationError
from scriptwizard.main import app
from scriptwizard.models.records import Script, ScriptLength
from scriptwizard.services.backends import BackendKind, BackendRegistry, GenerationBackend
from scriptwizard.services.orchestrator import IterationOrchestrator
from scriptwizard.services.store import InMemoryScriptStore


# ---------------------------------------------------------------------------
# Scripted backend
# ---------------------------------------------------------------------------

FIRST_DRAFT = (
    "## Introduction (0:00-0:30)\n"
    "Welcome back to the channel. Today we are looking at sourdough bread.\n\n"
    "## Main Points (0:30-2:00)\n"
    "Sourdough needs only flour, water and salt. Sourdough needs only flour, "
    "water and salt, plus a lot of patience."
)

REVISED_DRAFT = (
    "## Introduction (0:00-0:30)\n"
    "Welcome back! Today: sourdough bread from scratch.\n\n"
    "## Main Points (0:30-2:00)\n"
    "Flour, water and salt are all you need, plus a little patience."
)

Reply = Union[str, Exception]


class ScriptedBackend(GenerationBackend):
    """
    Backend whose provider replies come from a queue.

    Plain completions pop ``replies`` (falling back to canned drafts when the
    queue is empty); JSON completions pop ``analysis_replies`` and raise
    GenerationError when that queue is empty, which exercises the heuristic
    scoring path.  Setting ``gate`` to an unset Event blocks every call.
    """

    kind = BackendKind.OPENAI

    def __init__(
        self,
        replies: Optional[List[Reply]] = None,
        analysis_replies: Optional[List[Reply]] = None,
    ) -> None:
        super().__init__("gpt-4o")
        self.replies: List[Reply] = list(replies or [])
        self.analysis_replies: List[Reply] = list(analysis_replies or [])
        self.calls: List[Tuple[str, str, bool]] = []
        self.gate: Optional[asyncio.Event] = None

    async def _complete(self, system, prompt, *, max_tokens, json_output=False):
        self.calls.append((system, prompt, json_output))
        if self.gate is not None:
            await self.gate.wait()

        if json_output:
            if not self.analysis_replies:
                raise GenerationError("analysis unavailable")
            reply = self.analysis_replies.pop(0)
        elif self.replies:
            reply = self.replies.pop(0)
        elif "PREVIOUS SCRIPT:" in prompt:
            reply = f"{REVISED_DRAFT}\n\nIMPROVEMENTS:\n- Removed the repeated sentence"
        else:
            reply = FIRST_DRAFT

        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def prompts(self) -> List[str]:
        return [prompt for _, prompt, json_output in self.calls if not json_output]


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store() -> InMemoryScriptStore:
    return InMemoryScriptStore()


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def registry(backend: ScriptedBackend) -> BackendRegistry:
    return BackendRegistry({BackendKind.OPENAI: backend}, default=BackendKind.OPENAI)


@pytest_asyncio.fixture
async def orchestrator(
    store: InMemoryScriptStore, registry: BackendRegistry
) -> AsyncGenerator[IterationOrchestrator, None]:
    orch = IterationOrchestrator(store, registry, timeout=5)
    yield orch
    await orch.shutdown()


@pytest_asyncio.fixture
async def client(
    store: InMemoryScriptStore, orchestrator: IterationOrchestrator
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the store and
    orchestrator dependencies overridden to the per-test instances.
    """
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

USER_HEADERS = {"X-User-Id": "test-user-1"}
USER_HEADERS_2 = {"X-User-Id": "test-user-2"}

SCRIPT_BODY = {
    "title": "Sourdough Basics",
    "instructions": "Explain how to bake a first sourdough loaf.",
    "model": "gpt-4o",
    "tone": "friendly",
    "length": "short",
    "iterations": 2,
}


async def make_script(store: InMemoryScriptStore, **overrides: Any) -> Script:
    fields = {
        "user_id": "test-user-1",
        "title": "Sourdough Basics",
        "instructions": "Explain how to bake a first sourdough loaf.",
        "model": "gpt-4o",
        "tone": "friendly",
        "length": ScriptLength.SHORT,
        "total_iterations": 2,
    }
    fields.update(overrides)
    return await store.create_script(**fields)
