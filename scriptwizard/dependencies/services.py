"""
Service dependencies.

The store and orchestrator are built once in the application lifespan and
kept on ``app.state``; routes resolve them per request through these
functions so tests can swap them with ``app.dependency_overrides``.
"""
from fastapi import Request

from scriptwizard.services.orchestrator import IterationOrchestrator
from scriptwizard.services.store import ScriptStore


def get_store(request: Request) -> ScriptStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> IterationOrchestrator:
    return request.app.state.orchestrator
