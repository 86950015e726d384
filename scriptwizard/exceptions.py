"""
Domain exceptions for ScriptWizard.

Synchronous lookup / validation failures propagate straight to the HTTP layer,
where ``scriptwizard.main`` maps each class to its ``status_code``.
``GenerationError`` is different: it is raised by backend adapters inside the
background iteration task and is converted into a ``failed`` iteration there.
"""
from __future__ import annotations

from fastapi import status


class ScriptWizardError(Exception):
    """Base class for all application errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal server error") -> None:
        self.message = message
        super().__init__(message)


class ValidationException(ScriptWizardError):
    """Request content is well-formed JSON but semantically invalid."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation error") -> None:
        super().__init__(message)


class NotFoundException(ScriptWizardError):
    """Unknown script or iteration identifier."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message)


class PreconditionFailedException(ScriptWizardError):
    """The request is valid but the script is not in a state that allows it."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "PRECONDITION_FAILED"

    def __init__(self, message: str = "Precondition failed") -> None:
        super().__init__(message)


class GenerationError(ScriptWizardError):
    """A generation backend failed or returned nothing usable."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "GENERATION_ERROR"

    def __init__(self, message: str = "Generation failed") -> None:
        super().__init__(message)
