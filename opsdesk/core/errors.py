"""
Typed errors raised by the runbook services.

Every error carries a stable ``code``, a human readable ``message`` and a
``context`` dict (current state, missing precondition, guidance) so the UI
can point the user at the action that resolves it. Services raise these,
the API layer renders them through ``register_exception_handlers``.
"""
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger


class RunbookError(Exception):
    code = "runbook_error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.context}


class NotFound(RunbookError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} '{entity_id}' not found",
            {"entity": entity, "entity_id": str(entity_id)},
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateTransition(RunbookError):
    code = "invalid_state_transition"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, entity: str, entity_id: Any, current_state: str, attempted: str):
        super().__init__(
            f"Cannot {attempted} {entity} '{entity_id}' while it is '{current_state}'",
            {
                "entity": entity,
                "entity_id": str(entity_id),
                "current_state": current_state,
                "attempted": attempted,
            },
        )
        self.current_state = current_state
        self.attempted = attempted


class PreconditionFailed(RunbookError):
    code = "precondition_failed"
    http_status = status.HTTP_412_PRECONDITION_FAILED

    def __init__(self, reason: str, guidance: str, **context: Any):
        super().__init__(reason, {"guidance": guidance, **{k: str(v) for k, v in context.items()}})
        self.guidance = guidance


class PersistenceFailure(RunbookError):
    """The data store rejected a write. The whole operation was rolled back and is safe to retry."""

    code = "persistence_failure"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Failed to persist {operation}; nothing was written, retry the request",
            {"operation": operation, "retryable": True},
        )
        self.cause = cause


class GenerationInProgress(PersistenceFailure):
    code = "generation_in_progress"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, staff_id: Any, task_date: Any):
        RunbookError.__init__(
            self,
            f"Runbook generation for staff '{staff_id}' on {task_date} is already running, retry shortly",
            {"staff_id": str(staff_id), "date": str(task_date), "retryable": True},
        )
        self.cause = None


async def runbook_error_handler(request: Request, exc: RunbookError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(RunbookError, runbook_error_handler)
