"""
RFC 9457 Problem Details pour HTTP APIs - exceptions du service participants.

Toutes les erreurs métier héritent de ProblemDetailException (elle-même une
HTTPException FastAPI) et transportent un ProblemDetail sérialisé en
application/problem+json par les handlers enregistrés via
setup_problem_handlers().
"""

import logging
from collections.abc import Mapping, Sequence
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"
PROBLEM_TYPE_BASE = "urn:care-participants:problem"


def problem_type(slug: str) -> str:
    """Construit l'URI de type RFC 9457 pour un slug d'erreur."""
    return f"{PROBLEM_TYPE_BASE}:{slug}"


class ProblemDetail(BaseModel):
    """Document RFC 9457. Les membres d'extension sont acceptés tels quels."""

    model_config = ConfigDict(extra="allow")

    type: str = "about:blank"
    title: str
    status: int
    detail: str | None = None
    instance: str | None = None

    def to_body(self) -> dict[str, Any]:
        """Sérialise le document; les membres standards vides sont omis, pas les extensions."""
        extensions = set(self.model_extra or {})
        data = self.model_dump(mode="json")
        return {k: v for k, v in data.items() if v is not None or k in extensions}


class ProblemDetailException(HTTPException):
    """Exception de base portant un ProblemDetail."""

    default_status: int = 500
    default_title: str = "Internal Server Error"
    default_type: str = "about:blank"

    def __init__(
        self,
        detail: str | None = None,
        *,
        status_code: int | None = None,
        title: str | None = None,
        type: str | None = None,
        instance: str | None = None,
        headers: dict[str, str] | None = None,
        **extensions: Any,
    ):
        status_code = status_code or self.default_status
        self.problem_detail = ProblemDetail(
            type=type or self.default_type,
            title=title or self.default_title,
            status=status_code,
            detail=detail,
            instance=instance,
            **extensions,
        )
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(ProblemDetailException):
    """Requête invalide, détectée avant toute écriture."""

    default_status = 422
    default_title = "Validation Error"
    default_type = problem_type("validation-error")

    def __init__(
        self,
        detail: str = "Request validation failed",
        *,
        errors: Sequence[Mapping[str, Any]] | None = None,
        **kwargs: Any,
    ):
        if errors is not None:
            kwargs["errors"] = list(errors)
        super().__init__(detail, **kwargs)


class InvalidGroupError(ValidationError):
    """Nom de groupe absent du registre des tables."""

    default_status = 400
    default_title = "Invalid Record Group"
    default_type = problem_type("invalid-group")

    def __init__(self, group: str, **kwargs: Any):
        self.group = group
        super().__init__(f"Invalid table: {group}", group=group, **kwargs)


class NotFoundError(ProblemDetailException):
    default_status = 404
    default_title = "Not Found"
    default_type = problem_type("not-found")


class UnauthorizedError(ProblemDetailException):
    default_status = 401
    default_title = "Unauthorized"
    default_type = problem_type("unauthorized")

    def __init__(self, detail: str | None = "Authentication required", **kwargs: Any):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(detail, **kwargs)


class ForbiddenError(ProblemDetailException):
    default_status = 403
    default_title = "Forbidden"
    default_type = problem_type("forbidden")


class InternalServerError(ProblemDetailException):
    default_status = 500
    default_title = "Internal Server Error"
    default_type = problem_type("internal-error")


class StoreWriteError(InternalServerError):
    """
    Échec d'une opération du record store (contrainte, connectivité, ...).

    Fatal pour le reste de la requête; les écritures déjà validées
    ne sont pas annulées.
    """

    default_title = "Store Write Error"
    default_type = problem_type("store-write-error")

    def __init__(self, detail: str = "Record store operation failed", *, table: str | None = None, **kwargs: Any):
        self.table = table
        if table is not None:
            kwargs["table"] = table
        super().__init__(detail, **kwargs)


class StoreConflictError(StoreWriteError):
    """Violation de clé unique lors d'un insert."""

    default_status = 409
    default_title = "Store Conflict"
    default_type = problem_type("store-conflict")


# Classification exposée dans le champ "error" des réponses d'orchestration
ERROR_VALIDATION = "validation_error"
ERROR_STORE_WRITE = "store_write_error"
ERROR_INTERNAL = "internal_error"


class ParticipantUpdateError(ProblemDetailException):
    """
    Échec d'une mise à jour multi-groupes d'un participant.

    Le document porte, en plus des membres RFC 9457, la forme de réponse
    de l'orchestrateur: "error", "updated_data", "updated_tables" et
    "participantid" (résultat partiel accumulé avant l'échec).

    Example:
        ```python
        raise ParticipantUpdateError.from_exception(
            StoreWriteError("Failed to update demographics"),
            updated_data={"general_info": {...}},
            updated_tables=["general_info"],
            participantid="p-1",
        )
        ```
    """

    default_title = "Participant Update Failed"
    default_type = problem_type("participant-update-failed")

    def __init__(
        self,
        *,
        error: str,
        detail: str,
        status_code: int = 500,
        updated_data: Mapping[str, Any] | None = None,
        updated_tables: Sequence[str] | None = None,
        participantid: str | None = None,
        instance: str | None = None,
    ):
        self.error = error
        self.updated_data = dict(updated_data or {})
        self.updated_tables = list(updated_tables or [])
        self.participantid = participantid
        super().__init__(
            detail,
            status_code=status_code,
            instance=instance,
            error=error,
            updated_data=self.updated_data,
            updated_tables=self.updated_tables,
            participantid=participantid,
        )

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        *,
        updated_data: Mapping[str, Any] | None = None,
        updated_tables: Sequence[str] | None = None,
        participantid: str | None = None,
    ) -> "ParticipantUpdateError":
        """Classe une exception et l'enveloppe avec le résultat partiel."""
        if isinstance(exc, ValidationError):
            error, status_code, detail = ERROR_VALIDATION, exc.status_code, exc.problem_detail.detail
        elif isinstance(exc, StoreWriteError):
            error, status_code, detail = ERROR_STORE_WRITE, 500, exc.problem_detail.detail
        else:
            # Jamais de détails internes dans la réponse
            error, status_code, detail = ERROR_INTERNAL, 500, "Internal server error"
        return cls(
            error=error,
            detail=detail or "Participant update failed",
            status_code=status_code,
            updated_data=updated_data,
            updated_tables=updated_tables,
            participantid=participantid,
        )


# =============================================================================
# Handlers FastAPI
# =============================================================================


def _problem_response(body: dict[str, Any], status_code: int, headers: Mapping[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        jsonable_encoder(body),
        status_code=status_code,
        media_type=PROBLEM_MEDIA_TYPE,
        headers=dict(headers) if headers else None,
    )


async def handle_problem_exception(request: Request, exc: ProblemDetailException) -> JSONResponse:
    body = exc.problem_detail.to_body()
    body.setdefault("instance", request.url.path)
    if exc.status_code >= 500:
        logger.error(f"{exc.problem_detail.title} sur {request.url.path}: {exc.problem_detail.detail}")
    return _problem_response(body, exc.status_code, exc.headers)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    try:
        title = HTTPStatus(exc.status_code).phrase
    except ValueError:
        title = "Error"
    body = {
        "type": "about:blank",
        "title": title,
        "status": exc.status_code,
        "detail": str(exc.detail) if exc.detail is not None else None,
        "instance": request.url.path,
    }
    return _problem_response(body, exc.status_code, getattr(exc, "headers", None))


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    body = {
        "type": problem_type("validation-error"),
        "title": "Validation Error",
        "status": 422,
        "detail": "Request validation failed",
        "instance": request.url.path,
        "errors": jsonable_encoder(exc.errors()),
    }
    return _problem_response(body, 422)


def setup_problem_handlers(app: FastAPI, expose_internal_errors: bool = False) -> None:
    """Enregistre les handlers RFC 9457 sur l'application."""

    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Erreur inattendue sur {request.url.path}")
        body = {
            "type": problem_type("internal-error"),
            "title": "Internal Server Error",
            "status": 500,
            "detail": str(exc) if expose_internal_errors else "Internal server error",
            "instance": request.url.path,
        }
        return _problem_response(body, 500)

    app.add_exception_handler(ProblemDetailException, handle_problem_exception)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)


__all__ = [
    "ERROR_INTERNAL",
    "ERROR_STORE_WRITE",
    "ERROR_VALIDATION",
    "PROBLEM_MEDIA_TYPE",
    "ForbiddenError",
    "InternalServerError",
    "InvalidGroupError",
    "NotFoundError",
    "ParticipantUpdateError",
    "ProblemDetail",
    "ProblemDetailException",
    "StoreConflictError",
    "StoreWriteError",
    "UnauthorizedError",
    "ValidationError",
    "problem_type",
    "setup_problem_handlers",
]
