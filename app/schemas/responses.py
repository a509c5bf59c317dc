"""
Schémas de réponses OpenAPI pour RFC 9457 Problem Details.

Documente les réponses d'erreur des endpoints; le contenu réel est produit
par les handlers de app.core.exceptions.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.core.exceptions import PROBLEM_MEDIA_TYPE


class ProblemDetailResponse(BaseModel):
    """Document RFC 9457 générique."""

    model_config = ConfigDict(extra="allow")

    type: str = Field("about:blank", description="URI identifiant le type de problème")
    title: str = Field(..., description="Résumé court du problème")
    status: int = Field(..., description="Code HTTP")
    detail: str | None = Field(None, description="Explication spécifique à cette occurrence")
    instance: str | None = Field(None, description="Chemin de la requête concernée")


class ValidationErrorResponse(ProblemDetailResponse):
    errors: list[dict[str, Any]] = Field(default_factory=list)


class ParticipantUpdateErrorResponse(ProblemDetailResponse):
    """Échec d'orchestration: résultat partiel accumulé avant l'erreur."""

    error: str = Field(..., description="validation_error | store_write_error | internal_error")
    updated_data: dict[str, dict[str, Any]] = Field(default_factory=dict)
    updated_tables: list[str] = Field(default_factory=list)
    participantid: str | None = None


def _problem(description: str, model: type[BaseModel] = ProblemDetailResponse) -> dict[str, Any]:
    return {
        "description": description,
        "model": model,
        "content": {PROBLEM_MEDIA_TYPE: {}},
    }


COMMON_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: _problem("Authentification requise"),
    403: _problem("Rôle insuffisant"),
    422: _problem("Requête invalide", ValidationErrorResponse),
    500: _problem("Erreur interne"),
}


def build_responses(*status_codes: int, **overrides: type[BaseModel]) -> dict[int | str, dict[str, Any]]:
    """
    Construit un dictionnaire `responses` pour un endpoint.

    Example:
        @router.put("/{id}", responses=build_responses(400, 404, s500=ParticipantUpdateErrorResponse))
    """
    descriptions = {
        400: "Requête rejetée",
        404: "Ressource non trouvée",
        409: "Conflit",
        500: "Erreur interne",
    }
    responses = {}
    for code in status_codes:
        model = overrides.get(f"s{code}", ProblemDetailResponse)
        responses[code] = _problem(descriptions.get(code, "Erreur"), model)
    return responses


update_responses = build_responses(
    400,
    500,
    s400=ParticipantUpdateErrorResponse,
    s500=ParticipantUpdateErrorResponse,
)
read_responses = build_responses(404)
delete_responses = build_responses(400, 404)


__all__ = [
    "COMMON_RESPONSES",
    "ParticipantUpdateErrorResponse",
    "ProblemDetailResponse",
    "ValidationErrorResponse",
    "build_responses",
    "delete_responses",
    "read_responses",
    "update_responses",
]
