"""Schémas Pydantic pour les dossiers participants.

Les payloads de groupes sont opaques: le service les transmet tels quels
au record store. Seules les formes de réponse sont typées ici.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.utils import Month, ParticipantId, Year


class ParticipantUpdateResult(BaseModel):
    """Résultat d'une mise à jour multi-groupes réussie."""

    updated_data: dict[str, dict[str, Any]] = Field(
        default_factory=dict, description="Ligne résultante par groupe mis à jour"
    )
    updated_tables: list[str] = Field(
        default_factory=list, description="Groupes mis à jour, dans l'ordre de traitement"
    )
    participantid: str = Field(..., description="ID du participant")


class ParticipantBrief(BaseModel):
    """Identité courte d'un participant (informations générales principales)."""

    id: str
    first_name: str | None = None
    last_name: str | None = None
    status: str | None = None
    type: str | None = None


class CarePartnerLink(BaseModel):
    primary: bool | None = None
    carepartner: ParticipantBrief


class CaredForLink(BaseModel):
    primary: bool | None = None
    participant: ParticipantBrief


class ParticipantSummary(ParticipantBrief):
    """Ligne de liste: agrégat + informations générales + partenariats de soin."""

    participant_created_at: datetime | None = None
    participant_updated_at: datetime | None = None
    carepartners: list[CarePartnerLink] = Field(
        default_factory=list, description="Care partners qui aident ce participant"
    )
    participants_cared_for: list[CaredForLink] = Field(
        default_factory=list, description="Participants aidés par ce participant"
    )


class ParticipantDetail(BaseModel):
    """Fiche complète d'un participant, tous groupes confondus."""

    id: str
    participant_created_at: datetime | None = None
    participant_updated_at: datetime | None = None
    groups: dict[str, dict[str, Any] | list[dict[str, Any]] | None] = Field(
        default_factory=dict,
        description="Groupes 1:1 -> ligne ou null; groupes composites -> liste de lignes",
    )
    cared_for: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Partenariats où ce participant est le care partner",
    )


class ParticipantDeleteResponse(BaseModel):
    message: str
    participantid: str


class GroupRowsDeleteResponse(BaseModel):
    message: str
    table: str
    keys: dict[str, Any]
    deleted: int


class ScheduleUpsert(BaseModel):
    """Corps de requête pour créer/remplacer un planning mensuel."""

    month: Month
    year: Year
    schedule: dict[str, Any] | list[Any] = Field(..., description="Planning (structure libre)")
    toileting: dict[str, Any] | list[Any] | None = None


class ScheduleResponse(BaseModel):
    participant_id: ParticipantId
    month: Month
    year: Year
    schedule: dict[str, Any] | list[Any] | None = None
    toileting: dict[str, Any] | list[Any] | None = None


class ScheduleDeleteResponse(BaseModel):
    message: str
    participantid: str
    month: int
    year: int


class AttendanceUpsert(BaseModel):
    """
    Corps de requête pour créer ou modifier une présence.

    Sans `id`, une nouvelle ligne est créée; avec `id`, la ligne existante
    est mise à jour (seuls les champs fournis sont écrits).
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    participant_id: str | None = None
    date: str | None = Field(None, examples=["2024-03-04"])
    time: str | None = Field(None, examples=["AM"])
    in_: str | None = Field(None, alias="in", examples=["09:00"])
    out: str | None = Field(None, examples=["12:00"])
    code: str | None = None


class AttendanceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    participant_id: ParticipantId
    date: str
    time: str
    in_: str | None = Field(None, alias="in")
    out: str | None = None
    code: str | None = None


class AttendanceDeleteResponse(BaseModel):
    message: str
    id: int
