"""Endpoints API pour les dossiers participants.

La mise à jour multi-groupes (PUT /{participant_id}) est la seule opération
qui touche plusieurs tables; les autres endpoints sont des lectures ou
suppressions ciblées, toujours résolues via le registre des groupes.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Path, Query

from app.core.dependencies import get_record_store
from app.core.exceptions import NotFoundError
from app.core.record_store import RecordStore
from app.core.security import User, get_current_user, require_write_access
from app.schemas import (
    AttendanceDeleteResponse,
    AttendanceResponse,
    AttendanceUpsert,
    GroupRowsDeleteResponse,
    ParticipantDeleteResponse,
    ParticipantDetail,
    ParticipantSummary,
    ParticipantUpdateResult,
    ScheduleDeleteResponse,
    ScheduleResponse,
    ScheduleUpsert,
    delete_responses,
    read_responses,
    update_responses,
)
from app.services import participant_service
from app.services.participant_service import CARE_PARTNER_TYPE

router = APIRouter()


# =============================================================================
# Listes (déclarées avant /{participant_id})
# =============================================================================


@router.get(
    "/",
    response_model=list[ParticipantSummary],
    summary="Lister les participants",
)
async def list_participants(
    type: str | None = Query(None, description="Filtre sur le type (ex: Care Partner)"),
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(get_current_user),
) -> list[ParticipantSummary]:
    return await participant_service.list_participants(store, participant_type=type)


@router.get(
    "/carepartners",
    response_model=list[ParticipantSummary],
    summary="Lister les care partners",
)
async def list_care_partners(
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(get_current_user),
) -> list[ParticipantSummary]:
    return await participant_service.list_participants(store, participant_type=CARE_PARTNER_TYPE)


@router.get(
    "/schedules",
    response_model=list[ScheduleResponse],
    summary="Lister tous les plannings",
)
async def list_all_schedules(
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(get_current_user),
) -> list[ScheduleResponse]:
    rows = await participant_service.list_schedules(store)
    return [ScheduleResponse.model_validate(row) for row in rows]


# =============================================================================
# Présences (déclarées avant /{participant_id})
# =============================================================================


@router.get(
    "/attendance",
    response_model=list[AttendanceResponse],
    summary="Lister toutes les présences",
)
async def list_all_attendance(
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(get_current_user),
) -> list[AttendanceResponse]:
    rows = await participant_service.list_attendance(store)
    return [AttendanceResponse.model_validate(row) for row in rows]


@router.get(
    "/attendance/{participant_id}",
    response_model=list[AttendanceResponse],
    summary="Lister les présences d'un participant",
)
async def list_participant_attendance(
    participant_id: str,
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(get_current_user),
) -> list[AttendanceResponse]:
    rows = await participant_service.list_attendance(store, participant_id)
    return [AttendanceResponse.model_validate(row) for row in rows]


@router.post(
    "/attendance",
    response_model=AttendanceResponse,
    summary="Créer ou modifier une présence",
    description="Sans id, crée une présence; avec id, met à jour la présence existante",
    responses=update_responses,
)
async def upsert_attendance(
    payload: AttendanceUpsert,
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(require_write_access),
) -> AttendanceResponse:
    row = await participant_service.upsert_attendance(
        store, payload.model_dump(by_alias=True, exclude_unset=True)
    )
    return AttendanceResponse.model_validate(row)


@router.delete(
    "/attendance/{attendance_id}",
    response_model=AttendanceDeleteResponse,
    summary="Supprimer une présence",
    responses=delete_responses,
)
async def delete_attendance(
    attendance_id: int,
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(require_write_access),
) -> AttendanceDeleteResponse:
    deleted = await participant_service.delete_attendance(store, attendance_id)
    if not deleted:
        raise NotFoundError(f"Attendance {attendance_id} not found")
    return AttendanceDeleteResponse(message="Attendance deleted", id=attendance_id)


# =============================================================================
# Participant
# =============================================================================


@router.get(
    "/{participant_id}",
    response_model=ParticipantDetail,
    summary="Récupérer un participant",
    description="Retourne la racine du participant et tous ses groupes de données",
    responses=read_responses,
)
async def get_participant(
    participant_id: str,
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(get_current_user),
) -> ParticipantDetail:
    participant = await participant_service.get_participant(store, participant_id)
    if participant is None:
        raise NotFoundError(f"Participant {participant_id} not found")
    return participant


@router.put(
    "/{participant_id}",
    response_model=ParticipantUpdateResult,
    summary="Mettre à jour les groupes d'un participant",
    description=(
        "Applique une mise à jour multi-groupes. Le participant est créé s'il "
        "n'existe pas. Les groupes sont écrits dans l'ordre du corps de requête; "
        "en cas d'échec, la réponse d'erreur contient les groupes déjà écrits."
    ),
    responses=update_responses,
)
async def update_participant(
    participant_id: str,
    groups: dict[str, Any] = Body(
        ...,
        examples=[{"general_info": {"first_name": "Jo", "last_name": "Lee"}}],
    ),
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(require_write_access),
) -> ParticipantUpdateResult:
    """
    Permissions requises : un des rôles WRITE_ROLES (admin, staff par défaut)
    """
    return await participant_service.update_participant(store, participant_id, groups)


@router.delete(
    "/{participant_id}",
    response_model=ParticipantDeleteResponse,
    summary="Supprimer un participant",
    description="Supprime la racine du participant; les groupes sont supprimés en cascade",
    responses=delete_responses,
)
async def delete_participant(
    participant_id: str,
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(require_write_access),
) -> ParticipantDeleteResponse:
    deleted = await participant_service.delete_participant(store, participant_id)
    if not deleted:
        raise NotFoundError(f"Participant {participant_id} not found")
    return ParticipantDeleteResponse(
        message="Participant deleted successfully", participantid=participant_id
    )


@router.delete(
    "/{participant_id}/groups/{group}",
    response_model=GroupRowsDeleteResponse,
    summary="Supprimer les lignes d'un groupe",
    description=(
        "Sans corps, supprime toutes les lignes du groupe pour ce participant. "
        "Pour les groupes composites, le corps peut préciser les clés "
        '(ex: {"carepartner_id": "cp-1"}).'
    ),
    responses=delete_responses,
)
async def delete_group_rows(
    participant_id: str,
    group: str,
    key_fields: dict[str, Any] | None = Body(None),
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(require_write_access),
) -> GroupRowsDeleteResponse:
    spec, keys, deleted = await participant_service.delete_group_rows(
        store, participant_id, group, key_fields
    )
    if not deleted:
        raise NotFoundError(f"No {spec.group.value} row matches {keys}")
    return GroupRowsDeleteResponse(
        message="Rows deleted successfully",
        table=spec.group.value,
        keys=keys,
        deleted=deleted,
    )


# =============================================================================
# Plannings
# =============================================================================


@router.get(
    "/{participant_id}/schedules",
    response_model=list[ScheduleResponse],
    summary="Lister les plannings d'un participant",
)
async def list_participant_schedules(
    participant_id: str,
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(get_current_user),
) -> list[ScheduleResponse]:
    rows = await participant_service.list_schedules(store, participant_id)
    return [ScheduleResponse.model_validate(row) for row in rows]


@router.get(
    "/{participant_id}/schedule",
    response_model=ScheduleResponse,
    summary="Récupérer le planning d'un mois",
    responses=read_responses,
)
async def get_schedule(
    participant_id: str,
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=1900, le=2100),
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(get_current_user),
) -> ScheduleResponse:
    row = await participant_service.get_schedule(store, participant_id, month, year)
    if row is None:
        raise NotFoundError(f"No schedule for {participant_id} in {year}-{month:02d}")
    return ScheduleResponse.model_validate(row)


@router.put(
    "/{participant_id}/schedule",
    response_model=ScheduleResponse,
    summary="Créer ou remplacer le planning d'un mois",
)
async def upsert_schedule(
    participant_id: str,
    payload: ScheduleUpsert,
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(require_write_access),
) -> ScheduleResponse:
    row = await participant_service.upsert_schedule(
        store,
        participant_id,
        payload.month,
        payload.year,
        payload.schedule,
        payload.toileting,
    )
    return ScheduleResponse.model_validate(row)


@router.delete(
    "/{participant_id}/schedule/{month}/{year}",
    response_model=ScheduleDeleteResponse,
    summary="Supprimer le planning d'un mois",
    responses=delete_responses,
)
async def delete_schedule(
    participant_id: str,
    month: int = Path(..., ge=1, le=12),
    year: int = Path(..., ge=1900, le=2100),
    store: RecordStore = Depends(get_record_store),
    current_user: User = Depends(require_write_access),
) -> ScheduleDeleteResponse:
    deleted = await participant_service.delete_schedule(store, participant_id, month, year)
    if not deleted:
        raise NotFoundError(f"No schedule for {participant_id} in {year}-{month:02d}")
    return ScheduleDeleteResponse(
        message="Schedule deleted successfully",
        participantid=participant_id,
        month=month,
        year=year,
    )
