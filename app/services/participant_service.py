"""Service metier pour les dossiers participants.

L'agregat participant est reparti sur une table racine (participants) et une
table par groupe de donnees. Une mise a jour applique plusieurs groupes comme
une seule operation logique:

1. Validation des groupes contre le registre (aucune ecriture si invalide)
2. Existence Gate: creation de la ligne racine si absente
3. Upsert sequentiel de chaque groupe, dans l'ordre fourni par l'appelant
4. Horodatage participant_updated_at de la racine
5. Reponse: donnees par groupe, groupes mis a jour, id participant

Pas de rollback: un echec au groupe N laisse les groupes 1..N-1 ecrits et
l'erreur retournee porte ce resultat partiel. Pas de retry.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from opentelemetry import metrics, trace

from app.core.cache import cache_delete, cache_get, cache_key_participant, cache_set
from app.core.config import settings
from app.core.events import publish
from app.core.exceptions import (
    ParticipantUpdateError,
    ProblemDetailException,
    StoreConflictError,
    StoreWriteError,
    ValidationError,
)
from app.core.record_store import RecordStore, Row
from app.core.registry import TABLE_REGISTRY, GroupSpec, RecordGroup, resolve_group
from app.models.participant import (
    PARTICIPANT_ID_LENGTH,
    Participant,
    ParticipantAttendance,
    ParticipantCare,
    ParticipantGeneralInfo,
)
from app.schemas.participant import (
    CarePartnerLink,
    CaredForLink,
    ParticipantBrief,
    ParticipantDetail,
    ParticipantSummary,
    ParticipantUpdateResult,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)
meter = metrics.get_meter("core-care-participants.participants")

participant_updates_counter = meter.create_counter(
    name="participant_updates_total",
    description="Mises a jour multi-groupes par resultat",
    unit="1",
)

PARTICIPANTS_TABLE = Participant.__table__
CARE_PARTNER_TYPE = "Care Partner"


# =============================================================================
# Types
# =============================================================================


@dataclass(frozen=True)
class EnsureResult:
    """Resultat de l'Existence Gate."""

    created: bool
    participant: Row


@dataclass(frozen=True)
class GroupWrite:
    """Ecriture planifiee pour un groupe: entree de registre + ligne complete."""

    spec: GroupSpec
    row: Row

    @property
    def group(self) -> RecordGroup:
        return self.spec.group


@dataclass(frozen=True)
class GroupUpdateAccumulator:
    """
    Resultat accumule au fil des groupes traites.

    Valeur immuable: chaque groupe ecrit produit un nouvel accumulateur via
    with_group(). En cas d'echec, l'accumulateur courant decrit exactement
    ce qui a ete ecrit avant l'erreur.
    """

    participant_id: str | None = None
    updated_tables: tuple[RecordGroup, ...] = ()
    updated_data: Mapping[str, Row] = field(default_factory=dict)

    def with_group(self, group: RecordGroup, row: Row) -> "GroupUpdateAccumulator":
        return replace(
            self,
            updated_tables=(*self.updated_tables, group),
            updated_data={**self.updated_data, group.value: row},
        )

    def to_result(self) -> ParticipantUpdateResult:
        return ParticipantUpdateResult(
            updated_data=dict(self.updated_data),
            updated_tables=[group.value for group in self.updated_tables],
            participantid=self.participant_id,
        )

    def to_error(self, exc: Exception) -> ParticipantUpdateError:
        return ParticipantUpdateError.from_exception(
            exc,
            updated_data=self.updated_data,
            updated_tables=[group.value for group in self.updated_tables],
            participantid=self.participant_id,
        )


# =============================================================================
# Validation
# =============================================================================


def _require_participant_id(participant_id: Any) -> str:
    if not isinstance(participant_id, str) or not participant_id.strip():
        raise ValidationError("Participant ID is required")
    participant_id = participant_id.strip()
    if len(participant_id) > PARTICIPANT_ID_LENGTH:
        raise ValidationError(
            f"Participant ID must be at most {PARTICIPANT_ID_LENGTH} characters",
            errors=[{"loc": ["participant_id"], "msg": "too long"}],
        )
    return participant_id


def plan_group_updates(participant_id: str, groups: Any) -> list[GroupWrite]:
    """
    Valide la requete et planifie les ecritures, sans aucune I/O.

    - Tout nom de groupe inconnu rejette la requete entiere.
    - Un payload vide (None ou {}) signifie "non demande" et est ignore.
    - La colonne participant du payload est forcee a l'id du participant.
    - Les groupes composites exigent leurs discriminants dans le payload.

    Raises:
        InvalidGroupError: Nom de groupe hors registre
        ValidationError: Forme de payload invalide ou discriminant manquant
    """
    if not isinstance(groups, Mapping):
        raise ValidationError("Invalid request body")

    # Tous les noms sont valides avant d'examiner le moindre payload
    specs = [resolve_group(name) for name in groups]

    plan: list[GroupWrite] = []
    for spec, payload in zip(specs, groups.values(), strict=True):
        if payload is None:
            continue
        if not isinstance(payload, Mapping):
            raise ValidationError(
                f"Payload for {spec.group.value} must be an object",
                errors=[{"loc": [spec.group.value], "msg": "must be an object"}],
            )
        if not payload:
            continue

        missing = [column for column in spec.discriminators if payload.get(column) is None]
        if missing:
            raise ValidationError(
                f"Missing key field(s) {', '.join(missing)} for {spec.group.value}",
                errors=[
                    {"loc": [spec.group.value, column], "msg": "field required"}
                    for column in missing
                ],
            )

        row = {**payload, spec.participant_column: participant_id}
        plan.append(GroupWrite(spec=spec, row=row))
    return plan


# =============================================================================
# Existence Gate / Coordinator / Stamper
# =============================================================================


async def ensure_participant(store: RecordStore, participant_id: str) -> EnsureResult:
    """
    Garantit l'existence de la ligne racine du participant.

    Idempotent: au plus un insert par id. Un insert perdu contre une requete
    concurrente (violation de cle) relit la ligne et rapporte created=False.

    Raises:
        StoreWriteError: Lecture ou insertion en echec
    """
    with tracer.start_as_current_span("ensure_participant") as span:
        span.set_attribute("participant.id", participant_id)

        existing = await store.get_by_key(PARTICIPANTS_TABLE, {"id": participant_id})
        if existing is not None:
            span.set_attribute("participant.created", False)
            return EnsureResult(created=False, participant=existing)

        logger.info(f"Ajout du participant {participant_id} a la table participants")
        try:
            inserted = await store.insert(PARTICIPANTS_TABLE, {"id": participant_id})
        except StoreConflictError:
            existing = await store.get_by_key(PARTICIPANTS_TABLE, {"id": participant_id})
            if existing is None:
                raise
            span.add_event("Participant cree par une requete concurrente")
            return EnsureResult(created=False, participant=existing)

        span.set_attribute("participant.created", True)
        return EnsureResult(created=True, participant=inserted)


async def apply_group(
    store: RecordStore, write: GroupWrite, accumulator: GroupUpdateAccumulator
) -> GroupUpdateAccumulator:
    """
    Upsert d'un groupe; retourne l'accumulateur enrichi.

    Raises:
        ParticipantUpdateError: Tout echec du store (y compris inattendu) ou
            aucune ligne retournee, avec le resultat accumule avant ce groupe
    """
    group = write.group.value
    logger.info(f"Mise a jour de {group} pour le participant {accumulator.participant_id}")
    try:
        row = await store.upsert_by_key(write.spec.table, write.row, key_columns=write.spec.key_columns)
    except StoreWriteError as e:
        raise accumulator.to_error(e) from e
    except Exception as e:
        # Les groupes deja ecrits restent rapportes, quelle que soit l'erreur
        logger.exception(f"Erreur inattendue lors de la mise a jour de {group}")
        raise accumulator.to_error(e) from e
    if not row:
        raise accumulator.to_error(
            StoreWriteError(f"Failed to update {group}", table=write.spec.table_name)
        )
    return accumulator.with_group(write.group, row)


async def apply_groups(
    store: RecordStore,
    plan: Sequence[GroupWrite],
    accumulator: GroupUpdateAccumulator,
) -> GroupUpdateAccumulator:
    """
    Applique les ecritures planifiees dans l'ordre, en s'arretant au premier echec.

    Les groupes ecrits avant l'echec restent valides en base et figurent
    dans l'erreur levee.
    """
    with tracer.start_as_current_span("apply_groups") as span:
        span.set_attribute("participant.id", accumulator.participant_id or "")
        span.set_attribute("groups.requested", len(plan))
        for write in plan:
            accumulator = await apply_group(store, write, accumulator)
        span.set_attribute("groups.updated", len(accumulator.updated_tables))
        return accumulator


async def touch_participant(store: RecordStore, participant_id: str) -> Row:
    """
    Met participant_updated_at a l'instant courant.

    Raises:
        StoreWriteError: Echec de la mise a jour ou ligne racine introuvable
    """
    logger.info(f"Mise a jour de participant_updated_at pour le participant {participant_id}")
    row = await store.update_by_key(
        PARTICIPANTS_TABLE,
        {"id": participant_id},
        {"participant_updated_at": datetime.now(UTC)},
    )
    if not row:
        raise StoreWriteError(
            f"Failed to update participant_updated_at for {participant_id}",
            table=PARTICIPANTS_TABLE.name,
        )
    return row


async def update_participant(
    store: RecordStore,
    participant_id: str | None,
    groups: Any,
) -> ParticipantUpdateResult:
    """
    Applique une mise a jour multi-groupes sur un participant.

    Pattern d'orchestration:
    1. Valider id et groupes (aucune ecriture en cas d'erreur)
    2. Existence Gate
    3. Upsert sequentiel des groupes
    4. Horodatage de la racine
    5. Invalider le cache, publier les evenements

    Args:
        store: Record store
        participant_id: ID du participant (fourni par l'appelant)
        groups: Mapping nom de groupe -> champs

    Returns:
        ParticipantUpdateResult

    Raises:
        ParticipantUpdateError: Tout echec, avec le resultat partiel
    """
    with tracer.start_as_current_span("update_participant") as span:
        accumulator = GroupUpdateAccumulator()
        gate: EnsureResult | None = None
        try:
            pid = _require_participant_id(participant_id)
            accumulator = GroupUpdateAccumulator(participant_id=pid)
            span.set_attribute("participant.id", pid)

            plan = plan_group_updates(pid, groups)
            span.set_attribute("groups.requested", len(plan))

            gate = await ensure_participant(store, pid)
            accumulator = await apply_groups(store, plan, accumulator)
            await touch_participant(store, pid)

        except ParticipantUpdateError as e:
            participant_updates_counter.add(1, {"outcome": e.error})
            span.set_attribute("participant.update_error", e.error)
            logger.error(
                f"Echec mise a jour participant {e.participantid}: {e.problem_detail.detail} "
                f"(groupes ecrits: {e.updated_tables})"
            )
            raise
        except ProblemDetailException as e:
            error = accumulator.to_error(e)
            participant_updates_counter.add(1, {"outcome": error.error})
            logger.warning(f"Mise a jour participant rejetee: {e.problem_detail.detail}")
            raise error from e
        except Exception as e:
            logger.exception(f"Erreur inattendue lors de la mise a jour du participant {participant_id}")
            participant_updates_counter.add(1, {"outcome": "internal_error"})
            raise accumulator.to_error(e) from e
        finally:
            if gate is not None:
                await cache_delete(cache_key_participant(gate.participant["id"]))

        participant_updates_counter.add(1, {"outcome": "success"})
        span.add_event("Participant mis a jour avec succes")

        result = accumulator.to_result()
        if gate.created:
            await _publish_event(
                "participants.participant.created",
                {"participant_id": pid, "timestamp": datetime.now(UTC).isoformat()},
            )
        await _publish_event(
            "participants.participant.updated",
            {
                "participant_id": pid,
                "updated_tables": result.updated_tables,
                "timestamp": datetime.now(UTC).isoformat(),
            },
        )
        return result


async def _publish_event(subject: str, payload: dict) -> None:
    """Publie un evenement sans faire echouer la requete (ecritures deja validees)."""
    try:
        await publish(subject, payload)
    except Exception as e:
        logger.warning(f"Evenement '{subject}' non publie: {e}")


# =============================================================================
# Lectures
# =============================================================================


async def get_participant(store: RecordStore, participant_id: str) -> ParticipantDetail | None:
    """
    Recupere la fiche complete d'un participant (avec cache).

    Returns:
        ParticipantDetail ou None si la ligne racine n'existe pas
    """
    with tracer.start_as_current_span("get_participant") as span:
        span.set_attribute("participant.id", participant_id)

        cache_key = cache_key_participant(participant_id)
        cached_json = await cache_get(cache_key)
        if cached_json:
            span.add_event("Cache HIT")
            return ParticipantDetail.model_validate_json(cached_json)

        root = await store.get_by_key(PARTICIPANTS_TABLE, {"id": participant_id})
        if root is None:
            span.add_event("Participant non trouve")
            return None

        groups: dict[str, Row | list[Row] | None] = {}
        for spec in TABLE_REGISTRY.values():
            key = {spec.participant_column: participant_id}
            if spec.is_composite:
                groups[spec.group.value] = await store.select_where(spec.table, key)
            else:
                groups[spec.group.value] = await store.get_by_key(spec.table, key)

        cared_for = await store.select_where(
            ParticipantCare.__table__, {"carepartner_id": participant_id}
        )

        detail = ParticipantDetail(
            id=root["id"],
            participant_created_at=root.get("participant_created_at"),
            participant_updated_at=root.get("participant_updated_at"),
            groups=groups,
            cared_for=cared_for,
        )
        await cache_set(cache_key, detail.model_dump_json(), ttl=settings.CACHE_TTL_PARTICIPANT)
        return detail


def _brief(participant_id: str, general_by_id: Mapping[str, Row]) -> ParticipantBrief:
    info = general_by_id.get(participant_id, {})
    return ParticipantBrief(
        id=participant_id,
        first_name=info.get("first_name"),
        last_name=info.get("last_name"),
        status=info.get("status"),
        type=info.get("type"),
    )


async def list_participants(
    store: RecordStore, participant_type: str | None = None
) -> list[ParticipantSummary]:
    """
    Liste les participants avec leurs informations generales principales.

    Chaque ligne embarque ses partenariats de soin dans les deux sens:
    `carepartners` (qui aide ce participant) et `participants_cared_for`
    (qui ce participant aide), avec le drapeau `primary` et l'identite
    courte de l'autre participant.

    Args:
        participant_type: Filtre sur general_info.type (ex: "Care Partner")
    """
    with tracer.start_as_current_span("list_participants") as span:
        general_rows = await store.select_where(ParticipantGeneralInfo.__table__)
        general_by_id = {row["id"]: row for row in general_rows}

        roots = await store.select_where(PARTICIPANTS_TABLE)
        if participant_type:
            roots = [
                root
                for root in roots
                if general_by_id.get(root["id"], {}).get("type") == participant_type
            ]

        care_rows = await store.select_where(ParticipantCare.__table__)
        carepartners: dict[str, list[CarePartnerLink]] = {}
        cared_for: dict[str, list[CaredForLink]] = {}
        for care in care_rows:
            carepartners.setdefault(care["id"], []).append(
                CarePartnerLink(
                    primary=care.get("primary"),
                    carepartner=_brief(care["carepartner_id"], general_by_id),
                )
            )
            cared_for.setdefault(care["carepartner_id"], []).append(
                CaredForLink(primary=care.get("primary"), participant=_brief(care["id"], general_by_id))
            )

        summaries = []
        for root in roots:
            brief = _brief(root["id"], general_by_id)
            summaries.append(
                ParticipantSummary(
                    **brief.model_dump(),
                    participant_created_at=root.get("participant_created_at"),
                    participant_updated_at=root.get("participant_updated_at"),
                    carepartners=carepartners.get(root["id"], []),
                    participants_cared_for=cared_for.get(root["id"], []),
                )
            )
        span.set_attribute("participants.count", len(summaries))
        return summaries


# =============================================================================
# Suppressions
# =============================================================================


async def delete_participant(store: RecordStore, participant_id: str) -> bool:
    """
    Supprime la ligne racine; la cascade vers les groupes est assuree par la base.

    Returns:
        True si supprime, False si le participant n'existait pas
    """
    with tracer.start_as_current_span("delete_participant") as span:
        span.set_attribute("participant.id", participant_id)
        logger.info(f"Suppression du participant {participant_id}")

        deleted = await store.delete_by_key(PARTICIPANTS_TABLE, {"id": participant_id})
        await cache_delete(cache_key_participant(participant_id))
        if not deleted:
            return False

        await _publish_event(
            "participants.participant.deleted",
            {"participant_id": participant_id, "timestamp": datetime.now(UTC).isoformat()},
        )
        return True


async def delete_group_rows(
    store: RecordStore,
    participant_id: str,
    group: str,
    key_fields: Mapping[str, Any] | None = None,
) -> tuple[GroupSpec, dict[str, Any], int]:
    """
    Supprime les lignes d'un groupe pour un participant.

    Sans key_fields, toutes les lignes du participant dans ce groupe sont
    supprimees. Les key_fields sont limites aux discriminants du groupe.

    Returns:
        (entree de registre, filtre applique, nombre de lignes supprimees)

    Raises:
        InvalidGroupError: Groupe hors registre
        ValidationError: Champ de cle non reconnu
    """
    spec = resolve_group(group)
    key_fields = dict(key_fields or {})
    unexpected = sorted(set(key_fields) - set(spec.discriminators))
    if unexpected:
        raise ValidationError(
            f"Invalid key field(s) {', '.join(unexpected)} for {spec.group.value}",
            errors=[{"loc": [column], "msg": "not a key field"} for column in unexpected],
        )

    key_filter = {**key_fields, spec.participant_column: participant_id}
    logger.info(f"Suppression de ligne(s) de {spec.table_name} avec les cles {key_filter}")
    deleted = await store.delete_by_key(spec.table, key_filter)
    await cache_delete(cache_key_participant(participant_id))
    return spec, key_filter, deleted


# =============================================================================
# Plannings mensuels
# =============================================================================

SCHEDULE_SPEC = TABLE_REGISTRY[RecordGroup.SCHEDULE]


async def list_schedules(store: RecordStore, participant_id: str | None = None) -> list[Row]:
    """Plannings d'un participant, ou de tous les participants si id absent."""
    filters = {SCHEDULE_SPEC.participant_column: participant_id} if participant_id else None
    return await store.select_where(SCHEDULE_SPEC.table, filters)


async def get_schedule(store: RecordStore, participant_id: str, month: int, year: int) -> Row | None:
    return await store.get_by_key(
        SCHEDULE_SPEC.table,
        {SCHEDULE_SPEC.participant_column: participant_id, "month": month, "year": year},
    )


async def upsert_schedule(
    store: RecordStore,
    participant_id: str,
    month: int,
    year: int,
    schedule: Any,
    toileting: Any = None,
) -> Row:
    """
    Cree ou remplace le planning d'un mois pour un participant.

    Raises:
        ValidationError: ID participant invalide
        StoreWriteError: Echec d'ecriture ou aucune ligne retournee
    """
    participant_id = _require_participant_id(participant_id)
    with tracer.start_as_current_span("upsert_schedule") as span:
        span.set_attribute("participant.id", participant_id)
        span.set_attribute("schedule.period", f"{year}-{month:02d}")

        await ensure_participant(store, participant_id)
        row = await store.upsert_by_key(
            SCHEDULE_SPEC.table,
            {
                SCHEDULE_SPEC.participant_column: participant_id,
                "month": month,
                "year": year,
                "schedule": schedule,
                "toileting": toileting,
            },
            key_columns=SCHEDULE_SPEC.key_columns,
        )
        await cache_delete(cache_key_participant(participant_id))
        if not row:
            raise StoreWriteError(
                f"Failed to upsert schedule {year}-{month:02d}", table=SCHEDULE_SPEC.table_name
            )

        await _publish_event(
            "participants.schedule.upserted",
            {"participant_id": participant_id, "month": month, "year": year},
        )
        return row


async def delete_schedule(store: RecordStore, participant_id: str, month: int, year: int) -> bool:
    deleted = await store.delete_by_key(
        SCHEDULE_SPEC.table,
        {SCHEDULE_SPEC.participant_column: participant_id, "month": month, "year": year},
    )
    await cache_delete(cache_key_participant(participant_id))
    return deleted > 0


# =============================================================================
# Presences
# =============================================================================

ATTENDANCE_TABLE = ParticipantAttendance.__table__
ATTENDANCE_REQUIRED_FIELDS = ("participant_id", "date", "time")


async def list_attendance(store: RecordStore, participant_id: str | None = None) -> list[Row]:
    """Presences d'un participant, ou de tous les participants si id absent."""
    filters = {"participant_id": participant_id} if participant_id else None
    return await store.select_where(ATTENDANCE_TABLE, filters)


async def upsert_attendance(store: RecordStore, record: Mapping[str, Any]) -> Row:
    """
    Cree une presence, ou met a jour celle designee par `id`.

    Raises:
        ValidationError: participant_id, date ou time manquant
        StoreWriteError: Echec d'ecriture ou aucune ligne retournee
    """
    missing = [column for column in ATTENDANCE_REQUIRED_FIELDS if not record.get(column)]
    if missing:
        raise ValidationError(
            "participant_id, date, and time are required",
            errors=[{"loc": ["body", column], "msg": "field required"} for column in missing],
        )
    participant_id = _require_participant_id(record["participant_id"])
    row = {**record, "participant_id": participant_id}
    attendance_id = row.pop("id", None)

    with tracer.start_as_current_span("upsert_attendance") as span:
        span.set_attribute("participant.id", participant_id)

        await ensure_participant(store, participant_id)
        if attendance_id is None:
            written = await store.insert(ATTENDANCE_TABLE, row)
        else:
            span.set_attribute("attendance.id", attendance_id)
            written = await store.upsert_by_key(
                ATTENDANCE_TABLE, {**row, "id": attendance_id}, key_columns=("id",)
            )
        if not written:
            raise StoreWriteError("Failed to upsert attendance", table=ATTENDANCE_TABLE.name)

        logger.info(f"Presence {written['id']} enregistree pour le participant {participant_id}")
        await _publish_event(
            "participants.attendance.upserted",
            {"participant_id": participant_id, "attendance_id": written["id"], "date": written["date"]},
        )
        return written


async def delete_attendance(store: RecordStore, attendance_id: int) -> bool:
    logger.info(f"Suppression de la presence {attendance_id}")
    return await store.delete_by_key(ATTENDANCE_TABLE, {"id": attendance_id}) > 0
