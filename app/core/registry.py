"""
Registre des groupes de données participant.

Liste fermée: nom logique de groupe -> table physique + colonnes de clé.
C'est la seule porte d'entrée pour sélectionner dynamiquement une table à
partir d'une requête; le record store ne reçoit jamais une chaîne libre.

Usage:
    from app.core.registry import resolve_group

    spec = resolve_group("general_info")
    await store.upsert_by_key(spec.table, row, key_columns=spec.key_columns)
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from sqlalchemy import Table

from app.core.database import Base
from app.core.exceptions import InvalidGroupError
from app.models.participant import (
    ParticipantAddressAndContact,
    ParticipantCare,
    ParticipantDemographics,
    ParticipantGeneralInfo,
    ParticipantHowDataFields,
    ParticipantHowFalls,
    ParticipantHowHospitalization,
    ParticipantHowPrograms,
    ParticipantHowToileting,
    ParticipantMaritalStatus,
    ParticipantSchedule,
    ParticipantServices,
)


class RecordGroup(str, Enum):
    """Groupes de données acceptés dans une mise à jour participant."""

    GENERAL_INFO = "general_info"
    DEMOGRAPHICS = "demographics"
    ADDRESS_AND_CONTACT = "address_and_contact"
    MARITAL_STATUS = "marital_status"
    CARE_PARTNERSHIP = "care_partnership"
    HOW_DATA_FIELDS = "how_data_fields"
    HOW_FALLS = "how_falls"
    HOW_HOSPITALIZATION = "how_hospitalization"
    HOW_PROGRAMS = "how_programs"
    HOW_TOILETING = "how_toileting"
    SERVICES = "services"
    SCHEDULE = "schedule"


@dataclass(frozen=True)
class GroupSpec:
    """
    Entrée du registre.

    Attributes:
        group: Nom logique du groupe
        model: Modèle SQLAlchemy de la table physique
        participant_column: Colonne portant l'id du participant
        discriminators: Colonnes complétant la clé (groupes 1:N)
    """

    group: RecordGroup
    model: type[Base]
    participant_column: str = "id"
    discriminators: tuple[str, ...] = ()

    @property
    def table(self) -> Table:
        return self.model.__table__

    @property
    def table_name(self) -> str:
        return self.table.name

    @property
    def key_columns(self) -> tuple[str, ...]:
        """Colonnes de conflit pour l'upsert: id participant + discriminants."""
        return (self.participant_column, *self.discriminators)

    @property
    def is_composite(self) -> bool:
        return bool(self.discriminators)


TABLE_REGISTRY: Mapping[RecordGroup, GroupSpec] = MappingProxyType(
    {
        spec.group: spec
        for spec in (
            GroupSpec(RecordGroup.GENERAL_INFO, ParticipantGeneralInfo),
            GroupSpec(RecordGroup.DEMOGRAPHICS, ParticipantDemographics),
            GroupSpec(RecordGroup.ADDRESS_AND_CONTACT, ParticipantAddressAndContact),
            GroupSpec(RecordGroup.MARITAL_STATUS, ParticipantMaritalStatus),
            GroupSpec(
                RecordGroup.CARE_PARTNERSHIP,
                ParticipantCare,
                discriminators=("carepartner_id",),
            ),
            GroupSpec(RecordGroup.HOW_DATA_FIELDS, ParticipantHowDataFields),
            GroupSpec(RecordGroup.HOW_FALLS, ParticipantHowFalls),
            GroupSpec(RecordGroup.HOW_HOSPITALIZATION, ParticipantHowHospitalization),
            GroupSpec(RecordGroup.HOW_PROGRAMS, ParticipantHowPrograms),
            GroupSpec(RecordGroup.HOW_TOILETING, ParticipantHowToileting),
            GroupSpec(RecordGroup.SERVICES, ParticipantServices),
            GroupSpec(
                RecordGroup.SCHEDULE,
                ParticipantSchedule,
                participant_column="participant_id",
                discriminators=("month", "year"),
            ),
        )
    }
)

_GROUP_NAMES = frozenset(group.value for group in RecordGroup)


def is_valid_group(name: object) -> bool:
    """Vrai si `name` est un nom de groupe enregistré. Aucune I/O."""
    return isinstance(name, str) and name in _GROUP_NAMES


def resolve_group(name: str | RecordGroup) -> GroupSpec:
    """
    Résout un nom de groupe vers son entrée de registre.

    Raises:
        InvalidGroupError: Si le nom n'est pas dans le registre
    """
    if isinstance(name, RecordGroup):
        return TABLE_REGISTRY[name]
    if not is_valid_group(name):
        raise InvalidGroupError(str(name))
    return TABLE_REGISTRY[RecordGroup(name)]


__all__ = [
    "TABLE_REGISTRY",
    "GroupSpec",
    "RecordGroup",
    "is_valid_group",
    "resolve_group",
]
