# Modèles SQLAlchemy pour core-care-participants
#
# Agrégat participant réparti sur une table racine (participants) et une
# table par groupe de données. Le registre des groupes (app.core.registry)
# est la seule voie d'accès dynamique à ces tables.

from .participant import (
    Participant,
    ParticipantAddressAndContact,
    ParticipantAttendance,
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

__all__ = [
    "Participant",
    "ParticipantAddressAndContact",
    "ParticipantAttendance",
    "ParticipantCare",
    "ParticipantDemographics",
    "ParticipantGeneralInfo",
    "ParticipantHowDataFields",
    "ParticipantHowFalls",
    "ParticipantHowHospitalization",
    "ParticipantHowPrograms",
    "ParticipantHowToileting",
    "ParticipantMaritalStatus",
    "ParticipantSchedule",
    "ParticipantServices",
]
