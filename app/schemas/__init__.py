"""Schemas Pydantic pour validation des donnees."""

from app.schemas.participant import (
    AttendanceDeleteResponse,
    AttendanceResponse,
    AttendanceUpsert,
    CarePartnerLink,
    CaredForLink,
    GroupRowsDeleteResponse,
    ParticipantBrief,
    ParticipantDeleteResponse,
    ParticipantDetail,
    ParticipantSummary,
    ParticipantUpdateResult,
    ScheduleDeleteResponse,
    ScheduleResponse,
    ScheduleUpsert,
)
from app.schemas.responses import (
    COMMON_RESPONSES,
    ParticipantUpdateErrorResponse,
    ProblemDetailResponse,
    ValidationErrorResponse,
    build_responses,
    delete_responses,
    read_responses,
    update_responses,
)

__all__ = [
    "COMMON_RESPONSES",
    "AttendanceDeleteResponse",
    "AttendanceResponse",
    "AttendanceUpsert",
    "CarePartnerLink",
    "CaredForLink",
    "GroupRowsDeleteResponse",
    "ParticipantBrief",
    "ParticipantDeleteResponse",
    "ParticipantDetail",
    "ParticipantSummary",
    "ParticipantUpdateErrorResponse",
    "ParticipantUpdateResult",
    "ProblemDetailResponse",
    "ScheduleDeleteResponse",
    "ScheduleResponse",
    "ScheduleUpsert",
    "ValidationErrorResponse",
    "build_responses",
    "delete_responses",
    "read_responses",
    "update_responses",
]
