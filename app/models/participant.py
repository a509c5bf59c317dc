"""Modeles SQLAlchemy de l'agregat participant.

L'agregat est reparti sur plusieurs tables:
- participants: racine (id fourni par l'appelant, horodatages)
- une table par groupe de donnees, cle = id du participant
- participant_care: cle composite (id, carepartner_id)
- participant_schedule: cle composite (participant_id, month, year)
- participant_attendance: id genere, hors registre des groupes

Les dates metier (naissance, chutes, ...) sont stockees en texte ISO 8601:
les payloads des groupes sont transmis tels quels depuis le JSON client.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

PARTICIPANT_ID_LENGTH = 64


def _participant_fk(**kwargs: Any) -> Mapped[str]:
    return mapped_column(
        String(PARTICIPANT_ID_LENGTH),
        ForeignKey("participants.id", ondelete="CASCADE"),
        **kwargs,
    )


class Participant(Base):
    """Racine de l'agregat participant."""

    __tablename__ = "participants"

    id: Mapped[str] = mapped_column(
        String(PARTICIPANT_ID_LENGTH),
        primary_key=True,
        comment="ID stable fourni par l'appelant (jamais genere)",
    )
    participant_created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    participant_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Marqueur de derniere modification de l'agregat",
    )


class ParticipantGeneralInfo(Base):
    __tablename__ = "participant_general_info"

    id: Mapped[str] = _participant_fk(primary_key=True)
    first_name: Mapped[str | None] = mapped_column(String(100))
    last_name: Mapped[str | None] = mapped_column(String(100))
    preferred_name: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[str | None] = mapped_column(String(50), index=True)
    type: Mapped[str | None] = mapped_column(
        String(50), index=True, comment="Participant | Care Partner"
    )
    enrollment_date: Mapped[str | None] = mapped_column(String(10))
    notes: Mapped[str | None] = mapped_column(Text)


class ParticipantDemographics(Base):
    __tablename__ = "participant_demographics"

    id: Mapped[str] = _participant_fk(primary_key=True)
    date_of_birth: Mapped[str | None] = mapped_column(String(10))
    gender: Mapped[str | None] = mapped_column(String(50))
    race: Mapped[str | None] = mapped_column(String(100))
    ethnicity: Mapped[str | None] = mapped_column(String(100))
    primary_language: Mapped[str | None] = mapped_column(String(50))
    veteran: Mapped[bool | None] = mapped_column(Boolean)


class ParticipantAddressAndContact(Base):
    __tablename__ = "participant_address_and_contact"

    id: Mapped[str] = _participant_fk(primary_key=True)
    address_line1: Mapped[str | None] = mapped_column(String(255))
    address_line2: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(100))
    postal_code: Mapped[str | None] = mapped_column(String(20))
    phone: Mapped[str | None] = mapped_column(String(30))
    email: Mapped[str | None] = mapped_column(String(255))
    emergency_contact_name: Mapped[str | None] = mapped_column(String(200))
    emergency_contact_phone: Mapped[str | None] = mapped_column(String(30))


class ParticipantMaritalStatus(Base):
    __tablename__ = "participant_marital_status"

    id: Mapped[str] = _participant_fk(primary_key=True)
    marital_status: Mapped[str | None] = mapped_column(String(50))
    spouse_name: Mapped[str | None] = mapped_column(String(200))
    lives_with: Mapped[str | None] = mapped_column(String(200))


class ParticipantCare(Base):
    """Partenariat de soin: le participant `id` est aide par `carepartner_id`."""

    __tablename__ = "participant_care"

    id: Mapped[str] = _participant_fk(primary_key=True)
    carepartner_id: Mapped[str] = _participant_fk(primary_key=True, index=True)
    primary: Mapped[bool | None] = mapped_column(Boolean, default=False)
    relationship: Mapped[str | None] = mapped_column(String(100))


class ParticipantHowDataFields(Base):
    __tablename__ = "participant_how_data_fields"

    id: Mapped[str] = _participant_fk(primary_key=True)
    mobility_aid: Mapped[str | None] = mapped_column(String(100))
    cognitive_status: Mapped[str | None] = mapped_column(String(100))
    diet: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)


class ParticipantHowFalls(Base):
    __tablename__ = "participant_how_falls"

    id: Mapped[str] = _participant_fk(primary_key=True)
    falls_last_year: Mapped[int | None] = mapped_column(Integer)
    last_fall_date: Mapped[str | None] = mapped_column(String(10))
    fall_risk: Mapped[str | None] = mapped_column(String(50))
    notes: Mapped[str | None] = mapped_column(Text)


class ParticipantHowHospitalization(Base):
    __tablename__ = "participant_how_hospitalization"

    id: Mapped[str] = _participant_fk(primary_key=True)
    hospitalizations_last_year: Mapped[int | None] = mapped_column(Integer)
    last_hospitalization_date: Mapped[str | None] = mapped_column(String(10))
    reason: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)


class ParticipantHowPrograms(Base):
    __tablename__ = "participant_how_programs"

    id: Mapped[str] = _participant_fk(primary_key=True)
    programs: Mapped[Any | None] = mapped_column(JSON)
    notes: Mapped[str | None] = mapped_column(Text)


class ParticipantHowToileting(Base):
    __tablename__ = "participant_how_toileting"

    id: Mapped[str] = _participant_fk(primary_key=True)
    continence_level: Mapped[str | None] = mapped_column(String(50))
    assistance_needed: Mapped[bool | None] = mapped_column(Boolean)
    notes: Mapped[str | None] = mapped_column(Text)


class ParticipantServices(Base):
    __tablename__ = "participant_services"

    id: Mapped[str] = _participant_fk(primary_key=True)
    services: Mapped[Any | None] = mapped_column(JSON)
    transportation: Mapped[bool | None] = mapped_column(Boolean)
    notes: Mapped[str | None] = mapped_column(Text)


class ParticipantSchedule(Base):
    """Planning mensuel d'un participant."""

    __tablename__ = "participant_schedule"

    participant_id: Mapped[str] = _participant_fk(primary_key=True)
    month: Mapped[int] = mapped_column(Integer, primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    schedule: Mapped[Any | None] = mapped_column(JSON)
    toileting: Mapped[Any | None] = mapped_column(JSON)


class ParticipantAttendance(Base):
    """Presence d'un participant sur un creneau (date + heure)."""

    __tablename__ = "participant_attendance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_id: Mapped[str] = _participant_fk(nullable=False, index=True)
    date: Mapped[str] = mapped_column(String(10), nullable=False, comment="Date ISO 8601")
    time: Mapped[str] = mapped_column(String(20), nullable=False)
    # "in" est un mot reserve Python: seul l'attribut ORM est renomme
    in_: Mapped[str | None] = mapped_column("in", String(20))
    out: Mapped[str | None] = mapped_column(String(20))
    code: Mapped[str | None] = mapped_column(String(20), comment="Code de presence (present, absent, ...)")
