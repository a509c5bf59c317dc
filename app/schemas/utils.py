"""Annotations Pydantic réutilisables pour validation.

Ce module centralise les types annotés pour assurer la cohérence
de la validation à travers tous les schémas Pydantic du service.
"""

from typing import Annotated

from pydantic import Field, StringConstraints

from app.models.participant import PARTICIPANT_ID_LENGTH

# Identifiant participant fourni par l'appelant (UUID ou chaîne opaque)
ParticipantId = Annotated[
    str,
    StringConstraints(min_length=1, max_length=PARTICIPANT_ID_LENGTH, strip_whitespace=True),
    Field(description="ID stable du participant", examples=["p-1"]),
]

# Planning mensuel
Month = Annotated[int, Field(ge=1, le=12, description="Mois (1-12)")]
Year = Annotated[int, Field(ge=1900, le=2100, description="Année")]
