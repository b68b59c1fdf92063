"""
Schémas Pydantic pour les inscriptions.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator

from eventcheckin.schemas.check_in import CheckInEvent


class RegistrationCreate(BaseModel):
    """Formulaire d'inscription (POST /registrations). Tous les champs sont obligatoires."""
    first_name: str
    last_name: str
    phone: str
    email: str

    @field_validator("first_name", "last_name", "phone", "email")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le champ ne peut pas être vide.")
        # Valeur conservée telle que saisie (l'email est comparé à l'identique)
        return v


class RegistrationResponse(BaseModel):
    """Inscription telle que stockée (sans l'historique complet)."""
    id: uuid.UUID
    first_name: str
    last_name: str
    phone: str
    email: str
    status: str
    total_check_ins: int
    last_check_in: Optional[CheckInEvent] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RegistrationDetail(RegistrationResponse):
    """Inscription avec l'historique ordonné de ses check-ins (GET /registrations/{id})."""
    check_ins: List[CheckInEvent] = []


class RegistrationCreated(BaseModel):
    """Réponse de l'inscription : l'enregistrement et de quoi afficher/télécharger le QR code."""
    registration: RegistrationResponse
    qr_payload: str
    qr_code_url: str
    download_filename: str
