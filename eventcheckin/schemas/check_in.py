"""
Schémas Pydantic pour la validation des check-ins.
Endpoint : POST /api/v1/check-ins
"""

import uuid

from pydantic import BaseModel, field_validator


class CheckInEvent(BaseModel):
    """Événement de check-in : instant ISO-8601 + date et heure locales du même instant."""
    timestamp: str
    date: str
    time: str

    model_config = {"from_attributes": True}


class CheckInRequest(BaseModel):
    """Texte brut décodé depuis le QR code par le poste de scan."""
    payload: str

    @field_validator("payload")
    @classmethod
    def payload_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le contenu du QR code ne peut pas être vide.")
        return v


class CheckInResult(BaseModel):
    """Résultat d'un check-in validé, affiché par le poste de scan."""
    registration_id: uuid.UUID
    first_name: str
    last_name: str
    phone: str
    email: str
    total_check_ins: int
    last_check_in: CheckInEvent

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
