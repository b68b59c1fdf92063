"""
Schéma du contenu encodé dans les QR codes d'inscription.

Les clés JSON (id, firstName, lastName, phone, email) sont celles des QR codes
déjà imprimés : ne pas les renommer.
"""

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class QrPayload(BaseModel):
    """Identité d'inscription transportée par le QR code (donnée non fiable)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    email: str = ""

    @field_validator("id")
    @classmethod
    def id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Identifiant d'inscription manquant.")
        return v
