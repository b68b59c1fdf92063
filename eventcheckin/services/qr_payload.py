"""
Encodage / décodage du contenu JSON des QR codes d'inscription.

Le contenu d'un QR code scanné est une donnée non fiable : le décodage ne fait
que vérifier la forme, l'identité est toujours revalidée contre la base.
"""

import json
import uuid
from typing import Union

from pydantic import ValidationError

from eventcheckin.schemas.qr_payload import QrPayload
from eventcheckin.services.errors import MalformedCodeError


def encode_payload(
    registration_id: Union[uuid.UUID, str],
    first_name: str,
    last_name: str,
    phone: str,
    email: str,
) -> str:
    """Sérialise l'identifiant et les quatre champs du participant en texte JSON."""
    payload = QrPayload(
        id=str(registration_id),
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        email=email,
    )
    return payload.model_dump_json(by_alias=True)


def decode_payload(text: str) -> QrPayload:
    """
    Parse le texte décodé d'un QR code.

    Lève MalformedCodeError si le texte n'est pas un objet JSON
    ou si l'identifiant est absent.
    """
    try:
        data = json.loads(text)
    except (TypeError, json.JSONDecodeError) as exc:
        raise MalformedCodeError(f"Format de QR code invalide : {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedCodeError("Format de QR code invalide : objet JSON attendu.")
    if not data.get("id"):
        raise MalformedCodeError("Format de QR code invalide : identifiant manquant.")

    try:
        return QrPayload.model_validate(data)
    except ValidationError as exc:
        raise MalformedCodeError(
            f"Format de QR code invalide : {exc.error_count()} champ(s) incorrect(s)."
        ) from exc
