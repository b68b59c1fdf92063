"""
Service de validation des check-ins par QR code.

Étapes côté base (le cooldown local est géré par le poste de scan) :
  1. Charger l'inscription référencée par l'identifiant du QR code
  2. Comparer l'email stocké à celui du QR code (égalité exacte)
  3. Enregistrer le check-in : ajout à l'historique, dernier check-in écrasé,
     compteur incrémenté
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventcheckin.models.check_in import CheckIn
from eventcheckin.models.registration import Registration
from eventcheckin.schemas.check_in import CheckInEvent, CheckInResult
from eventcheckin.schemas.qr_payload import QrPayload
from eventcheckin.services.errors import EmailMismatchError, RegistrationNotFoundError

logger = logging.getLogger(__name__)


def make_check_in_event(now: Optional[datetime] = None) -> CheckInEvent:
    """
    Construit l'événement de check-in pour un instant donné.

    timestamp : ISO-8601 UTC à la milliseconde (suffixe Z)
    date/time : rendus selon la locale du poste, dans son fuseau horaire
    """
    now = now or datetime.now(timezone.utc)
    utc = now.astimezone(timezone.utc)
    local = now.astimezone()
    return CheckInEvent(
        timestamp=utc.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        date=local.strftime("%x"),
        time=local.strftime("%X"),
    )


def _parse_registration_id(raw_id: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(raw_id)
    except (TypeError, ValueError):
        return None


def record_check_in(
    db: Session,
    registration: Registration,
    event: CheckInEvent,
    checked_in_at: datetime,
) -> None:
    """
    Applique un check-in à une inscription en une seule transaction.

    - L'historique est append-only (nouvelle ligne check_ins)
    - Le compteur est incrémenté côté base (total_check_ins + 1), pas recalculé
      à partir de la valeur lue
    - last_check_in est écrasé par l'événement
    """
    db.add(
        CheckIn(
            registration_id=registration.id,
            checked_in_at=checked_in_at,
            timestamp=event.timestamp,
            date=event.date,
            time=event.time,
        )
    )
    registration.total_check_ins = Registration.total_check_ins + 1
    registration.last_check_in = event.model_dump()
    try:
        db.commit()
        db.refresh(registration)
    except SQLAlchemyError:
        db.rollback()
        raise


def check_in(db: Session, payload: QrPayload, now: Optional[datetime] = None) -> CheckInResult:
    """
    Valide un QR code décodé contre la base et enregistre le check-in.

    Lève RegistrationNotFoundError si l'identifiant ne correspond à aucune inscription,
    EmailMismatchError si l'email du QR code diffère de l'email stocké.
    Aucune écriture n'a lieu dans ces deux cas.
    """
    registration_id = _parse_registration_id(payload.id)
    registration = db.get(Registration, registration_id) if registration_id else None
    if registration is None:
        logger.warning("Check-in refusé : inscription %s introuvable", payload.id)
        raise RegistrationNotFoundError("Inscription introuvable dans la base de données.")

    if registration.email != payload.email:
        logger.warning("Check-in refusé : email différent pour l'inscription %s", registration.id)
        raise EmailMismatchError("QR code invalide : l'email ne correspond pas à l'inscription.")

    checked_in_at = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    event = make_check_in_event(checked_in_at)
    record_check_in(db, registration, event, checked_in_at)

    logger.info(
        "Check-in enregistré : %s (%s %s), total %d",
        registration.id, registration.first_name, registration.last_name,
        registration.total_check_ins,
    )

    return CheckInResult(
        registration_id=registration.id,
        first_name=registration.first_name,
        last_name=registration.last_name,
        phone=registration.phone,
        email=registration.email,
        total_check_ins=registration.total_check_ins,
        last_check_in=event,
    )
