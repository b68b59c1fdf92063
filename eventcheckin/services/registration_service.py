"""
Service métier pour les inscriptions.

Flux d'inscription :
  1. Rechercher une inscription existante avec le même email (égalité exacte, sensible à la casse)
  2. Si trouvée → DuplicateEmailError, rien n'est écrit
  3. Sinon créer l'inscription (status active, compteur à 0, historique vide)
  4. Construire le contenu du QR code à partir de l'UUID attribué par la base

La vérification d'email et l'insertion sont deux opérations distinctes, sans
contrainte UNIQUE : deux soumissions simultanées avec le même email peuvent
toutes les deux passer la vérification. Limite connue, non corrigée ici.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventcheckin.models.check_in import CheckIn
from eventcheckin.models.registration import Registration
from eventcheckin.schemas.check_in import CheckInEvent
from eventcheckin.schemas.registration import (
    RegistrationCreate,
    RegistrationCreated,
    RegistrationDetail,
    RegistrationResponse,
)
from eventcheckin.services.errors import DuplicateEmailError, RegistrationNotFoundError
from eventcheckin.services.qr_code_service import qr_download_filename
from eventcheckin.services.qr_payload import encode_payload

logger = logging.getLogger(__name__)


def find_by_email(db: Session, email: str):
    """Retourne la première inscription portant exactement cet email, ou None."""
    return db.execute(
        select(Registration).where(Registration.email == email)
    ).scalars().first()


def register(db: Session, data: RegistrationCreate) -> RegistrationCreated:
    """
    Enregistre un participant et retourne le contenu de son QR code.

    Lève DuplicateEmailError si l'email est déjà inscrit.
    Les erreurs SQLAlchemy sont propagées après rollback : le formulaire
    n'est pas considéré comme soumis.
    """
    if find_by_email(db, data.email) is not None:
        logger.warning("Inscription refusée : email déjà inscrit (%s)", data.email)
        raise DuplicateEmailError("Cet email est déjà inscrit.")

    registration = Registration(
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
        email=data.email,
        status="active",
        total_check_ins=0,
        last_check_in=None,
    )
    try:
        db.add(registration)
        db.commit()
        db.refresh(registration)
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Inscription créée : %s (%s %s)", registration.id, data.first_name, data.last_name)

    qr_payload = encode_payload(
        registration.id, data.first_name, data.last_name, data.phone, data.email
    )
    return RegistrationCreated(
        registration=RegistrationResponse.model_validate(registration),
        qr_payload=qr_payload,
        qr_code_url=f"/api/v1/registrations/{registration.id}/qrcode.png",
        download_filename=qr_download_filename(data.first_name, data.last_name),
    )


def get_registration_or_raise(db: Session, registration_id: uuid.UUID) -> Registration:
    """Lève RegistrationNotFoundError si l'inscription n'existe pas."""
    registration = db.get(Registration, registration_id)
    if registration is None:
        raise RegistrationNotFoundError(f"Inscription {registration_id} introuvable.")
    return registration


def get_registration(db: Session, registration_id: uuid.UUID) -> RegistrationDetail:
    """Retourne l'inscription avec son historique de check-ins trié chronologiquement."""
    registration = get_registration_or_raise(db, registration_id)

    check_ins = db.execute(
        select(CheckIn)
        .where(CheckIn.registration_id == registration_id)
        .order_by(CheckIn.checked_in_at)
    ).scalars().all()

    detail = RegistrationDetail.model_validate(registration)
    detail.check_ins = [CheckInEvent.model_validate(c) for c in check_ins]
    return detail


def registration_payload(registration: Registration) -> str:
    """Reconstruit le contenu du QR code d'une inscription stockée."""
    return encode_payload(
        registration.id,
        registration.first_name,
        registration.last_name,
        registration.phone,
        registration.email,
    )
