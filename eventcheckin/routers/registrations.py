"""
Router pour les inscriptions.
Inscription (POST /api/v1/registrations)
Consultation avec historique (GET /api/v1/registrations/{id})
Téléchargement du QR code (GET /api/v1/registrations/{id}/qrcode.png)
"""

import io
import uuid
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventcheckin.database import get_db
from eventcheckin.schemas.registration import RegistrationCreate, RegistrationCreated, RegistrationDetail
from eventcheckin.services import registration_service
from eventcheckin.services.errors import DuplicateEmailError, RegistrationNotFoundError
from eventcheckin.services.qr_code_service import generate_qr_image, qr_download_filename

router = APIRouter(prefix="/api/v1/registrations", tags=["Inscriptions"])


@router.post("", response_model=RegistrationCreated, status_code=201, summary="Inscrire un participant")
def register(data: RegistrationCreate, db: Session = Depends(get_db)):
    """
    Enregistre un participant et retourne le contenu de son QR code.

    Retourne 409 si l'email est déjà inscrit (aucune écriture),
    503 si la base est indisponible (le formulaire peut être resoumis).
    """
    try:
        return registration_service.register(db, data)
    except DuplicateEmailError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Échec de l'inscription, veuillez réessayer. Erreur : {e}",
        )


@router.get("/{registration_id}", response_model=RegistrationDetail, summary="Consulter une inscription")
def get_registration(registration_id: uuid.UUID, db: Session = Depends(get_db)):
    """Retourne l'inscription, son compteur, son dernier check-in et l'historique complet."""
    try:
        return registration_service.get_registration(db, registration_id)
    except RegistrationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{registration_id}/qrcode.png", summary="Télécharger le QR code d'une inscription")
def download_qr_code(registration_id: uuid.UUID, db: Session = Depends(get_db)):
    """
    Génère l'image PNG du QR code (identifiant + champs du participant).
    Servie en pièce jointe : qrcode-<prénom>-<nom>.png
    """
    try:
        registration = registration_service.get_registration_or_raise(db, registration_id)
    except RegistrationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    png = generate_qr_image(registration_service.registration_payload(registration))
    filename = qr_download_filename(registration.first_name, registration.last_name)

    return StreamingResponse(
        io.BytesIO(png),
        media_type="image/png",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )
