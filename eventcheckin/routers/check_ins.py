"""
Router pour la validation des check-ins par QR code.
Reçoit le texte décodé par un poste de scan (web ou mobile) et l'enregistre.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventcheckin.database import get_db
from eventcheckin.schemas.check_in import CheckInRequest, CheckInResult
from eventcheckin.services import check_in_service
from eventcheckin.services.errors import EmailMismatchError, MalformedCodeError, RegistrationNotFoundError
from eventcheckin.services.qr_payload import decode_payload

router = APIRouter(prefix="/api/v1/check-ins", tags=["Check-ins"])


@router.post("", response_model=CheckInResult, status_code=201, summary="Valider un QR code et enregistrer le check-in")
def create_check_in(data: CheckInRequest, db: Session = Depends(get_db)):
    """
    Valide le contenu d'un QR code scanné et enregistre le check-in.

    Le cooldown de 6h est propre à chaque poste de scan : il n'est pas appliqué ici.

    Retourne 422 si le QR code est illisible, 404 si l'inscription est introuvable,
    400 si l'email ne correspond pas (code falsifié), 503 si la base est indisponible.
    """
    try:
        payload = decode_payload(data.payload)
        return check_in_service.check_in(db, payload)
    except MalformedCodeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RegistrationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except EmailMismatchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError as e:
        raise HTTPException(status_code=503, detail=f"Erreur lors du traitement du QR code : {e}")
