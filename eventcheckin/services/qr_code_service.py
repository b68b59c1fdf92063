"""
Génération des images QR code (PNG) à partir du contenu encodé d'une inscription.
Utilisé pour l'affichage et le téléchargement après inscription.
"""

import io

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from eventcheckin.config import settings


def generate_qr_image(payload: str) -> bytes:
    """Génère une image PNG du QR code encodant le texte donné (correction d'erreur H)."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_H,
        box_size=settings.QR_BOX_SIZE,
        border=settings.QR_BORDER,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def qr_download_filename(first_name: str, last_name: str) -> str:
    """Nom du fichier proposé au téléchargement : qrcode-<prénom>-<nom>.png."""
    return f"qrcode-{first_name}-{last_name}.png"
