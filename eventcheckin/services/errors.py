"""
Erreurs métier de l'inscription et du check-in.

Toutes dérivent de ValueError, comme les autres refus métier des services ;
`code` est un identifiant stable réutilisé par les routers et le poste de scan.
"""


class CheckInError(ValueError):
    """Refus métier récupérable : aucune écriture n'a eu lieu."""
    code = "check_in_error"
    title = "Erreur"


class MalformedCodeError(CheckInError):
    code = "malformed_code"
    title = "QR code illisible"


class DuplicateEmailError(CheckInError):
    code = "duplicate_email"
    title = "Email déjà inscrit"


class AlreadyScannedError(CheckInError):
    code = "already_scanned"
    title = "Déjà scanné"


class RegistrationNotFoundError(CheckInError):
    code = "not_found"
    title = "Inscription introuvable"


class EmailMismatchError(CheckInError):
    code = "email_mismatch"
    title = "QR code invalide"
