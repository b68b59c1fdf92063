"""
Machine d'états du poste de scan : IDLE → SCANNING → VALIDATING → SUCCESS | REJECTED.

Pour chaque QR code décodé pendant SCANNING :
  1. Parser le contenu (MalformedCodeError → message, on reste en SCANNING)
  2. Cooldown local : déjà scanné sur ce poste depuis moins de 6h → alerte,
     aucune requête en base, on reste en SCANNING
  3-5. Validation par le validateur injecté (base) : introuvable, email différent
     → REJECTED ; sinon le check-in est enregistré
  6. Caméra arrêtée, état SUCCESS, résultat affiché
  7. Écriture du cooldown local (instant du scan + nom du participant)

Une seule validation en cours à la fois : les QR codes décodés pendant une
validation sont ignorés. La caméra est arrêtée sur toute sortie de SCANNING
(succès, refus, reset, fermeture).
"""

import enum
import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, List, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from eventcheckin.config import settings
from eventcheckin.scanner.camera import CameraDevice, CameraError, ScanConfig, default_camera
from eventcheckin.schemas.check_in import CheckInResult
from eventcheckin.schemas.qr_payload import QrPayload
from eventcheckin.services.cooldown_cache import CooldownCache, CooldownEntry, is_cooling_down
from eventcheckin.services.errors import AlreadyScannedError, CheckInError, MalformedCodeError
from eventcheckin.services.qr_payload import decode_payload

logger = logging.getLogger(__name__)

Validator = Callable[[QrPayload], CheckInResult]

# Un code laissé devant la caméra est re-décodé à chaque image
DEBUG_LOG_SIZE = 200


class ScannerState(str, enum.Enum):
    IDLE = "IDLE"
    SCANNING = "SCANNING"
    VALIDATING = "VALIDATING"
    SUCCESS = "SUCCESS"
    REJECTED = "REJECTED"


class ScanAlert(BaseModel):
    """Message court présenté à l'opérateur (succès ou déjà scanné)."""
    type: str  # success, error
    title: str
    description: str


class ScannerSession:
    """
    Session de scan d'un poste.

    camera    : objet exposant list_devices(), start(device_id, config, on_success, on_error), stop()
    validator : appelé avec le QrPayload décodé, retourne un CheckInResult ou lève
                une CheckInError / SQLAlchemyError
    cache     : cache de cooldown local au poste
    """

    def __init__(
        self,
        camera,
        validator: Validator,
        cache: CooldownCache,
        cooldown: Optional[timedelta] = None,
        config: Optional[ScanConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        on_change: Optional[Callable[["ScannerSession"], None]] = None,
    ):
        self.camera = camera
        self.validator = validator
        self.cache = cache
        self.cooldown = cooldown or timedelta(hours=settings.SCAN_COOLDOWN_HOURS)
        self.config = config or ScanConfig()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.on_change = on_change

        self.state = ScannerState.IDLE
        self.cameras: List[CameraDevice] = []
        self.selected_camera: Optional[int] = None
        self.result: Optional[CheckInResult] = None
        self.error: Optional[str] = None
        self.alert: Optional[ScanAlert] = None
        self.debug_log: Deque[str] = deque(maxlen=DEBUG_LOG_SIZE)

        self._validation_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="checkin-validation")
        self._pending: Optional[Future] = None
        # Protège les transitions d'état ; _generation change à chaque start/reset
        self._state_lock = threading.Lock()
        self._generation = 0

    # ----------------------------------------------------------------
    # Diagnostic
    # ----------------------------------------------------------------

    def log(self, message: str) -> None:
        self.debug_log.append(message)
        logger.debug(message)

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    # ----------------------------------------------------------------
    # Caméras
    # ----------------------------------------------------------------

    def load_cameras(self) -> List[CameraDevice]:
        """Liste les caméras et sélectionne la dernière par défaut."""
        self.log("Recherche des caméras...")
        try:
            self.cameras = self.camera.list_devices()
        except (CameraError, OSError) as exc:
            self.log(f"Erreur lors de la recherche des caméras : {exc}")
            self.error = f"Accès aux caméras impossible : {exc}"
            self.cameras = []
            return self.cameras

        self.log(f"{len(self.cameras)} caméra(s) trouvée(s)")
        device = default_camera(self.cameras)
        self.selected_camera = device.id if device else None
        return self.cameras

    def select_camera(self, device_id: int) -> None:
        self.selected_camera = device_id

    # ----------------------------------------------------------------
    # Cycle de vie
    # ----------------------------------------------------------------

    def start(self) -> None:
        """
        Démarre une nouvelle session de scan sur la caméra sélectionnée.
        Sans caméra ou en cas d'échec d'ouverture : erreur affichée, retour à IDLE.
        """
        with self._state_lock:
            if self.state in (ScannerState.SCANNING, ScannerState.VALIDATING):
                return

            self._generation += 1
            self.log("Démarrage du scanner...")
            self.error = None
            self.alert = None
            try:
                if self.selected_camera is None:
                    raise CameraError("Aucune caméra sélectionnée ou trouvée.")
                self.state = ScannerState.SCANNING
                self.camera.start(self.selected_camera, self.config, self.handle_decoded, self.handle_decode_error)
            except (CameraError, OSError) as exc:
                self.log(f"Erreur au démarrage du scanner : {exc}")
                self.error = f"Impossible de démarrer le scanner : {exc}"
                self.state = ScannerState.IDLE
        self._notify()

    def stop(self) -> None:
        """Arrête le flux caméra. Toujours sûr à appeler."""
        try:
            self.camera.stop()
        except (CameraError, OSError) as exc:
            self.log(f"Erreur à l'arrêt de la caméra : {exc}")

    def reset(self) -> None:
        """
        Retour inconditionnel à IDLE : caméra arrêtée, résultat, erreur et journal effacés.
        Une validation encore en cours termine sans modifier la session.
        """
        logger.debug("Réinitialisation du scanner...")
        self.stop()
        with self._state_lock:
            self._generation += 1
            self.result = None
            self.error = None
            self.alert = None
            self.debug_log.clear()
            self.state = ScannerState.IDLE
        self._notify()

    def close(self) -> None:
        """Libère la caméra et le worker de validation (fermeture du poste)."""
        self.stop()
        self._executor.shutdown(wait=True)
        self.state = ScannerState.IDLE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ----------------------------------------------------------------
    # Callbacks de la boucle de décodage
    # ----------------------------------------------------------------

    def handle_decode_error(self, message: str) -> None:
        # Image sans QR code : attendu, journalisé uniquement
        logger.debug("Scan : %s", message)

    def handle_decoded(self, text: str) -> Optional[Future]:
        """
        Reçoit un texte décodé depuis la boucle caméra et lance sa validation en
        arrière-plan. Ignoré si une validation est déjà en cours ou hors SCANNING.
        """
        # Transition en cours (start, reset, fin de validation) : l'image suivante sera traitée
        if not self._state_lock.acquire(blocking=False):
            return None
        try:
            if self.state != ScannerState.SCANNING:
                return None
            if not self._validation_lock.acquire(blocking=False):
                logger.debug("QR code ignoré : validation déjà en cours")
                return None
            self.state = ScannerState.VALIDATING
            generation = self._generation
        finally:
            self._state_lock.release()

        self._pending = self._executor.submit(self._run_validation, text, generation)
        return self._pending

    def _run_validation(self, text: str, generation: int) -> Optional[CheckInResult]:
        try:
            return self.validate(text, generation)
        finally:
            self._validation_lock.release()
            self._notify()

    # ----------------------------------------------------------------
    # Validation
    # ----------------------------------------------------------------

    def validate(self, text: str, generation: Optional[int] = None) -> Optional[CheckInResult]:
        """
        Applique les étapes de validation à un texte décodé. Retourne le résultat si succès.

        generation : session de scan qui a reçu le code. Si la session a été
        réinitialisée entre-temps, l'issue de la validation n'est pas appliquée.
        """
        logger.debug("Traitement du QR code...")
        try:
            payload = decode_payload(text)

            now = self.clock()
            if is_cooling_down(self.cache, payload.id, now, self.cooldown):
                hours = self.cooldown.total_seconds() / 3600
                raise AlreadyScannedError(f"Ce code a déjà été scanné dans les dernières {hours:g} heures.")

            result = self.validator(payload)
        except (MalformedCodeError, AlreadyScannedError) as exc:
            # Refus sans écriture : la caméra continue
            with self._state_lock:
                if self._is_stale(generation):
                    return None
                self.log(f"Scan refusé ({exc.code}) : {exc}")
                if isinstance(exc, AlreadyScannedError):
                    self.alert = ScanAlert(type="error", title=exc.title, description=str(exc))
                    self.error = None
                else:
                    self.alert = None
                    self.error = str(exc)
                self.state = ScannerState.SCANNING
            return None
        except CheckInError as exc:
            self._reject(f"{exc}", code=exc.code, generation=generation)
            return None
        except SQLAlchemyError as exc:
            self._reject(f"Erreur lors du traitement du QR code : {exc}", code="store_error", generation=generation)
            return None
        except Exception as exc:
            # Le worker ne doit jamais laisser la session bloquée en VALIDATING
            logger.error("Erreur inattendue pendant la validation : %s", exc, exc_info=True)
            self._reject(f"Erreur lors du traitement du QR code : {exc}", code="unexpected_error", generation=generation)
            return None

        # Le check-in est enregistré en base : le cooldown du poste suit, même après un reset
        self.cache.set(
            str(payload.id),
            CooldownEntry(timestamp=now, first_name=result.first_name, last_name=result.last_name),
        )

        with self._state_lock:
            if self._is_stale(generation):
                return None
            self.stop()
            self.result = result
            self.error = None
            self.state = ScannerState.SUCCESS
            self.alert = ScanAlert(
                type="success",
                title="Scan réussi",
                description=f"Bienvenue {result.display_name}",
            )
            self.log("Check-in enregistré avec succès")
        return result

    def _is_stale(self, generation: Optional[int]) -> bool:
        if generation is None or generation == self._generation:
            return False
        logger.info("Issue de validation ignorée : la session de scan a été réinitialisée")
        return True

    def _reject(self, message: str, code: str, generation: Optional[int] = None) -> None:
        with self._state_lock:
            if self._is_stale(generation):
                return
            self.log(f"Scan refusé ({code}) : {message}")
            self.stop()
            self.alert = None
            self.error = message
            self.state = ScannerState.REJECTED
