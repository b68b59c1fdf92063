"""
Accès caméra et boucle de décodage QR du poste de scan (OpenCV).

La boucle tourne dans un thread dédié : chaque image est réduite à sa zone
centrale (qrbox × qrbox) puis passée au QRCodeDetector. Un texte décodé est
transmis à on_success ; une image sans QR code à on_error (diagnostic
uniquement, jamais présenté comme une erreur à l'opérateur).
"""

import logging
import threading
import time
from typing import Callable, List, Optional

import cv2
from pydantic import BaseModel

from eventcheckin.config import settings

logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    """Caméra absente, non sélectionnée ou inaccessible (permission, périphérique occupé)."""


class CameraDevice(BaseModel):
    id: int
    label: str


class ScanConfig(BaseModel):
    """Paramètres de la boucle de décodage."""
    fps: int = settings.SCANNER_FPS
    qrbox: int = settings.SCANNER_QRBOX_SIZE


def list_cameras(max_devices: Optional[int] = None) -> List[CameraDevice]:
    """Sonde les index OpenCV 0..max_devices-1 et retourne les caméras qui s'ouvrent."""
    max_devices = max_devices if max_devices is not None else settings.SCANNER_MAX_CAMERAS
    devices = []
    for index in range(max_devices):
        capture = cv2.VideoCapture(index)
        try:
            if capture.isOpened():
                devices.append(CameraDevice(id=index, label=f"Camera {index}"))
        finally:
            capture.release()
    logger.debug("%d caméra(s) détectée(s)", len(devices))
    return devices


def default_camera(devices: List[CameraDevice]) -> Optional[CameraDevice]:
    """Dernière caméra listée (généralement la caméra arrière sur mobile)."""
    return devices[-1] if devices else None


def crop_center(frame, size: int):
    """Zone centrale carrée de `size` px (ou l'image entière si elle est plus petite)."""
    height, width = frame.shape[:2]
    side = min(size, height, width)
    top = (height - side) // 2
    left = (width - side) // 2
    return frame[top:top + side, left:left + side]


class OpenCvQrScanner:
    """Caméra + décodeur QR : start(device_id, config, on_success, on_error) / stop()."""

    def __init__(self):
        self._capture = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._detector = cv2.QRCodeDetector()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def list_devices(self) -> List[CameraDevice]:
        return list_cameras()

    def start(
        self,
        device_id: Optional[int],
        config: ScanConfig,
        on_success: Callable[[str], None],
        on_error: Callable[[str], None],
    ) -> None:
        """
        Ouvre la caméra et lance la boucle de décodage en arrière-plan.
        Lève CameraError si aucune caméra n'est sélectionnée ou si elle ne s'ouvre pas.
        """
        if device_id is None:
            raise CameraError("Aucune caméra sélectionnée.")
        if self.is_running:
            raise CameraError("Le scanner est déjà démarré.")

        capture = cv2.VideoCapture(device_id)
        if not capture.isOpened():
            capture.release()
            raise CameraError(f"Impossible d'ouvrir la caméra {device_id}.")

        self._capture = capture
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            args=(config, on_success, on_error),
            name=f"qr-scanner-{device_id}",
            daemon=True,
        )
        self._thread.start()
        logger.info("Scanner démarré sur la caméra %s (%d fps, zone %dpx)", device_id, config.fps, config.qrbox)

    def _run(self, config: ScanConfig, on_success, on_error) -> None:
        interval = 1.0 / max(config.fps, 1)
        while not self._stop_event.is_set():
            started = time.monotonic()
            ok, frame = self._capture.read()
            if not ok:
                on_error("Lecture de l'image impossible.")
            else:
                text, _points, _ = self._detector.detectAndDecode(crop_center(frame, config.qrbox))
                if text:
                    on_success(text)
                else:
                    on_error("Aucun QR code détecté.")
            self._stop_event.wait(max(0.0, interval - (time.monotonic() - started)))

    def stop(self) -> None:
        """Arrête la boucle et libère la caméra. Sans effet si rien n'est démarré."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2)
        self._thread = None
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("Scanner arrêté, caméra libérée.")
