"""
Commandes CLI du poste de scan.

Exemples :
    eventcheckin init-db                 # Crée les tables manquantes
    eventcheckin cameras                 # Liste les caméras détectées
    eventcheckin scan --camera 1         # Lance le scan de QR codes
"""

import logging
import threading
from datetime import timedelta

import click

from eventcheckin.config import settings
from eventcheckin.database import SessionLocal, init_db
from eventcheckin.scanner.camera import OpenCvQrScanner, default_camera, list_cameras
from eventcheckin.scanner.session import ScannerSession, ScannerState
from eventcheckin.scheduler import start_scheduler, stop_scheduler
from eventcheckin.schemas.check_in import CheckInResult
from eventcheckin.schemas.qr_payload import QrPayload
from eventcheckin.services import check_in_service
from eventcheckin.services.cooldown_cache import JsonFileCooldownCache


def store_validator(payload: QrPayload) -> CheckInResult:
    """Valide un QR code contre la base partagée (une session BDD par scan)."""
    db = SessionLocal()
    try:
        return check_in_service.check_in(db, payload)
    finally:
        db.close()


class ScanPrinter:
    """Affiche les changements d'état de la session sans répéter le même message."""

    def __init__(self, finished: threading.Event):
        self.finished = finished
        self._last = None

    def __call__(self, session) -> None:
        message = None
        if session.alert is not None:
            message = f"[{session.alert.title}] {session.alert.description}"
        elif session.error:
            message = f"Erreur : {session.error}"

        if message and message != self._last:
            click.echo(message, err=session.state != ScannerState.SUCCESS)
            self._last = message

        if session.state in (ScannerState.SUCCESS, ScannerState.REJECTED, ScannerState.IDLE):
            self.finished.set()

    def reset(self) -> None:
        self._last = None
        self.finished.clear()


def echo_result(result: CheckInResult) -> None:
    click.echo(f"  Nom        : {result.display_name}")
    click.echo(f"  Téléphone  : {result.phone}")
    click.echo(f"  Email      : {result.email}")
    click.echo(f"  Check-in   : {result.last_check_in.date} {result.last_check_in.time}")
    click.echo(f"  Total      : {result.total_check_ins}")


@click.group()
def cli():
    """Inscription aux événements et check-in par QR code."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s — %(message)s",
    )


@cli.command("init-db")
def init_db_command():
    """Crée les tables registrations et check_ins."""
    init_db()
    click.echo("Tables créées.")


@cli.command("cameras")
def list_cameras_command():
    """Liste les caméras disponibles (la dernière est sélectionnée par défaut)."""
    devices = list_cameras()
    if not devices:
        click.echo("Aucune caméra trouvée.", err=True)
        return
    default = default_camera(devices)
    for device in devices:
        marker = "*" if device.id == default.id else " "
        click.echo(f"{marker} {device.id}: {device.label}")


@cli.command("scan")
@click.option("--camera", "camera_id", type=int, default=None, help="Index de la caméra (défaut : la dernière)")
@click.option("--cache", "cache_path", default=settings.COOLDOWN_CACHE_PATH, show_default=True,
              help="Fichier du cache de cooldown local")
@click.option("--debug", is_flag=True, help="Affiche le journal de diagnostic après chaque scan")
def scan_command(camera_id, cache_path, debug):
    """
    Scanne les QR codes d'inscription et enregistre les check-ins.

    Après un check-in validé la caméra s'arrête : confirmer pour scanner le code suivant.
    """
    window = timedelta(hours=settings.SCAN_COOLDOWN_HOURS)
    cache = JsonFileCooldownCache(cache_path)
    finished = threading.Event()
    printer = ScanPrinter(finished)

    start_scheduler(cache, window)
    try:
        with ScannerSession(OpenCvQrScanner(), store_validator, cache, cooldown=window, on_change=printer) as session:
            session.load_cameras()
            if camera_id is not None:
                session.select_camera(camera_id)

            while True:
                printer.reset()
                session.start()
                if session.state == ScannerState.IDLE:
                    raise click.ClickException(session.error or "Impossible de démarrer le scanner.")

                click.echo(f"Scanner actif sur la caméra {session.selected_camera} — présentez un QR code (Ctrl+C pour quitter)")
                while not finished.wait(0.5):
                    pass

                if session.state == ScannerState.SUCCESS and session.result is not None:
                    echo_result(session.result)
                if debug:
                    click.echo("\n".join(session.debug_log))

                if not click.confirm("Scanner un autre code ?", default=True):
                    break
                session.reset()
    except KeyboardInterrupt:
        click.echo("\nArrêt du poste de scan.")
    finally:
        stop_scheduler()


if __name__ == "__main__":
    cli()
