"""
Planificateur APScheduler du poste de scan.

Purge périodiquement du cache de cooldown les entrées plus anciennes que la
fenêtre de cooldown : elles ne peuvent plus refuser aucun scan. Aucune
éviction par taille.
"""

import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from eventcheckin.config import settings
from eventcheckin.services.cooldown_cache import CooldownCache

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def evict_expired_entries(cache: CooldownCache, window: timedelta) -> int:
    """Supprime les entrées dont le cooldown est écoulé. Retourne le nombre supprimé."""
    cutoff = datetime.now(timezone.utc) - window
    try:
        removed = cache.evict_older_than(cutoff)
    except OSError as exc:
        logger.error("Erreur lors de la purge du cache de cooldown : %s", exc)
        return 0
    if removed:
        logger.info("Cache de cooldown : %d entrée(s) expirée(s) supprimée(s)", removed)
    return removed


def start_scheduler(cache: CooldownCache, window: timedelta) -> None:
    """Démarre la purge périodique en arrière-plan (appelé au lancement du poste de scan)."""
    scheduler.add_job(
        evict_expired_entries,
        trigger="interval",
        minutes=settings.COOLDOWN_EVICTION_INTERVAL_MINUTES,
        args=[cache, window],
        id="cooldown_cache_eviction",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "Scheduler démarré — purge du cache de cooldown toutes les %d minutes.",
        settings.COOLDOWN_EVICTION_INTERVAL_MINUTES,
    )


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à la fermeture du poste)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
