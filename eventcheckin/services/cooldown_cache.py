"""
Cache local de cooldown du poste de scan.

Associe un identifiant d'inscription à l'instant de son dernier check-in validé
sur CE poste (et au nom du participant pour l'affichage). Un nouveau scan du
même code dans la fenêtre de cooldown (6h par défaut) est refusé sans
interroger la base.

Le cache n'est pas partagé entre postes : deux postes différents peuvent
chacun accepter le même code dans la fenêtre.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional

from filelock import FileLock
from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class CooldownEntry(BaseModel):
    """Dernier scan validé d'une inscription sur ce poste."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    timestamp: datetime
    first_name: str = ""
    last_name: str = ""

    @field_validator("timestamp", mode="before")
    @classmethod
    def from_epoch_ms(cls, v):
        # Format historique : millisecondes depuis l'epoch
        if isinstance(v, (int, float)):
            return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
        return v

    @field_serializer("timestamp")
    def to_epoch_ms(self, v: datetime) -> int:
        return int(v.timestamp() * 1000)


class CooldownCache(ABC):
    """Interface du cache de cooldown (injectée dans ScannerSession)."""

    @abstractmethod
    def get(self, registration_id: str) -> Optional[CooldownEntry]:
        ...

    @abstractmethod
    def set(self, registration_id: str, entry: CooldownEntry) -> None:
        ...

    @abstractmethod
    def evict_older_than(self, cutoff: datetime) -> int:
        """Supprime les entrées antérieures à cutoff. Retourne le nombre d'entrées supprimées."""

    @abstractmethod
    def clear(self) -> None:
        ...


def is_cooling_down(
    cache: CooldownCache,
    registration_id: str,
    now: datetime,
    window: timedelta,
) -> bool:
    """True si l'inscription a été scannée sur ce poste il y a moins de `window`."""
    entry = cache.get(registration_id)
    if entry is None:
        return False
    return now - entry.timestamp < window


class InMemoryCooldownCache(CooldownCache):
    """Cache en mémoire : tests et postes éphémères."""

    def __init__(self):
        self._entries: Dict[str, CooldownEntry] = {}
        self._lock = threading.Lock()

    def get(self, registration_id: str) -> Optional[CooldownEntry]:
        with self._lock:
            return self._entries.get(registration_id)

    def set(self, registration_id: str, entry: CooldownEntry) -> None:
        with self._lock:
            self._entries[registration_id] = entry

    def evict_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.timestamp < cutoff]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class JsonFileCooldownCache(CooldownCache):
    """
    Cache persisté dans un fichier JSON local au poste.

    Format : {"<id>": {"firstName": ..., "lastName": ..., "timestamp": <epoch ms>}}
    Relu à chaque accès ; les écritures sont protégées par un verrou fichier
    pour que plusieurs processus du même poste ne s'écrasent pas.
    """

    def __init__(self, path):
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(str(self.path) + ".lock")

    def _load(self) -> Dict[str, CooldownEntry]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError:
            logger.warning("Cache de cooldown illisible, réinitialisé : %s", self.path)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Cache de cooldown illisible, réinitialisé : %s", self.path)
            return {}

        entries = {}
        for registration_id, data in raw.items():
            try:
                entries[registration_id] = CooldownEntry.model_validate(data)
            except ValueError:
                logger.debug("Entrée de cooldown ignorée (format invalide) : %s", registration_id)
        return entries

    def _save(self, entries: Dict[str, CooldownEntry]) -> None:
        data = {k: e.model_dump(by_alias=True) for k, e in entries.items()}
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def get(self, registration_id: str) -> Optional[CooldownEntry]:
        with self._lock:
            return self._load().get(registration_id)

    def set(self, registration_id: str, entry: CooldownEntry) -> None:
        with self._lock:
            entries = self._load()
            entries[registration_id] = entry
            self._save(entries)

    def evict_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            entries = self._load()
            kept = {k: e for k, e in entries.items() if e.timestamp >= cutoff}
            removed = len(entries) - len(kept)
            if removed:
                self._save(kept)
            return removed

    def clear(self) -> None:
        with self._lock:
            self._save({})
