"""
cache.py

Cache clé/valeur du processus, à durée de vie (TTL) par entrée.

Cycle de vie d'une clé : Vide -> Frais (put) -> Périmé (TTL écoulé) -> Vide
(au get suivant, l'entrée périmée est supprimée).

Le cache peut être adossé à un fichier JSON pour survivre à un redémarrage ;
il reste jetable : un fichier illisible est ignoré, jamais une source de vérité.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class CacheState(str, Enum):
    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


class CacheEntry(BaseModel):
    key: str
    payload: Any
    fetched_at_ms: int
    ttl_ms: int

    def is_stale(self, at_ms: int) -> bool:
        return at_ms - self.fetched_at_ms > self.ttl_ms


class CacheLayer:
    """Seule ressource mutable partagée : chaque écriture remplace l'entrée entière."""

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._entries: Dict[str, CacheEntry] = {}
        self._clock = clock
        self.path = Path(path) if path else None
        self._writer: Optional[ThreadPoolExecutor] = None
        if self.path is not None:
            self._load()

    def __len__(self) -> int:
        return len(self._entries)

    def state(self, key: str) -> CacheState:
        """État courant de la clé, sans éviction."""

        entry = self._entries.get(key)
        if entry is None:
            return CacheState.EMPTY
        return CacheState.STALE if entry.is_stale(self._clock()) else CacheState.FRESH

    def get(self, key: str) -> Optional[CacheEntry]:
        """Entrée fraîche, ou None (absente ou périmée ; la périmée est supprimée)."""

        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_stale(self._clock()):
            logger.debug("Cache : %s expiré, suppression", key)
            del self._entries[key]
            self._persist()
            return None

        logger.debug("Cache : hit %s", key)
        return entry.model_copy(deep=True)

    def put(self, key: str, payload: Any, ttl_ms: int) -> CacheEntry:
        entry = CacheEntry(key=key, payload=payload, fetched_at_ms=self._clock(), ttl_ms=ttl_ms)
        self._entries[key] = entry
        self._persist()
        return entry

    def invalidate(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._persist()

    def clear(self) -> None:
        self._entries.clear()
        self._persist()

    # ---------- PERSISTANCE ----------

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            for item in raw.get("entries", []):
                entry = CacheEntry.model_validate(item)
                self._entries[entry.key] = entry
            logger.info("Cache : %d entrées rechargées depuis %s", len(self._entries), self.path)
        except (OSError, ValueError, AttributeError, ValidationError) as e:
            logger.warning("Cache : fichier %s ignoré (%s)", self.path, e)
            self._entries.clear()

    def _persist(self) -> None:
        """Sérialise sur la boucle ; l'écriture disque part sur un thread unique (ordre conservé)."""

        if self.path is None:
            return
        text = json.dumps({"entries": [e.model_dump(mode="json") for e in self._entries.values()]})

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._write(text)
            return

        if self._writer is None:
            self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sniffer-cache")
        self._writer.submit(self._write, text)

    def _write(self, text: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self.path)
        except OSError as e:
            # le cache mémoire reste valide, seule la copie disque est perdue
            logger.warning("Cache : écriture de %s impossible (%s)", self.path, e)

    def close(self) -> None:
        """Attend la fin des écritures disque en cours."""

        if self._writer is not None:
            self._writer.shutdown(wait=True)
            self._writer = None
