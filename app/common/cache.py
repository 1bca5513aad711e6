"""
Read-through cache for expensive aggregate queries (dashboard).

Owned by the API layer: routers that write sales or settle credit call
``invalidate()`` after committing. The ledger services never touch it.
"""
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)


class ReadThroughCache:
    """Cache en memoria con TTL, cargado bajo demanda por clave."""

    def __init__(self, ttl_seconds: int):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._entries: Dict[str, Tuple[datetime, Any]] = {}
        self._lock = Lock()
        self._generation = 0

    def get(self, key: str, loader: Callable[[], Any]) -> Any:
        now = datetime.now()
        with self._lock:
            entry = self._entries.get(key)
            if entry and now - entry[0] < self.ttl:
                return entry[1]
            generation = self._generation

        value = loader()

        with self._lock:
            # Un invalidate() durante la carga descarta el valor calculado
            if generation == self._generation and self.ttl:
                self._entries[key] = (now, value)
        return value

    def peek(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            return entry[1] if entry else None

    def invalidate(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)
            self._generation += 1
        logger.debug(f"Cache invalidated (key={key or '*'})")


dashboard_cache = ReadThroughCache(settings.DASHBOARD_CACHE_TTL_SECONDS)
