"""
In-process TTL cache for client lookups and the dashboard.

One map of client entries keyed by name and cédula, plus a single dashboard
slot. The clock is injectable so expiry can be tested without sleeping.
No size bound; entries only leave on expiry or invalidation.
"""
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable


@dataclass
class _Entry:
    value: Any
    written_at: float


def client_cache_key(client_name: str | None, client_id: str | None) -> str:
    return f"{(client_name or '').strip().lower()}_{(client_id or '').strip()}"


class TTLCache:
    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._clients: dict[str, _Entry] = {}
        self._dashboard: _Entry | None = None

    def _fresh(self, entry: _Entry) -> bool:
        return self._clock() - entry.written_at < self.ttl_seconds

    # ---- clients ----

    def get_client(self, client_name: str | None, client_id: str | None) -> Any | None:
        key = client_cache_key(client_name, client_id)
        with self._lock:
            entry = self._clients.get(key)
            if entry is None:
                return None
            if not self._fresh(entry):
                del self._clients[key]
                return None
            return entry.value

    def set_client(self, client_name: str | None, client_id: str | None, value: Any) -> None:
        key = client_cache_key(client_name, client_id)
        with self._lock:
            self._clients[key] = _Entry(value=value, written_at=self._clock())

    def invalidate_client(self, client_name: str | None, client_id: str | None) -> None:
        with self._lock:
            self._clients.pop(client_cache_key(client_name, client_id), None)

    # ---- dashboard ----

    def get_dashboard(self) -> Any | None:
        with self._lock:
            if self._dashboard is None:
                return None
            if not self._fresh(self._dashboard):
                self._dashboard = None
                return None
            return self._dashboard.value

    def set_dashboard(self, value: Any) -> None:
        with self._lock:
            self._dashboard = _Entry(value=value, written_at=self._clock())

    def invalidate_dashboard(self) -> None:
        with self._lock:
            self._dashboard = None

    def clear(self) -> None:
        with self._lock:
            self._clients.clear()
            self._dashboard = None

    def stats(self) -> dict:
        """Sizes and entry ages in seconds, for debugging."""
        with self._lock:
            now = self._clock()
            ages = [now - entry.written_at for entry in self._clients.values()]
            return {
                "clientCacheSize": len(self._clients),
                "dashboardCached": self._dashboard is not None,
                "oldestClientAgeSeconds": max(ages) if ages else None,
                "newestClientAgeSeconds": min(ages) if ages else None,
                "ttlSeconds": self.ttl_seconds,
            }
