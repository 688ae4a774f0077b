"""
Response Cache Service
Content-addressed store of completed responses with a time-to-live.
"""

import hashlib
import json
import time
from typing import Any, Callable, Dict, Optional

from ai_gateway.services.data_structures import CacheEntry, GenerationOptions, GenerationResponse
from ai_gateway.utils.logger import setup_logger

logger = setup_logger(__name__)


def _canonical(value: Any) -> Any:
    """Make nested containers JSON-sortable; dict keys keep their type in the key"""
    if isinstance(value, dict):
        return {f"{type(k).__name__}:{k}": _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def fingerprint(model: str, prompt: str, options: GenerationOptions) -> str:
    """
    Deterministic key of the exact (model, prompt, options) triple.
    No semantic equivalence: any changed field is a different key.
    """
    key_parts = {
        "model": model,
        "prompt": prompt,
        "options": _canonical(options.to_dict()),
    }
    key_json = json.dumps(key_parts, sort_keys=True, ensure_ascii=True, default=str)
    return hashlib.sha256(key_json.encode()).hexdigest()


class ResponseCacheService:
    """
    In-memory cache keyed by request fingerprint.
    Expired entries are treated as misses on read and removed lazily or by
    sweep_expired(); correctness never depends on the sweep.
    """

    def __init__(
        self,
        default_ttl_seconds: float = 300.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.default_ttl_seconds = default_ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, key: str) -> Optional[GenerationResponse]:
        entry = self._entries.get(key)
        if entry is None or not entry.is_valid(self.clock()):
            self.misses += 1
            return None

        self.hits += 1
        return entry.response

    def store(self, key: str, response: GenerationResponse, ttl: Optional[float] = None):
        """Last writer wins"""
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._evict()

        self._entries[key] = CacheEntry(
            response=response,
            stored_at=self.clock(),
            ttl_seconds=ttl if ttl is not None else self.default_ttl_seconds,
        )

    def _evict(self):
        """Drop expired entries, then the oldest one if still full"""
        self.sweep_expired()
        if len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].stored_at)
            del self._entries[oldest]
            self.evictions += 1

    def sweep_expired(self) -> int:
        """Remove all expired entries. Returns count removed."""
        now = self.clock()
        expired = [k for k, entry in self._entries.items() if not entry.is_valid(now)]
        for k in expired:
            del self._entries[k]
        self.evictions += len(expired)
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def clear(self):
        self._entries.clear()
        logger.info("Response cache cleared")

    def get_stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": round(self.hits / total, 4) if total else 0.0,
        }
