"""
Price cache implementations.

Resolved catalog prices are stored per query hash so repeated estimates do not
download the (large) pricing catalogs again. The file-backed cache survives
process restarts and may be deleted at any time; entries older than the TTL
are treated as misses.
"""
import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from bootstrap_cost.core.config import config
from bootstrap_cost.domain.cost_models import PriceResult, PriceTier
from bootstrap_cost.utils.fs import atomic_write_text, ensure_directory, iter_entry_files


logger = logging.getLogger(__name__)


class PriceCache:
    """Interface shared by all cache backends."""

    def get(self, key: str) -> Tuple[Optional[PriceResult], bool]:
        raise NotImplementedError

    def put(self, key: str, result: PriceResult) -> None:
        raise NotImplementedError

    def get_stats(self) -> Tuple[int, int]:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


def _serialize_entry(key: str, result: PriceResult, written_at: float) -> Dict[str, Any]:
    return {
        "key": key,
        "sku": result.sku,
        "unit_price": result.unit_price,
        "unit": result.unit,
        "currency": result.currency,
        "tiers": [tier.to_dict() for tier in result.tiers],
        "written_at": written_at,
    }


def _deserialize_entry(data: Dict[str, Any]) -> Tuple[PriceResult, float]:
    """
    Rebuild a cached result.

    Raises:
        KeyError, TypeError, ValueError: If the entry is malformed
    """
    result = PriceResult(
        sku=str(data["sku"]),
        unit_price=float(data["unit_price"]),
        unit=str(data.get("unit", "")),
        currency=str(data.get("currency", "USD")),
        tiers=[PriceTier.from_dict(tier) for tier in data.get("tiers") or []],
        from_cache=True,
    )
    return result, float(data["written_at"])


class FilePriceCache(PriceCache):
    """
    File-based price cache, one JSON file per query hash.

    Layout:
        <cache_dir>/<sha256>.json
    """

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the cache, creating its directory if absent.

        Args:
            cache_dir: Cache directory (default: config.PRICING_CACHE_DIR)
            ttl_seconds: Maximum entry age (default: config.PRICING_CACHE_TTL_SECONDS)
            clock: Returns the current time as epoch seconds
        """
        self.cache_dir = ensure_directory(cache_dir or config.PRICING_CACHE_DIR)
        self.ttl_seconds = config.PRICING_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock

    def _entry_path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get(self, key: str) -> Tuple[Optional[PriceResult], bool]:
        """
        Look up a cached price.

        Missing, expired, unreadable or malformed entries are all plain misses.

        Returns:
            (result, True) on a fresh hit, (None, False) otherwise
        """
        path = self._entry_path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None, False
        except OSError as error:
            logger.debug(f"Unreadable cache entry {path.name}: {error}")
            return None, False

        try:
            data = json.loads(raw)
            result, written_at = _deserialize_entry(data)
        except (ValueError, KeyError, TypeError, AttributeError) as error:
            # Partial or corrupted entry; the next put overwrites it
            logger.debug(f"Corrupted cache entry {path.name}: {error}")
            return None, False

        if self._clock() - written_at > self.ttl_seconds:
            logger.debug(f"Expired cache entry {path.name}")
            return None, False

        return result, True

    def put(self, key: str, result: PriceResult) -> None:
        """
        Store a resolved price with the current timestamp.

        Write failures are logged and ignored; caching is best effort.
        """
        entry = _serialize_entry(key, result, self._clock())
        try:
            atomic_write_text(self._entry_path(key), json.dumps(entry, indent=2))
        except OSError as error:
            logger.warning(f"Failed to write price cache entry {key[:12]}: {error}")

    def get_stats(self) -> Tuple[int, int]:
        """
        Returns:
            (entry count, total size in bytes), stale entries included
        """
        count = 0
        size = 0
        for entry in iter_entry_files(self.cache_dir):
            try:
                size += entry.stat().st_size
            except OSError:
                continue
            count += 1
        return count, size

    def clear(self) -> None:
        """Remove every cache entry."""
        for entry in iter_entry_files(self.cache_dir):
            entry.unlink(missing_ok=True)

    def clear_expired(self) -> int:
        """
        Remove entries older than the TTL, plus unreadable ones.

        Returns:
            Number of files removed
        """
        removed = 0
        now = self._clock()
        for entry in iter_entry_files(self.cache_dir):
            try:
                _, written_at = _deserialize_entry(json.loads(entry.read_text(encoding="utf-8")))
                expired = now - written_at > self.ttl_seconds
            except (OSError, ValueError, KeyError, TypeError, AttributeError):
                expired = True
            if expired:
                entry.unlink(missing_ok=True)
                removed += 1
        return removed


class InMemoryPriceCache(PriceCache):
    """Process-local cache with the same TTL semantics, for tests and ephemeral runs."""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.ttl_seconds = config.PRICING_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str) -> Tuple[Optional[PriceResult], bool]:
        data = self._entries.get(key)
        if data is None:
            return None, False
        result, written_at = _deserialize_entry(data)
        if self._clock() - written_at > self.ttl_seconds:
            return None, False
        return result, True

    def put(self, key: str, result: PriceResult) -> None:
        self._entries[key] = _serialize_entry(key, result, self._clock())

    def get_stats(self) -> Tuple[int, int]:
        size = sum(len(json.dumps(entry)) for entry in self._entries.values())
        return len(self._entries), size

    def clear(self) -> None:
        self._entries.clear()


class NullPriceCache(PriceCache):
    """Disabled cache: every lookup misses, writes are dropped."""

    def get(self, key: str) -> Tuple[Optional[PriceResult], bool]:
        return None, False

    def put(self, key: str, result: PriceResult) -> None:
        return None

    def get_stats(self) -> Tuple[int, int]:
        return 0, 0

    def clear(self) -> None:
        return None
