"""Loading the incident export once and sharing it as an immutable snapshot."""
from __future__ import annotations

import json
import logging
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import requests

from .tickets import Ticket, ensure_aware, normalize

LOGGER = logging.getLogger(__name__)

DEFAULT_CACHE_KEY = "incident-data:v1"

STATE_PENDING = "pending"
STATE_READY = "ready"
STATE_FAILED = "failed"


class DatasetLoadError(RuntimeError):
    """Raised when the incident export cannot be fetched or decoded."""


@dataclass(frozen=True)
class TicketDataset:
    tickets: Tuple[Ticket, ...]
    loaded_at: datetime
    source: str

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        *,
        source: str = "",
        now: Optional[datetime] = None,
        tz: Optional[tzinfo] = None,
    ) -> "TicketDataset":
        loaded_at = ensure_aware(now, tz)
        tickets = tuple(normalize(record, now=loaded_at, tz=tz) for record in records)
        return cls(tickets=tickets, loaded_at=loaded_at, source=source)

    def __len__(self) -> int:
        return len(self.tickets)


# -- Local cache ------------------------------------------------------------


@dataclass(frozen=True)
class CachedValue:
    key: str
    value: Any
    updated_at: float


class JsonCache:
    """Key/value store of JSON documents in one directory.

    Unreadable or unwritable entries are logged and treated as cache misses.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]+", "_", key)
        return self.directory / f"{safe}.json"

    def get(self, key: str) -> Optional[CachedValue]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                document = json.load(handle)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable cache entry %s: %s", path, exc)
            return None
        if not isinstance(document, dict) or document.get("key") != key:
            LOGGER.warning("Ignoring malformed cache entry %s", path)
            return None
        return CachedValue(key, document.get("value"), float(document.get("updatedAt") or 0))

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        payload = {"key": key, "value": value, "updatedAt": time.time() * 1000}
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as handle:
                json.dump(payload, handle)
        except (OSError, TypeError) as exc:
            LOGGER.warning("Unable to write cache entry %s: %s", path, exc)

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            LOGGER.warning("Unable to delete cache entry %s: %s", path, exc)


# -- Loader -----------------------------------------------------------------


def _extract_records(payload: Any, source: str) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        payload = payload.get("records")
    if not isinstance(payload, list):
        raise DatasetLoadError(
            f"Incident data from {source} must be a list of records or an object with 'records'"
        )
    return [record for record in payload if isinstance(record, dict)]


class DatasetLoader:
    """Fetch, cache and normalise the incident export exactly once."""

    def __init__(
        self,
        source: str,
        *,
        cache: Optional[JsonCache] = None,
        cache_key: str = DEFAULT_CACHE_KEY,
        now: Optional[datetime] = None,
        tz: Optional[tzinfo] = None,
        timeout: int = 30,
        verify_ssl: bool = True,
    ) -> None:
        self.source = str(source)
        self.cache = cache
        self.cache_key = cache_key
        self.now = now
        self.tz = tz
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self._lock = threading.Lock()
        self._dataset: Optional[TicketDataset] = None
        self._error: Optional[DatasetLoadError] = None

    @property
    def state(self) -> str:
        if self._dataset is not None:
            return STATE_READY
        if self._error is not None:
            return STATE_FAILED
        return STATE_PENDING

    @property
    def error(self) -> Optional[str]:
        return str(self._error) if self._error is not None else None

    def load(self) -> TicketDataset:
        """Return the dataset, loading it on first use.

        Concurrent callers wait on the same load. A failed load is remembered
        and raised again on every later call.
        """
        with self._lock:
            if self._dataset is not None:
                return self._dataset
            if self._error is not None:
                raise self._error
            try:
                records = self._records()
                self._dataset = TicketDataset.from_records(
                    records, source=self.source, now=self.now, tz=self.tz
                )
            except DatasetLoadError as exc:
                self._error = exc
                LOGGER.error("Failed to load incident data: %s", exc)
                raise
            LOGGER.info("Loaded %s tickets from %s", len(self._dataset), self.source)
            return self._dataset

    def _records(self) -> List[Dict[str, Any]]:
        if self.cache is not None:
            cached = self.cache.get(self.cache_key)
            if cached is not None and cached.value is not None:
                LOGGER.debug("Using cached incident data %s", self.cache_key)
                return _extract_records(cached.value, f"cache entry {self.cache_key}")

        payload = self._fetch()
        records = _extract_records(payload, self.source)
        if self.cache is not None:
            self.cache.set(self.cache_key, records)
        return records

    def _fetch(self) -> Any:
        if re.match(r"^https?://", self.source, re.IGNORECASE):
            LOGGER.debug("HTTP GET %s", self.source)
            try:
                response = requests.get(self.source, timeout=self.timeout, verify=self.verify_ssl)
                response.raise_for_status()
                return response.json()
            except requests.RequestException as exc:
                raise DatasetLoadError(f"Unable to fetch {self.source}: {exc}") from exc
            except ValueError as exc:
                raise DatasetLoadError(f"Response from {self.source} is not valid JSON") from exc

        path = Path(self.source).expanduser()
        try:
            with path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except FileNotFoundError as exc:
            raise DatasetLoadError(f"Incident data file not found: {path}") from exc
        except OSError as exc:
            raise DatasetLoadError(f"Unable to read incident data {path}: {exc}") from exc
        except ValueError as exc:
            raise DatasetLoadError(f"Incident data {path} is not valid JSON: {exc}") from exc
