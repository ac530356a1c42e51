"""
Versioned blob stores for calibration objects.

A blob store answers ``get(path, timestamp)`` with the most recent object
valid at or before ``timestamp`` and raises ``ParametrizationNotFoundError``
when none exists. Misses are configuration errors, so every store makes a
single attempt and never retries.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import requests

from tpcpid.errors import ConfigurationError, ParametrizationNotFoundError

logger = logging.getLogger(__name__)

_PATH_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+(/[A-Za-z0-9_.\-]+)*$")


def timestamp_now() -> int:
    """Current UTC time in milliseconds since the epoch."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def resolve_timestamp(timestamp: int) -> int:
    """Map the ``-1`` placeholder to the current time."""
    return timestamp_now() if timestamp < 0 else int(timestamp)


def check_path(path: str) -> str:
    """
    Validate a store path such as ``Analysis/PID/TPC/BetheBloch``.

    Raises:
        ConfigurationError: If the path is empty, absolute or contains '..'.
    """
    if not path or not _PATH_PATTERN.match(path) or ".." in path.split("/"):
        raise ConfigurationError(f"Malformed calibration path '{path}'")
    return path


@dataclass(frozen=True)
class BlobObject:
    """Payload of a calibration object and its validity interval [valid_from, valid_until)."""

    path: str
    payload: bytes
    valid_from: int
    valid_until: Optional[int] = None

    def is_valid_at(self, timestamp: int) -> bool:
        if timestamp < self.valid_from:
            return False
        return self.valid_until is None or timestamp < self.valid_until


class BlobStore(ABC):
    """Keyed, timestamp-versioned object store."""

    @abstractmethod
    def get(self, path: str, timestamp: int) -> BlobObject:
        """
        Fetch the object valid at ``timestamp``.

        Raises:
            ParametrizationNotFoundError: If no object is valid at or before ``timestamp``.
            ConfigurationError: If the path is malformed or the store is unreachable.
        """


class LocalBlobStore(BlobStore):
    """
    Directory-backed store.

    Objects live at ``<root>/<path>/<valid_from>.json``; an object stays valid
    until the next object of the same path starts.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _versions(self, path: str) -> List[tuple[int, Path]]:
        directory = self.root / path
        if not directory.is_dir():
            return []
        versions = []
        for entry in directory.iterdir():
            if entry.is_file() and entry.stem.isdigit():
                versions.append((int(entry.stem), entry))
        return sorted(versions)

    def get(self, path: str, timestamp: int) -> BlobObject:
        check_path(path)
        versions = self._versions(path)
        candidates = [i for i, (start, _) in enumerate(versions) if start <= timestamp]
        if not candidates:
            raise ParametrizationNotFoundError(path, timestamp)
        index = candidates[-1]
        start, file_path = versions[index]
        until = versions[index + 1][0] if index + 1 < len(versions) else None
        return BlobObject(path=path, payload=file_path.read_bytes(), valid_from=start, valid_until=until)

    def put(self, path: str, valid_from: int, payload: bytes) -> Path:
        """Store ``payload`` for ``path`` starting at ``valid_from``."""
        check_path(path)
        directory = self.root / path
        directory.mkdir(parents=True, exist_ok=True)
        file_path = directory / f"{int(valid_from)}.json"
        file_path.write_bytes(payload)
        return file_path

    def __repr__(self) -> str:
        return f"LocalBlobStore(root='{self.root}')"


class HttpBlobStore(BlobStore):
    """
    REST client for a CCDB-style repository: ``GET <url>/<path>/<timestamp>``.

    Validity comes from the ``Valid-From``/``Valid-Until`` response headers;
    a missing bound is narrowed to the requested timestamp. Objects whose ``Created`` header is later than ``created_not_after`` are
    treated as missing, so that a run never picks up objects uploaded after
    it started.
    """

    def __init__(
        self,
        url: str,
        *,
        created_not_after: int | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        if not url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Remote store URL must be http(s), got '{url}'")
        self.url = url.rstrip("/")
        self.created_not_after = timestamp_now() if created_not_after is None else int(created_not_after)
        self.timeout = timeout
        self.session = session or requests.Session()

    @staticmethod
    def _int_header(headers, key: str) -> Optional[int]:
        value = headers.get(key)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def get(self, path: str, timestamp: int) -> BlobObject:
        check_path(path)
        url = f"{self.url}/{path}/{int(timestamp)}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ConfigurationError(f"Could not reach calibration store at {url}: {exc}") from exc

        if response.status_code == 404:
            raise ParametrizationNotFoundError(path, timestamp)
        if response.status_code >= 400:
            raise ConfigurationError(
                f"Calibration store returned HTTP {response.status_code} for {url}"
            )

        created = self._int_header(response.headers, "Created")
        if created is not None and created > self.created_not_after:
            logger.warning(
                f"Object {path} at {timestamp} was created at {created}, "
                f"after the cut {self.created_not_after}"
            )
            raise ParametrizationNotFoundError(path, timestamp)

        valid_from = self._int_header(response.headers, "Valid-From")
        valid_until = self._int_header(response.headers, "Valid-Until")
        # without validity headers the object is only known to hold up to this timestamp
        if valid_from is None:
            valid_from = int(timestamp)
        if valid_until is None:
            valid_until = int(timestamp) + 1
        return BlobObject(
            path=path,
            payload=response.content,
            valid_from=valid_from,
            valid_until=valid_until,
        )

    def __repr__(self) -> str:
        return f"HttpBlobStore(url='{self.url}')"


class CachingBlobStore(BlobStore):
    """
    Keeps fetched objects for the lifetime of a run.

    A request whose timestamp falls inside the validity interval of a cached
    object of the same path is answered locally.
    """

    def __init__(self, inner: BlobStore):
        self.inner = inner
        self._cache: Dict[str, List[BlobObject]] = {}
        self.fetches = 0

    def get(self, path: str, timestamp: int) -> BlobObject:
        for obj in self._cache.get(path, []):
            if obj.is_valid_at(timestamp):
                logger.debug(f"Cache hit for {path} at {timestamp}")
                return obj
        obj = self.inner.get(path, timestamp)
        self.fetches += 1
        self._cache.setdefault(path, []).append(obj)
        return obj

    def __repr__(self) -> str:
        return f"CachingBlobStore(inner={self.inner!r})"
