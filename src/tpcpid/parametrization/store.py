"""
Loading and caching of the signal and sigma parametrizations.

Two sources are supported:
- a local JSON container file holding named objects
  (``{"BetheBloch": {"class": "BetheBloch", "parameters": [...]}, ...}``),
  from which both kinds are read by name;
- a remote blob store, where each object lives at ``<base_path>/<name>`` and
  is versioned by timestamp.

Loads are memoised per (source, name, kind, timestamp); any failure is fatal
to the run.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from tpcpid.errors import ConfigurationError
from tpcpid.parametrization.base import Parametrization, check_kind, parametrization_from_dict
from tpcpid.parametrization.blob import (
    BlobStore,
    CachingBlobStore,
    HttpBlobStore,
    check_path,
    resolve_timestamp,
)
from tpcpid.response import DetectorResponse

if TYPE_CHECKING:
    from tpcpid.config import PidConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParametrizationSource:
    """Where parametrizations come from: a local file or a remote base path."""

    mode: str
    location: str

    @classmethod
    def from_file(cls, path: Path | str) -> ParametrizationSource:
        return cls(mode="file", location=str(path))

    @classmethod
    def from_remote(cls, base_path: str) -> ParametrizationSource:
        return cls(mode="remote", location=base_path.strip("/"))

    @property
    def is_file(self) -> bool:
        return self.mode == "file"


class ParametrizationStore:
    """
    Memoising loader for parametrizations.

    Example:
        >>> store = ParametrizationStore(CachingBlobStore(HttpBlobStore("http://alice-ccdb.cern.ch")))
        >>> source = ParametrizationSource.from_remote("Analysis/PID/TPC")
        >>> signal = store.load(source, "BetheBloch", "signal", timestamp=-1)
    """

    def __init__(self, blob_store: Optional[BlobStore] = None):
        self.blob_store = blob_store
        self._loaded: Dict[tuple, Parametrization] = {}
        self._files: Dict[str, Dict[str, Any]] = {}

    @property
    def loaded(self) -> Mapping[tuple, Parametrization]:
        """Read-only view of everything loaded so far, keyed by (source, name, kind, timestamp)."""
        return MappingProxyType(self._loaded)

    def load(
        self,
        source: ParametrizationSource,
        name: str,
        kind: str,
        timestamp: int = -1,
    ) -> Parametrization:
        """
        Load one parametrization.

        Args:
            source: File or remote source.
            name: Object name (e.g. ``BetheBloch``).
            kind: ``signal`` or ``sigma``.
            timestamp: Milliseconds since the epoch, ``-1`` for now. Ignored in file mode.

        Raises:
            ConfigurationError: Missing name, unreadable file, malformed path or payload.
            ParametrizationNotFoundError: No remote object valid at ``timestamp``.
        """
        check_kind(kind)
        if not name:
            raise ConfigurationError(f"Empty parametrization name for kind '{kind}'")

        key = (source, name, kind, None if source.is_file else timestamp)
        if key in self._loaded:
            return self._loaded[key]

        if source.is_file:
            logger.info(f"Loading exp. {kind} parametrization from file {source.location}, using param: {name}")
            param = self._load_from_file(source.location, name)
        else:
            ts = resolve_timestamp(timestamp)
            path = check_path(f"{source.location}/{name}")
            logger.info(f"Loading exp. {kind} parametrization from remote store, using path: {path} for timestamp {ts}")
            param = self._load_from_remote(path, name, ts)

        self._loaded[key] = param
        return param

    def _read_file(self, location: str) -> Dict[str, Any]:
        if location not in self._files:
            try:
                with open(location, "r", encoding="utf-8") as f:
                    content = json.load(f)
            except (OSError, json.JSONDecodeError) as exc:
                raise ConfigurationError(f"Cannot read parametrization file '{location}': {exc}") from exc
            if not isinstance(content, dict):
                raise ConfigurationError(f"Parametrization file '{location}' must hold a JSON object")
            self._files[location] = content
        return self._files[location]

    def _load_from_file(self, location: str, name: str) -> Parametrization:
        content = self._read_file(location)
        if name not in content:
            available = ", ".join(sorted(content))
            raise ConfigurationError(
                f"Parametrization '{name}' not found in '{location}'. Available: {available}"
            )
        return parametrization_from_dict(name, content[name])

    def _load_from_remote(self, path: str, name: str, timestamp: int) -> Parametrization:
        if self.blob_store is None:
            raise ConfigurationError("No remote store configured and no parametrization file given")
        obj = self.blob_store.get(path, timestamp)
        try:
            data = json.loads(obj.payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Malformed payload for '{path}': {exc}") from exc
        return parametrization_from_dict(name, data)

    def __repr__(self) -> str:
        return f"ParametrizationStore(blob_store={self.blob_store!r}, loaded={len(self._loaded)})"


def source_from_config(config: PidConfig) -> ParametrizationSource:
    if config.param_file:
        return ParametrizationSource.from_file(config.param_file)
    return ParametrizationSource.from_remote(config.ccdb_path)


def store_from_config(config: PidConfig) -> ParametrizationStore:
    """A file-only store when a parametrization file is set, otherwise a cached remote store."""
    if config.param_file:
        return ParametrizationStore()
    return ParametrizationStore(CachingBlobStore(HttpBlobStore(config.ccdb_url)))


def load_response(config: PidConfig, store: Optional[ParametrizationStore] = None) -> DetectorResponse:
    """Load the signal and sigma parametrizations named in ``config``."""
    store = store or store_from_config(config)
    source = source_from_config(config)
    signal = store.load(source, config.param_signal, "signal", config.ccdb_timestamp)
    sigma = store.load(source, config.param_sigma, "sigma", config.ccdb_timestamp)
    return DetectorResponse(signal=signal, sigma=sigma)
