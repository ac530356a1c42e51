"""
Track records consumed by the PID response.

A ``Track`` is a single reconstructed trajectory. A ``TrackBatch`` is the
columnar form used on the hot path: one read-only numpy array per field,
all of the same length, in input order.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Iterable, Iterator, Mapping

import numpy as np
import pyarrow as pa

from tpcpid.errors import ConfigurationError

TRACK_COLUMNS = ("momentum", "inner_momentum", "signal", "n_clusters")


@dataclass(frozen=True)
class Track:
    """Kinematics and TPC signal of one track."""

    momentum: float
    """Momentum magnitude at the vertex (GeV/c)."""
    inner_momentum: float
    """Momentum at the inner wall of the TPC, used for the energy-loss lookup (GeV/c)."""
    signal: float
    """Measured TPC dE/dx signal (a.u.)."""
    n_clusters: int = 0
    """Number of found TPC clusters, 0 if unknown."""


def _column(values: Any, dtype) -> np.ndarray:
    array = np.array(values, dtype=dtype, copy=True).reshape(-1)
    array.flags.writeable = False
    return array


@dataclass(frozen=True)
class TrackBatch:
    """Columnar, read-only batch of tracks."""

    momentum: np.ndarray
    inner_momentum: np.ndarray
    signal: np.ndarray
    n_clusters: np.ndarray

    def __post_init__(self):
        lengths = {f.name: len(getattr(self, f.name)) for f in fields(self)}
        if len(set(lengths.values())) > 1:
            raise ConfigurationError(f"Track columns have different lengths: {lengths}")

    @classmethod
    def from_columns(cls, columns: Mapping[str, Any]) -> TrackBatch:
        """
        Build a batch from a mapping of column name to array-like.

        ``n_clusters`` is optional and defaults to 0 for every track.

        Raises:
            ConfigurationError: If a required column is missing.
        """
        missing = [name for name in TRACK_COLUMNS[:3] if name not in columns]
        if missing:
            raise ConfigurationError(f"Track columns missing: {missing}")
        n = len(np.asarray(columns["signal"]).reshape(-1))
        n_clusters = columns.get("n_clusters")
        if n_clusters is None:
            n_clusters = np.zeros(n, dtype=np.int32)
        return cls(
            momentum=_column(columns["momentum"], np.float64),
            inner_momentum=_column(columns["inner_momentum"], np.float64),
            signal=_column(columns["signal"], np.float64),
            n_clusters=_column(n_clusters, np.int32),
        )

    @classmethod
    def from_tracks(cls, tracks: Iterable[Track]) -> TrackBatch:
        """Build a batch from Track records, keeping their order."""
        tracks = list(tracks)
        return cls.from_columns(
            {name: [getattr(t, name) for t in tracks] for name in TRACK_COLUMNS}
        )

    @classmethod
    def from_arrow(cls, table: pa.Table) -> TrackBatch:
        """
        Build a batch from a pyarrow table holding the track columns.

        Null cluster counts become 0 (unknown); null floats become NaN.
        """
        columns = {}
        for name in TRACK_COLUMNS:
            if name not in table.column_names:
                continue
            column = table.column(name)
            if name == "n_clusters":
                column = column.fill_null(0)
            columns[name] = column.to_numpy()
        return cls.from_columns(columns)

    @classmethod
    def empty(cls) -> TrackBatch:
        return cls.from_columns({name: [] for name in TRACK_COLUMNS})

    def __len__(self) -> int:
        return len(self.signal)

    def __getitem__(self, index: int) -> Track:
        return Track(
            momentum=float(self.momentum[index]),
            inner_momentum=float(self.inner_momentum[index]),
            signal=float(self.signal[index]),
            n_clusters=int(self.n_clusters[index]),
        )

    def __iter__(self) -> Iterator[Track]:
        for i in range(len(self)):
            yield self[i]

    def to_arrow(self) -> pa.Table:
        return pa.table({name: getattr(self, name) for name in TRACK_COLUMNS})

    def __repr__(self) -> str:
        return f"TrackBatch(n_tracks={len(self)})"
