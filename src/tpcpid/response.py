"""
TPC energy-loss response.

``DetectorResponse`` pairs the loaded signal and sigma parametrizations;
``ResponseModel`` binds it to one species and computes the separation

    nsigma = (measured signal - expected signal) / expected sigma

for whole track batches at once. A zero or non-finite resolution, or a
non-finite result, marks the track invalid instead of producing a number.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict

import numpy as np

from tpcpid.data.tracks import Track, TrackBatch
from tpcpid.errors import EvaluationError
from tpcpid.species import Species

if TYPE_CHECKING:
    from tpcpid.parametrization.base import Parametrization


@dataclass(frozen=True)
class Separation:
    """Per-track separation values and validity mask, index aligned with the batch."""

    values: np.ndarray
    valid: np.ndarray

    @property
    def n_invalid(self) -> int:
        return int(np.count_nonzero(~self.valid))

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class ResponseModel:
    """Response of one species hypothesis. Holds no state beyond the shared parametrizations."""

    species: Species
    response: DetectorResponse

    def expected_signal(self, tracks: TrackBatch) -> np.ndarray:
        bg = tracks.inner_momentum / self.species.mass
        charge = np.full(len(tracks), float(self.species.charge))
        return np.asarray(self.response.signal(bg, charge), dtype=np.float64)

    def expected_sigma(self, tracks: TrackBatch, expected_signal: np.ndarray | None = None) -> np.ndarray:
        if expected_signal is None:
            expected_signal = self.expected_signal(tracks)
        return np.asarray(self.response.sigma(expected_signal, tracks.n_clusters), dtype=np.float64)

    def separation(self, tracks: TrackBatch) -> Separation:
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            signal = self.expected_signal(tracks)
            sigma = self.expected_sigma(tracks, signal)
            values = (tracks.signal - signal) / sigma
        valid = (
            np.isfinite(signal)
            & np.isfinite(sigma)
            & (sigma != 0)
            & np.isfinite(values)
        )
        values = np.where(valid, values, np.nan)
        return Separation(values=values, valid=valid)

    def evaluate(self, track: Track) -> float:
        """
        Separation of a single track.

        Raises:
            EvaluationError: If the resolution is zero or the result is not finite.
        """
        result = self.separation(TrackBatch.from_tracks([track]))
        if not result.valid[0]:
            raise EvaluationError(
                f"Invalid {self.species.info.label} response for {track}: "
                f"expected sigma is zero or the separation is not finite"
            )
        return float(result.values[0])

    def __repr__(self) -> str:
        return f"ResponseModel(species={self.species!r})"


@dataclass(frozen=True)
class DetectorResponse:
    """Signal and sigma parametrizations shared by all species."""

    signal: Parametrization
    sigma: Parametrization
    _models: Dict[Species, ResponseModel] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_models", {s: ResponseModel(s, self) for s in Species})

    def model(self, species: Species) -> ResponseModel:
        return self._models[species]

    def evaluate(self, species: Species, track: Track) -> float:
        """Separation of ``track`` under the ``species`` hypothesis."""
        return self._models[species].evaluate(track)
