"""
Pytest configuration and shared fixtures.
"""

import json

import numpy as np
import pytest

from tpcpid.codec import QuantizationCodec
from tpcpid.data.tracks import TrackBatch
from tpcpid.parametrization import BetheBloch, TPCReso
from tpcpid.response import DetectorResponse
from tpcpid.species import Species


@pytest.fixture
def codec():
    """Default int8 codec: [-6.35, 6.35] in steps of 0.05."""
    return QuantizationCodec()


@pytest.fixture
def wide_codec():
    """[-10, 10] in steps of 0.1 (200 bins)."""
    return QuantizationCodec(min_value=-10.0, max_value=10.0, bin_width=0.1)


@pytest.fixture
def response():
    """Reference response with the default parameters."""
    return DetectorResponse(signal=BetheBloch("BetheBloch"), sigma=TPCReso("TPCReso"))


@pytest.fixture
def pion_tracks(response):
    """Tracks whose measured signal sits exactly on the pion expectation, plus a known offset per track."""
    rng = np.random.default_rng(1234)
    n_tracks = 50
    inner_momentum = rng.uniform(0.2, 5.0, n_tracks)
    n_clusters = rng.integers(60, 160, n_tracks)
    base = TrackBatch.from_columns(
        {
            "momentum": inner_momentum * 1.01,
            "inner_momentum": inner_momentum,
            "signal": np.zeros(n_tracks),
            "n_clusters": n_clusters,
        }
    )
    model = response.model(Species.PI)
    expected = model.expected_signal(base)
    sigma = model.expected_sigma(base)
    offsets = rng.uniform(-3.0, 3.0, n_tracks)
    tracks = TrackBatch.from_columns(
        {
            "momentum": base.momentum,
            "inner_momentum": base.inner_momentum,
            "signal": expected + offsets * sigma,
            "n_clusters": n_clusters,
        }
    )
    return tracks, offsets


@pytest.fixture
def param_file(tmp_path):
    """Parametrization container file with both reference objects."""
    path = tmp_path / "params.json"
    content = {
        "BetheBloch": BetheBloch("BetheBloch").to_dict(),
        "TPCReso": TPCReso("TPCReso").to_dict(),
        "TPCResoWide": {"class": "TPCReso", "parameters": [0.1, 0.0]},
    }
    path.write_text(json.dumps(content), encoding="utf-8")
    return path
