"""
Reference TPC parametrizations.

These are the two functions the response model loads by default: the
ALEPH-style Bethe-Bloch curve for the expected dE/dx and a relative
resolution that scales with the expected signal and the cluster count.
"""

from __future__ import annotations

import numpy as np

from tpcpid.parametrization.base import Parametrization, register_parametrization


def bethe_bloch_aleph(bg: np.ndarray, kp1, kp2, kp3, kp4, kp5) -> np.ndarray:
    """ALEPH parametrization of the mean energy loss as a function of beta*gamma."""
    bg = np.asarray(bg, dtype=np.float64)
    beta = bg / np.sqrt(1.0 + bg * bg)
    aa = np.power(beta, kp4)
    bb = np.log(kp3 + np.power(bg, -kp5))
    return (kp2 - aa - bb) * kp1 / aa


@register_parametrization
class BetheBloch(Parametrization):
    """
    Expected TPC signal.

    Inputs are ``(beta_gamma, charge)``. Parameters 0-4 shape the ALEPH curve,
    parameter 5 is the MIP normalisation and parameter 6 the charge exponent.
    """

    n_parameters = 7
    default_parameters = (0.0320422, 19.9768, 2.52667e-16, 2.72123, 6.08092, 50.0, 2.3)

    def __call__(self, bg: np.ndarray, charge: np.ndarray) -> np.ndarray:
        p = self.parameters
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            return p[5] * bethe_bloch_aleph(bg, *p[:5]) * np.power(np.asarray(charge, dtype=np.float64), p[6])


@register_parametrization
class TPCReso(Parametrization):
    """
    Expected TPC resolution.

    Inputs are ``(expected_signal, n_clusters)``: the relative resolution
    ``p0 * sqrt(1 + p1 / n_clusters)`` times the expected signal. Tracks with
    no cluster information use ``p0`` alone.
    """

    n_parameters = 2
    default_parameters = (0.07, 0.0)

    def __call__(self, signal: np.ndarray, n_clusters: np.ndarray) -> np.ndarray:
        p = self.parameters
        signal = np.asarray(signal, dtype=np.float64)
        n_clusters = np.asarray(n_clusters, dtype=np.float64)
        safe = np.where(n_clusters > 0, n_clusters, 1.0)
        scale = np.where(n_clusters > 0, np.sqrt(1.0 + p[1] / safe), 1.0)
        return signal * p[0] * scale
