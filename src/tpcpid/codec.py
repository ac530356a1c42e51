"""
Fixed-point storage of separation values.

The range ``[min_value, max_value]`` is cut into ``n_bins`` bins of width
``bin_width``. A value maps to the nearest of the ``n_bins + 1`` bin edges
(``min_value + k * bin_width``), so ``decode(encode(v))`` is within half a
bin width of ``v`` anywhere in the range. Exact ties round away from the
central edge, so ``encode(-v) == -encode(v)`` on a symmetric signed range.
Values outside the range saturate
to the first or last edge; saturation is silent and only visible as a
decoded boundary value. One extra code is reserved to flag invalid entries
and decodes to NaN.

Codes are stored in a numpy integer of ``bits`` bits. Signed codes are
centred (``code = k - n_bins // 2``) and the invalid code is the dtype
minimum; unsigned codes are the bin index itself and the invalid code is the
dtype maximum. With the defaults (-6.35, 6.35, 0.05, int8) the 255 edges use
codes -127..127 and -128 flags invalid entries.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

import numpy as np

from tpcpid.errors import ConfigurationError

SUPPORTED_BITS = (8, 16, 32)


def bin_index(value: float, min_value: float, max_value: float, bin_width: float) -> int:
    """Index of the bin edge nearest to ``value``, clamped to ``[0, n_bins]``."""
    n_bins = int(round((max_value - min_value) / bin_width))
    if math.isnan(value):
        raise ValueError("Cannot quantize NaN")
    if value <= min_value:
        return 0
    if value >= max_value:
        return n_bins
    centre = n_bins // 2
    x = (value - bin_value(centre, min_value, bin_width)) / bin_width
    index = centre + int(math.copysign(math.floor(abs(x) + 0.5), x))
    return min(n_bins, max(0, index))


def bin_value(index: int, min_value: float, bin_width: float) -> float:
    """Representative value of a bin edge."""
    return min_value + index * bin_width


@dataclass(frozen=True)
class QuantizationCodec:
    """
    Configurable nsigma codec.

    Example:
        >>> codec = QuantizationCodec(-10.0, 10.0, 0.1)
        >>> round(codec.decode(codec.encode(2.345)), 6)
        2.3
    """

    min_value: float = -6.35
    max_value: float = 6.35
    bin_width: float = 0.05
    bits: int = 8
    signed: bool = True

    def __post_init__(self):
        if self.bits not in SUPPORTED_BITS:
            raise ConfigurationError(f"Codec bit width must be one of {SUPPORTED_BITS}, got {self.bits}")
        if not (math.isfinite(self.min_value) and math.isfinite(self.max_value)):
            raise ConfigurationError("Codec range must be finite")
        if self.max_value <= self.min_value:
            raise ConfigurationError(
                f"Codec range is empty: min={self.min_value}, max={self.max_value}"
            )
        if not self.bin_width > 0:
            raise ConfigurationError(f"Codec bin width must be positive, got {self.bin_width}")
        ratio = (self.max_value - self.min_value) / self.bin_width
        if abs(ratio - round(ratio)) > 1e-6:
            raise ConfigurationError(
                f"Codec range {self.max_value - self.min_value} is not a multiple of the bin width {self.bin_width}"
            )
        # every edge code must fit and stay distinct from the invalid code
        info = np.iinfo(self.dtype)
        if self.signed:
            fits = info.min < self.lowest_code and self.highest_code <= info.max
        else:
            fits = self.highest_code < info.max
        if not fits:
            raise ConfigurationError(
                f"{self.n_bins + 1} codes plus the invalid code do not fit in {self.dtype}"
            )

    @property
    def n_bins(self) -> int:
        return int(round((self.max_value - self.min_value) / self.bin_width))

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(f"{'int' if self.signed else 'uint'}{self.bits}")

    @property
    def offset(self) -> int:
        """Stored code of bin index 0."""
        return -(self.n_bins // 2) if self.signed else 0

    @property
    def lowest_code(self) -> int:
        return self.offset

    @property
    def highest_code(self) -> int:
        return self.offset + self.n_bins

    @property
    def invalid_code(self) -> int:
        info = np.iinfo(self.dtype)
        return int(info.min) if self.signed else int(info.max)

    def encode(self, value: float) -> int:
        """Code of a finite value, saturating outside the range. NaN/inf give the invalid code."""
        if not math.isfinite(value):
            return self.invalid_code
        return bin_index(value, self.min_value, self.max_value, self.bin_width) + self.offset

    def decode(self, code: int) -> float:
        """Representative value of a code; NaN for the invalid code."""
        code = int(code)
        if code == self.invalid_code:
            return math.nan
        if not self.lowest_code <= code <= self.highest_code:
            raise ValueError(f"Code {code} is outside [{self.lowest_code}, {self.highest_code}]")
        return bin_value(code - self.offset, self.min_value, self.bin_width)

    def encode_array(self, values: np.ndarray, valid: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Vectorised ``encode``.

        Entries that are NaN/inf, or False in ``valid``, get the invalid code.
        """
        values = np.asarray(values, dtype=np.float64)
        centre = self.n_bins // 2
        with np.errstate(invalid="ignore", over="ignore"):
            x = (values - bin_value(centre, self.min_value, self.bin_width)) / self.bin_width
            index = centre + np.sign(x) * np.floor(np.abs(x) + 0.5)
            index = np.where(values <= self.min_value, 0, index)
            index = np.where(values >= self.max_value, self.n_bins, index)
            index = np.clip(index, 0, self.n_bins)
        bad = ~np.isfinite(values)
        if valid is not None:
            bad |= ~np.asarray(valid, dtype=bool)
        codes = np.where(bad, self.invalid_code, np.nan_to_num(index) + self.offset)
        return codes.astype(self.dtype)

    def decode_array(self, codes: np.ndarray) -> np.ndarray:
        """Vectorised ``decode``; invalid codes give NaN."""
        codes = np.asarray(codes).astype(np.int64)
        values = self.min_value + (codes - self.offset) * self.bin_width
        return np.where(codes == self.invalid_code, np.nan, values)

    def is_saturated(self, code: int) -> bool:
        """Whether ``code`` sits on a range boundary (a saturated or exact boundary value)."""
        return int(code) in (self.lowest_code, self.highest_code)

    def metadata(self) -> Dict[str, str]:
        """Codec description attached to every produced table."""
        return {
            "min_value": repr(float(self.min_value)),
            "max_value": repr(float(self.max_value)),
            "bin_width": repr(float(self.bin_width)),
            "bits": str(self.bits),
            "signed": str(self.signed).lower(),
            "invalid_code": str(self.invalid_code),
        }

    @classmethod
    def from_metadata(cls, metadata: Mapping) -> QuantizationCodec:
        def _get(key: str) -> str:
            value = metadata.get(key, metadata.get(key.encode()))
            if value is None:
                raise ConfigurationError(f"Codec metadata missing '{key}'")
            return value.decode() if isinstance(value, bytes) else str(value)

        return cls(
            min_value=float(_get("min_value")),
            max_value=float(_get("max_value")),
            bin_width=float(_get("bin_width")),
            bits=int(_get("bits")),
            signed=_get("signed") == "true",
        )

    @classmethod
    def from_dict(cls, data: Mapping) -> QuantizationCodec:
        known = {"min_value", "max_value", "bin_width", "bits", "signed"}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown codec options: {sorted(unknown)}")
        return cls(**data)
