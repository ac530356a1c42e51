"""
Run configuration.

All options are read once at startup, from a JSON file and/or command-line
overrides, and are not changed afterwards.

JSON layout (every key optional):

    {
        "param_file": "",
        "param_signal": "BetheBloch",
        "param_sigma": "TPCReso",
        "ccdb_url": "http://alice-ccdb.cern.ch",
        "ccdb_path": "Analysis/PID/TPC",
        "ccdb_timestamp": -1,
        "flags": {"pid-ka": 1, "pid-el": 0},
        "codec": {"min_value": -6.35, "max_value": 6.35, "bin_width": 0.05, "bits": 8, "signed": true},
        "on_invalid": "flag",
        "max_workers": 1
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from tpcpid.codec import QuantizationCodec
from tpcpid.demand import EnableFlag
from tpcpid.errors import ConfigurationError
from tpcpid.processing import InvalidPolicy
from tpcpid.species import Species


def default_flags() -> Dict[Species, EnableFlag]:
    return {s: EnableFlag.AUTO for s in Species}


@dataclass(frozen=True)
class PidConfig:
    """Options of a PID production run."""

    param_file: str = ""
    """Path to the parametrization file; empty means use the remote store."""

    param_signal: str = "BetheBloch"
    """Name of the expected-signal parametrization, in both file and remote mode."""

    param_sigma: str = "TPCReso"
    """Name of the expected-sigma parametrization, in both file and remote mode."""

    ccdb_url: str = "http://alice-ccdb.cern.ch"
    """URL of the remote calibration store."""

    ccdb_path: str = "Analysis/PID/TPC"
    """Base path of the parametrizations in the remote store."""

    ccdb_timestamp: int = -1
    """Timestamp of the objects in ms since the epoch, -1 for now."""

    flags: Dict[Species, EnableFlag] = field(default_factory=default_flags)
    """Per-species override: -1 automatic from demand, 0 off, 1 on."""

    codec: QuantizationCodec = field(default_factory=QuantizationCodec)

    on_invalid: InvalidPolicy = InvalidPolicy.FLAG

    max_workers: int = 1

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PidConfig:
        """
        Build a config from plain data.

        Raises:
            ConfigurationError: On unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {k: v for k, v in data.items() if k not in ("flags", "codec", "on_invalid")}
        if "flags" in data:
            kwargs["flags"] = parse_flags(data["flags"])
        if "codec" in data:
            codec = data["codec"]
            kwargs["codec"] = codec if isinstance(codec, QuantizationCodec) else QuantizationCodec.from_dict(codec)
        if "on_invalid" in data:
            try:
                kwargs["on_invalid"] = InvalidPolicy(data["on_invalid"])
            except ValueError as exc:
                raise ConfigurationError(f"Unknown on_invalid policy '{data['on_invalid']}'") from exc
        try:
            kwargs = {k: _coerce(k, v) for k, v in kwargs.items()}
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid configuration value: {exc}") from exc
        return cls(**kwargs)

    @classmethod
    def from_json(cls, path: str | Path) -> PidConfig:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot read configuration file '{path}': {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file '{path}' must hold a JSON object")
        return cls.from_dict(data)

    def with_overrides(self, **overrides: Any) -> PidConfig:
        """Copy with the given options replaced; ``None`` values are ignored."""
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if "flags" in overrides:
            overrides["flags"] = parse_flags(overrides["flags"], base=self.flags)
        if "on_invalid" in overrides:
            try:
                overrides["on_invalid"] = InvalidPolicy(overrides["on_invalid"])
            except ValueError as exc:
                raise ConfigurationError(f"Unknown on_invalid policy '{overrides['on_invalid']}'") from exc
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "param_file": self.param_file,
            "param_signal": self.param_signal,
            "param_sigma": self.param_sigma,
            "ccdb_url": self.ccdb_url,
            "ccdb_path": self.ccdb_path,
            "ccdb_timestamp": self.ccdb_timestamp,
            "flags": {s.flag_name: int(f) for s, f in self.flags.items()},
            "codec": {
                "min_value": self.codec.min_value,
                "max_value": self.codec.max_value,
                "bin_width": self.codec.bin_width,
                "bits": self.codec.bits,
                "signed": self.codec.signed,
            },
            "on_invalid": self.on_invalid.value,
            "max_workers": self.max_workers,
        }


def _coerce(key: str, value: Any) -> Any:
    if key in ("ccdb_timestamp", "max_workers"):
        return int(value)
    if key in ("param_file", "param_signal", "param_sigma", "ccdb_url", "ccdb_path"):
        if not isinstance(value, str):
            raise TypeError(f"{key} must be a string, got {type(value).__name__}")
    return value


def parse_flags(
    data: Mapping[Any, Any],
    base: Mapping[Species, EnableFlag] | None = None,
) -> Dict[Species, EnableFlag]:
    """
    Parse per-species flags keyed by Species or by any species name (``pid-ka``, ``Ka``, ``kaon``).

    Species that are not mentioned keep their value in ``base`` (``AUTO`` by default).
    """
    flags = dict(base) if base is not None else default_flags()
    for key, value in data.items():
        try:
            species = key if isinstance(key, Species) else Species.from_name(str(key))
        except KeyError as exc:
            raise ConfigurationError(str(exc.args[0])) from exc
        flags[species] = EnableFlag.coerce(value)
    return flags


__all__ = ["PidConfig", "parse_flags", "default_flags"]
