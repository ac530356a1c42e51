"""
Base class and registry for detector-response parametrizations.

A parametrization is a named, immutable function with a fixed-length
parameter vector. Concrete classes register themselves under a class name so
that serialized objects (``{"class": ..., "parameters": [...]}``) can be
turned back into callables without hardcoded conditionals.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Sequence

import numpy as np

from tpcpid.errors import ConfigurationError

KINDS = ("signal", "sigma")

# Global registry mapping class names to parametrization classes
PARAMETRIZATION_REGISTRY: dict[str, type["Parametrization"]] = {}


class Parametrization(ABC):
    """
    Immutable fitted function evaluated on numpy columns.

    Subclasses define ``n_parameters`` and ``__call__``. Parameters are copied
    into a read-only array at construction and never change afterwards.
    """

    n_parameters: ClassVar[int] = 0
    default_parameters: ClassVar[tuple[float, ...]] = ()

    def __init__(self, name: str, parameters: Sequence[float] | None = None):
        if parameters is None:
            parameters = self.default_parameters
        values = np.array(parameters, dtype=np.float64, copy=True).reshape(-1)
        if len(values) != self.n_parameters:
            raise ConfigurationError(
                f"{type(self).__name__} '{name}' expects {self.n_parameters} parameters, "
                f"got {len(values)}"
            )
        values.flags.writeable = False
        self._name = name
        self._parameters = values

    @property
    def name(self) -> str:
        return self._name

    @property
    def parameters(self) -> np.ndarray:
        return self._parameters

    @abstractmethod
    def __call__(self, *inputs: np.ndarray) -> np.ndarray:
        """Evaluate the function on equally sized input columns."""

    def to_dict(self) -> Dict[str, Any]:
        return {"class": type(self).__name__, "parameters": self._parameters.tolist()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Parametrization):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.name == other.name
            and np.array_equal(self.parameters, other.parameters)
        )

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.name, tuple(self._parameters.tolist())))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name='{self.name}', parameters={self._parameters.tolist()})"


def register_parametrization(cls: type[Parametrization]) -> type[Parametrization]:
    """
    Decorator to register a parametrization class under its class name.

    Usage:
        @register_parametrization
        class MyParam(Parametrization):
            ...
    """
    PARAMETRIZATION_REGISTRY[cls.__name__] = cls
    return cls


def get_parametrization_class(class_name: str) -> type[Parametrization]:
    """
    Look up a registered parametrization class.

    Raises:
        ConfigurationError: If no class is registered under that name.
    """
    if class_name not in PARAMETRIZATION_REGISTRY:
        available = ", ".join(sorted(PARAMETRIZATION_REGISTRY.keys()))
        raise ConfigurationError(
            f"No parametrization registered for class='{class_name}'. "
            f"Available classes: {available}"
        )
    return PARAMETRIZATION_REGISTRY[class_name]


def parametrization_from_dict(name: str, data: Any) -> Parametrization:
    """
    Rebuild a parametrization from its serialized form.

    Raises:
        ConfigurationError: If the payload is malformed.
    """
    if not isinstance(data, dict) or "class" not in data:
        raise ConfigurationError(f"Malformed parametrization object '{name}': {data!r}")
    cls = get_parametrization_class(data["class"])
    try:
        parameters = [float(p) for p in data.get("parameters", cls.default_parameters)]
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Malformed parameters for '{name}': {exc}") from exc
    return cls(name, parameters)


def check_kind(kind: str) -> str:
    if kind not in KINDS:
        raise ConfigurationError(f"Unknown parametrization kind '{kind}', expected one of {KINDS}")
    return kind
