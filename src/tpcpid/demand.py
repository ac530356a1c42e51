"""
Demand-driven enablement of the per-species tables.

Each species has a tri-state flag: ``AUTO`` (-1) enables its table only if a
downstream consumer requested it, ``OFF`` (0) and ``ON`` (1) override the
demand. Resolution happens once at startup; the result is a read-only
mapping that does not change for the rest of the run.
"""

from __future__ import annotations

import logging
from enum import IntEnum
from types import MappingProxyType
from typing import Iterable, Mapping, Union

from tpcpid.errors import ConfigurationError
from tpcpid.species import Species

logger = logging.getLogger(__name__)


class EnableFlag(IntEnum):
    AUTO = -1
    OFF = 0
    ON = 1

    @classmethod
    def coerce(cls, value: Union[int, str, "EnableFlag"]) -> EnableFlag:
        """
        Convert an int or name (``auto``/``off``/``on``) to a flag.

        Raises:
            ConfigurationError: For any other value.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.strip().upper() in cls.__members__:
            return cls[value.strip().upper()]
        try:
            return cls(int(value))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"Invalid enable flag {value!r}: expected -1 (auto), 0 (off) or 1 (on)"
            ) from exc


FlagMapping = Mapping[Species, Union[int, str, EnableFlag]]


class OutputDemandResolver:
    """
    Decides which species tables are produced.

    Example:
        >>> resolver = OutputDemandResolver({"pidTPCKa"})
        >>> enabled = resolver.resolve({})
        >>> enabled[Species.KA], enabled[Species.PI]
        (True, False)
    """

    def __init__(self, requested_outputs: Iterable[str]):
        self.requested_outputs = frozenset(requested_outputs)

    def decide(self, species: Species, flag: EnableFlag) -> bool:
        table = species.output_name
        requested = table in self.requested_outputs
        if flag is EnableFlag.OFF:
            logger.info(f"Table disabled: {table}")
            return False
        if flag is EnableFlag.ON:
            logger.info(f"Table enabled: {table}")
            return True
        if requested:
            logger.info(f"Auto-enabling table: {table}")
        else:
            logger.info(f"Table not requested: {table}")
        return requested

    def resolve(self, flags: FlagMapping) -> Mapping[Species, bool]:
        """
        Resolve every species. Species missing from ``flags`` are treated as ``AUTO``.

        Returns:
            Read-only mapping from each species to whether its table is produced.

        Raises:
            ConfigurationError: If a flag is not one of -1/0/1.
        """
        unknown = [k for k in flags if not isinstance(k, Species)]
        if unknown:
            raise ConfigurationError(f"Flags must be keyed by Species, got {unknown}")
        resolved = {}
        for species in Species:
            flag = EnableFlag.coerce(flags.get(species, EnableFlag.AUTO))
            resolved[species] = self.decide(species, flag)
        return MappingProxyType(resolved)

    def __repr__(self) -> str:
        return f"OutputDemandResolver(requested_outputs={sorted(self.requested_outputs)})"


def resolve_enabled(requested_outputs: Iterable[str], flags: FlagMapping) -> Mapping[Species, bool]:
    """Function form of ``OutputDemandResolver(requested_outputs).resolve(flags)``."""
    return OutputDemandResolver(requested_outputs).resolve(flags)
