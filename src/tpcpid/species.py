"""
Particle-species hypotheses tested against every track.

The set is closed: nine mass hypotheses with fixed mass and charge. Each
hypothesis owns one output table, named ``pidTPC<short>`` (e.g. ``pidTPCKa``),
and one configuration flag, named ``pid-<short>`` (e.g. ``pid-ka``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

OUTPUT_PREFIX = "pidTPC"


@dataclass(frozen=True)
class SpeciesInfo:
    """Static properties of a mass hypothesis."""

    label: str
    short: str
    mass: float
    """Mass in GeV/c^2."""
    charge: int
    """Charge in units of e."""
    pdg: int


_SPECIES_INFO = {
    "EL": SpeciesInfo("electron", "El", 0.000510998950, 1, 11),
    "MU": SpeciesInfo("muon", "Mu", 0.1056583755, 1, 13),
    "PI": SpeciesInfo("pion", "Pi", 0.13957039, 1, 211),
    "KA": SpeciesInfo("kaon", "Ka", 0.493677, 1, 321),
    "PR": SpeciesInfo("proton", "Pr", 0.93827208816, 1, 2212),
    "DE": SpeciesInfo("deuteron", "De", 1.87561294257, 1, 1000010020),
    "TR": SpeciesInfo("triton", "Tr", 2.80892113298, 1, 1000010030),
    "HE": SpeciesInfo("helium3", "He", 2.80839160743, 2, 1000020030),
    "AL": SpeciesInfo("alpha", "Al", 3.7273794066, 2, 1000020040),
}


class Species(Enum):
    """Mass hypotheses, in the canonical output order."""

    EL = "EL"
    MU = "MU"
    PI = "PI"
    KA = "KA"
    PR = "PR"
    DE = "DE"
    TR = "TR"
    HE = "HE"
    AL = "AL"

    @property
    def info(self) -> SpeciesInfo:
        return _SPECIES_INFO[self.value]

    @property
    def mass(self) -> float:
        return self.info.mass

    @property
    def charge(self) -> int:
        return self.info.charge

    @property
    def output_name(self) -> str:
        """Name of the table this hypothesis produces."""
        return f"{OUTPUT_PREFIX}{self.info.short}"

    @property
    def flag_name(self) -> str:
        """Name of the configuration option that forces this table on or off."""
        return f"pid-{self.info.short.lower()}"

    @classmethod
    def from_name(cls, name: str) -> Species:
        """
        Resolve a species from any of its names.

        Accepts the enum name (``KA``), the short name (``Ka``), the label
        (``kaon``), the output name (``pidTPCKa``) or the flag name (``pid-ka``),
        case-insensitively.

        Raises:
            KeyError: If no species matches.
        """
        key = name.strip().lower()
        try:
            return _NAME_TO_SPECIES[key]
        except KeyError as exc:
            supported = ", ".join(s.output_name for s in cls)
            raise KeyError(f"Unknown species '{name}'. Known outputs: {supported}") from exc

    def __repr__(self) -> str:
        return f"Species.{self.name}"


_NAME_TO_SPECIES: dict[str, Species] = {}
for _species in Species:
    for _alias in (
        _species.name,
        _species.info.short,
        _species.info.label,
        _species.output_name,
        _species.flag_name,
    ):
        _NAME_TO_SPECIES[_alias.lower()] = _species
del _species, _alias

OUTPUT_NAMES = tuple(s.output_name for s in Species)

__all__ = ["Species", "SpeciesInfo", "OUTPUT_NAMES", "OUTPUT_PREFIX"]
