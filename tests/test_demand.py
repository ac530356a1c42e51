"""
Tests for demand-driven table enablement.
"""

import logging

import pytest

from tpcpid.demand import EnableFlag, OutputDemandResolver, resolve_enabled
from tpcpid.errors import ConfigurationError
from tpcpid.species import OUTPUT_NAMES, Species


class TestOutputDemandResolver:
    """Tests for the enablement policy."""

    def test_only_requested_kaon_enabled(self):
        """Demand {'pidTPCKa'} with all flags auto enables only the kaon table."""
        enabled = OutputDemandResolver({"pidTPCKa"}).resolve({s: EnableFlag.AUTO for s in Species})
        assert enabled[Species.KA] is True
        assert [s for s in Species if enabled[s]] == [Species.KA]

    def test_auto_without_demand_is_disabled(self):
        enabled = resolve_enabled(set(), {})
        assert not any(enabled.values())
        assert len(enabled) == 9

    def test_forced_on_ignores_demand(self):
        flags = {s: EnableFlag.ON for s in Species}
        for requested in (set(), {"pidTPCPi"}, set(OUTPUT_NAMES)):
            assert all(resolve_enabled(requested, flags).values())

    def test_forced_off_ignores_demand(self):
        enabled = resolve_enabled(set(OUTPUT_NAMES), {Species.PR: EnableFlag.OFF})
        assert enabled[Species.PR] is False
        assert all(enabled[s] for s in Species if s is not Species.PR)

    def test_integer_and_name_flags(self):
        enabled = resolve_enabled({"pidTPCEl"}, {Species.EL: 0, Species.MU: 1, Species.PI: "auto"})
        assert enabled[Species.EL] is False
        assert enabled[Species.MU] is True
        assert enabled[Species.PI] is False

    def test_unrelated_demand_is_ignored(self):
        enabled = resolve_enabled({"tracks", "pidTOFKa"}, {})
        assert not any(enabled.values())

    def test_result_is_read_only(self):
        enabled = resolve_enabled({"pidTPCKa"}, {})
        with pytest.raises(TypeError):
            enabled[Species.PI] = True

    def test_deterministic(self):
        flags = {Species.DE: 1, Species.TR: 0}
        first = dict(resolve_enabled({"pidTPCTr", "pidTPCHe"}, flags))
        second = dict(resolve_enabled({"pidTPCHe", "pidTPCTr"}, flags))
        assert first == second

    @pytest.mark.parametrize("value", [2, -2, "maybe", None])
    def test_invalid_flag(self, value):
        with pytest.raises(ConfigurationError):
            resolve_enabled(set(), {Species.KA: value})

    def test_flags_keyed_by_species_only(self):
        with pytest.raises(ConfigurationError):
            resolve_enabled(set(), {"pid-ka": 1})

    def test_decisions_are_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="tpcpid.demand"):
            resolve_enabled({"pidTPCKa"}, {Species.PI: 1, Species.PR: 0})
        assert "Auto-enabling table: pidTPCKa" in caplog.text
        assert "Table enabled: pidTPCPi" in caplog.text
        assert "Table disabled: pidTPCPr" in caplog.text


class TestEnableFlag:
    def test_coerce(self):
        assert EnableFlag.coerce(-1) is EnableFlag.AUTO
        assert EnableFlag.coerce("on") is EnableFlag.ON
        assert EnableFlag.coerce(EnableFlag.OFF) is EnableFlag.OFF
