"""
Tests for the command-line interface.
"""

import json

import numpy as np
import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from tpcpid.cli import build_parser, config_from_args, main
from tpcpid.codec import QuantizationCodec
from tpcpid.demand import EnableFlag
from tpcpid.processing import InvalidPolicy
from tpcpid.species import Species


@pytest.fixture
def tracks_file(tmp_path, pion_tracks):
    tracks, _ = pion_tracks
    path = tmp_path / "tracks.parquet"
    pq.write_table(tracks.to_arrow(), path, row_group_size=20)
    return path


class TestConfigFromArgs:
    def test_flags_and_overrides(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"flags": {"pid-mu": 1}, "param_sigma": "TPCResoWide"}), encoding="utf-8")
        args = build_parser().parse_args(
            [
                "run",
                "--tracks", "t.parquet",
                "--output-dir", "out",
                "--config", str(config_path),
                "--pid-ka", "0",
                "--pid-pr", "-1",
                "--on-invalid", "raise",
            ]
        )
        config = config_from_args(args)
        assert config.flags[Species.MU] is EnableFlag.ON
        assert config.flags[Species.KA] is EnableFlag.OFF
        assert config.flags[Species.PR] is EnableFlag.AUTO
        assert config.param_sigma == "TPCResoWide"
        assert config.on_invalid is InvalidPolicy.RAISE

    def test_rejects_bad_flag_value(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["run", "--tracks", "t", "--output-dir", "o", "--pid-ka", "2"])


class TestRun:
    """End-to-end runs over a small parquet file."""

    def test_requested_tables_are_written(self, tmp_path, tracks_file, param_file, pion_tracks):
        _, offsets = pion_tracks
        out = tmp_path / "out"
        code = main(
            [
                "run",
                "--tracks", str(tracks_file),
                "--output-dir", str(out),
                "--param-file", str(param_file),
                "--request", "pidTPCPi",
                "--request", "pidTPCKa",
            ]
        )
        assert code == 0
        assert sorted(p.name for p in out.glob("*.parquet")) == ["pidTPCKa.parquet", "pidTPCPi.parquet"]

        table = pq.read_table(out / "pidTPCPi.parquet")
        assert table.num_rows == len(offsets)
        codec = QuantizationCodec.from_metadata(table.schema.field("nsigma_pi").metadata)
        decoded = codec.decode_array(table.column("nsigma_pi").to_numpy())
        np.testing.assert_allclose(decoded, offsets, atol=codec.bin_width / 2 + 1e-9)

        summary = json.loads((out / "summary.json").read_text(encoding="utf-8"))
        assert summary["n_tracks"] == len(offsets)
        assert summary["tables"] == ["pidTPCPi", "pidTPCKa"]

    def test_no_demand_writes_no_tables(self, tmp_path, tracks_file):
        out = tmp_path / "out"
        assert main(["run", "--tracks", str(tracks_file), "--output-dir", str(out)]) == 0
        assert list(out.glob("*.parquet")) == []

    def test_missing_parametrization_fails(self, tmp_path, tracks_file, param_file):
        out = tmp_path / "out"
        code = main(
            [
                "run",
                "--tracks", str(tracks_file),
                "--output-dir", str(out),
                "--param-file", str(param_file),
                "--param-signal", "NotThere",
                "--pid-el", "1",
            ]
        )
        assert code == 1

    def test_missing_track_column_fails(self, tmp_path, param_file):
        path = tmp_path / "bad.parquet"
        pq.write_table(pa.table({"momentum": [1.0], "signal": [50.0]}), path)
        code = main(
            [
                "run",
                "--tracks", str(path),
                "--output-dir", str(tmp_path / "out"),
                "--param-file", str(param_file),
                "--pid-pi", "1",
            ]
        )
        assert code == 1


def test_species_command(capsys):
    assert main(["species"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 9
    assert lines[3].startswith("pidTPCKa")
