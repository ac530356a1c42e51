"""
Tests for the built-in PID pipeline stages.
"""

import numpy as np
import pyarrow.parquet as pq
import pytest

from tpcpid.config import PidConfig, parse_flags
from tpcpid.pipelines import Context, FunctionalStage, Pipeline, StageConfig
from tpcpid.pipelines.stages import TABLES_KEY, LoadTracksStage, SaveTablesStage, TpcPidStage
from tpcpid.species import OUTPUT_NAMES


@pytest.fixture
def tracks_path(tmp_path, pion_tracks):
    tracks, _ = pion_tracks
    path = tmp_path / "tracks.parquet"
    pq.write_table(tracks.to_arrow(), path, row_group_size=16)
    return path


def _pid_stage(param_file, **flags):
    config = PidConfig(param_file=str(param_file), flags=parse_flags(flags))
    return TpcPidStage(StageConfig(name="pid", params={"config": config}))


class TestTpcPidStage:
    """Demand-driven production inside a pipeline."""

    def test_default_keys(self, param_file):
        stage = _pid_stage(param_file)
        assert stage.inputs == ["tracks"]
        assert stage.outputs == list(OUTPUT_NAMES) + [TABLES_KEY]

    def test_consumer_demand_enables_tables(self, tmp_path, tracks_path, param_file, pion_tracks):
        _, offsets = pion_tracks
        seen = {}

        def use_pions(ctx):
            seen["mean"] = float(np.mean(ctx["pidTPCPi"].decode()))

        pipeline = Pipeline(
            [
                FunctionalStage(StageConfig(name="use_pions", inputs=["pidTPCPi"]), func=use_pions),
                _pid_stage(param_file),
                LoadTracksStage(StageConfig(name="load", outputs=["tracks"], params={"path": str(tracks_path)})),
            ]
        )
        ctx = pipeline.run()

        assert set(ctx.tables()) == {"pidTPCPi"}
        assert set(ctx[TABLES_KEY]) == {"pidTPCPi"}
        assert "pidTPCKa" not in ctx
        assert seen["mean"] == pytest.approx(np.mean(offsets), abs=0.025)

    def test_forced_on_without_consumer(self, tracks_path, param_file):
        pipeline = Pipeline(
            [
                LoadTracksStage(StageConfig(name="load", outputs=["tracks"], params={"path": str(tracks_path)})),
                _pid_stage(param_file, **{"pid-de": 1}),
            ]
        )
        ctx = pipeline.run()
        assert set(ctx.tables()) == {"pidTPCDe"}

    def test_forced_off_breaks_consumer(self, tracks_path, param_file):
        """A consumer of a table that is forced off fails its input check."""
        pipeline = Pipeline(
            [
                LoadTracksStage(StageConfig(name="load", outputs=["tracks"], params={"path": str(tracks_path)})),
                _pid_stage(param_file, **{"pid-ka": 0}),
                FunctionalStage(StageConfig(name="use_kaons", inputs=["pidTPCKa"]), func=lambda ctx: None),
            ]
        )
        with pytest.raises(KeyError, match="pidTPCKa"):
            pipeline.run()

    def test_execute_before_setup(self, param_file):
        with pytest.raises(RuntimeError):
            _pid_stage(param_file).execute(Context({"tracks": None}))


class TestDataStages:
    def test_save_tables(self, tmp_path, tracks_path, param_file):
        out = tmp_path / "out"
        pipeline = Pipeline(
            [
                LoadTracksStage(StageConfig(name="load", outputs=["tracks"], params={"path": str(tracks_path)})),
                _pid_stage(param_file),
                SaveTablesStage(
                    StageConfig(name="save", inputs=[TABLES_KEY], outputs=["written"], params={"output_dir": str(out)})
                ),
            ],
        )
        # the writer alone does not demand any table
        ctx = pipeline.run(Context({"requested_outputs": frozenset({"pidTPCPr", "pidTPCHe"})}))

        assert sorted(p.name for p in out.glob("*.parquet")) == ["pidTPCHe.parquet", "pidTPCPr.parquet"]
        assert len(ctx["written"]) == 2

    def test_load_requires_path(self):
        stage = LoadTracksStage(StageConfig(name="load", outputs=["tracks"]))
        with pytest.raises(ValueError, match="path"):
            stage.execute(Context())

    def test_load_tracks(self, tracks_path, pion_tracks):
        tracks, _ = pion_tracks
        stage = LoadTracksStage(StageConfig(name="load", outputs=["batch"], params={"path": str(tracks_path)}))
        ctx = Context()
        stage.execute(ctx)
        np.testing.assert_array_equal(ctx["batch"].signal, tracks.signal)
