"""
Tests for the batch processor and output tables.
"""

import numpy as np
import pyarrow.parquet as pq
import pytest

from tpcpid.codec import QuantizationCodec
from tpcpid.data.tracks import Track, TrackBatch
from tpcpid.errors import ConfigurationError, EvaluationError
from tpcpid.parametrization import Parametrization, TPCReso
from tpcpid.processing import BatchProcessor, InvalidPolicy, OutputTable, fill_table, process_batch
from tpcpid.response import DetectorResponse
from tpcpid.species import Species


class ZeroAtLowMomentum(Parametrization):
    """Flat signal that drops to zero below a momentum threshold."""

    n_parameters = 1

    def __call__(self, bg, charge):
        return np.where(np.asarray(bg) > self.parameters[0], 50.0, 0.0)


def _enabled(*species):
    return {s: s in species for s in Species}


def _models(response):
    return {s: response.model(s) for s in Species}


class TestBatchProcessor:
    """Tests for per-batch table production."""

    def test_only_enabled_species_produce_tables(self, response, pion_tracks, codec):
        tracks, _ = pion_tracks
        tables = BatchProcessor(_models(response), _enabled(Species.PI, Species.KA), codec).process(tracks)
        assert set(tables) == {Species.PI, Species.KA}
        assert Species.PR not in tables

    def test_tables_are_index_aligned(self, response, pion_tracks, codec):
        """Each table has one code per track, in input order."""
        tracks, offsets = pion_tracks
        tables = process_batch(tracks, _enabled(Species.PI), _models(response), codec)
        table = tables[Species.PI]
        assert len(table) == len(tracks)
        np.testing.assert_allclose(table.decode(), offsets, atol=codec.bin_width / 2 + 1e-9)
        for i in (0, 17, len(tracks) - 1):
            assert table.codes[i] == codec.encode(response.evaluate(Species.PI, tracks[i]))

    def test_pion_separation_scenario(self, wide_codec):
        """A track with separation 2.345 decodes to within 0.05."""
        response = DetectorResponse(signal=ZeroAtLowMomentum("flat", [0.0]), sigma=TPCReso("TPCReso"))
        sigma = 50.0 * 0.07
        tracks = TrackBatch.from_tracks([Track(1.0, 1.0, 50.0 + 2.345 * sigma, 0)])
        table = process_batch(tracks, _enabled(Species.PI), _models(response), wide_codec)[Species.PI]
        assert abs(table.decode()[0] - 2.345) <= 0.05 + 1e-9

    def test_far_outside_range_saturates(self, wide_codec):
        """A separation of 57 stores the max code and decodes to max."""
        response = DetectorResponse(signal=ZeroAtLowMomentum("flat", [0.0]), sigma=TPCReso("TPCReso"))
        tracks = TrackBatch.from_tracks([Track(1.0, 1.0, 50.0 + 57.0 * 3.5, 0)])
        table = process_batch(tracks, _enabled(Species.PI), _models(response), wide_codec)[Species.PI]
        assert table.codes[0] == wide_codec.encode(10.0)
        assert table.decode()[0] == pytest.approx(10.0)
        assert table.n_invalid == 0

    def test_invalid_track_is_flagged(self, codec):
        """A zero resolution flags that track only; siblings keep valid codes."""
        response = DetectorResponse(signal=ZeroAtLowMomentum("step", [1.0]), sigma=TPCReso("TPCReso"))
        tracks = TrackBatch.from_tracks(
            [Track(1.0, 1.0, 53.5, 100), Track(0.05, 0.05, 53.5, 100), Track(2.0, 2.0, 46.5, 100)]
        )
        table = process_batch(tracks, _enabled(Species.PI), _models(response), codec)[Species.PI]
        assert table.invalid.tolist() == [False, True, False]
        assert table.codes[1] == codec.invalid_code
        np.testing.assert_allclose(table.decode()[[0, 2]], [1.0, -1.0], atol=codec.bin_width / 2)

    def test_invalid_track_raises_with_raise_policy(self, codec):
        response = DetectorResponse(signal=ZeroAtLowMomentum("step", [1.0]), sigma=TPCReso("TPCReso"))
        tracks = TrackBatch.from_tracks([Track(1.0, 1.0, 50.0, 100), Track(0.05, 0.05, 50.0, 100)])
        processor = BatchProcessor(_models(response), _enabled(Species.PI), codec, on_invalid="raise")
        with pytest.raises(EvaluationError, match="first at track 1"):
            processor.process(tracks)

    def test_invalid_entries_do_not_leak_across_species(self, codec):
        """An electron-only failure leaves the proton table untouched."""
        response = DetectorResponse(signal=ZeroAtLowMomentum("step", [100.0]), sigma=TPCReso("TPCReso"))
        # bg = 0.5 / m: above 100 for the electron, below for the proton
        tracks = TrackBatch.from_tracks([Track(0.5, 0.5, 50.0, 100)])
        tables = process_batch(tracks, _enabled(Species.EL, Species.PR), _models(response), codec)
        assert tables[Species.EL].n_invalid == 0
        assert tables[Species.PR].n_invalid == 1

    def test_empty_batch(self, response, codec):
        tables = process_batch(TrackBatch.empty(), _enabled(Species.KA), _models(response), codec)
        assert len(tables[Species.KA]) == 0

    def test_threaded_matches_sequential(self, response, pion_tracks, codec):
        tracks, _ = pion_tracks
        enabled = {s: True for s in Species}
        sequential = BatchProcessor(_models(response), enabled, codec).process(tracks)
        threaded = BatchProcessor(_models(response), enabled, codec, max_workers=4).process(tracks)
        assert list(threaded) == list(Species)
        for s in Species:
            np.testing.assert_array_equal(sequential[s].codes, threaded[s].codes)

    def test_enabled_species_needs_a_model(self, response, codec):
        with pytest.raises(ConfigurationError, match="pidTPCKa"):
            BatchProcessor({Species.PI: response.model(Species.PI)}, _enabled(Species.PI, Species.KA), codec)

    def test_unknown_policy(self, response, codec):
        with pytest.raises(ConfigurationError):
            BatchProcessor(_models(response), _enabled(Species.PI), codec, on_invalid="ignore")

    def test_codes_are_read_only(self, response, pion_tracks, codec):
        tracks, _ = pion_tracks
        table = fill_table(response.model(Species.PI), codec, tracks, InvalidPolicy.FLAG)
        with pytest.raises(ValueError):
            table.codes[0] = 0


class TestOutputTable:
    """Tests for table export."""

    def test_arrow_export_carries_codec_metadata(self, codec):
        table = OutputTable(Species.KA, codec.encode_array(np.array([0.0, 1.0, np.nan])), codec)
        arrow = table.to_arrow()
        field = arrow.schema.field("nsigma_ka")
        assert str(field.type) == "int8"
        assert field.metadata[b"table"] == b"pidTPCKa"
        assert QuantizationCodec.from_metadata(field.metadata) == codec
        assert arrow.column(0).to_pylist() == [0, 20, -128]

    def test_write_parquet(self, tmp_path, codec):
        table = OutputTable(Species.PR, codec.encode_array(np.array([0.5, -0.5])), codec)
        path = tmp_path / "pidTPCPr.parquet"
        table.write_parquet(path)
        read = pq.read_table(path)
        assert read.column("nsigma_pr").to_pylist() == [10, -10]
        assert QuantizationCodec.from_metadata(read.schema.field("nsigma_pr").metadata) == codec
