"""
Data-related pipeline stages.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pyarrow as pa

from tpcpid.data.chunked_reader import ParquetTrackReader
from tpcpid.data.tracks import TrackBatch
from tpcpid.pipelines.stage import Stage

logger = logging.getLogger(__name__)


class LoadTracksStage(Stage):
    """
    Load a parquet track file into the context as one TrackBatch.

    Example:
        >>> stage = LoadTracksStage(
        ...     config=StageConfig(
        ...         name='load_tracks',
        ...         outputs=['tracks'],
        ...         params={'path': 'tracks.parquet'},
        ...     )
        ... )
    """

    def execute(self, context: Any) -> None:
        path = self.config.params.get("path")
        if path is None:
            raise ValueError(f"Stage '{self.name}' requires 'path' parameter")

        tables = list(ParquetTrackReader([str(path)]).iter_tables())
        if tables:
            batch = TrackBatch.from_arrow(pa.concat_tables(tables))
        else:
            batch = TrackBatch.empty()

        output_key = self.outputs[0] if self.outputs else "tracks"
        context[output_key] = batch
        logger.info(f"Loaded {len(batch)} tracks from {path}")


class SaveTablesStage(Stage):
    """
    Write the produced PID tables to ``<output_dir>/<table>.parquet``.

    Reads the ``{name: OutputTable}`` mapping published by the PID stage, so it
    does not itself count as a consumer of any particular table.

    Example:
        >>> stage = SaveTablesStage(
        ...     config=StageConfig(
        ...         name='save',
        ...         inputs=['pid_tables'],
        ...         outputs=['written'],
        ...         params={'output_dir': 'out'},
        ...     )
        ... )
    """

    def execute(self, context: Any) -> None:
        output_dir = self.config.params.get("output_dir")
        if output_dir is None:
            raise ValueError(f"Stage '{self.name}' requires 'output_dir' parameter")
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        input_key = self.inputs[0] if self.inputs else "pid_tables"
        written = []
        for name, table in context[input_key].items():
            path = output_dir / f"{name}.parquet"
            table.write_parquet(path)
            written.append(str(path))

        if self.outputs:
            context[self.outputs[0]] = written
        logger.info(f"Wrote {len(written)} tables to {output_dir}")
