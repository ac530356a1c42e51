from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

import pyarrow as pa
import pyarrow.parquet as pq

from tpcpid.data.tracks import TRACK_COLUMNS, TrackBatch


@dataclass(frozen=True)
class ParquetTrackReader:
    """Read parquet row groups as track batches, one batch per chunk of row groups."""

    parquet_paths: list[str]
    columns: list[str] = field(default_factory=lambda: list(TRACK_COLUMNS))
    row_groups_per_chunk: int = 1

    def _row_group_tasks(self) -> list[tuple[str, int]]:
        tasks: list[tuple[str, int]] = []
        for path in self.parquet_paths:
            pf = pq.ParquetFile(path)
            for rg in range(pf.num_row_groups):
                tasks.append((path, rg))
        return tasks

    def _columns_for(self, pf: pq.ParquetFile) -> list[str]:
        # n_clusters is optional in the input files
        available = set(pf.schema_arrow.names)
        return [c for c in self.columns if c in available]

    def iter_tables(self) -> Iterator[pa.Table]:
        tasks = self._row_group_tasks()
        chunk_span = max(1, int(self.row_groups_per_chunk))
        for i in range(0, len(tasks), chunk_span):
            chunk_tasks = tasks[i : i + chunk_span]
            if not chunk_tasks:
                continue
            tables: list[pa.Table] = []
            for path, rg in chunk_tasks:
                pf = pq.ParquetFile(path)
                tables.append(pf.read_row_group(rg, columns=self._columns_for(pf)))
            table = tables[0] if len(tables) == 1 else pa.concat_tables(tables, promote_options="default")
            yield table.combine_chunks()

    def iter_batches(self) -> Iterator[TrackBatch]:
        for table in self.iter_tables():
            yield TrackBatch.from_arrow(table)
