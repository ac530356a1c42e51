"""
Track data containers and readers.
"""

from tpcpid.data.tracks import TRACK_COLUMNS, Track, TrackBatch
from tpcpid.data.chunked_reader import ParquetTrackReader

__all__ = [
    "TRACK_COLUMNS",
    "Track",
    "TrackBatch",
    "ParquetTrackReader",
]
