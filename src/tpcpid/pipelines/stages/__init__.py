"""
Built-in pipeline stages.
"""

from tpcpid.pipelines.stages.data import LoadTracksStage, SaveTablesStage
from tpcpid.pipelines.stages.pid import TABLES_KEY, TpcPidStage

__all__ = [
    "LoadTracksStage",
    "SaveTablesStage",
    "TpcPidStage",
    "TABLES_KEY",
]
