"""
PID production stage.
"""

from __future__ import annotations

import logging
from typing import Any

from tpcpid.config import PidConfig
from tpcpid.pipelines.pipeline import REQUESTED_OUTPUTS_KEY
from tpcpid.pipelines.stage import Stage, StageConfig
from tpcpid.species import OUTPUT_NAMES
from tpcpid.task import TpcPidTask

logger = logging.getLogger(__name__)

TABLES_KEY = "pid_tables"


class TpcPidStage(Stage):
    """
    Produce the nsigma tables of the demanded species for the track batch in the context.

    The stage resolves enablement at setup from the pipeline demand
    (``context['requested_outputs']``) and the configured flags, then writes
    each produced table under its output name (``pidTPCKa`` ...) and the whole
    ``{name: table}`` mapping under ``pid_tables``. Disabled species are
    absent from the context.

    Params:
        config: PidConfig (defaults to PidConfig()).
        store: Optional ParametrizationStore to load from.
    """

    def __init__(self, config: StageConfig):
        if not config.outputs:
            config.outputs = list(OUTPUT_NAMES) + [TABLES_KEY]
        if not config.inputs:
            config.inputs = ["tracks"]
        super().__init__(config)
        self.task: TpcPidTask | None = None

    def setup(self, context: Any) -> None:
        pid_config = self.config.params.get("config") or PidConfig()
        requested = context.get(REQUESTED_OUTPUTS_KEY, frozenset())
        self.task = TpcPidTask.from_config(pid_config, requested, store=self.config.params.get("store"))
        logger.info(f"Stage '{self.name}' producing tables: {self.task.enabled_outputs}")
        super().setup(context)

    def execute(self, context: Any) -> None:
        if self.task is None:
            raise RuntimeError(f"Stage '{self.name}' executed before setup")
        tracks = context[self.inputs[0]]
        tables = self.task.process(tracks)
        by_name = {species.output_name: table for species, table in tables.items()}
        context.update(by_name)
        context[TABLES_KEY] = by_name
