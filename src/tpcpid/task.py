"""
TPC PID production task.

Startup, in order:
1. resolve which species tables are produced from the downstream demand and
   the configured flags;
2. load the signal and sigma parametrizations, only if at least one table is
   enabled (failure aborts the run);
3. build one response model per enabled species and the batch processor.

After startup everything is read-only and ``process`` is called once per
batch of tracks.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Optional

from tpcpid.config import PidConfig
from tpcpid.data.tracks import TrackBatch
from tpcpid.demand import OutputDemandResolver
from tpcpid.parametrization.store import ParametrizationStore, load_response
from tpcpid.processing import BatchProcessor, OutputTable
from tpcpid.response import DetectorResponse, ResponseModel
from tpcpid.species import Species

logger = logging.getLogger(__name__)


class TpcPidTask:
    """Resolved, loaded and ready-to-run PID producer."""

    def __init__(
        self,
        config: PidConfig,
        enabled: Mapping[Species, bool],
        response: Optional[DetectorResponse],
    ):
        self.config = config
        self.enabled = enabled
        self.response = response
        models: Dict[Species, ResponseModel] = {}
        if response is not None:
            models = {s: response.model(s) for s in Species if enabled[s]}
        self.processor = BatchProcessor(
            models,
            enabled,
            config.codec,
            on_invalid=config.on_invalid,
            max_workers=config.max_workers,
        )

    @classmethod
    def from_config(
        cls,
        config: PidConfig,
        requested_outputs: Iterable[str],
        store: Optional[ParametrizationStore] = None,
    ) -> TpcPidTask:
        """
        Run the startup sequence.

        Raises:
            ConfigurationError: Invalid flags, names, files or codec settings.
            ParametrizationNotFoundError: No remote object at the configured timestamp.
        """
        enabled = OutputDemandResolver(requested_outputs).resolve(config.flags)
        response = None
        if any(enabled.values()):
            response = load_response(config, store)
        else:
            logger.info("No PID table enabled, skipping parametrization loading")
        return cls(config, enabled, response)

    @property
    def enabled_outputs(self) -> list[str]:
        return [s.output_name for s in self.processor.species]

    def process(self, tracks: TrackBatch) -> Dict[Species, OutputTable]:
        return self.processor.process(tracks)

    def __repr__(self) -> str:
        return f"TpcPidTask(tables={self.enabled_outputs})"
