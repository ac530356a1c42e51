"""
Pipeline executor with DAG-based execution.

Stages run in topological order of their declared inputs and outputs. The
union of all declared inputs is the pipeline's demand set, published in the
context under ``REQUESTED_OUTPUTS_KEY`` before any stage is set up, so that
producers can skip outputs nobody consumes.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Dict, FrozenSet, List, Optional

from tpcpid.pipelines.context import Context
from tpcpid.pipelines.stage import Stage

logger = logging.getLogger(__name__)

REQUESTED_OUTPUTS_KEY = "requested_outputs"


class Pipeline:
    """
    Runs producer and consumer stages over one shared Context.

    Example:
        >>> pipeline = Pipeline([
        ...     LoadTracksStage(StageConfig(name='load', outputs=['tracks'], params={'path': 'tracks.parquet'})),
        ...     TpcPidStage(StageConfig(name='pid')),
        ...     FunctionalStage(StageConfig(name='use', inputs=['pidTPCKa']), func=use_kaons),
        ... ])
        >>> ctx = pipeline.run()
        >>> ctx['pidTPCKa']
    """

    def __init__(self, stages: List[Stage], name: str = "pipeline", validate: bool = True):
        """
        Args:
            stages: Stages to run, in any order.
            name: Pipeline name for logging.
            validate: Check stage names and dependencies now.

        Raises:
            ValueError: On duplicate stage names or circular dependencies.
        """
        self.name = name
        self.stages = stages
        self._execution_order: Optional[List[Stage]] = None

        if validate:
            self.validate()

    def validate(self) -> None:
        """
        Raises:
            ValueError: On duplicate stage names or circular dependencies.
        """
        names = [s.name for s in self.stages]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate stage names: {duplicates}")

        produced = set()
        for stage in self.get_execution_order():
            external = [key for key in stage.inputs if key not in produced]
            if external:
                logger.warning(f"Stage '{stage.name}' expects {external} in the initial context")
            produced.update(stage.outputs)

    def _compute_execution_order(self) -> List[Stage]:
        """
        Kahn's algorithm over producer -> consumer edges.

        Raises:
            ValueError: If circular dependencies exist.
        """
        producers: Dict[str, List[str]] = defaultdict(list)
        for stage in self.stages:
            for key in stage.outputs:
                producers[key].append(stage.name)

        consumers: Dict[str, List[str]] = defaultdict(list)
        in_degree = {s.name: 0 for s in self.stages}
        for stage in self.stages:
            for key in stage.inputs:
                for producer in producers.get(key, []):
                    if producer != stage.name:
                        consumers[producer].append(stage.name)
                        in_degree[stage.name] += 1

        by_name = {s.name: s for s in self.stages}
        ready = deque(name for name, degree in in_degree.items() if degree == 0)
        order = []
        while ready:
            current = ready.popleft()
            order.append(by_name[current])
            for consumer in consumers[current]:
                in_degree[consumer] -= 1
                if in_degree[consumer] == 0:
                    ready.append(consumer)

        if len(order) != len(self.stages):
            blocked = [name for name, degree in in_degree.items() if degree > 0]
            raise ValueError(f"Circular dependencies detected involving stages: {blocked}")
        return order

    def get_execution_order(self) -> List[Stage]:
        if self._execution_order is None:
            self._execution_order = self._compute_execution_order()
        return self._execution_order

    def requested_inputs(self) -> FrozenSet[str]:
        """Every context key some enabled stage declares as an input."""
        return frozenset(key for stage in self.stages if stage.enabled for key in stage.inputs)

    def run(self, context: Optional[Context] = None) -> Context:
        """
        Publish the demand set, then set up, check and execute each enabled stage.

        An explicit ``requested_outputs`` already in ``context`` is kept.

        Raises:
            KeyError: If a stage's inputs are missing, e.g. a table that was forced off.
        """
        context = context if context is not None else Context()
        if REQUESTED_OUTPUTS_KEY not in context:
            context[REQUESTED_OUTPUTS_KEY] = self.requested_inputs()

        order = [s for s in self.get_execution_order() if s.enabled]
        logger.info(f"Running pipeline '{self.name}': {[s.name for s in order]}")
        for stage in order:
            try:
                if not stage._is_setup:
                    stage.setup(context)
                stage.validate_inputs(context)
                stage.execute(context)
                stage.cleanup(context)
            except Exception as e:
                logger.error(f"Stage '{stage.name}' failed: {e}")
                raise
            logger.debug(f"Stage '{stage.name}' done")
        return context

    def __repr__(self) -> str:
        return f"Pipeline(name='{self.name}', stages={[s.name for s in self.stages]})"
