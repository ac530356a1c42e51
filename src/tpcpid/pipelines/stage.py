"""
Pipeline stages.

Stages declare the context keys they read (inputs) and write (outputs). The
inputs declared by all stages of a pipeline are its downstream demand: a PID
table is only produced automatically if some stage lists it as an input.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List


@dataclass
class StageConfig:
    """Declaration of one stage instance."""

    name: str
    """Unique within a pipeline."""

    inputs: List[str] = field(default_factory=list)
    """Context keys read; each one counts as a request for that key."""

    outputs: List[str] = field(default_factory=list)
    """Context keys the stage may write."""

    params: Dict[str, Any] = field(default_factory=dict)

    enabled: bool = True
    """Disabled stages neither run nor contribute to the demand set."""


class Stage(ABC):
    """
    A unit of work over the shared Context.

    Example:
        >>> class KaonCounter(Stage):
        ...     def execute(self, context):
        ...         table = context['pidTPCKa']
        ...         context['n_kaon_like'] = int((abs(table.decode()) < 3).sum())
        ...
        >>> stage = KaonCounter(StageConfig(name='kaons', inputs=['pidTPCKa'], outputs=['n_kaon_like']))
    """

    def __init__(self, config: StageConfig):
        self.config = config
        self._is_setup = False

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def inputs(self) -> List[str]:
        return self.config.inputs

    @property
    def outputs(self) -> List[str]:
        return self.config.outputs

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def setup(self, context: Any) -> None:
        """Called once before the first execute(); the demand set is already in ``context``."""
        self._is_setup = True

    @abstractmethod
    def execute(self, context: Any) -> None:
        """Read inputs from ``context`` and write outputs back."""

    def cleanup(self, context: Any) -> None:
        pass

    def validate_inputs(self, context: Any) -> None:
        """
        Raises:
            KeyError: If an input key is absent, e.g. a PID table that was not produced.
        """
        missing = [key for key in self.inputs if key not in context]
        if missing:
            raise KeyError(f"Stage '{self.name}' missing required inputs: {missing}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name='{self.name}', inputs={self.inputs}, outputs={self.outputs})"


class FunctionalStage(Stage):
    """
    Stage wrapping a plain function of the context, handy for table consumers.

    Example:
        >>> def mean_pion_nsigma(context):
        ...     context['mean_pi'] = float(context['pidTPCPi'].decode().mean())
        ...
        >>> stage = FunctionalStage(
        ...     StageConfig(name='mean_pi', inputs=['pidTPCPi'], outputs=['mean_pi']),
        ...     func=mean_pion_nsigma,
        ... )
    """

    def __init__(self, config: StageConfig, func: Callable[[Any], None]):
        super().__init__(config)
        self.func = func

    def execute(self, context: Any) -> None:
        self.func(context)
