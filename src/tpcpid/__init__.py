"""
tpcpid: TPC particle-identification tables.

Computes, per track and per particle-species hypothesis, how many
resolution widths the measured TPC energy loss lies from the expected one
(nsigma), and stores it as a compact fixed-point code. Only the tables that
downstream consumers request (or that are forced on) are computed.
"""

__version__ = "0.1.0"

from tpcpid.errors import (
    ConfigurationError,
    EvaluationError,
    ParametrizationNotFoundError,
    TpcPidError,
)
from tpcpid.species import OUTPUT_NAMES, Species
from tpcpid.data import Track, TrackBatch
from tpcpid.codec import QuantizationCodec
from tpcpid.response import DetectorResponse, ResponseModel
from tpcpid.demand import EnableFlag, OutputDemandResolver, resolve_enabled
from tpcpid.processing import BatchProcessor, InvalidPolicy, OutputTable, process_batch
from tpcpid.config import PidConfig
from tpcpid.parametrization import ParametrizationSource, ParametrizationStore
from tpcpid.task import TpcPidTask

__all__ = [
    "__version__",
    "TpcPidError",
    "ConfigurationError",
    "EvaluationError",
    "ParametrizationNotFoundError",
    "Species",
    "OUTPUT_NAMES",
    "Track",
    "TrackBatch",
    "QuantizationCodec",
    "DetectorResponse",
    "ResponseModel",
    "EnableFlag",
    "OutputDemandResolver",
    "resolve_enabled",
    "BatchProcessor",
    "InvalidPolicy",
    "OutputTable",
    "process_batch",
    "PidConfig",
    "ParametrizationSource",
    "ParametrizationStore",
    "TpcPidTask",
]
