"""
Exception types raised by tpcpid.

Startup errors (configuration, parametrization loading) are fatal to a run.
Evaluation errors are raised for single tracks, or for a whole batch when the
processor is configured to abort on invalid results.
"""


class TpcPidError(Exception):
    """Base class for all tpcpid errors."""


class ConfigurationError(TpcPidError, ValueError):
    """Invalid or unreadable configuration: bad names, files, paths, payloads or codec settings."""


class ParametrizationNotFoundError(TpcPidError, LookupError):
    """No parametrization object is valid at or before the requested timestamp."""

    def __init__(self, path: str, timestamp: int):
        super().__init__(f"No object found for path '{path}' at timestamp {timestamp}")
        self.path = path
        self.timestamp = timestamp


class EvaluationError(TpcPidError, ArithmeticError):
    """Response evaluation produced a zero resolution or a non-finite separation."""


__all__ = [
    "TpcPidError",
    "ConfigurationError",
    "ParametrizationNotFoundError",
    "EvaluationError",
]
