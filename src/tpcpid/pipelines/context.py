"""
Shared state of one pipeline run.

Within one run the context carries the track batch, the downstream demand
and the produced PID tables.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from tpcpid.processing import OutputTable


class Context:
    """
    Key-value store passed from stage to stage.

    Example:
        >>> ctx = Context({'tracks': batch})
        >>> ctx['pidTPCKa'] = table
        >>> ctx.tables()
        {'pidTPCKa': OutputTable(name='pidTPCKa', ...)}
    """

    def __init__(self, initial_data: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial_data or {})

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def update(self, other: Mapping[str, Any]) -> None:
        self._data.update(other)

    def tables(self) -> Dict[str, OutputTable]:
        """PID tables currently held, keyed by output name."""
        return {k: v for k, v in self._data.items() if isinstance(v, OutputTable)}

    def __repr__(self) -> str:
        return f"Context(keys={list(self._data)})"
