"""Reduction of per-tile results into one aggregate.

Strategies are resolved when the execution plan is built, so an unknown name
fails with a ConfigurationError before any tile is dispatched.

Built-in strategies
-------------------
concat (alias rbind)
    Row-wise concatenation in tile order. DataFrames/Series use ``pd.concat``,
    arrays use ``np.concatenate``, lists are flattened and scalars are
    collected into a list. Empty input gives ``[]``.
cbind
    Column-wise concatenation in tile order. Empty input gives ``[]``.
list
    The ordered list of per-tile results, unchanged.
sum
    ``a + b + ...`` over the results; empty input gives ``0``.
mosaic
    Combines xarray tiles by their coordinates; empty input gives an empty
    ``xr.Dataset``.
"""

from __future__ import annotations

import functools
import logging
import operator
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Dict, List, Sequence, Union

import numpy as np
import pandas as pd
import xarray as xr

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

Reducer = Callable[[List[Any]], Any]


@dataclass(frozen=True)
class ReductionStrategy:
    """A named reduction over the ordered list of per-tile results."""
    name: str
    reduce: Reducer

    def __call__(self, results: Sequence[Any]) -> Any:
        return self.reduce(list(results))


def _concat(results: List[Any]) -> Any:
    if not results:
        return []
    first = results[0]
    if isinstance(first, (pd.DataFrame, pd.Series)):
        return pd.concat(results, ignore_index=True)
    if isinstance(first, np.ndarray):
        if first.ndim == 0:
            return np.stack(results)
        return np.concatenate(results, axis=0)
    if isinstance(first, (list, tuple)):
        out: List[Any] = []
        for r in results:
            if not isinstance(r, (list, tuple)):
                raise TypeError(f"Cannot concatenate {type(r).__name__} with {type(first).__name__} results")
            out.extend(r)
        return out
    return list(results)


def _cbind(results: List[Any]) -> Any:
    if not results:
        return []
    first = results[0]
    if isinstance(first, (pd.DataFrame, pd.Series)):
        return pd.concat(results, axis=1)
    return np.column_stack(results)


def _sum(results: List[Any]) -> Any:
    if not results:
        return 0
    return functools.reduce(operator.add, results)


def _mosaic(results: List[Any]) -> Any:
    if not results:
        return xr.Dataset()
    return xr.combine_by_coords(results)


_registry: Dict[str, ReductionStrategy] = {}
_lock = RLock()


def register_strategy(name: str, func: Reducer) -> ReductionStrategy:
    """Register a caller-nominated reduction under ``name``.

    ``func`` receives the ordered list of per-tile results (possibly empty)
    and returns the aggregate.
    """
    if not name or not isinstance(name, str):
        raise ConfigurationError("Strategy name must be a non-empty string")
    if not callable(func):
        raise ConfigurationError(f"Strategy {name!r} must be callable")
    strategy = ReductionStrategy(name=name, reduce=func)
    with _lock:
        _registry[name] = strategy
    logger.debug(f"Registered combine strategy '{name}'")
    return strategy


def available_strategies() -> List[str]:
    with _lock:
        return sorted(_registry)


def resolve_strategy(spec: Union[str, ReductionStrategy, Reducer, None]) -> ReductionStrategy:
    """Resolve a strategy name, instance or plain callable.

    Raises:
        ConfigurationError: If the name is not registered.
    """
    if spec is None:
        spec = "concat"
    if isinstance(spec, ReductionStrategy):
        return spec
    if isinstance(spec, str):
        with _lock:
            strategy = _registry.get(spec)
        if strategy is None:
            raise ConfigurationError(
                f"Unknown combine strategy {spec!r}; available: {', '.join(available_strategies())}"
            )
        return strategy
    if callable(spec):
        name = getattr(spec, "__name__", type(spec).__name__)
        return ReductionStrategy(name=name, reduce=spec)
    raise ConfigurationError(f"Invalid combine strategy: {spec!r}")


def combine(results: Sequence[Any], strategy: Union[str, ReductionStrategy, Reducer, None] = "concat") -> Any:
    """Reduce the ordered per-tile results with ``strategy``."""
    return resolve_strategy(strategy)(results)


register_strategy("concat", _concat)
register_strategy("rbind", _concat)
register_strategy("cbind", _cbind)
register_strategy("list", list)
register_strategy("sum", _sum)
register_strategy("mosaic", _mosaic)


__all__ = [
    "ReductionStrategy",
    "register_strategy",
    "available_strategies",
    "resolve_strategy",
    "combine",
]
