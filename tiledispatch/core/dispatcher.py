"""Apply a per-tile function to every tile of a catalog and merge the results.

The Dispatcher resolves an :class:`ExecutionPlan` (backend, worker count,
exports, combine strategy), runs the backend, and combines the ordered
per-tile results. Runs are synchronous: :meth:`Dispatcher.run` returns only
after every tile was processed or the first tile failure was raised.

There is no buffering between neighbouring tiles. Operations sensitive to
tile edges (rasterization, neighbourhood metrics) will show edge artifacts
unless the tile function handles them itself.

Examples
--------
>>> from tiledispatch import Catalog, process
>>> catalog = Catalog.from_directory("folder")
>>> def analyse_tile(path):
...     ...
...     return metrics
>>> output = process(catalog, analyse_tile, workers=4)
"""

from __future__ import annotations

import gc
import logging
import time
from types import FrameType
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import TileDispatchConfig, config_manager
from .exceptions import ConfigurationError, WorkerExecutionError
from .plan import ExecutionPlan, Platform
from ..backends.base import ConcurrencyBackend, TileFunction
from ..backends.exports import ExportSpec, caller_frame
from ..backends.isolated import IsolatedProcessPool
from ..backends.shared_memory import SharedMemoryPool

logger = logging.getLogger(__name__)

BackendFactory = Callable[[ExecutionPlan], ConcurrencyBackend]

_DEFAULT = object()


def _shared_memory_backend(plan: ExecutionPlan) -> ConcurrencyBackend:
    return SharedMemoryPool(plan.workers, progress=plan.progress)


def _isolated_backend(plan: ExecutionPlan) -> ConcurrencyBackend:
    return IsolatedProcessPool(plan.workers, progress=plan.progress, memory_limit=plan.memory_limit)


DEFAULT_BACKENDS: Dict[Platform, BackendFactory] = {
    Platform.SHARED_MEMORY: _shared_memory_backend,
    Platform.ISOLATED: _isolated_backend,
}


def tile_list(tiles: Any) -> List[Any]:
    """Materialize tile identifiers from a sequence or a catalog-like object."""
    if tiles is None:
        raise ConfigurationError("tiles must be a sequence of tile identifiers, got None")
    if hasattr(tiles, "files"):
        tiles = tiles.files
    if isinstance(tiles, (str, bytes)):
        raise ConfigurationError("tiles must be a sequence of tile identifiers, not a single string")
    if not isinstance(tiles, Iterable):
        raise ConfigurationError(f"tiles must be iterable, got {type(tiles).__name__}")
    return list(tiles)


class Dispatcher:
    """Runs a tile function over a tile source with the configured backend.

    Args:
        config: Configuration supplying defaults for arguments left unset in
            :meth:`run`. Defaults to the process-wide configuration.
        backends: Mapping of resolved platform to backend factory.
    """

    def __init__(
        self,
        config: Optional[TileDispatchConfig] = None,
        backends: Optional[Dict[Platform, BackendFactory]] = None,
    ):
        self.config = config
        self.backends = dict(DEFAULT_BACKENDS)
        if backends:
            self.backends.update(backends)

    def plan(
        self,
        platform: Any = _DEFAULT,
        workers: Any = _DEFAULT,
        combine: Any = _DEFAULT,
        exports: ExportSpec = None,
        scope: Optional[FrameType] = None,
    ) -> ExecutionPlan:
        cfg = (self.config or config_manager.get_config()).parallel
        return ExecutionPlan.build(
            platform=cfg.platform if platform is _DEFAULT else platform,
            workers=cfg.workers if workers is _DEFAULT else workers,
            combine=cfg.combine if combine is _DEFAULT else combine,
            exports=exports,
            scope=scope,
            memory_limit=cfg.memory_limit,
            progress=cfg.progress,
        )

    def run(
        self,
        tiles: Any,
        func: TileFunction,
        platform: Any = _DEFAULT,
        workers: Any = _DEFAULT,
        combine: Any = _DEFAULT,
        exports: ExportSpec = None,
        scope: Optional[FrameType] = None,
    ) -> Any:
        """Process every tile with ``func`` and return the combined result.

        Args:
            tiles: Ordered tile identifiers, or a Catalog.
            func: Single-argument callable receiving one tile identifier.
            platform: ``"auto"``, ``"shared-memory"`` or ``"isolated"``.
            workers: Number of concurrent workers; defaults to all cores.
            combine: Strategy name, ReductionStrategy, or callable.
            exports: Mapping of values, or names resolved in ``scope`` (the
                caller's frame by default), made available to isolated
                workers through ``get_export``.

        Returns:
            The aggregate produced by the combine strategy.

        Raises:
            ConfigurationError: Before any tile runs, on invalid arguments.
            WorkerExecutionError: When ``func`` raised for a tile.
            ResourceTeardownError: When worker processes could not be released.
        """
        started = time.perf_counter()
        if not callable(func):
            raise ConfigurationError(f"func must be callable, got {type(func).__name__}")
        if scope is None:
            scope = caller_frame()
        try:
            plan = self.plan(platform, workers, combine, exports, scope)
        finally:
            del scope
        files = tile_list(tiles)

        logger.info("Begin parallel processing...")
        logger.info(f"Platform mode: {plan.platform.value}")
        logger.info(f"Num. of workers: {plan.workers}")
        if not files:
            logger.info("No tiles to process")
            aggregate = plan.strategy([])
            logger.info(f"Process done in {(time.perf_counter() - started) / 60:.1f} min")
            return aggregate

        backend = self.backends[plan.platform](plan)
        try:
            results = backend.map(func, files, dict(plan.exports))
        except WorkerExecutionError as e:
            elapsed = time.perf_counter() - started
            e.with_elapsed(elapsed)
            logger.error(f"Process failed after {elapsed / 60:.1f} min: {e}")
            raise
        finally:
            gc.collect()

        aggregate = plan.strategy(results)
        logger.info(f"Process done in {(time.perf_counter() - started) / 60:.1f} min")
        return aggregate


def process(
    tiles: Any,
    func: TileFunction,
    platform: Any = _DEFAULT,
    workers: Any = _DEFAULT,
    combine: Any = _DEFAULT,
    exports: ExportSpec = None,
    config: Optional[TileDispatchConfig] = None,
) -> Any:
    """Apply ``func`` to every tile using several cores and combine the outputs.

    See :meth:`Dispatcher.run`. Export names are resolved in the caller's scope.
    """
    scope = caller_frame()
    try:
        return Dispatcher(config).run(tiles, func, platform, workers, combine, exports, scope=scope)
    finally:
        del scope


__all__ = ["Dispatcher", "process", "tile_list", "DEFAULT_BACKENDS"]
