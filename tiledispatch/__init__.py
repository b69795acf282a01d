"""
tiledispatch: apply a function to every tile of a tiled dataset using several cores.

A catalog lists the files of a dataset that is too large to process at once
(LAS/LAZ tiles, for example). tiledispatch runs a user function on each file,
in parallel, and merges the per-tile outputs into one result.

>>> from tiledispatch import Catalog, process
>>> catalog = Catalog.from_directory("folder")
>>> def analyse_tile(path):
...     lidar = read_tile(path)
...     return grid_metrics(lidar)
>>> output = process(catalog, analyse_tile, workers=4)

Two backends are available:

- shared-memory (default where ``fork`` exists): workers are forked from the
  calling process and see its memory, so closures and globals work as-is.
  With one worker it runs like a plain loop.
- isolated: a local Dask cluster of independent worker processes. Anything
  the function needs beyond its own code must be passed through ``exports``
  and read back with ``get_export``. Works on every platform, at a higher
  memory cost.

No buffer is added around tiles; edge artifacts are the tile function's
concern.
"""

import importlib

from .utils.logging import configure_logging

__version__ = "0.1.0"
__license__ = "MIT"
__description__ = "Parallel per-tile processing of tiled datasets."

# Package-level logging: run notifications go to stdout.
configure_logging()

__all__ = [
    'process', 'Dispatcher', 'Catalog',
    'ExecutionPlan', 'Platform', 'supports_fork',
    'ReductionStrategy', 'register_strategy', 'combine',
    'get_export',
    'TileDispatchConfig', 'config_manager',
    'TileDispatchError', 'ConfigurationError', 'WorkerExecutionError', 'ResourceTeardownError', 'CatalogError',
]

_lazy_exports = {
    'process': ('tiledispatch.core.dispatcher', 'process'),
    'Dispatcher': ('tiledispatch.core.dispatcher', 'Dispatcher'),
    'Catalog': ('tiledispatch.io.catalog', 'Catalog'),
    'ExecutionPlan': ('tiledispatch.core.plan', 'ExecutionPlan'),
    'Platform': ('tiledispatch.core.plan', 'Platform'),
    'supports_fork': ('tiledispatch.core.plan', 'supports_fork'),
    'ReductionStrategy': ('tiledispatch.core.combine', 'ReductionStrategy'),
    'register_strategy': ('tiledispatch.core.combine', 'register_strategy'),
    'combine': ('tiledispatch.core.combine', 'combine'),
    'get_export': ('tiledispatch.backends.exports', 'get_export'),
    'TileDispatchConfig': ('tiledispatch.core.config', 'TileDispatchConfig'),
    'config_manager': ('tiledispatch.core.config', 'config_manager'),
    'TileDispatchError': ('tiledispatch.core.exceptions', 'TileDispatchError'),
    'ConfigurationError': ('tiledispatch.core.exceptions', 'ConfigurationError'),
    'WorkerExecutionError': ('tiledispatch.core.exceptions', 'WorkerExecutionError'),
    'ResourceTeardownError': ('tiledispatch.core.exceptions', 'ResourceTeardownError'),
    'CatalogError': ('tiledispatch.core.exceptions', 'CatalogError'),
}


def __getattr__(name: str):
    """Lazily import attributes on first access so the CLI starts without loading Dask."""
    target = _lazy_exports.get(name)
    if target is None:
        raise AttributeError(f"module 'tiledispatch' has no attribute {name!r}")
    module_path, symbol = target
    module = importlib.import_module(module_path)
    return getattr(module, symbol)


def __dir__():
    return sorted(list(globals().keys()) + __all__)
