"""Values shipped to workers before any tile is dispatched.

The caller either passes an explicit mapping ``{name: value}`` or a list of
names looked up in its own scope. Inside a worker, user functions read the
values back with :func:`get_export`.

>>> lake = load_lake_polygons()
>>> def analyse_tile(path):
...     polygons = get_export("lake")
...     ...
>>> process(catalog, analyse_tile, exports={"lake": lake}, platform="isolated")
"""

from __future__ import annotations

import builtins
import inspect
import logging
from contextlib import contextmanager
from types import FrameType, MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Union

from ..core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ExportSpec = Union[Mapping[str, Any], Iterable[str], str, None]

# Process-local; populated in each isolated worker, or in the parent before forking.
_worker_exports: Dict[str, Any] = {}


def resolve_exports(spec: ExportSpec, frame: Optional[FrameType] = None) -> Dict[str, Any]:
    """Turn the ``exports`` argument into a name -> value mapping.

    Names are looked up in ``frame`` (locals, then globals, then builtins).

    Raises:
        ConfigurationError: If any name cannot be resolved.
    """
    if spec is None:
        return {}
    if isinstance(spec, Mapping):
        bad = [k for k in spec if not isinstance(k, str) or not k]
        if bad:
            raise ConfigurationError(f"Export names must be non-empty strings: {bad!r}")
        return dict(spec)
    if isinstance(spec, str):
        spec = [spec]

    names = [n for n in spec if n != ""]
    if not names:
        return {}
    if frame is None:
        raise ConfigurationError("Export names given but no scope to resolve them in")

    resolved: Dict[str, Any] = {}
    missing = []
    for name in names:
        if name in frame.f_locals:
            resolved[name] = frame.f_locals[name]
        elif name in frame.f_globals:
            resolved[name] = frame.f_globals[name]
        elif hasattr(builtins, name):
            resolved[name] = getattr(builtins, name)
        else:
            missing.append(name)
    if missing:
        raise ConfigurationError(f"Cannot export unresolved names: {', '.join(missing)}")
    return resolved


def caller_frame(depth: int = 0) -> Optional[FrameType]:
    """Frame of whoever called the current function, ``depth`` extra levels up."""
    frame = inspect.currentframe()
    try:
        for _ in range(depth + 2):
            if frame is None:
                return None
            frame = frame.f_back
        return frame
    finally:
        del frame


def install_exports(values: Mapping[str, Any]) -> int:
    """Replace the process-local export registry; returns the number of names."""
    _worker_exports.clear()
    _worker_exports.update(values)
    logger.debug(f"Installed {len(values)} exports")
    return len(values)


def clear_exports() -> None:
    _worker_exports.clear()


@contextmanager
def scoped_exports(values: Mapping[str, Any]) -> Iterator[None]:
    """Install ``values`` for the duration of a run, then restore the previous registry.

    A tile function that starts a nested run gets its own exports back once
    the nested run returns.
    """
    previous = dict(_worker_exports)
    install_exports(values)
    try:
        yield
    finally:
        _worker_exports.clear()
        _worker_exports.update(previous)


def get_export(name: str) -> Any:
    """Return an exported value inside a worker.

    Raises:
        KeyError: If ``name`` was not exported for this run.
    """
    try:
        return _worker_exports[name]
    except KeyError:
        raise KeyError(f"{name!r} was not exported to this worker") from None


def exported() -> Mapping[str, Any]:
    return MappingProxyType(_worker_exports)


__all__ = [
    "ExportSpec",
    "resolve_exports",
    "caller_frame",
    "install_exports",
    "clear_exports",
    "scoped_exports",
    "get_export",
    "exported",
]
