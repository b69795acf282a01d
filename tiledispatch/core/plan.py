"""Execution plan: which backend runs, with how many workers.

Host capability is probed once per process. ``auto`` resolves to the
shared-memory (fork) backend when the host can fork and more than one worker
is requested; otherwise the isolated-process backend is used. A single
worker always runs on the shared-memory path, which degenerates to a plain
loop.
"""

from __future__ import annotations

import functools
import logging
import multiprocessing
from dataclasses import dataclass, field
from enum import Enum
from types import FrameType, MappingProxyType
from typing import Any, List, Mapping, Optional, Union

from .combine import ReductionStrategy, resolve_strategy
from .exceptions import ConfigurationError
from .utils import ResourceUtils
from ..backends.exports import ExportSpec, resolve_exports

logger = logging.getLogger(__name__)


# Alternative spellings accepted wherever a platform name is.
PLATFORM_ALIASES = {
    "unix": "shared-memory",
    "fork": "shared-memory",
    "shared": "shared-memory",
    "windows": "isolated",
    "cluster": "isolated",
}


class Platform(str, Enum):
    AUTO = "auto"
    SHARED_MEMORY = "shared-memory"
    ISOLATED = "isolated"

    @classmethod
    def parse(cls, value: Union[str, "Platform", None]) -> "Platform":
        """Parse a platform name or one of the aliases in ``PLATFORM_ALIASES``."""
        if value is None:
            return cls.AUTO
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "-")
        key = PLATFORM_ALIASES.get(key, key)
        for member in cls:
            if member.value == key:
                return member
        raise ConfigurationError(
            f"Unknown platform {value!r}; expected one of: auto, shared-memory, isolated"
        )

    @classmethod
    def names(cls) -> List[str]:
        """Every accepted spelling: member values plus aliases."""
        return sorted({m.value for m in cls} | set(PLATFORM_ALIASES))


@functools.lru_cache(maxsize=None)
def supports_fork() -> bool:
    """True when the host can start workers by forking the parent process."""
    return "fork" in multiprocessing.get_all_start_methods()


def resolve_platform(requested: Platform, workers: int, fork_available: Optional[bool] = None) -> Platform:
    if fork_available is None:
        fork_available = supports_fork()
    if workers == 1:
        return Platform.SHARED_MEMORY
    if requested is Platform.AUTO:
        return Platform.SHARED_MEMORY if fork_available else Platform.ISOLATED
    return requested


def validate_workers(workers: Any) -> int:
    if workers is None:
        return ResourceUtils.host_core_count()
    if isinstance(workers, bool) or not isinstance(workers, int):
        raise ConfigurationError(f"workers must be a positive integer, got {workers!r}")
    if workers < 1:
        raise ConfigurationError(f"workers must be >= 1, got {workers}")
    return workers


@dataclass(frozen=True)
class ExecutionPlan:
    """Immutable configuration of one dispatch call."""
    platform: Platform
    workers: int
    strategy: ReductionStrategy
    exports: Mapping[str, Any] = field(default_factory=dict)
    memory_limit: Optional[str] = None
    progress: bool = True

    @classmethod
    def build(
        cls,
        platform: Union[str, Platform, None] = Platform.AUTO,
        workers: Optional[int] = None,
        combine: Any = "concat",
        exports: ExportSpec = None,
        scope: Optional[FrameType] = None,
        memory_limit: Optional[str] = None,
        progress: bool = True,
        fork_available: Optional[bool] = None,
    ) -> "ExecutionPlan":
        """Validate caller configuration and resolve the backend.

        Raises:
            ConfigurationError: On invalid workers, platform, strategy or exports.
        """
        n_workers = validate_workers(workers)
        resolved = resolve_platform(Platform.parse(platform), n_workers, fork_available)
        strategy = resolve_strategy(combine)
        values = resolve_exports(exports, scope)
        return cls(
            platform=resolved,
            workers=n_workers,
            strategy=strategy,
            exports=MappingProxyType(values),
            memory_limit=memory_limit,
            progress=progress,
        )


__all__ = ["Platform", "ExecutionPlan", "supports_fork", "resolve_platform", "validate_workers"]
