import logging
import os
from dataclasses import asdict
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ConfigDict, Field, ValidationError, field_validator
from pydantic.dataclasses import dataclass as pydantic_dataclass

from .exceptions import ConfigurationError
from .plan import Platform

log = logging.getLogger(__name__)


@pydantic_dataclass(config=ConfigDict(extra="forbid"))
class ParallelConfig:
    """Configuration for parallel tile processing."""
    platform: str = 'auto'
    workers: Optional[int] = None  # None = all logical cores
    combine: str = 'concat'
    memory_limit: Optional[str] = None  # per isolated worker, e.g. '2GB'
    progress: bool = True

    @field_validator('platform')
    @classmethod
    def validate_platform(cls, v):
        v = v.strip().lower().replace("_", "-")
        if v not in Platform.names():
            raise ValueError(f"platform must be one of {Platform.names()}")
        return v

    @field_validator('workers')
    @classmethod
    def validate_workers(cls, v):
        if v is not None and v < 1:
            raise ValueError('workers must be >= 1')
        return v


@pydantic_dataclass(config=ConfigDict(extra="forbid"))
class TileDispatchConfig:
    """
    Main configuration for tiledispatch runs.

    Loads from a YAML file with defaults for the parallel backend, logging and
    tile discovery.
    """
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)
    tile_patterns: List[str] = Field(default_factory=lambda: ['*.las', '*.laz'])

    # Logging
    log_level: str = 'INFO'
    log_file: Optional[str] = None

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path]) -> 'TileDispatchConfig':
        """
        Load configuration from YAML file.

        ``TILEDISPATCH_WORKERS`` and ``TILEDISPATCH_PLATFORM`` override the
        values found in the file.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            log.warning(f"Config file {config_path} not found. Using defaults.")
            data: Dict[str, Any] = {}
        else:
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f) or {}

        parallel = dict(data.get('parallel') or {})
        if 'TILEDISPATCH_WORKERS' in os.environ:
            parallel['workers'] = os.environ['TILEDISPATCH_WORKERS']
        if 'TILEDISPATCH_PLATFORM' in os.environ:
            parallel['platform'] = os.environ['TILEDISPATCH_PLATFORM']

        try:
            data['parallel'] = ParallelConfig(**parallel)
            config = cls(**data)
        except (TypeError, ValidationError) as e:
            raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e
        log.info(f"Configuration loaded from {config_path}")
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return asdict(self)

    def save(self, path: Union[str, Path]):
        """Save config to YAML."""
        path = Path(path)
        path.parent.mkdir(exist_ok=True, parents=True)
        with open(path, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False)
        log.info(f"Configuration saved to {path}")


class _ConfigManager:
    """
    Process-level singleton of TileDispatchConfig accessed via get_config().
    """

    def __init__(self):
        self._config: Optional[TileDispatchConfig] = None
        self._lock = RLock()

    def get_config(self) -> TileDispatchConfig:
        with self._lock:
            if self._config is None:
                self._config = TileDispatchConfig()
            return self._config

    def set_config(self, config: TileDispatchConfig) -> None:
        with self._lock:
            self._config = config

    def reset(self) -> None:
        with self._lock:
            self._config = None

    current_config = property(get_config, set_config)


config_manager = _ConfigManager()


def get_config() -> TileDispatchConfig:
    return config_manager.get_config()


__all__ = ["ParallelConfig", "TileDispatchConfig", "config_manager", "get_config"]
