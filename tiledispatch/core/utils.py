"""Host resource helpers for tiledispatch.

Uses psutil for CPU and memory metrics, the same way worker counts are sized
before a pool is started.
"""

import logging
import os
from dataclasses import dataclass

import psutil

logger = logging.getLogger(__name__)


@dataclass
class ResourceInfo:
    """Dataclass for system resource usage."""
    cpu_count: int
    memory_percent: float
    available_memory_gb: float


class ResourceUtils:
    """Utilities for system resource monitoring and validation."""

    @staticmethod
    def host_core_count() -> int:
        """Number of logical cores on the host (at least 1)."""
        count = psutil.cpu_count(logical=True) or os.cpu_count() or 1
        return max(1, int(count))

    @staticmethod
    def check_resources(required_mem_gb: float = 1.0) -> bool:
        """Check if system has sufficient available memory.

        Args:
            required_mem_gb: Minimum available memory in GB.

        Returns:
            True if sufficient, else False.
        """
        memory = psutil.virtual_memory()
        available_gb = memory.available / (1024 ** 3)
        if available_gb < required_mem_gb:
            logger.warning(f"Low memory: {available_gb:.1f}GB available, {required_mem_gb}GB required")
            return False
        return True

    @staticmethod
    def get_system_resources() -> ResourceInfo:
        """Get current system resource usage."""
        memory = psutil.virtual_memory()
        return ResourceInfo(
            cpu_count=ResourceUtils.host_core_count(),
            memory_percent=memory.percent,
            available_memory_gb=memory.available / (1024 ** 3),
        )


__all__ = ["ResourceInfo", "ResourceUtils"]
