"""Isolated worker processes driven by a local Dask cluster.

Workers share nothing with the parent. Before the first tile is submitted the
tile function and every export are serialized and installed on each worker
through a Dask worker plugin; tiles are then fed through the scheduler one at
a time so a free worker always picks up the next tile.

The cluster is closed on every exit path. This path costs more memory and
start-up time than the shared-memory pool, but runs on any host.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, List, Mapping, Optional, Sequence

from dask.distributed import Client, LocalCluster, WorkerPlugin, wait

from .base import ConcurrencyBackend, TileFunction, TileTask
from .exports import install_exports
from ..core.exceptions import ResourceTeardownError, portable_exception
from ..core.utils import ResourceUtils

logger = logging.getLogger(__name__)

# Worker-side copy of the tile function, set by ExportsPlugin.setup.
_installed_func: Optional[TileFunction] = None


def _run_installed(tile: Any) -> Any:
    if _installed_func is None:
        raise RuntimeError("No tile function installed on this worker")
    try:
        return _installed_func(tile)
    except Exception as e:
        portable = portable_exception(e)
        if portable is e:
            raise
        raise portable from None


class ExportsPlugin(WorkerPlugin):
    """Installs the tile function and exports on every (re)started worker."""

    name = "tiledispatch-exports"

    def __init__(self, func: TileFunction, exports: Mapping[str, Any]):
        self.func = func
        self.exports = dict(exports)

    def setup(self, worker=None):
        global _installed_func
        _installed_func = self.func
        install_exports(self.exports)

    def teardown(self, worker=None):
        global _installed_func
        _installed_func = None


class DaskSession:
    """A LocalCluster of ``workers`` single-threaded processes plus its Client."""

    def __init__(self, workers: int, memory_limit: Optional[str] = None):
        self.workers = workers
        self.memory_limit = memory_limit
        self.cluster: Optional[LocalCluster] = None
        self.client: Optional[Client] = None

    def start(self) -> None:
        ResourceUtils.check_resources(required_mem_gb=1.0)
        self.cluster = LocalCluster(
            n_workers=self.workers,
            threads_per_worker=1,
            processes=True,
            memory_limit=self.memory_limit or "auto",
            dashboard_address=None,
        )
        self.client = Client(self.cluster)
        logger.info(f"Dask cluster started with {self.workers} worker processes")

    def install(self, func: TileFunction, exports: Mapping[str, Any]) -> None:
        self.client.register_plugin(ExportsPlugin(func, exports))

    def submit(self, tile: Any):
        return self.client.submit(_run_installed, tile, pure=False, key=f"tile-{uuid.uuid4().hex}")

    def wait_first(self, futures):
        return wait(list(futures), return_when="FIRST_COMPLETED").done

    def close(self) -> None:
        """Close client and cluster; raises ResourceTeardownError after trying both."""
        errors: List[BaseException] = []
        for resource in (self.client, self.cluster):
            if resource is None:
                continue
            try:
                resource.close()
            except Exception as e:
                errors.append(e)
        self.client = None
        self.cluster = None
        if errors:
            raise ResourceTeardownError(f"Failed to release worker processes: {errors[0]}", cause=errors[0])
        logger.info("Dask cluster closed")


SessionFactory = Callable[[int, Optional[str]], DaskSession]


class IsolatedProcessPool(ConcurrencyBackend):
    """Load-balanced pool of isolated worker processes."""

    name = "isolated"

    def __init__(
        self,
        workers: int,
        progress: bool = True,
        memory_limit: Optional[str] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        super().__init__(workers, progress)
        self.memory_limit = memory_limit
        self.session_factory = session_factory or DaskSession

    def map(
        self,
        func: TileFunction,
        tiles: Sequence[Any],
        exports: Optional[Mapping[str, Any]] = None,
    ) -> List[Any]:
        tasks = [TileTask(i, tile, func) for i, tile in enumerate(tiles)]
        if not tasks:
            return []

        session = self.session_factory(self.workers, self.memory_limit)
        failure: Optional[BaseException] = None
        try:
            session.start()
            session.install(func, exports or {})
            return self._dispatch_bounded(
                tasks,
                submit=lambda task: session.submit(task.tile),
                wait_first=session.wait_first,
            )
        except BaseException as e:
            failure = e
            raise
        finally:
            try:
                session.close()
            except ResourceTeardownError as e:
                if failure is None:
                    raise
                # The earlier failure is the one reported to the caller.
                logger.error(f"Teardown after failed run also failed: {e}")


__all__ = ["IsolatedProcessPool", "DaskSession", "ExportsPlugin"]
