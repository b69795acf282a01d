"""Fork-based worker pool whose children inherit the parent's memory.

Each forked run parks its tasks and exports in a module-level table, keyed by
a run id, before the pool starts. Forked children see them without any
pickling, so closures, lambdas and module globals of the caller work as-is;
only the run id and tile index go to the child and only the result comes
back.

Mutations made by a child are not visible to the parent or to other children.
Shared external state (files, databases) touched by several tiles is the
caller's responsibility.
"""

from __future__ import annotations

import itertools
import logging
import multiprocessing
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .base import ConcurrencyBackend, OrderedResults, TileFunction, TileTask
from .exports import install_exports, scoped_exports
from ..core.exceptions import WorkerExecutionError, portable_exception
from ..core.progress import close_progress, update_progress
from ..core.plan import supports_fork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForkedRun:
    tasks: List[TileTask]
    exports: Mapping[str, Any]


# Runs in progress in this process; children inherit the table when forked.
_forked_runs: Dict[int, ForkedRun] = {}
_run_ids = itertools.count()


def _run_inherited_task(run_id: int, index: int) -> Any:
    # Executed in the child.
    run = _forked_runs[run_id]
    install_exports(run.exports)
    try:
        return run.tasks[index].run()
    except Exception as e:
        portable = portable_exception(e)
        if portable is e:
            raise
        raise portable from None


class SharedMemoryPool(ConcurrencyBackend):
    """Greedy fork pool: tiles are handed one at a time to the next free worker.

    With one worker, or on hosts without ``fork``, tiles run sequentially in
    the calling process. Runs may be nested: a tile function can itself
    dispatch tiles.
    """

    name = "shared-memory"

    def map(
        self,
        func: TileFunction,
        tiles: Sequence[Any],
        exports: Optional[Mapping[str, Any]] = None,
    ) -> List[Any]:
        tasks = [TileTask(i, tile, func) for i, tile in enumerate(tiles)]
        if not tasks:
            return []

        exports = dict(exports or {})
        if self.workers == 1:
            return self._run_sequential(tasks, exports)
        if not supports_fork():
            logger.warning("fork is not available on this host; running tiles sequentially on one core")
            return self._run_sequential(tasks, exports)
        return self._run_forked(tasks, exports)

    def _run_sequential(self, tasks: List[TileTask], exports: Mapping[str, Any]) -> List[Any]:
        results = OrderedResults(len(tasks))
        bar = self._progress_bar(len(tasks))
        try:
            with scoped_exports(exports):
                for task in tasks:
                    try:
                        value = task.run()
                    except Exception as e:
                        raise WorkerExecutionError(task.tile, e) from e
                    results.set(task.index, value)
                    update_progress(bar)
        finally:
            close_progress(bar)
        return results.as_list()

    def _run_forked(self, tasks: List[TileTask], exports: Mapping[str, Any]) -> List[Any]:
        run_id = next(_run_ids)
        _forked_runs[run_id] = ForkedRun(tasks, exports)
        try:
            ctx = multiprocessing.get_context("fork")
            with ProcessPoolExecutor(max_workers=self.workers, mp_context=ctx) as pool:
                return self._dispatch_bounded(
                    tasks,
                    submit=lambda task: pool.submit(_run_inherited_task, run_id, task.index),
                    wait_first=lambda pending: wait(pending, return_when=FIRST_COMPLETED).done,
                )
        finally:
            _forked_runs.pop(run_id, None)


__all__ = ["SharedMemoryPool"]
