"""Common interface of the concurrency backends."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..core.exceptions import WorkerExecutionError
from ..core.progress import close_progress, get_progress_reporter, update_progress

logger = logging.getLogger(__name__)

TileFunction = Callable[[Any], Any]


@dataclass(frozen=True)
class TileTask:
    """One tile identifier bound to the user function."""
    index: int
    tile: Any
    func: TileFunction

    def run(self) -> Any:
        return self.func(self.tile)


class OrderedResults:
    """Collects per-tile results by input position.

    Completion order is arbitrary; :meth:`as_list` returns them in tile order
    once every position has been filled exactly once.
    """

    def __init__(self, n_tiles: int):
        self.n_tiles = n_tiles
        self._values: Dict[int, Any] = {}
        self.failure: Optional[WorkerExecutionError] = None

    def set(self, index: int, value: Any) -> None:
        if index in self._values:
            raise RuntimeError(f"Tile #{index} produced more than one result")
        self._values[index] = value

    def fail(self, error: WorkerExecutionError) -> None:
        # Only the first failure is reported.
        if self.failure is None:
            self.failure = error
        else:
            logger.error(f"Additional tile failure ignored: {error}")

    @property
    def failed(self) -> bool:
        return self.failure is not None

    def __len__(self) -> int:
        return len(self._values)

    def as_list(self) -> List[Any]:
        if self.failure is not None:
            raise self.failure
        if len(self._values) != self.n_tiles:
            raise RuntimeError(f"Expected {self.n_tiles} results, got {len(self._values)}")
        return [self._values[i] for i in range(self.n_tiles)]


class ConcurrencyBackend(ABC):
    """Executes a tile function once per tile with at most ``workers`` tiles in flight.

    Implementations must:

    - process every tile exactly once and return results in input order;
    - stop dispatching new tiles once a tile has failed, let in-flight tiles
      finish, then raise :class:`WorkerExecutionError` for the first failure;
    - release every worker context they allocated, on every exit path.
    """

    name: str = "backend"

    def __init__(self, workers: int, progress: bool = True):
        self.workers = workers
        self.progress = progress

    @abstractmethod
    def map(
        self,
        func: TileFunction,
        tiles: Sequence[Any],
        exports: Optional[Mapping[str, Any]] = None,
    ) -> List[Any]:
        """Apply ``func`` to every tile and return the ordered results."""

    def _dispatch_bounded(
        self,
        tasks: List[TileTask],
        submit: Callable[[TileTask], Any],
        wait_first: Callable[[Any], Iterable[Any]],
    ) -> List[Any]:
        """Greedy dispatch loop shared by the pool backends.

        Keeps at most ``workers`` futures outstanding and refills the window as
        each one completes. ``submit`` turns a task into a future, ``wait_first``
        blocks until at least one of the pending futures is done and returns
        the completed ones.
        """
        results = OrderedResults(len(tasks))
        pending: Dict[Any, TileTask] = {}
        next_task = 0
        bar = self._progress_bar(len(tasks))
        try:
            while True:
                # No new tiles once a failure is recorded; in-flight ones drain.
                while not results.failed and next_task < len(tasks) and len(pending) < self.workers:
                    task = tasks[next_task]
                    pending[submit(task)] = task
                    next_task += 1
                if not pending:
                    break
                for future in wait_first(pending):
                    task = pending.pop(future)
                    try:
                        value = future.result()
                    except Exception as e:
                        logger.error(f"Tile {task.tile!r} failed: {e}")
                        results.fail(WorkerExecutionError(task.tile, e))
                    else:
                        results.set(task.index, value)
                        update_progress(bar)
        finally:
            close_progress(bar)

        if results.failed:
            raise results.failure from results.failure.cause
        return results.as_list()

    def _progress_bar(self, total: int):
        return get_progress_reporter(total=total, desc=f"Processing tiles ({self.name})", enabled=self.progress)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(workers={self.workers})"


__all__ = ["TileFunction", "TileTask", "OrderedResults", "ConcurrencyBackend"]
