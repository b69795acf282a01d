import pickle
import traceback
from typing import Any, Optional


class TileDispatchError(Exception):
    "Base exception for all application-specific errors."
    pass


class ConfigurationError(TileDispatchError):
    pass


class CatalogError(TileDispatchError):
    pass


class WorkerExecutionError(TileDispatchError):
    """A user function raised while processing one tile.

    The whole run fails; results of the other tiles are discarded.
    """

    def __init__(self, tile: Any, cause: BaseException, elapsed: Optional[float] = None):
        self.tile = tile
        self.cause = cause
        self.elapsed = elapsed
        super().__init__(self._format())

    def _format(self) -> str:
        msg = f"Processing of tile {self.tile!r} failed: {type(self.cause).__name__}: {self.cause}"
        if self.elapsed is not None:
            msg += f" (after {self.elapsed:.1f}s)"
        return msg

    def with_elapsed(self, elapsed: float) -> "WorkerExecutionError":
        self.elapsed = elapsed
        self.args = (self._format(),)
        return self

    def __reduce__(self):
        return (type(self), (self.tile, self.cause, self.elapsed))


class ResourceTeardownError(TileDispatchError):
    """Worker contexts could not be released after a run."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class TileFunctionError(Exception):
    """Stand-in for a tile exception that cannot cross a process boundary.

    Carries the original exception type name, its message and the formatted
    traceback from the worker.
    """

    def __init__(self, type_name: str, message: str, traceback_text: str = ""):
        self.type_name = type_name
        self.message = message
        self.traceback_text = traceback_text
        super().__init__(f"{type_name}: {message}")

    def __reduce__(self):
        return (type(self), (self.type_name, self.message, self.traceback_text))


def portable_exception(exc: BaseException) -> BaseException:
    """Return ``exc`` if it survives a pickle round trip, else a TileFunctionError."""
    try:
        pickle.loads(pickle.dumps(exc))
    except Exception:
        return TileFunctionError(
            type(exc).__name__,
            str(exc),
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )
    return exc
