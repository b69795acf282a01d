"""
Pytest configuration and fixtures for tiledispatch tests.

Provides tile lists, a temporary catalog folder and a fake Dask session so the
isolated-process backend can be exercised without starting worker processes.

Markers:
- @pytest.mark.integration: starts a real local Dask cluster (slower).
"""

from concurrent.futures import Future
from pathlib import Path
from typing import Any, Dict, List

import pytest

from tiledispatch.backends.exports import clear_exports
from tiledispatch.core.config import config_manager
from tiledispatch.core.exceptions import ResourceTeardownError
from tiledispatch.utils.logging import configure_logging



def pytest_configure(config):
    config.addinivalue_line("markers", "integration: starts a real local Dask cluster")


@pytest.fixture(autouse=True)
def _reset_state():
    """Each test starts from the default configuration and no exports."""
    config_manager.reset()
    clear_exports()
    yield
    config_manager.reset()
    clear_exports()
    # CLI runs rebind the stream handler to a temporary stdout.
    configure_logging()


@pytest.fixture
def tiles() -> List[str]:
    return ["a.tile", "b.tile", "c.tile"]


@pytest.fixture
def catalog_dir(tmp_path: Path) -> Path:
    """Folder with three (empty) LAS/LAZ tiles and one unrelated file."""
    for name in ("tile_02.las", "tile_01.laz", "tile_03.las"):
        (tmp_path / name).write_bytes(b"")
    (tmp_path / "notes.txt").write_text("not a tile")
    return tmp_path


class FakeSession:
    """Stands in for DaskSession: runs tiles inline and counts worker contexts."""

    def __init__(self, workers: int, memory_limit=None, fail_on_close: bool = False):
        self.workers = workers
        self.memory_limit = memory_limit
        self.fail_on_close = fail_on_close
        self.contexts_started = 0
        self.contexts_released = 0
        self.func = None
        self.exports: Dict[str, Any] = {}
        self.submitted: List[Any] = []
        self.max_in_flight = 0

    def start(self) -> None:
        self.contexts_started += self.workers

    def install(self, func, exports) -> None:
        self.func = func
        self.exports = dict(exports)

    def submit(self, tile: Any) -> Future:
        self.submitted.append(tile)
        future: Future = Future()
        try:
            future.set_result(self.func(tile))
        except Exception as e:
            future.set_exception(e)
        return future

    def wait_first(self, futures):
        pending = list(futures)
        self.max_in_flight = max(self.max_in_flight, len(pending))
        return [f for f in pending if f.done()]

    def close(self) -> None:
        self.contexts_released += self.contexts_started
        if self.fail_on_close:
            raise ResourceTeardownError("simulated teardown failure")


@pytest.fixture
def fake_sessions():
    """Factory for FakeSession; every created session is kept in ``factory.sessions``."""

    def factory(workers, memory_limit=None):
        session = FakeSession(workers, memory_limit, fail_on_close=factory.fail_on_close)
        factory.sessions.append(session)
        return session

    factory.sessions = []
    factory.fail_on_close = False
    return factory
