import pickle

import pytest
from tiledispatch.core.exceptions import (
    CatalogError,
    ConfigurationError,
    ResourceTeardownError,
    TileDispatchError,
    TileFunctionError,
    WorkerExecutionError,
    portable_exception,
)


@pytest.mark.parametrize(
    "exception_class",
    [ConfigurationError, CatalogError, TileDispatchError],
)
def test_custom_exceptions_can_be_raised(exception_class):
    """
    Verify that custom exceptions can be raised and caught.
    """
    with pytest.raises(exception_class, match="This is a test error"):
        raise exception_class("This is a test error")


def test_error_hierarchy():
    """
    Verify that all custom exceptions inherit from TileDispatchError.
    """
    assert issubclass(ConfigurationError, TileDispatchError)
    assert issubclass(CatalogError, TileDispatchError)
    assert issubclass(WorkerExecutionError, TileDispatchError)
    assert issubclass(ResourceTeardownError, TileDispatchError)


def test_worker_execution_error_names_tile_and_cause():
    cause = ValueError("bad header")
    err = WorkerExecutionError("b.tile", cause)
    assert err.tile == "b.tile"
    assert err.cause is cause
    assert "b.tile" in str(err)
    assert "ValueError: bad header" in str(err)
    assert "after" not in str(err)


def test_worker_execution_error_with_elapsed_updates_message():
    err = WorkerExecutionError("b.tile", RuntimeError("boom")).with_elapsed(12.34)
    assert err.elapsed == 12.34
    assert "after 12.3s" in str(err)


def test_worker_execution_error_pickles():
    err = WorkerExecutionError("b.tile", KeyError("x"), 1.5)
    clone = pickle.loads(pickle.dumps(err))
    assert clone.tile == "b.tile"
    assert isinstance(clone.cause, KeyError)
    assert str(clone) == str(err)


def test_resource_teardown_error_keeps_cause():
    cause = OSError("port busy")
    err = ResourceTeardownError("could not close", cause=cause)
    assert err.cause is cause
    assert str(err) == "could not close"


class _TwoArgError(Exception):
    def __init__(self, path, code):
        super().__init__(f"{path} ({code})")


def test_portable_exception_keeps_picklable_exceptions():
    err = ValueError("bad tile")
    assert portable_exception(err) is err


def test_portable_exception_replaces_unpicklable_ones():
    try:
        raise _TwoArgError("a.las", 3)
    except _TwoArgError as e:
        portable = portable_exception(e)
    assert isinstance(portable, TileFunctionError)
    assert str(portable) == "_TwoArgError: a.las (3)"
    assert "raise _TwoArgError" in portable.traceback_text
    restored = pickle.loads(pickle.dumps(portable))
    assert restored.type_name == "_TwoArgError"
