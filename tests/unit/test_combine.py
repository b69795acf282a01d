"""Unit tests for tiledispatch.core.combine."""

import numpy as np
import pandas as pd
import pytest
import xarray as xr

from tiledispatch.core.combine import (
    ReductionStrategy,
    available_strategies,
    combine,
    register_strategy,
    resolve_strategy,
)
from tiledispatch.core.exceptions import ConfigurationError


class TestConcat:
    def test_scalars_in_tile_order(self):
        assert combine([6, 6, 6]) == [6, 6, 6]
        assert combine([3, 1, 2], "concat") == [3, 1, 2]

    def test_empty_is_empty_list(self):
        assert combine([]) == []

    def test_dataframes_are_row_bound(self):
        a = pd.DataFrame({"x": [1, 2], "z": [10.0, 11.0]})
        b = pd.DataFrame({"x": [3], "z": [12.0]})
        out = combine([a, b], "concat")
        assert list(out["x"]) == [1, 2, 3]
        assert list(out.index) == [0, 1, 2]

    def test_arrays_are_concatenated(self):
        out = combine([np.array([[1, 2]]), np.array([[3, 4], [5, 6]])])
        np.testing.assert_array_equal(out, np.array([[1, 2], [3, 4], [5, 6]]))

    def test_zero_dim_arrays_are_stacked(self):
        out = combine([np.array(1.5), np.array(2.5)])
        np.testing.assert_array_equal(out, np.array([1.5, 2.5]))

    def test_lists_are_flattened(self):
        assert combine([[1, 2], (3,), []]) == [1, 2, 3]

    def test_mixed_list_and_scalar_raises(self):
        with pytest.raises(TypeError):
            combine([[1], 2])

    def test_rbind_alias(self):
        assert resolve_strategy("rbind").reduce is resolve_strategy("concat").reduce


class TestOtherStrategies:
    def test_cbind_dataframes(self):
        a = pd.DataFrame({"a": [1, 2]})
        b = pd.DataFrame({"b": [3, 4]})
        out = combine([a, b], "cbind")
        assert list(out.columns) == ["a", "b"]

    def test_cbind_arrays(self):
        out = combine([np.array([1, 2]), np.array([3, 4])], "cbind")
        np.testing.assert_array_equal(out, np.array([[1, 3], [2, 4]]))

    def test_list_keeps_results(self):
        results = [{"n": 1}, None, "x"]
        assert combine(results, "list") == results

    def test_sum_and_neutral(self):
        assert combine([1, 2, 3], "sum") == 6
        assert combine([], "sum") == 0

    def test_mosaic_combines_by_coords(self):
        left = xr.DataArray([[1.0, 2.0]], coords={"y": [0], "x": [0, 1]}, dims=("y", "x"), name="z")
        right = xr.DataArray([[3.0, 4.0]], coords={"y": [0], "x": [2, 3]}, dims=("y", "x"), name="z")
        out = combine([right, left], "mosaic")
        assert list(out["x"].values) == [0, 1, 2, 3]

    def test_mosaic_empty(self):
        out = combine([], "mosaic")
        assert isinstance(out, xr.Dataset)
        assert len(out.data_vars) == 0


class TestResolution:
    def test_unknown_name_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Unknown combine strategy 'nope'"):
            resolve_strategy("nope")

    def test_none_means_concat(self):
        assert resolve_strategy(None).name == "concat"

    def test_callable_becomes_custom_strategy(self):
        def largest(results):
            return max(results, default=None)

        strategy = resolve_strategy(largest)
        assert strategy.name == "largest"
        assert strategy([3, 9, 1]) == 9
        assert strategy([]) is None

    def test_strategy_instance_passes_through(self):
        strategy = ReductionStrategy("first", lambda r: r[0] if r else None)
        assert resolve_strategy(strategy) is strategy

    def test_register_strategy_by_name(self):
        register_strategy("count", len)
        assert "count" in available_strategies()
        assert combine(["a", "b"], "count") == 2

    def test_register_rejects_non_callable(self):
        with pytest.raises(ConfigurationError):
            register_strategy("broken", 42)

    def test_invalid_spec_type(self):
        with pytest.raises(ConfigurationError):
            resolve_strategy(3.14)
