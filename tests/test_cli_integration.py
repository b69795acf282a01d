"""CLI integration tests using click's CliRunner."""

import textwrap

import pandas as pd
import pytest
import yaml
from click.testing import CliRunner

from tiledispatch.cli.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def tile_module(tmp_path, monkeypatch):
    """Importable module ``tilefuncs`` with tile functions for the CLI."""
    src = tmp_path / "src"
    src.mkdir()
    (src / "tilefuncs.py").write_text(textwrap.dedent(
        """
        import pandas as pd
        from pathlib import Path
        from tiledispatch.backends.exports import get_export

        SCALE = 10

        def stem(path):
            return Path(path).stem

        def metrics(path):
            return pd.DataFrame({"tile": [Path(path).name], "value": [get_export("SCALE")]})

        def broken(path):
            raise ValueError("cannot read " + Path(path).name)
        """
    ))
    monkeypatch.syspath_prepend(str(src))
    return "tilefuncs"


def test_info(runner):
    result = runner.invoke(cli, ["info"])
    assert result.exit_code == 0
    assert "fork available" in result.output
    assert "default mode" in result.output


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "tiledispatch" in result.output


def test_run_echoes_result(runner, catalog_dir, tile_module):
    result = runner.invoke(cli, ["run", str(catalog_dir), "--func", f"{tile_module}:stem", "--workers", "1"])
    assert result.exit_code == 0, result.output
    assert "['tile_01', 'tile_02', 'tile_03']" in result.output


def test_run_writes_csv_with_exports(runner, catalog_dir, tile_module, tmp_path):
    out = tmp_path / "out" / "metrics.csv"
    result = runner.invoke(cli, [
        "run", str(catalog_dir),
        "--func", f"{tile_module}:metrics",
        "--workers", "1",
        "--export", "SCALE",
        "--output", str(out),
    ])
    assert result.exit_code == 0, result.output
    df = pd.read_csv(out)
    assert list(df["tile"]) == ["tile_01.laz", "tile_02.las", "tile_03.las"]
    assert list(df["value"]) == [10, 10, 10]


def test_run_reports_failing_tile(runner, catalog_dir, tile_module):
    result = runner.invoke(cli, ["run", str(catalog_dir), "--func", f"{tile_module}:broken", "--workers", "1"])
    assert result.exit_code == 1
    assert "tile_01.laz" in result.output


def test_run_unknown_export(runner, catalog_dir, tile_module):
    result = runner.invoke(cli, ["run", str(catalog_dir), "--func", f"{tile_module}:stem", "--export", "NOPE"])
    assert result.exit_code == 2
    assert "NOPE" in result.output


def test_run_bad_func_spec(runner, catalog_dir):
    result = runner.invoke(cli, ["run", str(catalog_dir), "--func", "no_colon_here"])
    assert result.exit_code == 2


def test_run_unknown_combine(runner, catalog_dir, tile_module):
    result = runner.invoke(cli, ["run", str(catalog_dir), "--func", f"{tile_module}:stem", "--combine", "nope"])
    assert result.exit_code == 1
    assert "Unknown combine strategy" in result.output


def test_run_output_requires_dataframe(runner, catalog_dir, tile_module, tmp_path):
    result = runner.invoke(cli, [
        "run", str(catalog_dir), "--func", f"{tile_module}:stem", "--workers", "1", "-o", str(tmp_path / "x.csv"),
    ])
    assert result.exit_code == 1


def test_run_uses_config_file(runner, catalog_dir, tile_module, tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text(yaml.safe_dump({"parallel": {"workers": 1, "combine": "list", "progress": False}, "log_level": "WARNING"}))
    result = runner.invoke(cli, ["run", str(catalog_dir), "--func", f"{tile_module}:stem", "--config", str(cfg)])
    assert result.exit_code == 0, result.output
    assert "tile_02" in result.output
