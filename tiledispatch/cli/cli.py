import importlib
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import click
import pandas as pd
from dotenv import load_dotenv

from tiledispatch import __version__
from tiledispatch.core.config import TileDispatchConfig
from tiledispatch.core.dispatcher import Dispatcher
from tiledispatch.core.exceptions import TileDispatchError
from tiledispatch.core.plan import Platform, resolve_platform, supports_fork
from tiledispatch.core.utils import ResourceUtils
from tiledispatch.io.catalog import Catalog
from tiledispatch.utils.logging import configure_logging

load_dotenv()


def load_callable(spec: str) -> Callable[[Any], Any]:
    """Import ``package.module:function``."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise click.BadParameter("expected 'module:function'", param_hint="--func")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import {module_name!r}: {e}", param_hint="--func")
    func = getattr(module, attr, None)
    if not callable(func):
        raise click.BadParameter(f"{spec!r} is not a callable", param_hint="--func")
    return func


def module_exports(func: Callable[[Any], Any], names: Tuple[str, ...]) -> Dict[str, Any]:
    """Resolve export names as attributes of the function's module."""
    module = importlib.import_module(func.__module__)
    missing = [n for n in names if not hasattr(module, n)]
    if missing:
        raise click.BadParameter(f"not found in {module.__name__}: {', '.join(missing)}", param_hint="--export")
    return {n: getattr(module, n) for n in names}


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version", message="tiledispatch %(version)s")
def cli() -> None:
    """tiledispatch CLI: apply a function to every tile of a catalog."""
    pass


@cli.command()
def info() -> None:
    """Show how tiles would be dispatched on this host."""
    cores = ResourceUtils.host_core_count()
    fork = supports_fork()
    mode = resolve_platform(Platform.AUTO, cores, fork)
    resources = ResourceUtils.get_system_resources()
    click.echo(f"fork available:   {'yes' if fork else 'no'}")
    click.echo(f"logical cores:    {cores}")
    click.echo(f"default mode:     {mode.value}")
    click.echo(f"available memory: {resources.available_memory_gb:.1f} GB")


@cli.command()
@click.argument("folder", type=click.Path(exists=True, file_okay=False))
@click.option("--func", "-f", "func_spec", required=True, help="Tile function as 'module:function'")
@click.option(
    "--platform",
    "-p",
    type=click.Choice(Platform.names()),
    default=None,
    help="Backend (default: from config, else auto)",
)
@click.option("--workers", "-w", type=click.IntRange(min=1), default=None, help="Number of workers (default: all cores)")
@click.option("--combine", "-c", default=None, help="Combine strategy name (default: concat)")
@click.option("--export", "-e", "exports", multiple=True, help="Name in the function's module to ship to isolated workers")
@click.option("--pattern", "patterns", multiple=True, help="Tile file glob (default: *.las, *.laz)")
@click.option("--recursive", is_flag=True, help="Search FOLDER recursively")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="YAML configuration file")
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), help="Write a tabular result as CSV")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def run(
    folder: str,
    func_spec: str,
    platform: Optional[str],
    workers: Optional[int],
    combine: Optional[str],
    exports: Tuple[str, ...],
    patterns: Tuple[str, ...],
    recursive: bool,
    config_path: Optional[str],
    output: Optional[str],
    verbose: bool,
) -> None:
    """Process every tile in FOLDER with the given function.

    Example: tiledispatch run ./tiles --func mymetrics:analyse_tile --workers 4 -o metrics.csv
    """
    try:
        config_obj = TileDispatchConfig.from_yaml(config_path) if config_path else TileDispatchConfig()
    except TileDispatchError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise click.Abort()
    configure_logging(logging.DEBUG if verbose else config_obj.log_level, config_obj.log_file)

    func = load_callable(func_spec)
    export_values = module_exports(func, exports)

    overrides: Dict[str, Any] = {}
    if platform is not None:
        overrides["platform"] = platform
    if workers is not None:
        overrides["workers"] = workers
    if combine is not None:
        overrides["combine"] = combine

    try:
        catalog = Catalog.from_directory(
            folder,
            patterns=patterns or tuple(config_obj.tile_patterns),
            recursive=recursive,
        )
        result = Dispatcher(config_obj).run(catalog, func, exports=export_values, **overrides)
    except TileDispatchError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise click.Abort()

    if output:
        if not isinstance(result, pd.DataFrame):
            click.echo(click.style("Error: --output requires a tabular (DataFrame) result", fg="red"), err=True)
            raise click.Abort()
        out_path = Path(output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        result.to_csv(out_path, index=False)
        click.echo(f"Results saved to: {out_path}")
    else:
        click.echo(result)


if __name__ == "__main__":
    cli()
