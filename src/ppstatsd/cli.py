from __future__ import annotations

import sys
from typing import Optional

import typer
from loguru import logger

from ppstats_client import __version__
from ppstats_client.errors import ConfigError
from ppstats_exporter.coordinator.worker import run_workers

from .config import get_settings, load_config

app = typer.Typer(help="PowerScale partitioned performance statistics collector")

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} {name}:{line} {level} {message}"


def setup_logging(logfile: Optional[str], level: str = "INFO", to_stdout: bool = False) -> None:
    """Replace loguru's default stderr handler with the collector's file and stdout sinks."""
    level = level.upper()
    logger.remove()
    if logfile:
        logger.add(logfile, level=level, format=LOG_FORMAT, enqueue=True)
    if to_stdout or not logfile:
        logger.add(sys.stdout, level=level, format=LOG_FORMAT)


@app.command()
def run(
    config_file: Optional[str] = typer.Option(None, "--config-file", help="Path to the TOML config file"),
    logfile: Optional[str] = typer.Option(None, "--logfile", help="Log file, overrides the config file"),
    loglevel: Optional[str] = typer.Option(None, "--loglevel", help="Log level, e.g. DEBUG or INFO"),
):
    """Poll every enabled cluster and export its partitioned performance statistics."""
    env = get_settings()
    path = config_file or env.config_file
    try:
        config = load_config(path)
    except ConfigError as e:
        typer.echo(f"Unable to load config: {e}", err=True)
        raise typer.Exit(code=1)

    g = config.global_
    try:
        setup_logging(
            logfile or env.logfile or g.logfile,
            loglevel or env.log_level,
            env.log_to_stdout or g.log_to_stdout,
        )
    except ValueError as e:
        typer.echo(f"Invalid log setting: {e}", err=True)
        raise typer.Exit(code=1)

    logger.info(f"Starting ppstats collector version {__version__} with config {path}")
    logger.debug(f"Config file version {g.version}")

    try:
        code = run_workers(config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        raise typer.Exit(code=1)
    if code:
        raise typer.Exit(code=code)
    logger.success("All cluster workers have exited")


@app.command()
def version():
    """Print the collector version."""
    typer.echo(__version__)


if __name__ == "__main__":
    app()
