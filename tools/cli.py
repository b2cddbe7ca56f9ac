#!/usr/bin/env python3
"""
Landmark Residual - Command Line Interface
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from landmark_residual.common.config import ResidualToolConfig, load_tool_config
from landmark_residual.utils.config_loader import CircularIncludeError
from tools.evaluate import run_check_gradients, run_evaluate, run_init_landmark

app = typer.Typer(
    name="landmark-residual",
    help="Landmark residual evaluation CLI",
    add_completion=False,
)
console = Console()
state = {"verbose": False}


def setup_logging(level: str = "WARNING") -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True
    )


def load_config(config: Optional[Path]) -> ResidualToolConfig:
    """
    Load the tool configuration and apply its log level.

    `--verbose` lowers the level to INFO when the file asks for less.
    """
    if config is None:
        return ResidualToolConfig()

    try:
        tool_config = load_tool_config(config)
    except (FileNotFoundError, CircularIncludeError, ValueError) as e:
        console.print(f"[red]✗ Error loading config: {e}[/red]")
        raise typer.Exit(1)

    level = tool_config.log_level
    if state["verbose"] and logging.getLevelName(level) > logging.INFO:
        level = "INFO"
    setup_logging(level)
    return tool_config


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show informational log messages"
    ),
):
    """Evaluate and inspect landmark residuals between trajectory nodes."""
    state["verbose"] = verbose
    setup_logging("INFO" if verbose else "WARNING")


@app.command()
def evaluate(
    snapshot: Path = typer.Argument(
        ...,
        help="Path to landmark problem snapshot JSON file"
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to tool config YAML file"
    ),
    jacobians: bool = typer.Option(
        False,
        "--jacobians", "-j",
        help="Print the Jacobian of every parameter block"
    ),
):
    """Evaluate the residual and cost of a snapshot."""
    exit_code = run_evaluate(snapshot, load_config(config), jacobians)
    if exit_code != 0:
        raise typer.Exit(exit_code)


@app.command("check-gradients")
def check_gradients(
    snapshot: Path = typer.Argument(
        ...,
        help="Path to landmark problem snapshot JSON file"
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to tool config YAML file"
    ),
    step: Optional[float] = typer.Option(
        None,
        "--step", "-s",
        help="Central difference step size (overrides the config)"
    ),
    tolerance: Optional[float] = typer.Option(
        None,
        "--tolerance", "-t",
        help="Relative and absolute tolerance per Jacobian entry (overrides the config)"
    ),
):
    """Compare automatic Jacobians against central differences."""
    exit_code = run_check_gradients(snapshot, load_config(config), step, tolerance)
    if exit_code != 0:
        raise typer.Exit(exit_code)


@app.command("init-landmark")
def init_landmark(
    snapshot: Path = typer.Argument(
        ...,
        help="Path to landmark problem snapshot JSON file"
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output snapshot file (defaults to overwriting the input)"
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Path to tool config YAML file"
    ),
):
    """Seed the landmark estimate from the trajectory and the measurement."""
    output_file = run_init_landmark(snapshot, output, load_config(config))
    if output_file is None:
        raise typer.Exit(1)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
