"""CLI entry point for anton."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import typer

from anton import __version__
from anton.config import AntonConfig
from anton.pty.proxy import LaunchError, resolve_executable
from anton.pty.terminal import RealTerminal
from anton.session.orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)

VERSION_FLAGS = ("--version", "-v")
HELP_FLAGS = ("--help", "-h")
CONFIG_ENV = "ANTON_CONFIG"

app = typer.Typer(
    name="anton",
    help="Son of Anton: the wrapped coding agent, with a better entrance.",
    add_completion=False,
)


def setup_logging(config: AntonConfig) -> None:
    """Log to a file; the terminal belongs to the wrapped agent."""
    log_path = Path(os.path.expanduser(config.log_file))
    log_path.parent.mkdir(parents=True, exist_ok=True)
    level = logging.DEBUG if config.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        filename=str(log_path),
    )


def _error(message: str) -> None:
    typer.echo(typer.style(message, fg="red"), err=True)


@app.command(
    context_settings={
        "allow_extra_args": True,
        "ignore_unknown_options": True,
        "help_option_names": [],
    }
)
def main(
    ctx: typer.Context,
    no_battle: bool = typer.Option(
        False, "--no-battle", help="Skip the battle animation, keep the banner."
    ),
) -> None:
    """Run the wrapped agent. Every other argument is passed to it unchanged."""
    args = list(ctx.args)
    config = AntonConfig.load(os.environ.get(CONFIG_ENV))
    if no_battle:
        config.skip_battle = True
    try:
        setup_logging(config)
    except OSError as e:
        _error(f"Cannot open log file {config.log_file}: {e}")
        raise typer.Exit(1)

    logger.info("anton %s starting: args=%s", __version__, args)

    try:
        config.claude_bin = resolve_executable(config.claude_bin)
    except LaunchError as e:
        logger.error("%s", e)
        _error(f"Error: {e}")
        _error("Set CLAUDE_BIN to the agent executable if it is not on PATH.")
        raise typer.Exit(1)

    orchestrator = SessionOrchestrator(config, RealTerminal())

    try:
        if any(arg in VERSION_FLAGS for arg in args):
            asyncio.run(orchestrator.show_version_banner())
            code = 0
        elif any(arg in HELP_FLAGS for arg in args):
            code = asyncio.run(orchestrator.run_direct(args))
        else:
            code = asyncio.run(orchestrator.run(args))
    except LaunchError as e:
        logger.error("%s", e)
        _error(f"Error: {e}")
        raise typer.Exit(1)
    except Exception as e:
        logger.exception("Session failed")
        _error(f"Error: {e}")
        raise typer.Exit(1)

    logger.info("anton exiting with code %d", code)
    raise typer.Exit(code)
