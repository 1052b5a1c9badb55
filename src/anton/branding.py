"""Branded banner — logo template plus the wrapped agent's version and model."""

from __future__ import annotations

import asyncio
import logging

from rich.console import Console
from rich.text import Text

from anton.assets import VERSION_PLACEHOLDER

logger = logging.getLogger(__name__)

# Inner width of the box drawn in ascii-art.txt
BOX_INNER_WIDTH = 60

LOADING_TEXT = "Loading..."
UNKNOWN_VERSION = "Unknown"
UNKNOWN_MODEL = "Unknown Model"
MODEL_PROMPT = "output only your exact model ID, nothing else"

BANNER_STYLE = "cyan"


class VersionProbeError(Exception):
    """Querying the wrapped agent for its version or model failed."""


def format_banner(template: str, text: str, width: int = BOX_INNER_WIDTH) -> str:
    """Substitute ``text`` into the template's version slot.

    Centred inside the logo box when it fits, inserted verbatim otherwise.
    """
    if len(text) <= width:
        total = width - len(text)
        left = total // 2
        text = " " * left + text + " " * (total - left)
    return template.replace(VERSION_PLACEHOLDER, text, 1)


def loading_banner(template: str) -> str:
    return format_banner(template, LOADING_TEXT)


async def _run_probe(argv: list[str], timeout: float, use_stderr: bool) -> str:
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise VersionProbeError(f"{argv[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise VersionProbeError(f"{' '.join(argv)} timed out after {timeout}s") from e

    output = stdout.decode("utf-8", errors="replace").strip()
    if not output and use_stderr:
        output = stderr.decode("utf-8", errors="replace").strip()
    if not output:
        raise VersionProbeError(f"{' '.join(argv)} produced no output")
    return output


async def probe_version(claude_bin: str, timeout: float = 5.0) -> str:
    """Return the first line of ``<claude_bin> --version``."""
    output = await _run_probe([claude_bin, "--version"], timeout, use_stderr=True)
    return output.splitlines()[0]


async def probe_model(claude_bin: str, timeout: float = 5.0) -> str:
    """Ask the agent for its model ID in print mode."""
    output = await _run_probe([claude_bin, "-p", MODEL_PROMPT], timeout, use_stderr=False)
    return output.splitlines()[-1]


async def probe_banner_text(claude_bin: str, timeout: float = 5.0) -> str:
    """Build ``"<version> (<model>)"``, substituting placeholders on failure.

    Both probes run concurrently and never raise.
    """
    version_result, model_result = await asyncio.gather(
        probe_version(claude_bin, timeout),
        probe_model(claude_bin, timeout),
        return_exceptions=True,
    )

    version = UNKNOWN_VERSION
    if isinstance(version_result, VersionProbeError):
        logger.warning("Version probe failed: %s", version_result)
    elif isinstance(version_result, BaseException):
        raise version_result
    else:
        version = version_result

    model = UNKNOWN_MODEL
    if isinstance(model_result, VersionProbeError):
        logger.warning("Model probe failed: %s", model_result)
    elif isinstance(model_result, BaseException):
        raise model_result
    else:
        model = model_result

    return f"{version} ({model})"


async def probe_version_text(claude_bin: str, timeout: float = 5.0) -> str:
    """Version only, for the quick ``--version``/``--help`` banners."""
    try:
        return await probe_version(claude_bin, timeout)
    except VersionProbeError as e:
        logger.warning("Version probe failed: %s", e)
        return UNKNOWN_VERSION


def print_banner(console: Console, banner: str) -> None:
    console.print(Text(banner, style=BANNER_STYLE), highlight=False)
