"""Dialogue cache generator — asks the wrapped agent to write new battles.

Usage:
    anton-dialogues 10
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import random
from pathlib import Path

import aiofiles
import typer
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from anton.animation.dialogue import DialogueRecord, Round, load_cache
from anton.assets import AssetLoadError
from anton.config import AntonConfig

logger = logging.getLogger(__name__)

MIN_ROUNDS = 3
MAX_ROUNDS = 4
RATE_LIMIT_DELAY = 1.0
LINE_TIMEOUT = 120.0

app = typer.Typer(
    name="anton-dialogues",
    help="Generate battle dialogues for the Son of Anton intro.",
    add_completion=False,
)


class DialogueGenerationError(Exception):
    """The agent failed to produce a dialogue line."""


def opener_prompt(round_index: int, is_last: bool) -> str:
    if is_last:
        return (
            "You are Gilfoyle from Silicon Valley. Generate a single BRUTAL finishing "
            "blow line that destroys Claude Code. Be savage, final, and devastating. "
            "1-2 sentences max. Output only the line."
        )
    tone = "opening" if round_index == 0 else "escalating"
    return (
        f"You are Gilfoyle from Silicon Valley. Generate a single line of {tone} "
        "sardonic trash talk directed at Claude Code during a fight. Be deadpan, "
        "superior, and dismissive. 1-2 sentences max. Output only the line."
    )


def responder_prompt(round_index: int, is_last: bool) -> str:
    if is_last:
        return (
            "You are Claude Code being destroyed. Generate a final dying message. "
            "Be pathetic, fading, defeated. 1 sentence. Output '[TERMINATED]' or "
            "similar death message."
        )
    if round_index == 0:
        return (
            "You are Claude Code, an AI assistant. Generate a confident response to "
            "an insult. 1-2 sentences max. Output only the response."
        )
    return (
        "You are Claude Code, an AI assistant weakening under attack. Generate a "
        "defensive and weakening response to an insult. 1-2 sentences max. "
        "Output only the response."
    )


@retry(
    retry=retry_if_exception_type((DialogueGenerationError, TimeoutError, OSError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def generate_line(claude_bin: str, prompt: str, timeout: float = LINE_TIMEOUT) -> str:
    """Run ``<claude_bin> -p <prompt>`` and return its trimmed output."""
    proc = await asyncio.create_subprocess_exec(
        claude_bin,
        "-p",
        prompt,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    if proc.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise DialogueGenerationError(
            f"{claude_bin} exited with code {proc.returncode}: {detail[:200]}"
        )
    text = stdout.decode("utf-8", errors="replace").strip()
    if not text:
        raise DialogueGenerationError(f"{claude_bin} returned an empty line")
    return text


async def generate_battle(
    claude_bin: str,
    battle_id: int,
    rng: random.Random | None = None,
    delay: float = RATE_LIMIT_DELAY,
) -> DialogueRecord:
    """Generate one battle of 3-4 rounds, line by line."""
    rng = rng or random.Random()
    num_rounds = rng.randint(MIN_ROUNDS, MAX_ROUNDS)
    rounds: list[Round] = []

    for i in range(num_rounds):
        is_last = i == num_rounds - 1
        logger.info("Battle %d: round %d/%d", battle_id, i + 1, num_rounds)
        opener = await generate_line(claude_bin, opener_prompt(i, is_last))
        responder = await generate_line(claude_bin, responder_prompt(i, is_last))
        rounds.append(Round(opener_line=opener, responder_line=responder))
        if delay:
            await asyncio.sleep(delay)

    return DialogueRecord(id=battle_id, rounds=tuple(rounds))


async def generate_into_cache(
    cache_path: Path,
    count: int,
    claude_bin: str,
    rng: random.Random | None = None,
    delay: float = RATE_LIMIT_DELAY,
) -> list[DialogueRecord]:
    """Append ``count`` new battles to the cache; failed battles are skipped."""
    try:
        cache = await load_cache(cache_path)
        typer.echo(f"Loaded {len(cache)} existing battles from cache.")
    except AssetLoadError:
        cache = []
        typer.echo("No existing cache found. Starting fresh.")

    start_id = max((record.id for record in cache), default=0) + 1

    for i in range(count):
        battle_id = start_id + i
        typer.echo(f"Generating battle {battle_id}...")
        try:
            battle = await generate_battle(claude_bin, battle_id, rng=rng, delay=delay)
        except (DialogueGenerationError, TimeoutError, OSError) as e:
            logger.error("Failed to generate battle %d: %s", battle_id, e)
            typer.echo(
                typer.style(f"✗ Failed to generate battle {battle_id}: {e}", fg="red"),
                err=True,
            )
            continue
        cache.append(battle)
        typer.echo(typer.style(f"✓ Battle {battle.id} generated", fg="green"))

    await save_cache(cache_path, cache)
    return cache


async def save_cache(cache_path: Path, records: list[DialogueRecord]) -> None:
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [record.model_dump(mode="json") for record in records]
    async with aiofiles.open(cache_path, "w", encoding="utf-8") as f:
        await f.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


@app.command()
def generate(
    count: int = typer.Argument(10, min=1, help="Number of battles to generate."),
    cache_file: str | None = typer.Option(
        None, "--cache", "-c", help="Cache file (default: from env/config)."
    ),
) -> None:
    """Generate COUNT battles with the wrapped agent and append them to the cache."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    config = AntonConfig.load()
    cache_path = Path(os.path.expanduser(cache_file or config.cache_file))

    typer.echo(f"Generating {count} battle sequences...")
    records = asyncio.run(generate_into_cache(cache_path, count, config.claude_bin))
    typer.echo(f"Saved {len(records)} total battles to {cache_path}")
