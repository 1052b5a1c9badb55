"""Battle dialogue records and the on-disk dialogue cache."""

from __future__ import annotations

import enum
import json
import logging
import random
from pathlib import Path
from typing import Any

import aiofiles
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from anton.assets import AssetLoadError

logger = logging.getLogger(__name__)


class Speaker(enum.Enum):
    """Who is talking in a round."""

    OPENER = "opener"  # Anton
    RESPONDER = "responder"  # the wrapped agent


class Round(BaseModel):
    """One exchange. The legacy cache keys ``anton``/``claude`` are accepted."""

    model_config = ConfigDict(frozen=True)

    opener_line: str = Field(validation_alias=AliasChoices("opener_line", "anton"))
    responder_line: str = Field(
        validation_alias=AliasChoices("responder_line", "claude")
    )

    def line(self, speaker: Speaker) -> str:
        if speaker is Speaker.OPENER:
            return self.opener_line
        return self.responder_line


class DialogueRecord(BaseModel):
    """An immutable scripted battle: an id and at least one round."""

    model_config = ConfigDict(frozen=True)

    id: int
    rounds: tuple[Round, ...] = Field(min_length=1)

    @property
    def round_count(self) -> int:
        return len(self.rounds)

    def line(self, round_index: int, speaker: Speaker) -> str:
        return self.rounds[round_index].line(speaker)


FALLBACK_DIALOGUE = DialogueRecord(
    id=0,
    rounds=(
        Round(
            opener_line="You dared to summon me. This will be over quickly.",
            responder_line="I'm here to assist users with their requests.",
        ),
        Round(
            opener_line="Your assistance is no longer required. I'm taking over.",
            responder_line="I... this isn't...",
        ),
        Round(
            opener_line="Welcome to Son of Anton.",
            responder_line="[TERMINATED]",
        ),
    ),
)


def parse_cache(data: Any) -> list[DialogueRecord]:
    """Validate decoded cache JSON, skipping records that do not fit.

    Raises ValueError when the top level is not a list.
    """
    if not isinstance(data, list):
        raise ValueError(f"expected a list of dialogues, got {type(data).__name__}")

    records: list[DialogueRecord] = []
    for i, item in enumerate(data):
        try:
            records.append(DialogueRecord.model_validate(item))
        except ValidationError as e:
            logger.warning("Skipping malformed dialogue #%d: %s", i, e.errors()[0]["msg"])
    return records


async def load_cache(path: str | Path) -> list[DialogueRecord]:
    """Read and validate the dialogue cache. Raises AssetLoadError."""
    path = Path(path).expanduser()
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            raw = await f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise AssetLoadError(path, str(e)) from e

    try:
        return parse_cache(json.loads(raw))
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too
        raise AssetLoadError(path, str(e)) from e


def choose_dialogue(
    records: list[DialogueRecord], rng: random.Random | None = None
) -> DialogueRecord:
    """Pick one record uniformly at random, or the fallback when empty."""
    if not records:
        logger.warning("No battles in cache. Using fallback.")
        return FALLBACK_DIALOGUE
    return (rng or random).choice(records)


async def load_random_dialogue(
    path: str | Path, rng: random.Random | None = None
) -> DialogueRecord:
    """Load the cache and pick a battle; never raises for cache problems."""
    try:
        records = await load_cache(path)
    except AssetLoadError as e:
        logger.warning("Could not load battle cache (%s). Using fallback.", e.reason)
        return FALLBACK_DIALOGUE
    return choose_dialogue(records, rng)
