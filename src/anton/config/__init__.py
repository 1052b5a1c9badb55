"""Configuration — Pydantic models for anton settings."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, model_validator

DATA_DIR = Path(__file__).resolve().parent.parent / "data"

# Fixed ceiling bounds for the readiness timeout fallback (seconds)
MIN_DETECTION_TIMEOUT = 3.0
MAX_DETECTION_TIMEOUT = 5.0


class DetectionConfig(BaseModel):
    """Readiness detection settings.

    The wrapped agent draws a horizontal rule right above its input prompt.
    Seeing that rule followed by the prompt marker means the banner is done.
    """

    separator: str = Field(
        default="─" * 8,
        description="Glyph sequence of the rule drawn above the prompt",
    )
    prompt_marker: str = Field(
        default=">", description="Prompt character expected after the separator"
    )
    poll_interval: float = Field(default=0.05, gt=0)
    stable_polls: int = Field(
        default=2,
        ge=1,
        description="Consecutive polls without growth before output counts as stable",
    )
    timeout: float = Field(default=4.0, gt=0)
    allow_short_timeout: bool = Field(
        default=False,
        description="Skip the 3-5s bounds check on timeout (tests and slow machines)",
    )

    @model_validator(mode="after")
    def _check_timeout(self) -> DetectionConfig:
        if not self.allow_short_timeout and not (
            MIN_DETECTION_TIMEOUT <= self.timeout <= MAX_DETECTION_TIMEOUT
        ):
            raise ValueError(
                f"detection timeout must be between {MIN_DETECTION_TIMEOUT} "
                f"and {MAX_DETECTION_TIMEOUT} seconds, got {self.timeout}"
            )
        return self


class AnimationTimings(BaseModel):
    """Delays used by the battle animation, in seconds."""

    opener_char: float = Field(default=0.025, ge=0)
    responder_char: float = Field(default=0.035, ge=0)
    final_responder_char: float = Field(
        default=0.060, ge=0, description="Responder speed in the last round"
    )
    pause: float = Field(default=0.8, ge=0, description="Pause between exchanges")
    reveal_pending: float = Field(default=1.5, ge=0)
    logo_char: float = Field(default=0.005, ge=0)
    logo_hold: float = Field(default=2.0, ge=0)

    @classmethod
    def instant(cls) -> AnimationTimings:
        """All delays zero — every step still runs as its own loop callback."""
        return cls(
            opener_char=0,
            responder_char=0,
            final_responder_char=0,
            pause=0,
            reveal_pending=0,
            logo_char=0,
            logo_hold=0,
        )


class AntonConfig(BaseModel):
    """Top-level anton configuration."""

    claude_bin: str = Field(
        default="claude", description="Executable name or path of the wrapped agent"
    )
    cache_file: str = Field(default=str(DATA_DIR / "dialogues-cache.json"))
    logo_file: str = Field(default=str(DATA_DIR / "ascii-art.txt"))
    personality_file: str = Field(default=str(DATA_DIR / "personality.txt"))
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    animation: AnimationTimings = Field(default_factory=AnimationTimings)
    skip_battle: bool = Field(
        default=False, description="Skip the battle but keep banner replacement"
    )
    rebrand_prompt: bool = Field(
        default=True, description="Patch brand strings in the replayed prompt"
    )
    version_probe_timeout: float = Field(default=5.0, gt=0)
    log_file: str = Field(default="~/.anton/anton.log")
    debug: bool = Field(default=False)

    @classmethod
    def load(cls, config_path: str | None = None) -> AntonConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            CLAUDE_BIN               - Wrapped agent executable (default: claude)
            ANTON_DIALOGUE_CACHE     - Path to the battle dialogue cache
            ANTON_LOGO_FILE          - Path to the logo template
            ANTON_PERSONALITY_FILE   - Path to the personality prompt
            ANTON_DETECTION_TIMEOUT  - Readiness timeout ceiling in seconds
            ANTON_NO_BATTLE          - Skip the battle animation (1/true/yes)
            ANTON_LOG_FILE           - Where log records go
            ANTON_DEBUG              - Enable debug logging (1/true/yes)
        """
        load_dotenv(find_dotenv(usecwd=True), override=False)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        env_map = {
            "CLAUDE_BIN": "claude_bin",
            "ANTON_DIALOGUE_CACHE": "cache_file",
            "ANTON_LOGO_FILE": "logo_file",
            "ANTON_PERSONALITY_FILE": "personality_file",
            "ANTON_LOG_FILE": "log_file",
        }
        for env_var, key in env_map.items():
            value = os.environ.get(env_var)
            if value:
                config_data[key] = value

        env_timeout = os.environ.get("ANTON_DETECTION_TIMEOUT")
        if env_timeout:
            detection = config_data.setdefault("detection", {})
            detection["timeout"] = float(env_timeout)

        if _env_flag("ANTON_NO_BATTLE"):
            config_data["skip_battle"] = True

        if _env_flag("ANTON_DEBUG"):
            config_data["debug"] = True

        return cls.model_validate(config_data)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")
