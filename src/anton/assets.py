"""Static text assets — logo template and personality prompt."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

VERSION_PLACEHOLDER = "{VERSION}"

FALLBACK_LOGO = f"=== SON OF ANTON ===\n{VERSION_PLACEHOLDER}"
FALLBACK_PERSONALITY = (
    "You are Son of Anton. Be terse, deadpan and correct. Never apologize."
)


class AssetLoadError(Exception):
    """A bundled or user-supplied asset could not be read."""

    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Could not load asset {self.path}: {reason}")


def _read_text(path: str | Path) -> str:
    try:
        return Path(path).expanduser().read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise AssetLoadError(path, str(e)) from e


def load_logo_template(path: str | Path) -> str:
    """Read the logo template. It must contain exactly one ``{VERSION}`` slot."""
    text = _read_text(path).rstrip("\n")
    count = text.count(VERSION_PLACEHOLDER)
    if count != 1:
        raise AssetLoadError(
            path, f"expected one {VERSION_PLACEHOLDER} placeholder, found {count}"
        )
    return text


def load_personality(path: str | Path) -> str:
    text = _read_text(path).strip()
    if not text:
        raise AssetLoadError(path, "file is empty")
    return text


def load_logo_template_or_default(path: str | Path) -> str:
    try:
        return load_logo_template(path)
    except AssetLoadError as e:
        logger.warning("%s; using built-in logo", e)
        return FALLBACK_LOGO


def load_personality_or_default(path: str | Path) -> str:
    try:
        return load_personality(path)
    except AssetLoadError as e:
        logger.warning("%s; using built-in personality", e)
        return FALLBACK_PERSONALITY
