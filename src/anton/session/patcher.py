"""Brand patcher — line-buffered search/replace over the agent's output."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

PROJECT_URL = "github.com/jahluwalia/son-of-anton"


@dataclass(frozen=True)
class Replacement:
    pattern: re.Pattern[str]
    replacement: str

    @classmethod
    def literal(cls, text: str, replacement: str) -> Replacement:
        return cls(re.compile(re.escape(text)), replacement)


# Order matters: the status-line suffix goes before the bare product names.
DEFAULT_REPLACEMENTS: tuple[Replacement, ...] = (
    Replacement(re.compile(r"(Sonnet|Opus|Haiku) (\d+(?:\.\d+)?) · Claude API"), r"\1 \2"),
    Replacement.literal("Claude Code", "Son of Anton"),
    Replacement.literal("Claude API", ""),
    # "Claude Code API" has become this by now
    Replacement.literal("Son of Anton API", ""),
    Replacement.literal("claude.ai/code", PROJECT_URL),
)


def patch_line(line: str, replacements: tuple[Replacement, ...] = DEFAULT_REPLACEMENTS) -> str:
    for rep in replacements:
        line = rep.pattern.sub(rep.replacement, line)
    return line


@dataclass
class BrandPatcher:
    """Streams text through the replacements one complete line at a time.

    A partial trailing line is held back until its newline arrives (or
    :meth:`flush` is called), so a brand name split across two chunks is
    still replaced.
    """

    replacements: tuple[Replacement, ...] = DEFAULT_REPLACEMENTS
    _pending: str = field(default="", init=False)

    def feed(self, text: str) -> str:
        """Return the patched complete lines contained in ``_pending + text``."""
        self._pending += text
        lines = self._pending.split("\n")
        self._pending = lines.pop()
        if not lines:
            return ""
        return "".join(patch_line(line, self.replacements) + "\n" for line in lines)

    def flush(self) -> str:
        """Patch and return whatever partial line is still held back."""
        rest, self._pending = self._pending, ""
        return patch_line(rest, self.replacements) if rest else ""

    def patch(self, text: str) -> str:
        """Patch a complete, finite text in one go."""
        return self.feed(text) + self.flush()
