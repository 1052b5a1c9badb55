"""Readiness detection — when has the wrapped agent finished booting?

Three policies are checked in order and the first to match wins:

1. **pattern** — the separator rule has been drawn and a prompt marker
   follows it;
2. **stable** — the output stopped growing for ``stable_polls`` polls;
3. **timeout** — the ceiling elapsed with neither of the above.

An early false positive is an accepted trade-off; the detector never
raises and never retries once it has fired.
"""

from __future__ import annotations

import asyncio
import enum
import logging

from anton.config import DetectionConfig
from anton.pty.buffer import OutputBuffer, find_prompt_anchor

logger = logging.getLogger(__name__)


class ReadinessReason(enum.Enum):
    """Which policy declared the agent ready."""

    PATTERN = "pattern"
    STABLE = "stable"
    TIMEOUT = "timeout"


class ReadinessDetector:
    """Single-shot readiness state machine over a growing text buffer."""

    def __init__(self, config: DetectionConfig | None = None) -> None:
        self.config = config or DetectionConfig()
        self._reason: ReadinessReason | None = None
        self._last_length: int | None = None
        self._unchanged_polls = 0
        self.elapsed: float | None = None

    @property
    def ready(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> ReadinessReason | None:
        return self._reason

    def matches_pattern(self, text: str) -> bool:
        return (
            find_prompt_anchor(text, self.config.separator, self.config.prompt_marker)
            != -1
        )

    def observe(self, text: str) -> bool:
        """Check a fresh snapshot for the prompt pattern. Called per chunk."""
        if self._reason is None and self.matches_pattern(text):
            self._fire(ReadinessReason.PATTERN)
        return self.ready

    def poll(self, text: str, elapsed: float) -> bool:
        """Periodic check: pattern, then stability, then the timeout ceiling."""
        if self._reason is not None:
            return True
        if self.observe(text):
            self.elapsed = elapsed
            return True

        length = len(text)
        if length > 0 and length == self._last_length:
            self._unchanged_polls += 1
        else:
            self._unchanged_polls = 0
        self._last_length = length

        if self._unchanged_polls >= self.config.stable_polls:
            self._fire(ReadinessReason.STABLE)
        elif elapsed >= self.config.timeout:
            self._fire(ReadinessReason.TIMEOUT)

        if self.ready:
            self.elapsed = elapsed
        return self.ready

    def _fire(self, reason: ReadinessReason) -> None:
        self._reason = reason
        if reason is ReadinessReason.TIMEOUT:
            logger.info(
                "No prompt after %.1fs, continuing anyway", self.config.timeout
            )
        else:
            logger.debug("Agent ready (%s)", reason.value)

    async def wait_ready(self, buffer: OutputBuffer) -> ReadinessReason:
        """Block until one policy fires.

        Wakes on every new chunk and on the poll interval. The last poll is
        aligned to the timeout ceiling so a silent child is released at the
        ceiling, not up to one interval later.
        """
        loop = asyncio.get_running_loop()
        interval = self.config.poll_interval
        start = loop.time()
        deadline = start + self.config.timeout
        next_poll = start + interval

        while True:
            if self.observe(buffer.text):
                self.elapsed = loop.time() - start
                break

            now = loop.time()
            if now >= next_poll or now >= deadline:
                elapsed = now - start
                if now >= deadline:
                    elapsed = max(elapsed, self.config.timeout)
                if self.poll(buffer.text, elapsed):
                    break
                while next_poll <= now:
                    next_poll += interval

            wake_at = min(next_poll, deadline)
            await buffer.wait_for_data(timeout=max(0.0, wake_at - loop.time()))

        assert self._reason is not None
        logger.info(
            "Readiness via %s after %.2fs (%d chars buffered)",
            self._reason.value,
            self.elapsed or 0.0,
            len(buffer),
        )
        return self._reason
