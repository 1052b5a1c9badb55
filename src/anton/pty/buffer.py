"""Output buffer for the wrapped agent's startup output."""

from __future__ import annotations

import asyncio
import codecs


def find_prompt_anchor(text: str, separator: str, marker: str) -> int:
    """Index of the separator drawn right above the first prompt marker.

    The agent draws its welcome box with the same rule glyph, so the first
    separator in the output is not necessarily the prompt's. The anchor is
    the last separator that ends before the first marker following any
    separator. Returns -1 until such a marker has been seen.
    """
    first = text.find(separator)
    if first == -1:
        return -1
    marker_at = text.find(marker, first + len(separator))
    if marker_at == -1:
        return -1
    return text.rfind(separator, 0, marker_at)


class OutputBuffer:
    """Accumulates PTY output while the real terminal is not showing it.

    Stores output in two parallel tracks:

    * **raw** — the exact bytes received, suitable for replay.
    * **text** — the same output decoded incrementally as UTF-8, so a
      multi-byte character split across two chunks decodes correctly once
      the second chunk arrives.

    ``flushed`` is a high-water mark of raw bytes already written to the
    real terminal; only a live-banner relay advances it.

    An ``asyncio.Event`` is set whenever new data arrives, allowing the
    readiness detector to ``await`` instead of only polling.
    """

    def __init__(self) -> None:
        self._raw = bytearray()
        self._text = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")("replace")
        self._data_event = asyncio.Event()
        self.flushed = 0
        self.prompt_tail: str | None = None

    def append(self, data: bytes) -> None:
        """Append one chunk, in arrival order."""
        self._raw.extend(data)
        self._text += self._decoder.decode(data)
        self._data_event.set()

    @property
    def raw(self) -> bytes:
        return bytes(self._raw)

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)

    def unflushed(self) -> bytes:
        """Raw bytes not yet written to the real terminal."""
        return bytes(self._raw[self.flushed :])

    def mark_flushed(self, count: int | None = None) -> None:
        """Advance the high-water mark by ``count`` bytes (default: all)."""
        if count is None:
            self.flushed = len(self._raw)
        else:
            self.flushed = min(self.flushed + count, len(self._raw))

    async def wait_for_data(self, timeout: float | None = None) -> bool:
        """Wait until new data is appended (or timeout).

        Returns True if data arrived, False on timeout.
        Resets the event so the next call blocks again.
        """
        try:
            await asyncio.wait_for(self._data_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        self._data_event.clear()
        return True

    def find_prompt_tail(self, separator: str, marker: str = ">") -> str | None:
        """Text from the start of the line holding the prompt's separator onward.

        The separator is located with :func:`find_prompt_anchor`. Without a
        marker yet (readiness by stability or timeout), the last separator
        drawn is used instead. Returns None when no separator has been seen.
        """
        index = find_prompt_anchor(self._text, separator, marker)
        if index == -1:
            index = self._text.rfind(separator)
        if index == -1:
            return None
        line_start = self._text.rfind("\n", 0, index) + 1
        return self._text[line_start:]

    def capture_prompt_tail(self, separator: str, marker: str = ">") -> str | None:
        """Store and return :meth:`find_prompt_tail` for later replay."""
        self.prompt_tail = self.find_prompt_tail(separator, marker)
        return self.prompt_tail

    def clear(self) -> None:
        """Drop everything, including the captured tail."""
        self._raw.clear()
        self._text = ""
        self._decoder.reset()
        self._data_event.clear()
        self.flushed = 0
        self.prompt_tail = None
