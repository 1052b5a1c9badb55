"""Tests for anton.pty.buffer.OutputBuffer."""

from __future__ import annotations

import asyncio

from anton.pty.buffer import OutputBuffer

SEP = "─" * 8

BOOT_OUTPUT = (
    "Welcome to the agent\r\n"
    "  cwd: /home/user/project\r\n"
    "\r\n"
    f"{SEP}{SEP}\r\n"
    "> Try \"write a test\"\r\n"
    f"{SEP}{SEP}\r\n"
    "  ? for shortcuts\r\n"
)

BOXED_BOOT_OUTPUT = (
    "╭" + "─" * 48 + "╮\r\n"
    "│ ✻ Welcome to Claude Code!" + " " * 21 + "│\r\n"
    "│   cwd: /home/user/project" + " " * 21 + "│\r\n"
    "╰" + "─" * 48 + "╯\r\n"
    "\r\n"
    + "─" * 60 + "\r\n"
    "> \r\n"
    + "─" * 60 + "\r\n"
)


def _chunks(data: bytes, splits: list[int]) -> list[bytes]:
    out: list[bytes] = []
    start = 0
    for end in splits:
        out.append(data[start:end])
        start = end
    out.append(data[start:])
    return out


# ---------------------------------------------------------------------------
# Accumulation
# ---------------------------------------------------------------------------


class TestOutputBufferBasics:
    def test_empty(self) -> None:
        buf = OutputBuffer()
        assert buf.raw == b""
        assert buf.text == ""
        assert len(buf) == 0
        assert buf.prompt_tail is None

    def test_append_keeps_order(self) -> None:
        buf = OutputBuffer()
        buf.append(b"one ")
        buf.append(b"two ")
        buf.append(b"three")
        assert buf.raw == b"one two three"
        assert buf.text == "one two three"

    def test_utf8_split_across_chunks(self) -> None:
        encoded = SEP.encode("utf-8")
        buf = OutputBuffer()
        # Split in the middle of the first box-drawing character
        buf.append(encoded[:1])
        assert buf.text == ""
        buf.append(encoded[1:])
        assert buf.text == SEP

    def test_invalid_bytes_are_replaced(self) -> None:
        buf = OutputBuffer()
        buf.append(b"ok \xff done")
        assert "�" in buf.text
        assert buf.raw == b"ok \xff done"

    def test_clear_resets_everything(self) -> None:
        buf = OutputBuffer()
        buf.append(BOOT_OUTPUT.encode())
        buf.capture_prompt_tail(SEP)
        buf.mark_flushed()
        buf.clear()
        assert buf.raw == b""
        assert buf.text == ""
        assert buf.flushed == 0
        assert buf.prompt_tail is None


# ---------------------------------------------------------------------------
# Flushed high-water mark
# ---------------------------------------------------------------------------


class TestOutputBufferFlushed:
    def test_unflushed_is_everything_initially(self) -> None:
        buf = OutputBuffer()
        buf.append(b"abc")
        assert buf.unflushed() == b"abc"

    def test_mark_flushed_all(self) -> None:
        buf = OutputBuffer()
        buf.append(b"abc")
        buf.mark_flushed()
        assert buf.unflushed() == b""
        buf.append(b"def")
        assert buf.unflushed() == b"def"

    def test_mark_flushed_partial(self) -> None:
        buf = OutputBuffer()
        buf.append(b"abcdef")
        buf.mark_flushed(2)
        assert buf.unflushed() == b"cdef"
        buf.mark_flushed(100)
        assert buf.flushed == 6


# ---------------------------------------------------------------------------
# Prompt tail
# ---------------------------------------------------------------------------


class TestPromptTail:
    def test_no_separator(self) -> None:
        buf = OutputBuffer()
        buf.append(b"just a banner\r\n")
        assert buf.find_prompt_tail(SEP) is None
        assert buf.capture_prompt_tail(SEP) is None

    def test_tail_starts_at_separator_line(self) -> None:
        buf = OutputBuffer()
        buf.append(BOOT_OUTPUT.encode())
        tail = buf.capture_prompt_tail(SEP)
        assert tail is not None
        assert tail.startswith(SEP)
        assert "Welcome" not in tail
        assert "> Try" in tail
        assert buf.prompt_tail == tail

    def test_tail_includes_line_prefix(self) -> None:
        buf = OutputBuffer()
        buf.append(f"banner\n\x1b[2m{SEP}\x1b[0m\n> ".encode())
        assert buf.find_prompt_tail(SEP) == f"\x1b[2m{SEP}\x1b[0m\n> "

    def test_separator_on_first_line(self) -> None:
        buf = OutputBuffer()
        buf.append(f"{SEP}\n> ".encode())
        assert buf.find_prompt_tail(SEP) == f"{SEP}\n> "

    def test_welcome_box_is_not_the_tail(self) -> None:
        buf = OutputBuffer()
        buf.append(BOXED_BOOT_OUTPUT.encode())
        tail = buf.capture_prompt_tail(SEP)
        assert tail is not None
        assert "Welcome" not in tail
        assert "╰" not in tail
        assert tail.startswith("─" * 60 + "\r\n> ")

    def test_without_marker_uses_last_separator(self) -> None:
        buf = OutputBuffer()
        buf.append(f"╭{SEP}╮\n│ hi │\n╰{SEP}╯\n{SEP}{SEP}\n".encode())
        assert buf.find_prompt_tail(SEP) == f"{SEP}{SEP}\n"

    def test_custom_marker(self) -> None:
        buf = OutputBuffer()
        buf.append(f"{SEP} top\n{SEP}\n$ ".encode())
        assert buf.find_prompt_tail(SEP, "$") == f"{SEP}\n$ "

    def test_tail_independent_of_chunking(self) -> None:
        data = BOOT_OUTPUT.encode("utf-8")
        whole = OutputBuffer()
        whole.append(data)
        expected = whole.find_prompt_tail(SEP)

        for i in range(1, len(data)):
            for size in (1, 3, 7):
                buf = OutputBuffer()
                for chunk in _chunks(data, list(range(i, len(data), size))):
                    buf.append(chunk)
                assert buf.find_prompt_tail(SEP) == expected


# ---------------------------------------------------------------------------
# Data notification
# ---------------------------------------------------------------------------


class TestWaitForData:
    async def test_times_out_without_data(self) -> None:
        buf = OutputBuffer()
        assert await buf.wait_for_data(timeout=0.01) is False

    async def test_wakes_on_append(self) -> None:
        buf = OutputBuffer()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, buf.append, b"x")
        assert await buf.wait_for_data(timeout=1.0) is True

    async def test_event_is_reset_after_wait(self) -> None:
        buf = OutputBuffer()
        buf.append(b"x")
        assert await buf.wait_for_data(timeout=0.01) is True
        assert await buf.wait_for_data(timeout=0.01) is False
