"""Rich renderer for the battle animation."""

from __future__ import annotations

from rich import box
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.padding import Padding
from rich.panel import Panel
from rich.text import Text

from anton.animation.dialogue import Speaker
from anton.animation.sequencer import Frame, Phase

OPENER_NAME = "ANTON"
RESPONDER_NAME = "CLAUDE CODE"

OPENER_COLOR = "cyan"
OPENER_CURSOR_COLOR = "bright_cyan"
RESPONDER_COLOR = "#FF8C00"
RESPONDER_CURSOR_COLOR = "#FFA500"
DYING_COLOR = "grey50"
LOGO_COLOR = "cyan"

CURSOR = "▋"
ARENA_WIDTH = 80


def speaker_name(speaker: Speaker) -> str:
    return OPENER_NAME if speaker is Speaker.OPENER else RESPONDER_NAME


def speaker_color(speaker: Speaker, dying: bool = False) -> str:
    if speaker is Speaker.OPENER:
        return OPENER_COLOR
    return DYING_COLOR if dying else RESPONDER_COLOR


def status_message(frame: Frame) -> str:
    if frame.phase is Phase.REVEAL_PENDING or (
        frame.final_blow and frame.phase is Phase.PAUSING
    ):
        return f"💀 {RESPONDER_NAME.title()} has been terminated..."
    if frame.phase is Phase.PAUSING:
        return "⏳ Processing..."
    return ""


def build_frame(frame: Frame, width: int = ARENA_WIDTH) -> RenderableType:
    """Turn one Frame into a rich renderable (full redraw, no diffing)."""
    if frame.phase in (Phase.REVEALING, Phase.DONE):
        return Padding(Text(frame.logo, style=LOGO_COLOR), 1)

    parts: list[RenderableType] = [
        Text(
            f" ⚔️  ROUND {frame.round_index + 1} / {frame.total_rounds} ⚔️ ",
            style=f"bold {OPENER_COLOR}",
        ),
        Text(""),
    ]

    for entry in frame.history:
        color = speaker_color(entry.speaker)
        parts.append(Text(f"{speaker_name(entry.speaker)}:", style=f"bold {color}"))
        parts.append(Text(entry.text, style=color))
        parts.append(Text(""))

    # The final line already sits in history while the reveal is pending
    if frame.phase is not Phase.REVEAL_PENDING:
        color = speaker_color(frame.speaker, dying=frame.final_blow)
        line = Text(frame.typed, style=color)
        if not frame.typing_complete:
            if frame.speaker is Speaker.OPENER:
                cursor_color = OPENER_CURSOR_COLOR
            elif frame.final_blow:
                cursor_color = DYING_COLOR
            else:
                cursor_color = RESPONDER_CURSOR_COLOR
            line.append(CURSOR, style=cursor_color)
        parts.append(Text(f"{speaker_name(frame.speaker)}:", style=f"bold {color}"))
        parts.append(line)

    arena = Panel(
        Group(*parts),
        box=box.DOUBLE,
        border_style=OPENER_COLOR,
        padding=1,
        width=width,
    )
    return Padding(Group(arena, Text(""), Text(status_message(frame), style="dim")), 1)


class RichDisplay:
    """Draws frames with a transient ``rich.live.Live`` region."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._live: Live | None = None

    def __enter__(self) -> RichDisplay:
        self._live = Live(
            console=self.console,
            auto_refresh=False,
            transient=True,
            redirect_stdout=False,
            redirect_stderr=False,
        )
        self._live.start()
        return self

    def __exit__(self, *exc: object) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def render(self, frame: Frame) -> None:
        if self._live is None:
            raise RuntimeError("RichDisplay.render() called outside its context")
        width = min(ARENA_WIDTH, self.console.width)
        self._live.update(build_frame(frame, width), refresh=True)
