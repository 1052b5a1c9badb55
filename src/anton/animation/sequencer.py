"""Battle animation sequencer — a timer-driven state machine.

    Typing(round, speaker) -> Pausing -> Typing(next) ... -> RevealPending
        -> Revealing -> Done

Every transition is a ``loop.call_later`` callback on the running event
loop. Nothing here reads input, and once started a run always reaches
``Done`` (or fails with the exception raised by a step).
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

from anton.animation.dialogue import DialogueRecord, Speaker
from anton.config import AnimationTimings

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    TYPING = "typing"
    PAUSING = "pausing"
    REVEAL_PENDING = "reveal_pending"
    REVEALING = "revealing"
    DONE = "done"


@dataclass(frozen=True)
class HistoryEntry:
    """A completed line. Never changed once appended."""

    speaker: Speaker
    text: str
    round_index: int


@dataclass
class AnimationState:
    """Mutable run state. Fresh for each sequencer."""

    round_index: int = 0
    speaker: Speaker = Speaker.OPENER
    phase: Phase = Phase.TYPING
    history: list[HistoryEntry] = field(default_factory=list)
    revealing: bool = False
    typed: str = ""
    logo: str = ""


@dataclass(frozen=True)
class Frame:
    """Everything a display needs to draw one tick."""

    phase: Phase
    round_index: int
    total_rounds: int
    speaker: Speaker
    history: tuple[HistoryEntry, ...]
    typed: str
    typing_complete: bool
    final_blow: bool
    logo: str


class Display(Protocol):
    """Full-frame renderer. Used as a context manager around a run."""

    def __enter__(self) -> Display: ...

    def __exit__(self, *exc: object) -> None: ...

    def render(self, frame: Frame) -> None: ...


TransitionObserver = Callable[[Phase, int, Speaker], None]


class AnimationSequencer:
    """Plays one DialogueRecord, then reveals the logo, then signals done.

    ``logo`` may be a callable; it is evaluated when the reveal starts so
    the caller can hand over whichever banner is ready by then.
    """

    def __init__(
        self,
        dialogue: DialogueRecord,
        logo: str | Callable[[], str],
        display: Display,
        timings: AnimationTimings | None = None,
        on_transition: TransitionObserver | None = None,
    ) -> None:
        self.dialogue = dialogue
        self._logo_source = logo
        self.display = display
        self.timings = timings or AnimationTimings()
        self._on_transition = on_transition
        self.state = AnimationState()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._done: asyncio.Future[AnimationState] | None = None
        self._logo_text = ""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self) -> AnimationState:
        """Play the whole sequence. A sequencer can only run once."""
        if self._done is not None:
            raise RuntimeError("AnimationSequencer instances are single-use")
        self._loop = asyncio.get_running_loop()
        self._done = self._loop.create_future()

        logger.info(
            "Playing battle %d (%d rounds)", self.dialogue.id, self.dialogue.round_count
        )
        with self.display:
            self._enter_typing()
            return await self._done

    @property
    def is_last_round(self) -> bool:
        return self.state.round_index == self.dialogue.round_count - 1

    @property
    def current_line(self) -> str:
        return self.dialogue.line(self.state.round_index, self.state.speaker)

    def char_delay(self) -> float:
        if self.state.speaker is Speaker.OPENER:
            return self.timings.opener_char
        if self.is_last_round:
            return self.timings.final_responder_char
        return self.timings.responder_char

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _schedule(self, delay: float, step: Callable[[], None]) -> None:
        assert self._loop is not None
        self._loop.call_later(delay, self._run_step, step)

    def _run_step(self, step: Callable[[], None]) -> None:
        assert self._done is not None
        if self._done.done():
            return
        try:
            step()
        except Exception as e:
            logger.exception("Animation step %s failed", step.__name__)
            self._done.set_exception(e)

    def _transition(self, phase: Phase) -> None:
        self.state.phase = phase
        if self._on_transition is not None:
            self._on_transition(phase, self.state.round_index, self.state.speaker)

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _enter_typing(self) -> None:
        self.state.typed = ""
        self._transition(Phase.TYPING)
        self._render()
        if self.current_line:
            self._schedule(self.char_delay(), self._type_next)
        else:
            self._enter_pausing()

    def _type_next(self) -> None:
        line = self.current_line
        self.state.typed = line[: len(self.state.typed) + 1]
        if len(self.state.typed) < len(line):
            self._render()
            self._schedule(self.char_delay(), self._type_next)
        else:
            self._enter_pausing()

    def _enter_pausing(self) -> None:
        self._transition(Phase.PAUSING)
        self._render()
        self._schedule(self.timings.pause, self._end_pause)

    def _end_pause(self) -> None:
        state = self.state
        state.history.append(
            HistoryEntry(
                speaker=state.speaker,
                text=self.current_line,
                round_index=state.round_index,
            )
        )
        if state.speaker is Speaker.OPENER:
            state.speaker = Speaker.RESPONDER
            self._enter_typing()
        elif not self.is_last_round:
            state.round_index += 1
            state.speaker = Speaker.OPENER
            self._enter_typing()
        else:
            self._enter_reveal_pending()

    def _enter_reveal_pending(self) -> None:
        self._transition(Phase.REVEAL_PENDING)
        self._render()
        self._schedule(self.timings.reveal_pending, self._enter_revealing)

    def _enter_revealing(self) -> None:
        source = self._logo_source
        self._logo_text = source() if callable(source) else source
        self.state.revealing = True
        self.state.logo = ""
        self._transition(Phase.REVEALING)
        self._render()
        if self._logo_text:
            self._schedule(self.timings.logo_char, self._reveal_next)
        else:
            self._schedule(self.timings.logo_hold, self._finish)

    def _reveal_next(self) -> None:
        self.state.logo = self._logo_text[: len(self.state.logo) + 1]
        self._render()
        if len(self.state.logo) < len(self._logo_text):
            self._schedule(self.timings.logo_char, self._reveal_next)
        else:
            self._schedule(self.timings.logo_hold, self._finish)

    def _finish(self) -> None:
        assert self._done is not None
        self._transition(Phase.DONE)
        logger.debug("Battle animation finished")
        self._done.set_result(self.state)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def frame(self) -> Frame:
        state = self.state
        line = self.current_line
        return Frame(
            phase=state.phase,
            round_index=state.round_index,
            total_rounds=self.dialogue.round_count,
            speaker=state.speaker,
            history=tuple(state.history),
            typed=state.typed,
            typing_complete=len(state.typed) >= len(line),
            final_blow=self.is_last_round and state.speaker is Speaker.RESPONDER,
            logo=state.logo,
        )

    def _render(self) -> None:
        self.display.render(self.frame())
