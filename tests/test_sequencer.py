"""Tests for anton.animation.sequencer.AnimationSequencer."""

from __future__ import annotations

import pytest

from anton.animation.dialogue import FALLBACK_DIALOGUE, DialogueRecord, Round, Speaker
from anton.animation.sequencer import AnimationSequencer, Frame, Phase
from anton.config import AnimationTimings

LOGO = "+--+\n|AN|\n+--+"


class RecordingDisplay:
    """Keeps every frame; can be told to fail on the Nth render."""

    def __init__(self, fail_on: int | None = None) -> None:
        self.frames: list[Frame] = []
        self.entered = False
        self.exited = False
        self.fail_on = fail_on

    def __enter__(self) -> RecordingDisplay:
        self.entered = True
        return self

    def __exit__(self, *exc: object) -> None:
        self.exited = True

    def render(self, frame: Frame) -> None:
        if self.fail_on is not None and len(self.frames) == self.fail_on:
            raise RuntimeError("display broke")
        self.frames.append(frame)


def _dialogue(rounds: int) -> DialogueRecord:
    return DialogueRecord(
        id=7,
        rounds=tuple(
            Round(opener_line=f"hit {i}", responder_line=f"ouch {i}") for i in range(rounds)
        ),
    )


def _sequencer(dialogue: DialogueRecord, display=None, logo=LOGO, on_transition=None):
    return AnimationSequencer(
        dialogue,
        logo,
        display or RecordingDisplay(),
        AnimationTimings.instant(),
        on_transition=on_transition,
    )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class TestHistory:
    @pytest.mark.parametrize("rounds", [1, 2, 3, 4, 5])
    async def test_two_entries_per_round_alternating(self, rounds: int) -> None:
        seq = _sequencer(_dialogue(rounds))
        state = await seq.run()

        assert len(state.history) == 2 * rounds
        for i, entry in enumerate(state.history):
            expected = Speaker.OPENER if i % 2 == 0 else Speaker.RESPONDER
            assert entry.speaker is expected
            assert entry.round_index == i // 2
        assert state.history[-1].text == f"ouch {rounds - 1}"

    async def test_history_complete_before_reveal(self) -> None:
        lengths: dict[Phase, int] = {}
        seq = None

        def observe(phase: Phase, round_index: int, speaker: Speaker) -> None:
            lengths.setdefault(phase, len(seq.state.history))

        seq = _sequencer(_dialogue(2), on_transition=observe)
        await seq.run()
        assert lengths[Phase.REVEAL_PENDING] == 4
        assert lengths[Phase.REVEALING] == 4

    async def test_history_entries_are_full_lines(self) -> None:
        seq = _sequencer(FALLBACK_DIALOGUE)
        state = await seq.run()
        texts = [entry.text for entry in state.history]
        assert texts == [
            FALLBACK_DIALOGUE.rounds[r].line(s)
            for r in range(3)
            for s in (Speaker.OPENER, Speaker.RESPONDER)
        ]


# ---------------------------------------------------------------------------
# Transition trace
# ---------------------------------------------------------------------------


class TestFallbackScenario:
    async def test_exact_transition_trace(self) -> None:
        trace: list[tuple[Phase, int, Speaker]] = []
        seq = _sequencer(
            FALLBACK_DIALOGUE,
            on_transition=lambda phase, r, speaker: trace.append((phase, r, speaker)),
        )
        await seq.run()

        expected: list[tuple[Phase, int, Speaker]] = []
        for r in range(3):
            for speaker in (Speaker.OPENER, Speaker.RESPONDER):
                expected.append((Phase.TYPING, r, speaker))
                expected.append((Phase.PAUSING, r, speaker))
        expected += [
            (Phase.REVEAL_PENDING, 2, Speaker.RESPONDER),
            (Phase.REVEALING, 2, Speaker.RESPONDER),
            (Phase.DONE, 2, Speaker.RESPONDER),
        ]
        assert trace == expected

    async def test_history_length_at_each_typing_step(self) -> None:
        lengths: list[int] = []
        seq = None

        def observe(phase: Phase, round_index: int, speaker: Speaker) -> None:
            if phase in (Phase.TYPING, Phase.REVEAL_PENDING):
                lengths.append(len(seq.state.history))

        seq = _sequencer(FALLBACK_DIALOGUE, on_transition=observe)
        await seq.run()
        assert lengths == [0, 1, 2, 3, 4, 5, 6]

    async def test_final_responder_is_slowest(self) -> None:
        seq = AnimationSequencer(FALLBACK_DIALOGUE, LOGO, RecordingDisplay())
        seq.state.speaker = Speaker.OPENER
        assert seq.char_delay() == seq.timings.opener_char
        seq.state.speaker = Speaker.RESPONDER
        assert seq.char_delay() == seq.timings.responder_char
        seq.state.round_index = 2
        assert seq.char_delay() == seq.timings.final_responder_char


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------


class TestFrames:
    async def test_typewriter_grows_one_char_at_a_time(self) -> None:
        display = RecordingDisplay()
        seq = _sequencer(_dialogue(1), display=display)
        await seq.run()

        typed = [
            f.typed
            for f in display.frames
            if f.phase is Phase.TYPING and f.speaker is Speaker.OPENER
        ]
        assert typed == ["", "h", "hi", "hit", "hit "]
        pause = next(f for f in display.frames if f.phase is Phase.PAUSING)
        assert pause.typed == "hit 0"
        assert pause.typing_complete

    async def test_final_blow_flag(self) -> None:
        display = RecordingDisplay()
        seq = _sequencer(_dialogue(2), display=display)
        await seq.run()
        for f in display.frames:
            if f.phase in (Phase.TYPING, Phase.PAUSING):
                expected = f.round_index == 1 and f.speaker is Speaker.RESPONDER
                assert f.final_blow is expected

    async def test_logo_revealed_progressively(self) -> None:
        display = RecordingDisplay()
        seq = _sequencer(_dialogue(1), display=display)
        state = await seq.run()

        logos = [f.logo for f in display.frames if f.phase is Phase.REVEALING]
        assert logos[0] == ""
        assert logos[-1] == LOGO
        assert all(len(b) == len(a) + 1 for a, b in zip(logos, logos[1:]))
        assert state.revealing
        assert state.logo == LOGO

    async def test_logo_callable_evaluated_once_at_reveal(self) -> None:
        calls: list[Phase] = []
        seq = None

        def logo() -> str:
            calls.append(seq.state.phase)
            return "LOGO"

        seq = _sequencer(_dialogue(1), logo=logo)
        state = await seq.run()
        assert calls == [Phase.REVEAL_PENDING]
        assert state.logo == "LOGO"

    async def test_empty_line_skips_typing(self) -> None:
        dialogue = DialogueRecord(id=1, rounds=(Round(opener_line="", responder_line="x"),))
        display = RecordingDisplay()
        state = await _sequencer(dialogue, display=display).run()
        assert [e.text for e in state.history] == ["", "x"]

    async def test_empty_logo_still_finishes(self) -> None:
        state = await _sequencer(_dialogue(1), logo="").run()
        assert state.phase is Phase.DONE
        assert state.logo == ""


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_display_context_entered_and_exited(self) -> None:
        display = RecordingDisplay()
        await _sequencer(_dialogue(1), display=display).run()
        assert display.entered
        assert display.exited

    async def test_single_use(self) -> None:
        seq = _sequencer(_dialogue(1))
        await seq.run()
        with pytest.raises(RuntimeError, match="single-use"):
            await seq.run()

    async def test_first_render_failure_propagates(self) -> None:
        display = RecordingDisplay(fail_on=0)
        with pytest.raises(RuntimeError, match="display broke"):
            await _sequencer(_dialogue(1), display=display).run()
        assert display.exited

    async def test_step_failure_propagates(self) -> None:
        display = RecordingDisplay(fail_on=5)
        with pytest.raises(RuntimeError, match="display broke"):
            await _sequencer(_dialogue(2), display=display).run()
        assert display.exited
