"""Battle animation — scripted dialogue, typewriter effect and logo reveal."""

from anton.animation.dialogue import (
    FALLBACK_DIALOGUE,
    DialogueRecord,
    Round,
    Speaker,
    load_random_dialogue,
)
from anton.animation.sequencer import AnimationSequencer, Frame, Phase

__all__ = [
    "FALLBACK_DIALOGUE",
    "AnimationSequencer",
    "DialogueRecord",
    "Frame",
    "Phase",
    "Round",
    "Speaker",
    "load_random_dialogue",
]
