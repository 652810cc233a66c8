"""Stage table and pure progress helpers shared by the pipeline and the API."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Stage:
    key: str
    name: str
    low: int
    high: int
    description: str
    running_message: str


STAGES: tuple[Stage, ...] = (
    Stage("prompt", "Prompt Analysis", 0, 25, "Analyzing and enhancing your prompt", "Analyzing your prompt..."),
    Stage("image", "Image Generation", 25, 50, "Generating cinematic preview image", "Generating cinematic image..."),
    Stage("video", "Video Creation", 50, 85, "Animating your scene into video", "Creating your POV video..."),
    Stage("subtitles", "Subtitle Addition", 85, 95, "Adding contextual subtitles", "Adding automatic subtitles..."),
    Stage("finalize", "Finalization", 95, 100, "Preparing your video", "Finalizing your POV video..."),
)

STAGES_BY_KEY = {s.key: s for s in STAGES}

COMPLEXITY_KEYWORDS = ("storm", "battle", "crowd", "fire", "magic", "dragon", "army")
BASE_GENERATION_SECONDS = 25
SECONDS_PER_COMPLEXITY_KEYWORD = 5
MAX_GENERATION_SECONDS = 60


def stage_for(percentage: float) -> Stage:
    """Return the stage whose inclusive range contains ``percentage``.

    Ranges share their boundaries; the earlier stage wins a shared value, so
    25 is still "Prompt Analysis" (the stage that has just finished).
    """
    if not 0 <= percentage <= 100:
        raise ValueError(f"percentage must be within [0, 100], got {percentage}")
    for stage in STAGES:
        if stage.low <= percentage <= stage.high:
            return stage
    raise ValueError(f"no stage covers {percentage}")  # unreachable with a contiguous table


def stage_index(percentage: float) -> int:
    return STAGES.index(stage_for(percentage))


def stage_states(percentage: float) -> list[tuple[Stage, str]]:
    """Per-stage display state: ``completed``, ``active`` or ``upcoming``."""
    active = stage_for(percentage)
    states = []
    for stage in STAGES:
        if stage is active:
            state = "active"
        elif percentage > stage.high:
            state = "completed"
        else:
            state = "upcoming"
        states.append((stage, state))
    return states


def remaining_time(estimated_total_seconds: float, percentage: float) -> int:
    return max(0, round(estimated_total_seconds * (100 - percentage) / 100))


def estimate_generation_time(prompt: str) -> int:
    lowered = prompt.lower()
    extra = sum(SECONDS_PER_COMPLEXITY_KEYWORD for kw in COMPLEXITY_KEYWORDS if kw in lowered)
    return min(BASE_GENERATION_SECONDS + extra, MAX_GENERATION_SECONDS)
