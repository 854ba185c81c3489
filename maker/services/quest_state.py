"""Quest state machines and percent arithmetic.

Two lifecycles live here:

- Quest authoring: draft → published → archived.
- Participant progress: not_started → in_progress → completed (terminal).

Percent-complete follows the page cursor: ``round((index + 1) / total * 100)``
with halves rounded up. While a quest is in progress the stored watermark
stays below 100; only an explicit completion writes 100.
"""

from maker.models import ProgressStatusEnum, QuestStatusEnum


class QuestLifecycleError(Exception):
    """Raised when an invalid quest authoring transition is attempted."""


class QuestTransitionError(Exception):
    """Raised when a progress transition is not allowed from the current position."""


QUEST_TRANSITIONS: dict[str, list[str]] = {
    QuestStatusEnum.draft.value: [QuestStatusEnum.published.value],
    QuestStatusEnum.published.value: [QuestStatusEnum.archived.value],
    QuestStatusEnum.archived.value: [],  # terminal
}

PROGRESS_TRANSITIONS: dict[str, list[str]] = {
    ProgressStatusEnum.not_started.value: [ProgressStatusEnum.in_progress.value],
    ProgressStatusEnum.in_progress.value: [ProgressStatusEnum.completed.value],
    ProgressStatusEnum.completed.value: [],  # terminal
}

IN_PROGRESS_CEILING = 99
COMPLETE = 100


def can_transition(current: str, target: str) -> bool:
    """Check if a quest authoring transition is valid."""
    return target in QUEST_TRANSITIONS.get(current, [])


def validate_transition(current: str, target: str) -> None:
    """Validate a quest authoring transition, raising QuestLifecycleError if invalid."""
    if not can_transition(current, target):
        allowed = QUEST_TRANSITIONS.get(current, [])
        raise QuestLifecycleError(
            f"Cannot transition quest from '{current}' to '{target}'. "
            f"Allowed from '{current}': {allowed}"
        )


def can_progress(current: str, target: str) -> bool:
    return target in PROGRESS_TRANSITIONS.get(current, [])


def validate_progress(current: str, target: str) -> None:
    """Validate a participant progress transition, raising QuestTransitionError if invalid."""
    if not can_progress(current, target):
        allowed = PROGRESS_TRANSITIONS.get(current, [])
        raise QuestTransitionError(
            f"Cannot move progress from '{current}' to '{target}'. "
            f"Allowed from '{current}': {allowed}"
        )


def last_index(total_pages: int) -> int:
    return max(total_pages - 1, 0)


def percent_for(index: int, total_pages: int) -> int:
    """Percent of the quest seen with the cursor on ``index`` (0-based)."""
    total = max(1, total_pages)
    # Integer half-up rounding of (index + 1) * 100 / total.
    return (200 * (index + 1) + total) // (2 * total)


def in_progress_percent(index: int, total_pages: int) -> int:
    """Watermark candidate for an advance: never 100 before an explicit finish."""
    return min(percent_for(index, total_pages), IN_PROGRESS_CEILING)


def resume_index(progress: int, status: str, total_pages: int) -> int:
    """Cursor position to reopen a quest at.

    Completed quests reopen on the last page. Otherwise this is the furthest
    page whose percent does not exceed the stored watermark, so reopening
    lands where the participant left off rather than on the first page.
    """
    last = last_index(total_pages)
    if status == ProgressStatusEnum.completed.value:
        return last
    index = 0
    for candidate in range(last + 1):
        if in_progress_percent(candidate, total_pages) <= progress:
            index = candidate
        else:
            break
    return index
