"""Unit tests for quest lifecycle transitions and progress arithmetic."""

import pytest

from maker.services.quest_state import (
    IN_PROGRESS_CEILING,
    QuestLifecycleError,
    QuestTransitionError,
    can_progress,
    can_transition,
    in_progress_percent,
    last_index,
    percent_for,
    resume_index,
    validate_progress,
    validate_transition,
)


class TestQuestCanTransition:
    def test_draft_to_published(self):
        assert can_transition("draft", "published") is True

    def test_published_to_archived(self):
        assert can_transition("published", "archived") is True

    def test_draft_to_archived_invalid(self):
        assert can_transition("draft", "archived") is False

    def test_archived_is_terminal(self):
        for target in ("draft", "published", "archived"):
            assert can_transition("archived", target) is False

    def test_no_unpublish(self):
        assert can_transition("published", "draft") is False

    def test_unknown_state(self):
        assert can_transition("deleted", "draft") is False


class TestQuestValidateTransition:
    def test_valid_does_not_raise(self):
        validate_transition("draft", "published")

    def test_invalid_raises(self):
        with pytest.raises(QuestLifecycleError, match="Cannot transition quest"):
            validate_transition("archived", "published")


class TestProgressTransitions:
    def test_forward_chain(self):
        assert can_progress("not_started", "in_progress") is True
        assert can_progress("in_progress", "completed") is True

    def test_completed_is_terminal(self):
        assert can_progress("completed", "in_progress") is False
        assert can_progress("completed", "not_started") is False

    def test_no_skipping(self):
        assert can_progress("not_started", "completed") is False


class TestValidateProgress:
    def test_valid_does_not_raise(self):
        validate_progress("in_progress", "completed")

    def test_skip_raises(self):
        with pytest.raises(QuestTransitionError, match="Cannot move progress"):
            validate_progress("not_started", "completed")

    def test_reopen_completed_raises(self):
        with pytest.raises(QuestTransitionError):
            validate_progress("completed", "in_progress")


class TestPercent:
    def test_three_pages(self):
        assert [percent_for(i, 3) for i in range(3)] == [33, 67, 100]

    def test_two_pages(self):
        assert [percent_for(i, 2) for i in range(2)] == [50, 100]

    def test_halves_round_up(self):
        # 1/8 = 12.5%
        assert percent_for(0, 8) == 13

    def test_single_page(self):
        assert percent_for(0, 1) == 100

    def test_zero_pages_treated_as_one(self):
        assert percent_for(0, 0) == 100

    def test_in_progress_never_hits_100(self):
        assert in_progress_percent(2, 3) == IN_PROGRESS_CEILING
        assert in_progress_percent(1, 3) == 67

    def test_last_index(self):
        assert last_index(3) == 2
        assert last_index(1) == 0
        assert last_index(0) == 0


class TestResumeIndex:
    def test_fresh_record_starts_on_first_page(self):
        assert resume_index(0, "in_progress", 3) == 0

    def test_resumes_at_watermark_page(self):
        assert resume_index(67, "in_progress", 3) == 1

    def test_resumes_on_last_page_at_ceiling(self):
        assert resume_index(99, "in_progress", 3) == 2

    def test_between_pages_rounds_down(self):
        assert resume_index(50, "in_progress", 3) == 0

    def test_completed_reopens_on_last_page(self):
        assert resume_index(100, "completed", 4) == 3
