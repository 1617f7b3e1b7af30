"""Tests for task status transitions and derived fields."""

from datetime import UTC, datetime, timedelta

import pytest

from src.domain.task import Subtask, Task, TaskStatus, format_utc
from src.services.task_state_machine import (
    apply_status,
    format_time_spent,
    is_overdue,
    overdue_filter,
    status_patch,
    status_patches,
    subtask_progress,
    to_view,
)


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def make_task(**overrides) -> Task:
    fields = {
        "id": "t1",
        "title": "Fix bug",
        "assignee_id": "C1",
        "created_by_id": "V1",
        "due_date": NOW + timedelta(days=3),
    }
    fields.update(overrides)
    return Task(**fields)


@pytest.mark.unit
class TestApplyStatus:
    def test_done_sets_completed_at(self):
        task = apply_status(make_task(), TaskStatus.DONE, NOW)
        assert task.status == TaskStatus.DONE
        assert task.completed_at == NOW

    def test_leaving_done_clears_completed_at(self):
        done = apply_status(make_task(), TaskStatus.DONE, NOW)
        moved = apply_status(done, TaskStatus.IN_PROGRESS, NOW + timedelta(hours=1))
        assert moved.completed_at is None

    def test_done_again_keeps_original_timestamp(self):
        done = apply_status(make_task(), TaskStatus.DONE, NOW)
        again = apply_status(done, TaskStatus.DONE, NOW + timedelta(hours=5))
        assert again.completed_at == NOW

    @pytest.mark.parametrize("start", list(TaskStatus))
    @pytest.mark.parametrize("target", list(TaskStatus))
    def test_any_transition_allowed_and_idempotent(self, start, target):
        task = apply_status(make_task(), start, NOW)
        once = apply_status(task, target, NOW)
        twice = apply_status(once, target, NOW + timedelta(minutes=1))
        assert once == twice
        assert (once.completed_at is not None) == (target == TaskStatus.DONE)

    def test_input_task_is_not_mutated(self):
        task = make_task()
        apply_status(task, TaskStatus.DONE, NOW)
        assert task.completed_at is None


@pytest.mark.unit
class TestStatusPatch:
    def test_patch_without_status_is_unchanged(self):
        assert status_patch(make_task(), {"title": "x"}, NOW) == {"title": "x"}

    def test_patch_to_done_adds_completed_at(self):
        patch = status_patch(make_task(), {"status": "done"}, NOW)
        assert patch == {"status": "done", "completed_at": format_utc(NOW)}

    def test_patch_away_from_done_clears_completed_at(self):
        done = apply_status(make_task(), TaskStatus.DONE, NOW)
        assert status_patch(done, {"status": "todo"}, NOW) == {"status": "todo", "completed_at": None}

    def test_patch_done_to_done_leaves_completed_at(self):
        done = apply_status(make_task(), TaskStatus.DONE, NOW)
        assert status_patch(done, {"status": "done"}, NOW) == {"status": "done"}


@pytest.mark.unit
class TestStatusPatches:
    def test_without_status(self):
        assert status_patches({"priority": "high"}, NOW) == [(None, {"priority": "high"})]

    def test_to_done_splits_on_completed_at(self):
        pairs = status_patches({"status": "done"}, NOW)
        assert len(pairs) == 2
        records = [{"completed_at": None}, {"completed_at": "2025-01-01"}]
        for predicate, patch in pairs:
            matched = [r for r in records if predicate.matches(r)]
            assert len(matched) == 1
            if matched[0]["completed_at"] is None:
                assert patch["completed_at"] == format_utc(NOW)
            else:
                assert "completed_at" not in patch

    def test_away_from_done_clears(self):
        assert status_patches({"status": "inprogress"}, NOW) == [(None, {"status": "inprogress", "completed_at": None})]


@pytest.mark.unit
class TestDerivedFields:
    def test_progress_without_subtasks(self):
        progress = subtask_progress(make_task())
        assert (progress.completed, progress.total, progress.percentage) == (0, 0, 0)

    def test_progress_rounds_half_up(self):
        subtasks = [Subtask(text="a", completed=True)] + [Subtask(text=str(i)) for i in range(7)]
        assert subtask_progress(make_task(subtasks=subtasks)).percentage == 13  # 12.5

    def test_progress_two_of_three(self):
        subtasks = [Subtask(text="a", completed=True), Subtask(text="b", completed=True), Subtask(text="c")]
        progress = subtask_progress(make_task(subtasks=subtasks))
        assert (progress.completed, progress.total, progress.percentage) == (2, 3, 67)

    def test_overdue(self):
        past = make_task(due_date=NOW - timedelta(days=1))
        assert is_overdue(past, NOW)
        assert not is_overdue(make_task(), NOW)
        assert not is_overdue(apply_status(past, TaskStatus.DONE, NOW), NOW)

    def test_overdue_filter_agrees_with_is_overdue(self):
        predicate = overdue_filter(NOW)
        for task in (
            make_task(due_date=NOW - timedelta(days=1)),
            make_task(),
            apply_status(make_task(due_date=NOW - timedelta(days=1)), TaskStatus.DONE, NOW),
        ):
            assert predicate.matches(task.to_record()) == is_overdue(task, NOW)

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0, "0m"), (59, "0m"), (420, "7m"), (3600, "1h 0m"), (7500, "2h 5m")],
    )
    def test_format_time_spent(self, seconds, expected):
        assert format_time_spent(seconds) == expected

    def test_view_carries_derived_fields(self):
        view = to_view(make_task(due_date=NOW - timedelta(days=1), time_spent_seconds=7500), NOW)
        assert view.is_overdue
        assert view.time_spent_formatted == "2h 5m"
        assert view.subtask_progress.total == 0
