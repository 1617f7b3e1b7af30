"""Unit tests for domain model validators."""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.domain.create_models import CommentCreate, TaskCreate, UserCreate
from src.domain.task import format_utc
from src.domain.update_models import BulkUpdateRequest, SubtaskUpdate, TaskListQuery, TaskUpdate, UserUpdate
from src.domain.user import User


DUE = datetime(2030, 1, 1, tzinfo=UTC)


class TestUserNameValidator:
    """Tests for the User.name field validator."""

    def test_name_validator_accepts_unicode(self):
        for name in ("김철수", "José García", "O'Brien", "Mary-Jane"):
            assert User(id="u1", email="u@example.com", name=name).name == name

    def test_name_validator_rejects_whitespace_only(self):
        with pytest.raises(ValidationError) as exc_info:
            User(id="u1", email="u@example.com", name="   ")
        assert "Name cannot be empty" in str(exc_info.value)

    def test_name_validator_rejects_too_long(self):
        with pytest.raises(ValidationError):
            User(id="u1", email="u@example.com", name="a" * 51)

    def test_user_create_normalizes_email(self):
        assert UserCreate(name="Ann", email="  Ann@Example.COM ").email == "ann@example.com"

    def test_user_create_rejects_bad_email(self):
        with pytest.raises(ValidationError, match="valid email"):
            UserCreate(name="Ann", email="not-an-email")


class TestTaskCreate:
    def test_title_trimmed_and_required(self):
        assert TaskCreate(title="  Fix  ", assignee_id="C1", due_date=DUE).title == "Fix"
        with pytest.raises(ValidationError, match="Title is required"):
            TaskCreate(title="   ", assignee_id="C1", due_date=DUE)

    def test_length_limits(self):
        TaskCreate(title="a" * 100, description="d" * 1000, assignee_id="C1", due_date=DUE)
        with pytest.raises(ValidationError):
            TaskCreate(title="a" * 101, assignee_id="C1", due_date=DUE)
        with pytest.raises(ValidationError):
            TaskCreate(title="ok", description="d" * 1001, assignee_id="C1", due_date=DUE)

    def test_due_date_required(self):
        with pytest.raises(ValidationError):
            TaskCreate(title="ok", assignee_id="C1")

    def test_due_date_normalized_to_utc(self):
        local = datetime(2030, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=2)))
        task = TaskCreate(title="ok", assignee_id="C1", due_date=local)
        assert task.due_date == datetime(2030, 1, 1, 7, 0, tzinfo=UTC)
        assert format_utc(task.due_date) == "2030-01-01T07:00:00.000000+00:00"

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            TaskCreate(title="ok", assignee_id="C1", due_date=DUE, owner="x")

    def test_invalid_enum_values(self):
        with pytest.raises(ValidationError):
            TaskCreate(title="ok", assignee_id="C1", due_date=DUE, status="blocked")
        with pytest.raises(ValidationError):
            TaskCreate(title="ok", assignee_id="C1", due_date=DUE, priority="urgent")

    def test_negative_time_spent(self):
        with pytest.raises(ValidationError):
            TaskCreate(title="ok", assignee_id="C1", due_date=DUE, time_spent_seconds=-1)


class TestComments:
    def test_comment_trimmed(self):
        assert CommentCreate(text="  hi ").text == "hi"

    @pytest.mark.parametrize("text", ["", "   ", "x" * 501])
    def test_comment_rejected(self, text):
        with pytest.raises(ValidationError):
            CommentCreate(text=text)


class TestPatches:
    def test_only_supplied_fields_in_patch(self):
        assert TaskUpdate(priority="high").to_patch() == {"priority": "high"}

    def test_explicit_null_rejected(self):
        with pytest.raises(ValidationError, match="cannot be null"):
            TaskUpdate(title=None)

    def test_subtask_patch(self):
        assert SubtaskUpdate(completed=True).to_patch() == {"completed": True}

    def test_task_patch_accepts_subtask_list(self):
        patch = TaskUpdate.model_validate({"subtasks": [{"text": " new step "}, {"id": "s1", "text": "old", "completed": True}]})
        assert patch.to_patch() == {
            "subtasks": [
                {"text": "new step"},
                {"id": "s1", "text": "old", "completed": True},
            ]
        }

    def test_subtask_entry_rejects_blank_text_and_unknown_keys(self):
        with pytest.raises(ValidationError):
            TaskUpdate(subtasks=[{"text": "   "}])
        with pytest.raises(ValidationError):
            TaskUpdate(subtasks=[{"text": "step", "done": True}])

    def test_user_patch(self):
        assert UserUpdate(email=" Dana@Example.COM ", is_active=False).to_patch() == {
            "email": "dana@example.com",
            "is_active": False,
        }
        with pytest.raises(ValidationError):
            UserUpdate(role="superuser")
        with pytest.raises(ValidationError, match="cannot be null"):
            UserUpdate(name=None)

    def test_bulk_update_requires_ids_and_updates(self):
        with pytest.raises(ValidationError):
            BulkUpdateRequest(task_ids=[], updates={"priority": "high"})
        with pytest.raises(ValidationError):
            BulkUpdateRequest(task_ids=["t1"], updates={})

    def test_list_query_defaults(self):
        query = TaskListQuery()
        assert (query.page, query.limit, query.sort) == (1, 50, "-created")

    def test_list_query_limit_capped(self):
        with pytest.raises(ValidationError):
            TaskListQuery(limit=101)
