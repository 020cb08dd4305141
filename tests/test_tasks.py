"""Tests for the task tree store."""

import pytest

from workforce.core import tasks as tasks_mod
from workforce.core.errors import InvalidParentError, InvalidStateError, NotFoundError
from workforce.core.models import ROOT_TASK_ID, TaskSpec, TaskStatus


@pytest.fixture
def store():
    return tasks_mod.TaskStore()


def _finish(store, task_id, status=TaskStatus.SUCCEEDED):
    store.transition(task_id, TaskStatus.PROCESSING)
    store.transition(task_id, status)


class TestSlugify:
    def test_basic(self):
        assert tasks_mod.slugify("Hello World") == "hello-world"

    def test_special_chars(self):
        assert tasks_mod.slugify("Auth: Login & Signup!") == "auth-login-signup"

    def test_multiple_spaces(self):
        assert tasks_mod.slugify("  too   many   spaces  ") == "too-many-spaces"

    def test_truncation(self):
        long_title = "a" * 100
        assert len(tasks_mod.slugify(long_title)) <= 60

    def test_nothing_left_falls_back(self):
        assert tasks_mod.slugify("!!!") == "task"


class TestCreateTasks:
    def test_create_task(self, store):
        [task] = store.create_tasks([TaskSpec(title="Build login page", goal="A form")])
        assert task.id == "build-login-page"
        assert task.title == "Build login page"
        assert task.goal == "A form"
        assert task.status is TaskStatus.READY
        assert task.parent_id == ROOT_TASK_ID
        assert task.created_at is not None
        assert store.child_ids(ROOT_TASK_ID) == ["build-login-page"]

    def test_duplicate_title_gets_suffix(self, store):
        [t1] = store.create_tasks([TaskSpec(title="Build login page")])
        [t2] = store.create_tasks([TaskSpec(title="Build login page")])
        assert t1.id == "build-login-page"
        assert t2.id == "build-login-page-2"

    def test_duplicate_title_in_one_batch(self, store):
        created = store.create_tasks([TaskSpec(title="Step"), TaskSpec(title="Step")])
        assert [t.id for t in created] == ["step", "step-2"]

    def test_explicit_id(self, store):
        [task] = store.create_tasks([TaskSpec(title="Anything", id="custom")])
        assert task.id == "custom"

    def test_explicit_duplicate_id_rejected(self, store):
        store.create_tasks([TaskSpec(title="A", id="a")])
        with pytest.raises(InvalidParentError, match="already exists"):
            store.create_tasks([TaskSpec(title="Again", id="a")])

    def test_root_id_is_reserved(self, store):
        with pytest.raises(InvalidParentError):
            store.create_tasks([TaskSpec(title="Root", id=ROOT_TASK_ID)])

    def test_empty_title_rejected(self, store):
        with pytest.raises(ValueError):
            store.create_tasks([TaskSpec(title="")])

    def test_sequence_numbers_increase(self, store):
        a, b = store.create_tasks([TaskSpec(title="A"), TaskSpec(title="B")])
        [c] = store.create_tasks([TaskSpec(title="C")])
        assert a.seq < b.seq < c.seq

    def test_unknown_parent_rejected(self, store):
        with pytest.raises(InvalidParentError, match="not found"):
            store.create_tasks([TaskSpec(title="Orphan", parent_id="nope")])

    def test_bad_spec_leaves_store_untouched(self, store):
        with pytest.raises(InvalidParentError):
            store.create_tasks([
                TaskSpec(title="Fine"),
                TaskSpec(title="Orphan", parent_id="nope"),
            ])
        assert store.all_ids() == []

    def test_parent_from_same_batch(self, store):
        parent, child = store.create_tasks([
            TaskSpec(title="Parent", id="p"),
            TaskSpec(title="Child", parent_id="p"),
        ])
        assert store.child_ids("p") == [child.id]
        assert store.status("p") is TaskStatus.PENDING
        assert store.status(child.id) is TaskStatus.READY

    def test_terminal_parent_rejected(self, store):
        store.create_tasks([TaskSpec(title="Done", id="done")])
        _finish(store, "done")
        with pytest.raises(InvalidParentError, match="succeeded"):
            store.create_tasks([TaskSpec(title="Late", parent_id="done")])

    def test_ready_parent_becomes_pending(self, store):
        store.create_tasks([TaskSpec(title="Parent", id="p")])
        store.create_tasks([TaskSpec(title="Child", parent_id="p")])
        assert store.status("p") is TaskStatus.PENDING

    def test_processing_parent_keeps_processing(self, store):
        store.create_tasks([TaskSpec(title="Parent", id="p")])
        store.transition("p", TaskStatus.PROCESSING)
        store.create_tasks([TaskSpec(title="Child", parent_id="p")])
        assert store.status("p") is TaskStatus.PROCESSING


class TestLookups:
    def test_get_nonexistent(self, store):
        with pytest.raises(NotFoundError):
            store.get("nope")

    def test_child_ids_of_unknown_task(self, store):
        with pytest.raises(NotFoundError):
            store.child_ids("nope")

    def test_snapshot_is_detached(self, store):
        store.create_tasks([TaskSpec(title="A", id="a")])
        snap = store.snapshot("a")
        snap.status = TaskStatus.FAILED
        snap.user_messages.append("junk")
        assert store.status("a") is TaskStatus.READY
        assert store.get("a").user_messages == []

    def test_subtree_is_preorder(self, store):
        store.create_tasks([
            TaskSpec(title="Root task", id="r"),
            TaskSpec(title="One", id="one", parent_id="r"),
            TaskSpec(title="One child", id="one-a", parent_id="one"),
            TaskSpec(title="Two", id="two", parent_id="r"),
        ])
        assert store.subtree("r") == ["r", "one", "one-a", "two"]
        assert store.subtree("two") == ["two"]

    def test_ready_tasks_oldest_first(self, store):
        store.create_tasks([TaskSpec(title="A", id="a"), TaskSpec(title="B", id="b")])
        store.create_tasks([TaskSpec(title="C", id="c")])
        store.transition("a", TaskStatus.PROCESSING)
        assert [t.id for t in store.ready_tasks()] == ["b", "c"]
        assert store.next_ready().id == "b"

    def test_next_ready_empty(self, store):
        assert store.next_ready() is None

    def test_count_by_status(self, store):
        store.create_tasks([TaskSpec(title="A", id="a"), TaskSpec(title="B", id="b")])
        _finish(store, "a", TaskStatus.FAILED)
        counts = store.count_by_status()
        assert counts["ready"] == 1
        assert counts["failed"] == 1
        assert counts["cancelled"] == 0
        assert set(counts) == {s.value for s in TaskStatus}

    def test_is_idle(self, store):
        assert store.is_idle()
        store.create_tasks([TaskSpec(title="A", id="a")])
        assert not store.is_idle()
        store.transition("a", TaskStatus.CANCELLED)
        assert store.is_idle()


class TestTransitions:
    def test_legal_path(self, store):
        store.create_tasks([TaskSpec(title="A", id="a")])
        store.transition("a", TaskStatus.PROCESSING)
        task = store.transition("a", TaskStatus.SUCCEEDED, result="ok")
        assert task.status is TaskStatus.SUCCEEDED
        assert task.result == "ok"
        assert task.completed_at is not None

    def test_ready_cannot_succeed(self, store):
        store.create_tasks([TaskSpec(title="A", id="a")])
        with pytest.raises(InvalidStateError):
            store.transition("a", TaskStatus.SUCCEEDED)

    @pytest.mark.parametrize("terminal", [
        TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.CANCELLED,
    ])
    def test_terminal_is_absorbing(self, store, terminal):
        store.create_tasks([TaskSpec(title="A", id="a")])
        store.transition("a", TaskStatus.PROCESSING)
        store.transition("a", terminal)
        for status in TaskStatus:
            with pytest.raises(InvalidStateError):
                store.transition("a", status)

    def test_pending_cannot_process(self, store):
        store.create_tasks([TaskSpec(title="P", id="p"), TaskSpec(title="C", parent_id="p")])
        with pytest.raises(InvalidStateError):
            store.transition("p", TaskStatus.PROCESSING)

    def test_resume_when_children_settle(self, store):
        store.create_tasks([
            TaskSpec(title="P", id="p"),
            TaskSpec(title="C1", id="c1", parent_id="p"),
            TaskSpec(title="C2", id="c2", parent_id="p"),
        ])
        _finish(store, "c1")
        assert not store.resume_if_settled("p")
        assert store.status("p") is TaskStatus.PENDING

        _finish(store, "c2", TaskStatus.FAILED)
        assert store.resume_if_settled("p")
        assert store.status("p") is TaskStatus.READY

    def test_resume_ignores_root_and_non_pending(self, store):
        store.create_tasks([TaskSpec(title="A", id="a")])
        assert not store.resume_if_settled(ROOT_TASK_ID)
        assert not store.resume_if_settled("a")
