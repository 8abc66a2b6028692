"""
Tests for the JSON task store.
"""

import pytest

from newsdesk.models.schemas import MessageRecord, TaskStatus
from newsdesk.services.store import StaleTaskError, TaskNotFound, TaskStore, normalize_phone


def test_create_and_get(store):
    task = store.create_task("Photograph the match", assignee_phone="+973 1234 5678")
    assert len(task.id) == 8
    assert task.id == task.id.upper()
    assert task.status == TaskStatus.DRAFT

    loaded = store.get_task(task.id.lower())
    assert loaded == task


def test_survives_reopen(store, tmp_path):
    task = store.create_task("Interview")
    again = TaskStore(tmp_path / "tasks.json")
    assert again.get_task(task.id).title == "Interview"


def test_missing_task(store):
    with pytest.raises(TaskNotFound):
        store.get_task("NOPE0000")


def test_compare_and_swap(store):
    task = store.create_task("Edit video")
    updated = store.update_task(task.id, expected_status=TaskStatus.DRAFT, status=TaskStatus.SENT)
    assert updated.status == TaskStatus.SENT

    with pytest.raises(StaleTaskError):
        store.update_task(task.id, expected_status=TaskStatus.DRAFT, status=TaskStatus.CANCELLED)
    assert store.get_task(task.id).status == TaskStatus.SENT


def test_version_guards_same_status_writes(store):
    task = store.create_task("Edit video")
    assert task.version == 0

    store.update_task(task.id, expected_version=0, escalation_count=1)
    with pytest.raises(StaleTaskError):
        # status is unchanged, but someone else wrote in between
        store.update_task(task.id, expected_status=TaskStatus.DRAFT, expected_version=0, escalation_count=1)

    stored = store.get_task(task.id)
    assert stored.escalation_count == 1
    assert stored.version == 1


def test_list_by_status(store):
    a = store.create_task("A")
    store.create_task("B")
    store.update_task(a.id, status=TaskStatus.SENT)
    assert [t.id for t in store.list_tasks(status=TaskStatus.SENT)] == [a.id]
    assert len(store.list_tasks()) == 2


def test_find_active_task_for_phone(store):
    draft = store.create_task("Draft only", assignee_phone="97312345678")
    sent = store.create_task("Sent", assignee_phone="+973 1234 5678")
    store.update_task(sent.id, status=TaskStatus.SENT)

    found = store.find_active_task_for_phone("+97312345678")
    assert found.id == sent.id
    assert found.id != draft.id

    store.update_task(sent.id, status=TaskStatus.CANCELLED)
    assert store.find_active_task_for_phone("97312345678") is None


def test_find_by_message_id(store):
    task = store.create_task("Wire story")
    store.update_task(task.id, last_outbound_message_id="wamid.123")
    assert store.find_task_by_message_id("wamid.123").id == task.id
    assert store.find_task_by_message_id("wamid.other") is None


def test_notifications_and_messages(store):
    task = store.create_task("Wire story")
    store.add_notification(type="TASK_ACCEPTED", title="Task Accepted", message="ok", task_id=task.id)
    store.add_message(MessageRecord(task_id=task.id, sender="97312345678", content="Accept"))

    assert [n.type for n in store.list_notifications(task_id=task.id)] == ["TASK_ACCEPTED"]
    messages = store.list_messages(task.id)
    assert messages[0].content == "Accept"
    assert messages[0].received_at is not None


def test_normalize_phone():
    assert normalize_phone("+973 1234-5678") == "97312345678"
    assert normalize_phone(None) == ""
