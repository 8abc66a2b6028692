import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from newsdesk.models.schemas import (
    MessageRecord,
    Notification,
    Task,
    TaskStatus,
)


class TaskNotFound(LookupError):
    pass


class StaleTaskError(RuntimeError):
    """The task changed between read and write."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    # short enough to quote in a WhatsApp reply as "#AB12CD34"
    return uuid.uuid4().hex[:8].upper()


def normalize_phone(phone: Optional[str]) -> str:
    if not phone:
        return ""
    digits = "".join(ch for ch in phone if ch.isdigit())
    return digits


class TaskStore:
    """
    Tasks, notifications and inbound messages kept in one JSON file.

    Every write re-reads the file under a process-wide lock; `update_task`
    is a compare-and-swap on the task status and version.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.RLock()

    # ---------- file ----------

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"tasks": {}, "notifications": [], "messages": []}
        return json.loads(self.path.read_text(encoding="utf-8"))

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    # ---------- tasks ----------

    def create_task(self, title: str, **fields) -> Task:
        with self._lock:
            data = self._load()
            task_id = new_task_id()
            while task_id in data["tasks"]:
                task_id = new_task_id()

            now = _now()
            task = Task(id=task_id, title=title, created_at=now, updated_at=now, **fields)
            data["tasks"][task_id] = task.model_dump(mode="json")
            self._save(data)
            return task

    def get_task(self, task_id: str) -> Task:
        with self._lock:
            raw = self._load()["tasks"].get((task_id or "").upper())
        if raw is None:
            raise TaskNotFound(f"Task not found: {task_id}")
        return Task.model_validate(raw)

    def list_tasks(self, status: Optional[TaskStatus] = None) -> List[Task]:
        with self._lock:
            tasks = [Task.model_validate(t) for t in self._load()["tasks"].values()]
        if status is not None:
            tasks = [t for t in tasks if t.status == status]
        return sorted(tasks, key=lambda t: t.created_at or datetime.min.replace(tzinfo=timezone.utc))

    def update_task(self, task_id: str, expected_status: Optional[TaskStatus] = None,
                    expected_version: Optional[int] = None, **changes) -> Task:
        """
        Apply `changes` to a task. When `expected_status` or `expected_version`
        is given the write only happens if the stored task still matches,
        otherwise StaleTaskError.
        """
        with self._lock:
            data = self._load()
            raw = data["tasks"].get(task_id)
            if raw is None:
                raise TaskNotFound(f"Task not found: {task_id}")

            task = Task.model_validate(raw)
            if expected_status is not None and task.status != expected_status:
                raise StaleTaskError(
                    f"Task {task_id} is {task.status.value}, expected {TaskStatus(expected_status).value}"
                )
            if expected_version is not None and task.version != expected_version:
                raise StaleTaskError(f"Task {task_id} is at version {task.version}, expected {expected_version}")

            updated = Task.model_validate({
                **task.model_dump(), **changes, "version": task.version + 1, "updated_at": _now(),
            })
            data["tasks"][task_id] = updated.model_dump(mode="json")
            self._save(data)
            return updated

    def find_active_task_for_phone(self, phone: str) -> Optional[Task]:
        wanted = normalize_phone(phone)
        if not wanted:
            return None
        candidates = [
            t for t in self.list_tasks()
            if normalize_phone(t.assignee_phone) == wanted
            and not t.status.is_terminal
            and t.status != TaskStatus.DRAFT
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda t: t.updated_at or t.created_at)

    def find_task_by_message_id(self, message_id: str) -> Optional[Task]:
        if not message_id:
            return None
        for t in self.list_tasks():
            if t.last_outbound_message_id == message_id:
                return t
        return None

    # ---------- notifications ----------

    def add_notification(self, type: str, title: str, message: str,
                         task_id: Optional[str] = None, recipient_id: Optional[str] = None,
                         priority: str = "NORMAL") -> Notification:
        notification = Notification(
            id=str(uuid.uuid4()),
            recipient_id=recipient_id,
            type=type,
            priority=priority,
            title=title,
            message=message,
            task_id=task_id,
            created_at=_now(),
        )
        with self._lock:
            data = self._load()
            data["notifications"].append(notification.model_dump(mode="json"))
            self._save(data)
        return notification

    def list_notifications(self, task_id: Optional[str] = None) -> List[Notification]:
        with self._lock:
            items = [Notification.model_validate(n) for n in self._load()["notifications"]]
        if task_id is not None:
            items = [n for n in items if n.task_id == task_id]
        return items

    # ---------- inbound messages ----------

    def add_message(self, record: MessageRecord) -> MessageRecord:
        if record.received_at is None:
            record = record.model_copy(update={"received_at": _now()})
        with self._lock:
            data = self._load()
            data["messages"].append(record.model_dump(mode="json"))
            self._save(data)
        return record

    def list_messages(self, task_id: str) -> List[MessageRecord]:
        with self._lock:
            items = [MessageRecord.model_validate(m) for m in self._load()["messages"]]
        return [m for m in items if m.task_id == task_id]
