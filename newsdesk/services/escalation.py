from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from newsdesk.config import Settings, get_settings
from newsdesk.models.schemas import Task, TaskStatus, Trigger
from newsdesk.services.store import TaskStore
from newsdesk.services.tasks import apply_trigger, warn_deadline
from newsdesk.utils.logging import audit_log

AWAITING_REPLY = frozenset({TaskStatus.SENT, TaskStatus.READ})


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def plan_triggers(task: Task, now: datetime, settings: Optional[Settings] = None) -> List[Trigger]:
    """
    Time-based triggers due for `task` at `now`, in the order they should be applied.
    """
    settings = settings or get_settings()
    now = _utc(now)
    if task.status.is_terminal:
        return []

    planned: List[Trigger] = []

    deadline = _utc(task.deadline)
    if task.status != TaskStatus.OVERDUE and deadline is not None and now > deadline:
        planned.append(Trigger.DEADLINE_PASSED)

    interval = timedelta(minutes=settings.reminder_interval_minutes)
    if task.status in AWAITING_REPLY:
        if task.sent_at is not None:
            sent_at = _utc(task.sent_at)
            last_contact = max(sent_at, _utc(task.last_reminder_sent) or sent_at)
            if now - last_contact >= interval:
                planned.append(Trigger.REMINDER_DUE)
    elif task.reminder_due_at is not None and now >= _utc(task.reminder_due_at):
        planned.append(Trigger.REMINDER_DUE)

    return planned


def deadline_warning_due(task: Task, now: datetime, settings: Optional[Settings] = None) -> Optional[int]:
    """
    Remaining-time mark (percent) an in-progress task has crossed without a
    warning yet, or None.

    Time is measured from when work started (or the task was accepted) to the
    deadline. Only the tightest crossed mark is returned, so a sweep that runs
    late does not replay the earlier ones.
    """
    settings = settings or get_settings()
    if task.status != TaskStatus.IN_PROGRESS:
        return None

    deadline = _utc(task.deadline)
    started = _utc(task.started_at or task.accepted_at)
    now = _utc(now)
    if deadline is None or started is None or deadline <= started or now >= deadline:
        return None

    remaining = (deadline - now) / (deadline - started) * 100
    crossed = [mark for mark in settings.deadline_warning_percentages if remaining <= mark]
    if not crossed:
        return None

    mark = min(crossed)
    if task.deadline_warning_sent is not None and task.deadline_warning_sent <= mark:
        return None
    return mark


def run_sweep(store: TaskStore, request_id: str, now: Optional[datetime] = None,
              settings: Optional[Settings] = None) -> Dict[str, Any]:
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)

    results = []
    warnings = 0
    for task in store.list_tasks():
        for trigger in plan_triggers(task, now, settings):
            result, _ = apply_trigger(store, task.id, trigger, request_id, now=now, settings=settings)
            results.append({
                "task_id": task.id,
                "trigger": trigger.value,
                "from": result.previous.value,
                "to": result.status.value,
                "side_effects": [e.value for e in result.side_effects],
            })

        if task.status == TaskStatus.IN_PROGRESS:
            current = store.get_task(task.id)
            mark = deadline_warning_due(current, now, settings)
            if mark is not None and warn_deadline(store, current, mark, request_id) is not None:
                warnings += 1

    summary = {
        "checked": len(store.list_tasks()),
        "applied": len(results),
        "overdue": sum(1 for r in results if r["to"] == TaskStatus.OVERDUE.value and r["from"] != r["to"]),
        "reminders": sum(1 for r in results if r["trigger"] == Trigger.REMINDER_DUE.value),
        "escalations": sum(1 for r in results if "ESCALATE" in r["side_effects"]),
        "warnings": warnings,
        "results": results,
    }
    audit_log(request_id, "escalation_sweep", payload={k: v for k, v in summary.items() if k != "results"})
    return summary
