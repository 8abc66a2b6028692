from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import requests

from newsdesk.config import Settings, get_settings
from newsdesk.models.schemas import (
    MessageRecord,
    ParsedResponse,
    SideEffect,
    Task,
    TaskStatus,
    TransitionContext,
    TransitionResult,
    Trigger,
)
from newsdesk.services import whatsapp
from newsdesk.services.lifecycle import next_status, trigger_for
from newsdesk.services.store import StaleTaskError, TaskStore
from newsdesk.utils.logging import audit_log

MAX_WRITE_ATTEMPTS = 3

MANAGER_NOTICES = {
    TaskStatus.ACCEPTED: ("TASK_ACCEPTED", "NORMAL", "Task Accepted", '{who} has accepted the task "{title}"'),
    TaskStatus.REJECTED: ("TASK_DECLINED", "HIGH", "Task Declined", '{who} has declined the task "{title}"'),
    TaskStatus.REVIEW: ("TASK_REVIEW", "HIGH", "Task Ready for Review", 'Task "{title}" is ready for your review'),
    TaskStatus.OVERDUE: ("TASK_OVERDUE", "CRITICAL", "🚨 Task Overdue", 'Task "{title}" is now overdue'),
}


class InvalidReassignment(ValueError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _task_changes(task: Task, result: TransitionResult, now: datetime, settings: Settings) -> Dict[str, Any]:
    """Field updates implied by a transition result, written in one compare-and-swap."""
    changes: Dict[str, Any] = {}

    if result.changed:
        changes["status"] = result.status
        # a status change answers any outstanding reminder
        changes["last_reminder_sent"] = None
        changes["reminder_due_at"] = None
        if result.status == TaskStatus.SENT:
            changes["sent_at"] = now
        elif result.status == TaskStatus.ACCEPTED:
            changes["accepted_at"] = now
        elif result.status == TaskStatus.IN_PROGRESS and task.started_at is None:
            changes["started_at"] = now
        elif result.status == TaskStatus.COMPLETED:
            changes["completed_at"] = now

    effects = result.side_effects
    if SideEffect.INCREMENT_ESCALATION in effects:
        changes["escalation_count"] = task.escalation_count + 1
    if SideEffect.SEND_REMINDER in effects:
        changes["last_reminder_sent"] = now
        changes["reminder_due_at"] = None
    if SideEffect.SCHEDULE_REMINDER in effects:
        changes["reminder_due_at"] = now + timedelta(minutes=settings.reminder_interval_minutes)

    return changes


def _send_whatsapp(store: TaskStore, task: Task, body: str, request_id: str, remember_id: bool = False) -> Task:
    if not task.assignee_phone or not whatsapp.is_configured():
        audit_log(request_id, "whatsapp_skipped", payload={"task_id": task.id, "configured": whatsapp.is_configured()})
        return task

    try:
        message_id = whatsapp.send_text(task.assignee_phone, body)
    except requests.RequestException as e:
        audit_log(request_id, "whatsapp_send_failed", status="error", payload={"task_id": task.id}, error=str(e))
        return task

    audit_log(request_id, "whatsapp_sent", payload={"task_id": task.id, "message_id": message_id})
    if remember_id and message_id:
        return store.update_task(task.id, last_outbound_message_id=message_id)
    return task


def _assignee_message(task: Task, trigger: Trigger) -> str:
    if trigger == Trigger.SEND_BACK:
        return f'↩️ Task #{task.id} "{task.title}" was sent back for changes. Reply DONE when finished.'

    lines = [f"📋 New task #{task.id}: {task.title}"]
    if task.description:
        lines.append(task.description)
    if task.deadline:
        lines.append(f"Deadline: {task.deadline:%Y-%m-%d %H:%M}")
    lines.append("Reply ACCEPT or DECLINE.")
    return "\n".join(lines)


def _reminder_message(task: Task, escalated: bool) -> str:
    if task.status in (TaskStatus.SENT, TaskStatus.READ):
        if escalated:
            return f'⚠️ URGENT Reminder: Task #{task.id} "{task.title}" is still pending. Please respond immediately.'
        return f'📋 Reminder: You have a pending task #{task.id} "{task.title}". Please accept or decline.'
    return f'⏰ Reminder: Please send an update on task #{task.id} "{task.title}".'


def _execute_side_effects(store: TaskStore, task: Task, result: TransitionResult,
                          request_id: str, note: Optional[str]) -> Task:
    who = task.assignee_name or task.assignee_phone or "The assignee"
    effects = result.side_effects

    for effect in effects:
        if effect == SideEffect.NOTIFY_MANAGER and result.status in MANAGER_NOTICES:
            kind, priority, title, template = MANAGER_NOTICES[result.status]
            store.add_notification(
                type=kind, priority=priority, title=title,
                message=template.format(who=who, title=task.title),
                task_id=task.id, recipient_id=task.creator_id,
            )

        elif effect == SideEffect.NOTIFY_ASSIGNEE:
            task = _send_whatsapp(store, task, _assignee_message(task, result.trigger), request_id, remember_id=True)

        elif effect == SideEffect.SEND_REMINDER:
            escalated = SideEffect.INCREMENT_ESCALATION in effects
            task = _send_whatsapp(store, task, _reminder_message(task, escalated), request_id, remember_id=True)

        elif effect == SideEffect.ESCALATE:
            store.add_notification(
                type="ESCALATION", priority="CRITICAL",
                title=f"Task Escalation #{task.escalation_count}",
                message=f'🚨 Task "{task.title}" has been escalated. Reason: {result.trigger.value}',
                task_id=task.id, recipient_id=task.creator_id,
            )
            store.add_notification(
                type="ESCALATION", priority="HIGH", title="Task Escalated",
                message=f'Your task "{task.title}" has been escalated. Please provide an update.',
                task_id=task.id, recipient_id=task.assignee_phone,
            )

        elif effect == SideEffect.REQUEST_REVIEW:
            store.add_notification(
                type="REVIEW_REQUIRED", priority="HIGH", title="Reply Needs Review",
                message=f"{who} replied to \"{task.title}\" but the reply was not clear enough to apply"
                        + (f": {note}" if note else ""),
                task_id=task.id, recipient_id=task.creator_id,
            )

        elif effect == SideEffect.LOG_DELAY:
            store.add_notification(
                type="DELAY_REPORTED", priority="NORMAL", title="Delay Reported",
                message=f'{who} reported a delay on "{task.title}"' + (f": {note}" if note else ""),
                task_id=task.id, recipient_id=task.creator_id,
            )

    return task


def apply_trigger(
    store: TaskStore,
    task_id: str,
    trigger: Trigger,
    request_id: str,
    confidence: Optional[float] = None,
    now: Optional[datetime] = None,
    note: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Tuple[TransitionResult, Task]:
    """
    Run one trigger against a stored task: compute the transition, persist it
    with a compare-and-swap on the status and version (retried on conflict)
    and then carry out the side effects.
    """
    settings = settings or get_settings()
    now = now or _utcnow()

    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        before = store.get_task(task_id)
        ctx = TransitionContext(
            confidence=confidence,
            deadline=before.deadline,
            now=now,
            escalation_count=before.escalation_count,
            last_reminder_sent=before.last_reminder_sent,
            accept_threshold=settings.accept_confidence_threshold,
            escalation_threshold=settings.escalation_threshold,
        )
        result = next_status(before.status, trigger, ctx)
        changes = _task_changes(before, result, now, settings)
        if not changes:
            task = before
            break
        try:
            task = store.update_task(before.id, expected_status=before.status,
                                     expected_version=before.version, **changes)
            break
        except StaleTaskError as e:
            audit_log(request_id, "task_write_conflict", status="retry",
                      payload={"task_id": before.id, "attempt": attempt}, error=str(e))
    else:
        raise StaleTaskError(f"Task {task_id} kept changing; gave up after {MAX_WRITE_ATTEMPTS} attempts")

    task = _execute_side_effects(store, task, result, request_id, note)

    audit_log(
        request_id,
        "task_trigger",
        status="ok" if result.reason is None else "ignored",
        payload={
            "task_id": task.id,
            "trigger": result.trigger.value,
            "from": result.previous.value,
            "to": result.status.value,
            "reason": result.reason.value if result.reason else None,
            "side_effects": [e.value for e in result.side_effects],
            "confidence": confidence,
        },
    )
    return result, task


def warn_deadline(store: TaskStore, task: Task, mark: int, request_id: str) -> Optional[Task]:
    """
    Tell the assignee that only `mark` percent of the time to the deadline is
    left. The mark is stored before anything is sent. Returns None when the
    task moved on since it was read.
    """
    try:
        task = store.update_task(task.id, expected_status=TaskStatus.IN_PROGRESS,
                                 expected_version=task.version, deadline_warning_sent=mark)
    except StaleTaskError as e:
        audit_log(request_id, "deadline_warning_skipped", status="ignored",
                  payload={"task_id": task.id, "mark": mark}, error=str(e))
        return None

    message = f'⚠️ Task "{task.title}" deadline is approaching ({mark}% time remaining). Please complete soon.'
    store.add_notification(
        type="DEADLINE_APPROACHING", priority="HIGH" if mark <= 15 else "NORMAL",
        title="Deadline Approaching", message=message,
        task_id=task.id, recipient_id=task.assignee_phone,
    )
    task = _send_whatsapp(store, task, f"{message} (#{task.id})", request_id)
    audit_log(request_id, "deadline_warning", payload={"task_id": task.id, "mark": mark})
    return task


def dispatch_task(store: TaskStore, task_id: str, request_id: str, now: Optional[datetime] = None):
    return apply_trigger(store, task_id, Trigger.DISPATCH, request_id, now=now)


def reassign_task(store: TaskStore, task_id: str, assignee_phone: str, request_id: str,
                  assignee_name: Optional[str] = None) -> Task:
    """
    Hand the task to a new assignee. This starts a fresh lifecycle: back to
    DRAFT with escalation and reminder state cleared.
    """
    task = store.get_task(task_id)
    if task.status == TaskStatus.COMPLETED:
        raise InvalidReassignment(f"Task {task.id} is already completed")

    updated = store.update_task(
        task.id,
        expected_status=task.status,
        expected_version=task.version,
        status=TaskStatus.DRAFT,
        assignee_phone=assignee_phone,
        assignee_name=assignee_name,
        escalation_count=0,
        deadline_warning_sent=None,
        last_reminder_sent=None,
        reminder_due_at=None,
        last_outbound_message_id=None,
        sent_at=None,
        accepted_at=None,
        started_at=None,
        completed_at=None,
    )
    audit_log(request_id, "task_reassigned", payload={
        "task_id": task.id,
        "from_assignee": task.assignee_phone,
        "to_assignee": assignee_phone,
        "previous_status": task.status.value,
    })
    return updated


def handle_reply(
    store: TaskStore,
    task: Task,
    parsed: ParsedResponse,
    sender: str,
    request_id: str,
    content: str = "",
    whatsapp_message_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[TransitionResult]:
    """
    Record an inbound reply against `task` and apply the trigger it implies.
    Returns None when the reply carries no actionable intent.
    """
    store.add_message(MessageRecord(
        task_id=task.id,
        sender=sender,
        content=content,
        whatsapp_message_id=whatsapp_message_id,
        parsed=parsed.model_dump(mode="json"),
        received_at=now,
    ))

    trigger = trigger_for(parsed, task.status)
    if trigger is None:
        audit_log(request_id, "reply_unclassified", payload={
            "task_id": task.id,
            "extracted_info": parsed.extracted_info.model_dump() if parsed.extracted_info else None,
        })
        return None

    result, _ = apply_trigger(
        store, task.id, trigger, request_id,
        confidence=parsed.confidence, now=now, note=content or None,
    )
    return result
