"""Task lifecycle state machine.

`next_status` is a pure function of (current status, trigger, context). It never
touches storage: the caller persists the returned status and executes the
requested side effects, and is responsible for serializing writes per task.
"""

from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import ValidationError

from newsdesk.models.schemas import (
    Action,
    ParsedResponse,
    ReasonCode,
    SideEffect,
    TaskStatus,
    TransitionContext,
    TransitionResult,
    Trigger,
)

S = TaskStatus

NON_TERMINAL: FrozenSet[TaskStatus] = frozenset(s for s in TaskStatus if not s.is_terminal)

# trigger -> (valid from-states, to-state)
TRANSITIONS: Dict[Trigger, Tuple[FrozenSet[TaskStatus], TaskStatus]] = {
    Trigger.DISPATCH: (frozenset({S.DRAFT}), S.SENT),
    Trigger.DELIVERED: (frozenset({S.SENT}), S.READ),
    Trigger.ACCEPT: (frozenset({S.SENT, S.READ, S.OVERDUE}), S.ACCEPTED),
    Trigger.DECLINE: (frozenset({S.SENT, S.READ, S.OVERDUE}), S.REJECTED),
    Trigger.PROGRESS: (frozenset({S.ACCEPTED, S.OVERDUE}), S.IN_PROGRESS),
    Trigger.COMPLETE: (frozenset({S.IN_PROGRESS, S.OVERDUE}), S.REVIEW),
    Trigger.APPROVE: (frozenset({S.REVIEW}), S.COMPLETED),
    Trigger.SEND_BACK: (frozenset({S.REVIEW}), S.IN_PROGRESS),
    Trigger.DEADLINE_PASSED: (NON_TERMINAL - {S.OVERDUE}, S.OVERDUE),
    Trigger.CANCEL: (NON_TERMINAL, S.CANCELLED),
}

# Triggers that come out of the reply classifier and are gated on confidence.
CLASSIFIER_TRIGGERS = frozenset({
    Trigger.ACCEPT, Trigger.DECLINE, Trigger.PROGRESS, Trigger.COMPLETE, Trigger.DELAY,
})

ACTION_TRIGGERS = {
    Action.ACCEPT: Trigger.ACCEPT,
    Action.DECLINE: Trigger.DECLINE,
    Action.PROGRESS: Trigger.PROGRESS,
    Action.COMPLETE: Trigger.COMPLETE,
    Action.DELAY: Trigger.DELAY,
}

ENTRY_EFFECTS: Dict[TaskStatus, List[SideEffect]] = {
    S.ACCEPTED: [SideEffect.NOTIFY_MANAGER],
    S.REJECTED: [SideEffect.NOTIFY_MANAGER],
    S.REVIEW: [SideEffect.NOTIFY_MANAGER],
    S.OVERDUE: [SideEffect.NOTIFY_MANAGER],
}


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _escalation_effects(ctx: TransitionContext) -> List[SideEffect]:
    effects = [SideEffect.INCREMENT_ESCALATION]
    if ctx.escalation_count + 1 >= ctx.escalation_threshold:
        effects.append(SideEffect.ESCALATE)
    return effects


def _context(raw: Dict[str, Any]) -> TransitionContext:
    """Context from loose input. A malformed field falls back to its default."""
    fields = {}
    for name, value in raw.items():
        if name not in TransitionContext.model_fields:
            continue
        try:
            TransitionContext.model_validate({name: value})
        except ValidationError:
            if name == "confidence":
                # an unreadable score never clears the gate
                fields[name] = 0.0
            continue
        fields[name] = value
    return TransitionContext.model_validate(fields)


def _stay(current: TaskStatus, trigger: Trigger, reason: Optional[ReasonCode] = None,
          side_effects: Optional[List[SideEffect]] = None) -> TransitionResult:
    return TransitionResult(
        previous=current,
        status=current,
        trigger=trigger,
        side_effects=side_effects or [],
        reason=reason,
    )


def _rejected(current: TaskStatus, trigger: Trigger, ctx: TransitionContext) -> TransitionResult:
    # A decline the task can no longer take (already accepted, finished...) is
    # out of policy and counts toward escalation.
    effects = _escalation_effects(ctx) if trigger == Trigger.DECLINE else []
    return _stay(current, trigger, ReasonCode.INVALID_TRANSITION, effects)


def next_status(current: TaskStatus, trigger: Trigger,
                context: Optional[TransitionContext] = None) -> TransitionResult:
    """
    Compute the next status for `current` under `trigger`.

    Invalid triggers are not errors: the status is returned unchanged with
    reason INVALID_TRANSITION. Classifier triggers at or below the confidence
    threshold are held back with LOW_CONFIDENCE and a REQUEST_REVIEW effect.
    """
    current = TaskStatus(current)
    trigger = Trigger(trigger)
    if isinstance(context, dict):
        context = _context(context)
    elif not isinstance(context, TransitionContext):
        context = None
    ctx = context or TransitionContext()

    if current.is_terminal:
        return _rejected(current, trigger, ctx)

    # a NaN score never clears the gate
    if (trigger in CLASSIFIER_TRIGGERS and ctx.confidence is not None
            and not ctx.confidence > ctx.accept_threshold):
        return _stay(current, trigger, ReasonCode.LOW_CONFIDENCE, [SideEffect.REQUEST_REVIEW])

    if trigger == Trigger.DELAY:
        return _stay(current, trigger, None, [SideEffect.SCHEDULE_REMINDER, SideEffect.LOG_DELAY])

    if trigger == Trigger.REMINDER_DUE:
        effects = [SideEffect.SEND_REMINDER]
        if ctx.last_reminder_sent is not None:
            # the previous reminder went unanswered
            effects += _escalation_effects(ctx)
        return _stay(current, trigger, None, effects)

    valid_from, target = TRANSITIONS[trigger]
    if current not in valid_from:
        return _rejected(current, trigger, ctx)

    if trigger == Trigger.DEADLINE_PASSED:
        deadline = _utc(ctx.deadline)
        now = _utc(ctx.now) or datetime.now(timezone.utc)
        if deadline is None or now <= deadline:
            return _stay(current, trigger, ReasonCode.DEADLINE_NOT_PASSED)

    effects = list(ENTRY_EFFECTS.get(target, []))
    if trigger in (Trigger.DISPATCH, Trigger.SEND_BACK):
        effects.append(SideEffect.NOTIFY_ASSIGNEE)

    return TransitionResult(previous=current, status=target, trigger=trigger, side_effects=effects)


def trigger_for(parsed: ParsedResponse, current: TaskStatus) -> Optional[Trigger]:
    """
    Trigger for a classified reply, or None when it carries no intent.

    A lone check mark means "accepted" on a fresh task and "done" on one that is
    already in progress.
    """
    if parsed.ambiguous and parsed.action == Action.ACCEPT and TaskStatus(current) == S.IN_PROGRESS:
        return Trigger.COMPLETE
    return ACTION_TRIGGERS.get(parsed.action)
