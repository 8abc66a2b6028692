from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field


class Action(str, Enum):
    ACCEPT = "ACCEPT"
    DECLINE = "DECLINE"
    PROGRESS = "PROGRESS"
    COMPLETE = "COMPLETE"
    DELAY = "DELAY"
    UNKNOWN = "UNKNOWN"


class TaskStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    READ = "READ"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.REJECTED, TaskStatus.CANCELLED})


class Trigger(str, Enum):
    DISPATCH = "DISPATCH"
    DELIVERED = "DELIVERED"
    ACCEPT = "ACCEPT"
    DECLINE = "DECLINE"
    PROGRESS = "PROGRESS"
    COMPLETE = "COMPLETE"
    DELAY = "DELAY"
    APPROVE = "APPROVE"
    SEND_BACK = "SEND_BACK"
    DEADLINE_PASSED = "DEADLINE_PASSED"
    CANCEL = "CANCEL"
    REMINDER_DUE = "REMINDER_DUE"


class SideEffect(str, Enum):
    NOTIFY_MANAGER = "NOTIFY_MANAGER"
    NOTIFY_ASSIGNEE = "NOTIFY_ASSIGNEE"
    SEND_REMINDER = "SEND_REMINDER"
    SCHEDULE_REMINDER = "SCHEDULE_REMINDER"
    LOG_DELAY = "LOG_DELAY"
    REQUEST_REVIEW = "REQUEST_REVIEW"
    INCREMENT_ESCALATION = "INCREMENT_ESCALATION"
    ESCALATE = "ESCALATE"


class ReasonCode(str, Enum):
    INVALID_TRANSITION = "INVALID_TRANSITION"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    DEADLINE_NOT_PASSED = "DEADLINE_NOT_PASSED"


# ---------- classifier ----------

class ExtractedInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    budget: Optional[float] = None
    contact: Optional[str] = None


class ParsedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Action = Action.UNKNOWN
    confidence: float = 0.0
    extracted_info: Optional[ExtractedInfo] = None
    # True when a lone check mark was the only signal (accept vs. done)
    ambiguous: bool = False


# ---------- lifecycle ----------

class TransitionContext(BaseModel):
    confidence: Optional[float] = None
    deadline: Optional[datetime] = None
    now: Optional[datetime] = None
    escalation_count: int = 0
    last_reminder_sent: Optional[datetime] = None
    accept_threshold: float = 0.8
    escalation_threshold: int = 3


class TransitionResult(BaseModel):
    previous: TaskStatus
    status: TaskStatus
    trigger: Trigger
    side_effects: List[SideEffect] = []
    reason: Optional[ReasonCode] = None

    @property
    def changed(self) -> bool:
        return self.status != self.previous


# ---------- stored entities ----------

class Task(BaseModel):
    id: str
    title: str
    description: str = ""
    assignee_phone: Optional[str] = None
    assignee_name: Optional[str] = None
    creator_id: Optional[str] = None
    status: TaskStatus = TaskStatus.DRAFT
    deadline: Optional[datetime] = None
    escalation_count: int = 0
    deadline_warning_sent: Optional[int] = None
    last_reminder_sent: Optional[datetime] = None
    last_outbound_message_id: Optional[str] = None
    reminder_due_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # bumped on every write; compare-and-swap token
    version: int = 0


class Notification(BaseModel):
    id: str
    recipient_id: Optional[str] = None
    type: str
    priority: str = "NORMAL"
    title: str
    message: str
    task_id: Optional[str] = None
    created_at: Optional[datetime] = None


class MessageRecord(BaseModel):
    task_id: str
    sender: str
    content: str = ""
    whatsapp_message_id: Optional[str] = None
    parsed: Optional[Dict[str, Any]] = None
    received_at: Optional[datetime] = None


# ---------- HTTP bodies ----------

class TaskCreateRequest(BaseModel):
    title: str
    description: str = ""
    assignee_phone: Optional[str] = None
    assignee_name: Optional[str] = None
    creator_id: Optional[str] = None
    deadline: Optional[datetime] = None


class ReassignRequest(BaseModel):
    assignee_phone: str
    assignee_name: Optional[str] = None


class TriggerRequest(BaseModel):
    trigger: Trigger
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class ClassifyRequest(BaseModel):
    text: str = ""


class TransitionResponse(BaseModel):
    result: TransitionResult
    task: Task
