from typing import Any, Dict, List, Optional, Tuple

import requests
from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from newsdesk.config import get_settings
from newsdesk.models.schemas import ParsedResponse, Task, Trigger
from newsdesk.services import whatsapp
from newsdesk.services.classifier import classify, classify_button, extract_task_ref
from newsdesk.services.store import TaskNotFound, TaskStore, normalize_phone
from newsdesk.services.tasks import apply_trigger, handle_reply
from newsdesk.utils.logging import audit_log

router = APIRouter(prefix="/webhooks/whatsapp")

DELIVERY_STATUSES = {"delivered", "read"}


def _parse_message(message: Dict[str, Any]) -> Tuple[ParsedResponse, Optional[str], str]:
    """
    Returns: (parsed response, task id named by the message if any, text content)
    """
    kind = message.get("type")

    if kind == "text":
        text = (message.get("text") or {}).get("body", "")
        return classify(text), extract_task_ref(text), text

    if kind == "button":
        button = message.get("button") or {}
        parsed, task_id = classify_button(button.get("payload", ""))
        return parsed, task_id, button.get("text", "")

    if kind == "interactive":
        reply = (message.get("interactive") or {}).get("button_reply") or {}
        parsed, task_id = classify_button(reply.get("id", ""))
        return parsed, task_id, reply.get("title", "")

    # location / media: kept on the thread, no intent
    caption = (message.get(kind) or {}).get("caption", "") if kind else ""
    return ParsedResponse(), None, caption or f"[{kind}]"


def _resolve_task(store: TaskStore, message: Dict[str, Any], task_ref: Optional[str]) -> Optional[Task]:
    if task_ref:
        try:
            return store.get_task(task_ref)
        except TaskNotFound:
            # "#location" and the like: not a task id
            pass

    context_id = (message.get("context") or {}).get("id")
    if context_id:
        task = store.find_task_by_message_id(context_id)
        if task is not None:
            return task

    return store.find_active_task_for_phone(message.get("from", ""))


def _handle_status(store: TaskStore, status: Dict[str, Any], request_id: str) -> bool:
    if status.get("status") not in DELIVERY_STATUSES:
        audit_log(request_id, "whatsapp_status", payload={"message_id": status.get("id"), "status": status.get("status")})
        return False

    task = store.find_task_by_message_id(status.get("id", ""))
    if task is None:
        return False

    apply_trigger(store, task.id, Trigger.DELIVERED, request_id)
    return True


def _handle_message(store: TaskStore, message: Dict[str, Any], contacts: List[Dict[str, Any]], request_id: str) -> bool:
    sender = message.get("from", "")
    contact = next((c for c in contacts if c.get("wa_id") == sender), {})
    sender_name = (contact.get("profile") or {}).get("name", "Unknown")

    parsed, task_ref, content = _parse_message(message)
    audit_log(request_id, "whatsapp_message", payload={
        "from": sender,
        "sender_name": sender_name,
        "type": message.get("type"),
        "action": parsed.action.value,
        "confidence": parsed.confidence,
        "task_ref": task_ref,
    })

    task = _resolve_task(store, message, task_ref)
    if task is None:
        audit_log(request_id, "whatsapp_unroutable", status="ignored", payload={"from": sender, "task_ref": task_ref})
        return False

    if normalize_phone(task.assignee_phone) != normalize_phone(sender):
        audit_log(request_id, "whatsapp_wrong_assignee", status="ignored",
                  payload={"from": sender, "task_id": task.id})
        return False

    handle_reply(
        store, task, parsed, sender, request_id,
        content=content, whatsapp_message_id=message.get("id"),
    )

    if whatsapp.is_configured() and message.get("id"):
        try:
            whatsapp.mark_as_read(message["id"])
        except requests.RequestException as e:
            audit_log(request_id, "whatsapp_mark_read_failed", status="error",
                      payload={"message_id": message["id"]}, error=str(e))
    return True


@router.get("")
def verify(request: Request):
    params = request.query_params
    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge", "")

    expected = get_settings().whatsapp_verify_token
    if mode == "subscribe" and expected and token == expected:
        audit_log(request.state.request_id, "whatsapp_webhook_verified")
        return PlainTextResponse(challenge)

    audit_log(request.state.request_id, "whatsapp_webhook_verify_failed", status="error")
    return JSONResponse(status_code=403, content={"error": "Verification failed"})


@router.post("")
def receive(request: Request, payload: Dict[str, Any] = Body(...)):
    request_id = request.state.request_id
    store: TaskStore = request.app.state.store

    entries = payload.get("entry") or []
    if not entries:
        return {"status": "no entries"}

    processed = 0
    for entry in entries:
        for change in entry.get("changes") or []:
            if change.get("field") != "messages":
                continue
            value = change.get("value") or {}

            for status in value.get("statuses") or []:
                processed += _handle_status(store, status, request_id)

            contacts = value.get("contacts") or []
            for message in value.get("messages") or []:
                processed += _handle_message(store, message, contacts, request_id)

    return {"status": "success", "processed": processed}
