from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from newsdesk.models.schemas import ClassifyRequest
from newsdesk.services.classifier import classify
from newsdesk.services.escalation import run_sweep
from newsdesk.utils.logging import audit_log

router = APIRouter()

class SweepRequest(BaseModel):
    now: Optional[datetime] = None

@router.post("/escalation/sweep")
def sweep(request: Request, body: Optional[SweepRequest] = None):
    request_id = request.state.request_id
    now = body.now if body else None
    return run_sweep(request.app.state.store, request_id, now=now)

@router.post("/classify")
def classify_reply(body: ClassifyRequest, request: Request):
    result = classify(body.text)
    audit_log(request.state.request_id, "classify_preview",
              payload={"action": result.action.value, "confidence": result.confidence})
    return result
