"""
Test configuration: every test gets its own task store and audit file, and the
WhatsApp credentials are cleared so nothing leaves the process.
"""

import pytest
from fastapi.testclient import TestClient

import newsdesk.utils.logging as audit
from newsdesk.services.store import TaskStore


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setattr(audit, "AUDIT_FILE", tmp_path / "audit.jsonl")
    for name in ("WHATSAPP_ACCESS_TOKEN", "WHATSAPP_PHONE_NUMBER_ID", "WHATSAPP_VERIFY_TOKEN",
                 "ACCEPT_CONFIDENCE_THRESHOLD", "ESCALATION_THRESHOLD", "REMINDER_INTERVAL_MINUTES",
                 "DEADLINE_WARNING_PERCENTAGES"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store(tmp_path):
    return TaskStore(tmp_path / "tasks.json")


@pytest.fixture
def client(store):
    from newsdesk.main import app

    app.state.store = store
    return TestClient(app)


@pytest.fixture
def audit_events(tmp_path):
    """Read back the audit events written during the test."""
    import json

    def _read():
        path = tmp_path / "audit.jsonl"
        if not path.exists():
            return []
        return [json.loads(line)["event"] for line in path.read_text(encoding="utf-8").splitlines()]

    return _read
