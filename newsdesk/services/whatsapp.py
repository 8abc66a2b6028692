import requests

from newsdesk.config import get_settings, whatsapp_configured

GRAPH_API_BASE = "https://graph.facebook.com"

def is_configured() -> bool:
    return whatsapp_configured(get_settings())

def _messages_url() -> str:
    s = get_settings()
    return f"{GRAPH_API_BASE}/{s.whatsapp_api_version}/{s.whatsapp_phone_number_id}/messages"

def _headers():
    token = get_settings().whatsapp_access_token
    if not token:
        raise RuntimeError("WHATSAPP_ACCESS_TOKEN is missing in environment/.env")
    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

def send_text(to: str, body: str) -> str:
    """Send a plain text message. Returns the WhatsApp message id."""
    payload = {
        "messaging_product": "whatsapp",
        "to": to,
        "type": "text",
        "text": {"body": body},
    }
    r = requests.post(_messages_url(), json=payload, headers=_headers(), timeout=20)
    r.raise_for_status()
    messages = r.json().get("messages") or [{}]
    return messages[0].get("id", "")

def mark_as_read(message_id: str):
    payload = {"messaging_product": "whatsapp", "status": "read", "message_id": message_id}
    r = requests.post(_messages_url(), json=payload, headers=_headers(), timeout=20)
    r.raise_for_status()
    return r.json()
