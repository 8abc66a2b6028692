import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_int_list(name: str, default: List[int]) -> List[int]:
    raw = os.getenv(name, "").strip()
    try:
        values = [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        return list(default)
    return values or list(default)


class Settings(BaseModel):
    accept_confidence_threshold: float = 0.8
    escalation_threshold: int = 3
    reminder_interval_minutes: int = 15
    # remaining-time marks (percent) at which in-progress work gets a warning
    deadline_warning_percentages: List[int] = [50, 25, 10]

    tasks_file: str = "data/tasks.json"

    whatsapp_access_token: str = ""
    whatsapp_phone_number_id: str = ""
    whatsapp_verify_token: str = ""
    whatsapp_api_version: str = "v18.0"


def get_settings() -> Settings:
    """
    Read settings from the environment (.env is loaded at import).
    Malformed numbers fall back to the defaults.
    """
    return Settings(
        accept_confidence_threshold=_env_float("ACCEPT_CONFIDENCE_THRESHOLD", 0.8),
        escalation_threshold=_env_int("ESCALATION_THRESHOLD", 3),
        reminder_interval_minutes=_env_int("REMINDER_INTERVAL_MINUTES", 15),
        deadline_warning_percentages=_env_int_list("DEADLINE_WARNING_PERCENTAGES", [50, 25, 10]),
        tasks_file=os.getenv("TASKS_FILE", "data/tasks.json").strip() or "data/tasks.json",
        whatsapp_access_token=os.getenv("WHATSAPP_ACCESS_TOKEN", "").strip(),
        whatsapp_phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID", "").strip(),
        whatsapp_verify_token=os.getenv("WHATSAPP_VERIFY_TOKEN", "").strip(),
        whatsapp_api_version=os.getenv("WHATSAPP_API_VERSION", "v18.0").strip() or "v18.0",
    )


def whatsapp_configured(settings: Optional[Settings] = None) -> bool:
    settings = settings or get_settings()
    return bool(settings.whatsapp_access_token and settings.whatsapp_phone_number_id)
