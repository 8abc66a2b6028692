from newsdesk.config import get_settings


def test_defaults():
    settings = get_settings()
    assert settings.accept_confidence_threshold == 0.8
    assert settings.deadline_warning_percentages == [50, 25, 10]


def test_deadline_warning_marks_from_env(monkeypatch):
    monkeypatch.setenv("DEADLINE_WARNING_PERCENTAGES", "40, 20")
    assert get_settings().deadline_warning_percentages == [40, 20]


def test_malformed_values_fall_back(monkeypatch):
    monkeypatch.setenv("DEADLINE_WARNING_PERCENTAGES", "half,quarter")
    monkeypatch.setenv("ESCALATION_THRESHOLD", "three")
    settings = get_settings()
    assert settings.deadline_warning_percentages == [50, 25, 10]
    assert settings.escalation_threshold == 3
