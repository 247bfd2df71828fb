from unittest.mock import patch

import structlog

from costlens.shared.core.config import Settings
from costlens.shared.core.logging import bind_run_context, pii_redactor, setup_logging


def test_redacts_sensitive_keys():
    event = {
        "event": "smtp_login",
        "smtp_password": "hunter2",
        "bot_token": "xoxb-secret",
        "api_key": "k",
        "host": "smtp.example.com",
    }

    redacted = pii_redactor(None, "info", event)

    assert redacted["smtp_password"] == "[REDACTED]"
    assert redacted["bot_token"] == "[REDACTED]"
    assert redacted["api_key"] == "[REDACTED]"
    assert redacted["host"] == "smtp.example.com"


def test_redacts_email_addresses_in_nested_values():
    event = {
        "event": "alert_email_sent",
        "recipients": ["ops@example.com"],
        "details": {"to": "finance@example.com", "webhook_secret": "s"},
    }

    redacted = pii_redactor(None, "info", event)

    assert redacted["recipients"] == ["[EMAIL_REDACTED]"]
    assert redacted["details"] == {"to": "[EMAIL_REDACTED]", "webhook_secret": "[REDACTED]"}


def test_setup_logging_uses_json_outside_debug(monkeypatch):
    monkeypatch.setenv("DEBUG", "false")
    with patch("structlog.configure") as configure:
        setup_logging()

    processors = configure.call_args.kwargs["processors"]
    assert pii_redactor in processors
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)


def test_setup_logging_uses_console_in_debug(monkeypatch):
    monkeypatch.setenv("DEBUG", "true")
    with patch("structlog.configure") as configure:
        setup_logging()

    processors = configure.call_args.kwargs["processors"]
    assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)


def test_setup_logging_prefers_given_settings(monkeypatch):
    monkeypatch.setenv("DEBUG", "false")
    with patch("structlog.configure") as configure:
        setup_logging(Settings(DEBUG=True))

    processors = configure.call_args.kwargs["processors"]
    assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)


def test_bind_run_context():
    bind_run_context(user_id="user-1", run_id="run-1")
    try:
        assert structlog.contextvars.get_contextvars() == {
            "user_id": "user-1",
            "run_id": "run-1",
        }
    finally:
        structlog.contextvars.clear_contextvars()
