from app.core.config import get_settings


def redact_phone(value: str) -> str:
    if not value:
        return ""
    # Keep last 3 digits for operator traceability; mask the rest.
    tail = value[-3:] if len(value) >= 3 else value
    return f"***{tail}"


def redact_email(value: str) -> str:
    if not value or "@" not in value:
        return redact_phone(value)
    local, _, domain = value.partition("@")
    return f"{local[:1]}***@{domain}"


def log_recipient(value: str, *, channel: str) -> str:
    """Recipient as it may appear in log lines."""
    if not get_settings().pii_redaction_enabled:
        return value
    if channel == "email":
        return redact_email(value)
    return redact_phone(value)
