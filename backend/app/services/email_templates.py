from __future__ import annotations

from dataclasses import dataclass
from html import escape as html_escape
from typing import Any, Callable

from app.core.config import get_settings
from app.services.email_html_base import (
    paragraph,
    render_branded_email,
    render_cta_button,
    render_details_table,
)

SIGN_OFF_TEXT = "Warm regards,\nGentle Space Realty team"
SIGN_OFF_HTML = '<p style="margin:16px 0 0 0;font-size:15px;">Warm regards,<br/>Gentle Space Realty team</p>'

INQUIRY_TYPE_LABELS: dict[str, str] = {
    "general": "General inquiry",
    "property": "Property inquiry",
    "viewing": "Viewing request",
    "investment": "Investment inquiry",
}

INQUIRY_STATUS_LABELS: dict[str, str] = {
    "new": "received",
    "contacted": "in progress, our team has reached out",
    "qualified": "being matched with suitable spaces",
    "converted": "completed",
    "closed": "closed",
}


class TemplateError(ValueError):
    pass


class UnknownTemplateError(TemplateError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown email template: {name}")
        self.name = name


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def _field(data: dict[str, Any], key: str, default: str = "") -> str:
    return str(data.get(key) or "").strip() or default


def _require(data: dict[str, Any], template: str, *keys: str) -> None:
    missing = [key for key in keys if not _field(data, key)]
    if missing:
        raise TemplateError(f"{template} requires: {', '.join(missing)}")


def _site_url(path: str = "") -> str:
    base = (get_settings().public_base_url or "https://gentlespacerealty.com").rstrip("/")
    return f"{base}{path}"


# ── Templates ────────────────────────────────────────────────


def welcome_email(data: dict[str, Any]) -> RenderedEmail:
    name = _field(data, "name", "there")
    listings_url = _field(data, "listings_url") or _site_url("/properties")
    body = (
        paragraph(f"Hi {name},")
        + paragraph(
            "Thank you for joining Gentle Space Realty. We help teams find office, "
            "co-working and commercial spaces across Bengaluru."
        )
        + render_cta_button(url=listings_url, label="Browse spaces")
        + SIGN_OFF_HTML
    )
    return RenderedEmail(
        subject="Welcome to Gentle Space Realty",
        html=render_branded_email(title="Welcome", body_content=body, preheader="Thanks for joining us"),
        text=(
            f"Hi {name},\n\n"
            "Thank you for joining Gentle Space Realty.\n"
            f"Browse available spaces: {listings_url}\n\n"
            f"{SIGN_OFF_TEXT}"
        ),
    )


def inquiry_confirmation(data: dict[str, Any]) -> RenderedEmail:
    _require(data, "inquiryConfirmation", "name")
    name = _field(data, "name")
    property_title = _field(data, "property_title")
    inquiry_type = INQUIRY_TYPE_LABELS.get(_field(data, "inquiry_type", "general"), "General inquiry")
    subject = f"We received your inquiry about {property_title}" if property_title else "We received your inquiry"
    body = (
        paragraph(f"Hi {name},")
        + paragraph("Thanks for reaching out. One of our consultants will contact you within one business day.")
        + render_details_table(
            [
                ("Type", inquiry_type),
                ("Property", property_title),
                ("Your message", _field(data, "message")),
            ]
        )
        + SIGN_OFF_HTML
    )
    return RenderedEmail(
        subject=subject,
        html=render_branded_email(title="Inquiry received", body_content=body, preheader=subject),
        text=(
            f"Hi {name},\n\n"
            "Thanks for reaching out. One of our consultants will contact you within one business day.\n\n"
            f"{SIGN_OFF_TEXT}"
        ),
    )


def new_inquiry_alert(data: dict[str, Any]) -> RenderedEmail:
    _require(data, "newInquiryAlert", "name", "email")
    name = _field(data, "name")
    inquiry_type = INQUIRY_TYPE_LABELS.get(_field(data, "inquiry_type", "general"), "General inquiry")
    admin_url = _field(data, "admin_url") or _site_url("/admin/inquiries")
    rows = [
        ("Name", name),
        ("Email", _field(data, "email")),
        ("Phone", _field(data, "phone")),
        ("Company", _field(data, "company")),
        ("Type", inquiry_type),
        ("Property", _field(data, "property_title")),
        ("Message", _field(data, "message")),
    ]
    body = (
        paragraph("A new inquiry was submitted on the website.")
        + render_details_table(rows)
        + render_cta_button(url=admin_url, label="Open in admin")
    )
    text_rows = "\n".join(f"  {label}: {value}" for label, value in rows if value)
    return RenderedEmail(
        subject=f"New inquiry from {name}",
        html=render_branded_email(title="New inquiry", body_content=body, preheader=f"{inquiry_type} from {name}"),
        text=f"A new inquiry was submitted on the website.\n\n{text_rows}\n\nAdmin: {admin_url}",
    )


def property_viewing_scheduled(data: dict[str, Any]) -> RenderedEmail:
    _require(data, "propertyViewingScheduled", "property_title", "scheduled_at")
    name = _field(data, "name", "there")
    property_title = _field(data, "property_title")
    scheduled_at = _field(data, "scheduled_at")
    address = _field(data, "address")
    body = (
        paragraph(f"Hi {name},")
        + paragraph("Your property viewing is confirmed.")
        + render_details_table([("Property", property_title), ("When", scheduled_at), ("Where", address)])
        + paragraph("Need to reschedule? Just reply to this email.", muted=True)
        + SIGN_OFF_HTML
    )
    return RenderedEmail(
        subject=f"Viewing confirmed: {property_title}",
        html=render_branded_email(
            title="Viewing confirmed",
            body_content=body,
            preheader=f"{property_title} on {scheduled_at}",
        ),
        text=(
            f"Hi {name},\n\n"
            f"Your viewing of {property_title} is confirmed for {scheduled_at}.\n"
            + (f"Address: {address}\n" if address else "")
            + f"\n{SIGN_OFF_TEXT}"
        ),
    )


def inquiry_status_update(data: dict[str, Any]) -> RenderedEmail:
    _require(data, "inquiryStatusUpdate", "status")
    name = _field(data, "name", "there")
    status = _field(data, "status").lower()
    label = INQUIRY_STATUS_LABELS.get(status, status)
    notes = _field(data, "notes")
    body = paragraph(f"Hi {name},") + paragraph(f"Your inquiry is now {label}.")
    if notes:
        body += f'<blockquote style="margin:0 0 16px 0;padding-left:12px;border-left:3px solid #c9a227;">{html_escape(notes)}</blockquote>'
    body += SIGN_OFF_HTML
    return RenderedEmail(
        subject="Update on your inquiry",
        html=render_branded_email(title="Inquiry update", body_content=body),
        text=f"Hi {name},\n\nYour inquiry is now {label}.\n" + (f"\n{notes}\n" if notes else "") + f"\n{SIGN_OFF_TEXT}",
    )


EMAIL_TEMPLATES: dict[str, Callable[[dict[str, Any]], RenderedEmail]] = {
    "welcomeEmail": welcome_email,
    "inquiryConfirmation": inquiry_confirmation,
    "newInquiryAlert": new_inquiry_alert,
    "propertyViewingScheduled": property_viewing_scheduled,
    "inquiryStatusUpdate": inquiry_status_update,
}


def render_email_template(name: str, data: dict[str, Any] | None = None) -> RenderedEmail:
    builder = EMAIL_TEMPLATES.get(name)
    if builder is None:
        raise UnknownTemplateError(name)
    return builder(dict(data or {}))
