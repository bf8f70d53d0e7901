"""
Gentle Space Realty branded HTML email layout.

Table-based, inline-CSS wrapper so the same markup renders in Outlook,
Gmail, Yahoo and Apple Mail.

Usage:
    from app.services.email_html_base import render_branded_email

    html = render_branded_email(
        title="Welcome",
        body_content="<p>Thanks for joining Gentle Space Realty.</p>",
        preheader="Thanks for joining",
    )
"""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape as html_escape

from app.core.config import get_settings

BRAND_NAME = "Gentle Space Realty"

COLOR_PRIMARY = "#1f4e79"
COLOR_ACCENT = "#c9a227"
COLOR_BG = "#f6f7f9"
COLOR_WHITE = "#ffffff"
COLOR_BORDER = "#dde2e8"
COLOR_TEXT = "#1c2430"
COLOR_MUTED = "#5b6675"
COLOR_HIGHLIGHT_BG = "#eef3f8"

FONT_STACK = "'Inter', 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif"

LOGO_PATH = "/logo.png"
DEFAULT_FOOTER = "Gentle Space Realty – Office spaces in Bengaluru"


def _logo_url(logo_url: str) -> str:
    if logo_url:
        return logo_url
    base = (get_settings().public_base_url or "https://gentlespacerealty.com").rstrip("/")
    return f"{base}{LOGO_PATH}"


def paragraph(text: str, *, muted: bool = False) -> str:
    """Escape ``text`` and wrap it in a styled paragraph."""
    color = COLOR_MUTED if muted else COLOR_TEXT
    size = 13 if muted else 15
    return f'<p style="margin:0 0 16px 0;font-size:{size}px;color:{color};">{html_escape(text)}</p>'


def render_branded_email(
    *,
    title: str,
    body_content: str,
    preheader: str = "",
    logo_url: str = "",
    footer_text: str = DEFAULT_FOOTER,
) -> str:
    """Render ``body_content`` (already-escaped HTML) inside the branded layout.

    Args:
        title: Used for <title>; escaped here.
        body_content: Inner HTML for the specific template.
        preheader: Hidden preview text shown by email clients; escaped here.
        logo_url: Absolute logo URL. Defaults to public_base_url + /logo.png.
        footer_text: Footer tagline; escaped here.
    """
    year = datetime.now(timezone.utc).year
    safe_title = html_escape(title)

    preheader_html = ""
    if preheader:
        preheader_html = (
            f'<div style="display:none;font-size:1px;color:{COLOR_BG};line-height:1px;'
            f'max-height:0;max-width:0;opacity:0;overflow:hidden;">'
            f"{html_escape(preheader)}"
            f"</div>"
        )

    return f"""\
<!DOCTYPE html>
<html lang="en" xmlns="http://www.w3.org/1999/xhtml">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>{safe_title}</title>
</head>
<body style="margin:0;padding:0;background-color:{COLOR_BG};font-family:{FONT_STACK};">
{preheader_html}
<table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color:{COLOR_BG};">
  <tr>
    <td align="center" style="padding:24px 16px;">
      <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" style="max-width:600px;width:100%;background-color:{COLOR_WHITE};border:1px solid {COLOR_BORDER};border-radius:10px;overflow:hidden;">
        <tr>
          <td align="center" style="padding:24px 32px 18px 32px;border-bottom:3px solid {COLOR_ACCENT};">
            <img src="{html_escape(_logo_url(logo_url))}" alt="{BRAND_NAME}" width="160" style="display:block;max-width:160px;height:auto;border:0;" />
          </td>
        </tr>
        <tr>
          <td style="padding:28px 32px;color:{COLOR_TEXT};font-size:15px;line-height:1.6;">
{body_content}
          </td>
        </tr>
        <tr>
          <td style="padding:18px 32px;background-color:{COLOR_BG};border-top:1px solid {COLOR_BORDER};text-align:center;font-size:12px;color:{COLOR_MUTED};">
            {html_escape(footer_text)}<br />
            &copy; {year} {BRAND_NAME}. All rights reserved.
          </td>
        </tr>
      </table>
    </td>
  </tr>
</table>
</body>
</html>"""


def render_cta_button(*, url: str, label: str, color: str = COLOR_PRIMARY) -> str:
    """Table-based button; ``url`` and ``label`` are escaped here."""
    return (
        f'<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin:20px auto;">'
        f"<tr>"
        f'<td align="center" style="border-radius:6px;background:{color};">'
        f'<a href="{html_escape(url)}" target="_blank" '
        f'style="display:inline-block;padding:12px 28px;color:{COLOR_WHITE};'
        f'font-size:15px;font-weight:700;text-decoration:none;border-radius:6px;">'
        f"{html_escape(label)}"
        f"</a>"
        f"</td>"
        f"</tr>"
        f"</table>"
    )


def render_details_table(rows: list[tuple[str, str]]) -> str:
    """Key/value box for inquiry and viewing details. Empty values are skipped."""
    cells = "".join(
        f'<tr><td style="padding:4px 12px 4px 0;color:{COLOR_MUTED};white-space:nowrap;">{html_escape(label)}</td>'
        f'<td style="padding:4px 0;color:{COLOR_TEXT};">{html_escape(value)}</td></tr>'
        for label, value in rows
        if value
    )
    return (
        f'<table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%"'
        f' style="margin:16px 0;background-color:{COLOR_HIGHLIGHT_BG};border:1px solid {COLOR_BORDER};'
        f'border-radius:8px;">'
        f'<tr><td style="padding:14px 18px;">'
        f'<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="font-size:14px;">'
        f"{cells}"
        f"</table>"
        f"</td></tr>"
        f"</table>"
    )
