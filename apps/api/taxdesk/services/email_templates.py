"""Client-facing email templates.

Every interpolated value is HTML-escaped. Each builder returns subject,
html and a plain-text alternative.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape

from taxdesk.db.enums import CampaignEmailType

BRAND_NAME = "Harvey & Co"
BRAND_PRIMARY = "#2D4A43"
BRAND_ACCENT = "#C9A962"
BRAND_BACKGROUND = "#F5F3EF"
DEFAULT_FIRST_NAME = "Valued Client"


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class ChecklistEntry:
    name: str
    description: str | None = None


def _wrap(content: str, preheader: str | None = None) -> str:
    hidden = (
        f'<span style="display:none;max-height:0;overflow:hidden;">{escape(preheader)}</span>'
        if preheader
        else ""
    )
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
<body style="font-family: Georgia, serif; line-height: 1.6; color: #1A1A1A; max-width: 600px; margin: 0 auto; background: {BRAND_BACKGROUND};">
{hidden}
<div style="background: {BRAND_PRIMARY}; color: white; padding: 32px 30px; text-align: center;">
  <h1 style="margin: 0; font-size: 28px; font-weight: 400;">{escape(BRAND_NAME)}</h1>
  <p style="margin: 8px 0 0 0; font-size: 11px; letter-spacing: 2px; text-transform: uppercase; color: {BRAND_ACCENT};">Financial Services</p>
</div>
<div style="background: white; padding: 32px 30px; border: 1px solid #E5E5E5; border-top: none;">
{content}
</div>
<div style="text-align: center; padding: 24px 30px; color: #6B7280; font-size: 12px;">
  <p style="margin: 0;">{escape(BRAND_NAME)} Financial Services</p>
</div>
</body>
</html>"""


def _button(url: str, label: str) -> str:
    return (
        f'<p style="text-align: center; margin: 28px 0;">'
        f'<a href="{escape(url, quote=True)}" style="background: {BRAND_PRIMARY}; color: white; '
        f'padding: 14px 28px; text-decoration: none; border-radius: 6px;">{escape(label)}</a></p>'
    )


def _checklist_html(entries: list[ChecklistEntry]) -> str:
    rows = []
    for entry in entries:
        detail = (
            f'<br/><span style="color: #666; font-size: 14px;">{escape(entry.description)}</span>'
            if entry.description
            else ""
        )
        rows.append(f'<li style="margin-bottom: 8px;"><strong>{escape(entry.name)}</strong>{detail}</li>')
    return "<ul>" + "".join(rows) + "</ul>"


def _checklist_text(entries: list[ChecklistEntry]) -> str:
    return "\n".join(
        f"- {e.name}: {e.description}" if e.description else f"- {e.name}" for e in entries
    )


def document_request_email(
    first_name: str | None,
    entries: list[ChecklistEntry],
    upload_url: str,
    expires_at: datetime,
) -> RenderedEmail:
    name = first_name or DEFAULT_FIRST_NAME
    count = len(entries)
    subject = f"{BRAND_NAME}: {count} document{'s' if count != 1 else ''} needed for your tax return"
    expires = expires_at.strftime("%B %d, %Y")
    content = (
        f"<h2>Hi {escape(name)},</h2>"
        "<p>To prepare your tax return we need the following documents:</p>"
        f"{_checklist_html(entries)}"
        f"{_button(upload_url, 'Upload Documents')}"
        f"<p style=\"color: #6B7280; font-size: 13px;\">This secure link expires on {escape(expires)}.</p>"
    )
    text = (
        f"Hi {name},\n\nTo prepare your tax return we need the following documents:\n"
        f"{_checklist_text(entries)}\n\nUpload them here: {upload_url}\n"
        f"This secure link expires on {expires}.\n"
    )
    return RenderedEmail(subject=subject, html=_wrap(content, "Documents needed"), text=text)


def document_reminder_email(
    first_name: str | None,
    missing: list[ChecklistEntry],
    upload_url: str,
) -> RenderedEmail:
    name = first_name or DEFAULT_FIRST_NAME
    subject = "Reminder: Documents needed for your tax return"
    content = (
        f"<h2>Hi {escape(name)},</h2>"
        "<p>We're making great progress on your tax return! To keep things moving, "
        "we still need the following documents from you:</p>"
        f'<div style="background-color: #FEF3C7; border-radius: 8px; padding: 20px;">'
        f"{_checklist_html(missing)}</div>"
        f"{_button(upload_url, 'Upload Remaining Documents')}"
    )
    text = (
        f"Hi {name},\n\nWe still need the following documents from you:\n"
        f"{_checklist_text(missing)}\n\nUpload them here: {upload_url}\n"
    )
    return RenderedEmail(subject=subject, html=_wrap(content, "Documents still needed"), text=text)


_CAMPAIGN_COPY: dict[CampaignEmailType, tuple[str, str, str]] = {
    CampaignEmailType.INTRO: (
        "It's tax season - let's get your return started",
        "Tax season is here and we'd love to help you file. Fill out our short intake "
        "questionnaire and we'll take it from there.",
        "Start My Intake",
    ),
    CampaignEmailType.REFUND_AMOUNTS: (
        "Our clients' average refund this year",
        "Clients who filed with us last season saw meaningful refunds, and many found "
        "deductions they had missed on their own. Your intake form takes about ten minutes.",
        "See What I Could Get Back",
    ),
    CampaignEmailType.URGENCY: (
        "Last call: our calendar is filling up",
        "Our schedule for this filing season is almost full. Complete your intake today "
        "to hold your spot before the deadline.",
        "Reserve My Spot",
    ),
}


def campaign_email(
    email_type: CampaignEmailType | str,
    first_name: str | None,
    intake_url: str,
) -> RenderedEmail:
    """Drip campaign email for one stage."""
    kind = CampaignEmailType(email_type)
    subject, body, cta = _CAMPAIGN_COPY[kind]
    name = first_name or DEFAULT_FIRST_NAME
    content = (
        f"<h2>Hi {escape(name)},</h2>"
        f"<p>{escape(body)}</p>"
        f"{_button(intake_url, cta)}"
    )
    text = f"Hi {name},\n\n{body}\n\n{cta}: {intake_url}\n"
    return RenderedEmail(subject=subject, html=_wrap(content, subject), text=text)
