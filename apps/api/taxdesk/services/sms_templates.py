"""SMS message templates with ``{variable}`` placeholders."""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class SmsTemplate:
    id: str
    name: str
    template: str
    variables: tuple[str, ...]


SMS_TEMPLATES: dict[str, SmsTemplate] = {
    t.id: t
    for t in (
        SmsTemplate(
            id="intake_reminder",
            name="Intake Form Reminder",
            template=(
                "Hi {firstName}! This is Harvey & Co. Just a friendly reminder to complete your "
                "tax intake form when you get a chance: {intakeUrl} - Questions? Text us back!"
            ),
            variables=("firstName", "intakeUrl"),
        ),
        SmsTemplate(
            id="document_reminder",
            name="Document Reminder",
            template=(
                "Hi {firstName}! Harvey & Co here. We're working on your taxes but still need a few "
                "documents from you. You can upload them here: {uploadUrl}"
            ),
            variables=("firstName", "uploadUrl"),
        ),
        SmsTemplate(
            id="appointment_reminder",
            name="Appointment Reminder",
            template=(
                "Hi {firstName}! Just a reminder about your appointment with Harvey & Co on {date} "
                "at {time}. Reply if you need to reschedule."
            ),
            variables=("firstName", "date", "time"),
        ),
        SmsTemplate(
            id="return_ready",
            name="Return Ready for Review",
            template=(
                "Great news, {firstName}! Your tax return is ready for review. Your estimated "
                "refund is {refundAmount}. Give us a call when you're ready to go over it."
            ),
            variables=("firstName", "refundAmount"),
        ),
        SmsTemplate(
            id="welcome",
            name="Welcome Message",
            template=(
                "Hi {firstName}! Thanks for choosing Harvey & Co Financial Services for your tax "
                "needs. Feel free to text us anytime with questions."
            ),
            variables=("firstName",),
        ),
    )
}

CUSTOM_TEMPLATE_ID = "custom"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def fill_template(template: str, values: dict[str, str]) -> str:
    """Substitute known placeholders; unknown ones are left as-is."""
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def get_template(template_id: str) -> SmsTemplate | None:
    return SMS_TEMPLATES.get(template_id)
