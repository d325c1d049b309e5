"""Structured logging helpers (PII-safe).

Never pass tokens, email addresses, phone numbers or file names here.
"""

import logging
from typing import Any
from uuid import UUID


def build_log_context(
    *,
    org_id: UUID | str | None = None,
    user_id: UUID | str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
    document_request_id: UUID | str | None = None,
    enrollment_id: UUID | str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict."""
    context: dict[str, Any] = {}
    if org_id:
        context["org_id"] = str(org_id)
    if user_id:
        context["user_id"] = str(user_id)
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    if document_request_id:
        context["document_request_id"] = str(document_request_id)
    if enrollment_id:
        context["enrollment_id"] = str(enrollment_id)
    return context


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the API process."""
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
