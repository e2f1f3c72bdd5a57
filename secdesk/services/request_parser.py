"""Extract service request fields from exported request text.

The desk receives datacenter-access and other requests as ServiceNow
exports, as plain text or PDF.  Their text layout is ``Label: value``
per line, with approvals listed as
``Approved <approver> Data Centre Access <time> <time>``.
"""

import io
import re

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from secdesk.models.service_request import (
    AdditionalDetails,
    Approval,
    RequestDetails,
)

SUPPORTED_CONTENT_TYPES = frozenset({"text/plain", "application/pdf"})
REQUIRED_FIELDS = ("request_number", "requested_for", "state")

_LINE = r"[^\n]+"
_TIMESTAMP = r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}"

_APPROVAL_RE = re.compile(
    rf"Approved\s+({_LINE}?)\s+Data Centre Access\s+({_TIMESTAMP})\s+({_TIMESTAMP})"
)


class MissingFieldsError(ValueError):
    """Required request fields are empty."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required fields: {', '.join(missing)}")


class UnsupportedDocumentError(ValueError):
    """The uploaded document type cannot be read."""


class DocumentReadError(ValueError):
    """The document claims a supported type but could not be decoded."""


def _media_type(content_type: str) -> str:
    return content_type.split(";")[0].strip().lower()


def is_supported_content_type(content_type: str) -> bool:
    return _media_type(content_type) in SUPPORTED_CONTENT_TYPES


def read_document_text(content: bytes, content_type: str) -> str:
    """Return the text of an uploaded request document.

    Plain text is decoded as UTF-8, replacing undecodable bytes.  PDF pages
    are extracted with pypdf and joined with newlines.
    """
    media_type = _media_type(content_type)
    if media_type not in SUPPORTED_CONTENT_TYPES:
        raise UnsupportedDocumentError(
            f"Unsupported document type: {media_type or 'unknown'}"
        )
    if media_type == "text/plain":
        return content.decode("utf-8", errors="replace")
    try:
        reader = PdfReader(io.BytesIO(content))
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    except PdfReadError as e:
        raise DocumentReadError(f"Could not read PDF: {e}") from e


def extract_field(
    text: str, label: str, pattern: str = _LINE, *, line_start: bool = False
) -> str:
    """Return the value following *label*, or "" if the label is absent.

    The label is matched literally and case-insensitively; *pattern* is a
    regex for the value itself.  With *line_start*, the label only counts at
    the start of a line ("Description:" must not match "Short description:").
    """
    regex = rf"{re.escape(label)}[ \t]*({pattern})"
    if line_start:
        regex = r"^[ \t]*" + regex
    match = re.search(regex, text, re.IGNORECASE | re.MULTILINE)
    return match.group(1).strip() if match else ""


def extract_approvals(text: str) -> list[Approval]:
    return [
        Approval(
            approver=m.group(1).strip(),
            approval_time=m.group(2),
            request_time=m.group(3),
        )
        for m in _APPROVAL_RE.finditer(text)
    ]


def extract_request_details(text: str) -> RequestDetails:
    return RequestDetails(
        request_number=extract_field(text, "Number:", r"RITM\d+"),
        requested_for=extract_field(text, "Request Requested for:"),
        updated_to_open=extract_field(text, "Updated to open:", _TIMESTAMP),
        short_description=extract_field(text, "Short description:"),
        description=extract_field(text, "Description:", line_start=True),
        work_notes=extract_field(text, "Work notes:"),
        state=extract_field(text, "State:"),
        approvals=extract_approvals(text),
        additional_details=AdditionalDetails(
            company=extract_field(text, "Company:"),
            priority=extract_field(text, "Priority:"),
            impact=extract_field(text, "Impact:"),
            urgency=extract_field(text, "Urgency:"),
            assignment_group=extract_field(text, "Assignment group:"),
            assigned_to=extract_field(text, "Assigned to:"),
        ),
    )


def validate_request_details(details: RequestDetails) -> None:
    """Raise MissingFieldsError unless every required field is filled."""
    missing = [name for name in REQUIRED_FIELDS if not getattr(details, name)]
    if missing:
        raise MissingFieldsError(missing)


def parse_document(content: bytes, content_type: str) -> RequestDetails:
    """Read an uploaded document and extract its request fields."""
    return extract_request_details(read_document_text(content, content_type))
