"""Service request models."""

from pydantic import BaseModel, Field


class Approval(BaseModel):
    """One approval line from a datacenter-access request."""

    approver: str
    approval_time: str
    request_time: str
    status: str = "Approved"


class AdditionalDetails(BaseModel):
    company: str = ""
    priority: str = ""
    impact: str = ""
    urgency: str = ""
    assignment_group: str = ""
    assigned_to: str = ""


class RequestDetails(BaseModel):
    """Fields pulled out of an exported service request."""

    request_number: str = ""  # RITM0012345
    requested_for: str = ""
    updated_to_open: str = ""  # YYYY-MM-DD HH:MM:SS
    short_description: str = ""
    description: str = ""
    work_notes: str = ""
    state: str = ""
    approvals: list[Approval] = []
    additional_details: AdditionalDetails = AdditionalDetails()


class ExtractRequest(BaseModel):
    """Raw text of an exported request document."""

    text: str = Field(..., min_length=1, max_length=200_000)


class ReferenceNumberRequest(BaseModel):
    existing: list[str] = []


class ReferenceNumberResponse(BaseModel):
    reference_number: str
    sequence: int


class UsernameRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)


class UsernameResponse(BaseModel):
    username: str
