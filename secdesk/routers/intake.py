"""Service request helpers: text extraction, reference numbers, usernames."""

from fastapi import APIRouter, HTTPException, Request

from secdesk.models.service_request import (
    ExtractRequest,
    ReferenceNumberRequest,
    ReferenceNumberResponse,
    RequestDetails,
    UsernameRequest,
    UsernameResponse,
)
from secdesk.services.identifiers import (
    generate_reference_number,
    generate_username,
    next_sequential_number,
)
from secdesk.services.request_parser import (
    DocumentReadError,
    MissingFieldsError,
    UnsupportedDocumentError,
    extract_request_details,
    parse_document,
    validate_request_details,
)

router = APIRouter(tags=["intake"])


def _check_required(details: RequestDetails) -> None:
    try:
        validate_request_details(details)
    except MissingFieldsError as e:
        raise HTTPException(
            status_code=422, detail={"message": str(e), "missing": e.missing}
        ) from e


@router.post("/requests/extract", response_model=RequestDetails)
async def extract_request(body: ExtractRequest, validate: bool = False):
    """Pull request fields out of an exported request document's text."""
    details = extract_request_details(body.text)
    if validate:
        _check_required(details)
    return details


@router.post("/requests/extract-document", response_model=RequestDetails)
async def extract_document(request: Request, validate: bool = False):
    """Extract request fields from a raw uploaded document.

    The body is the file itself, typed by its Content-Type header.
    """
    content_type = request.headers.get("content-type", "")
    try:
        details = parse_document(await request.body(), content_type)
    except UnsupportedDocumentError as e:
        raise HTTPException(status_code=415, detail=str(e)) from e
    except DocumentReadError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    if validate:
        _check_required(details)
    return details


@router.post("/requests/reference-number", response_model=ReferenceNumberResponse)
async def next_reference_number(body: ReferenceNumberRequest):
    """Next ``SSR-<year>-<seq>`` reference given the ones already issued."""
    sequence = next_sequential_number(body.existing)
    return ReferenceNumberResponse(
        reference_number=generate_reference_number(sequence), sequence=sequence
    )


@router.post("/users/username", response_model=UsernameResponse)
async def suggest_username(body: UsernameRequest):
    try:
        username = generate_username(body.full_name)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return UsernameResponse(username=username)
