"""
Request classification and validation for the inject endpoint.

The Content-Type header is inspected once to choose the body variant:

  multipart/form-data  — ``payload`` field (JSON text, required) and
                         ``media`` field (raw bytes, optional)
  anything else        — the body itself is the JSON payload

The payload must carry ``update`` with a numeric ``update_id`` and one of
the message-bearing fields below.
"""

import json
import logging
import re
from typing import Optional

from starlette.requests import Request

from tginject.errors import (
    InvalidPayloadJsonError,
    InvalidUpdateShapeError,
    MissingBoundaryError,
    MissingPayloadFieldError,
    MissingUpdateError,
    NoMessageInUpdateError,
)
from tginject.models.inject import (
    JsonBody,
    MediaUpload,
    MultipartBody,
    ParsedInjectRequest,
    RequestBody,
)
from tginject.services.body_reader import read_body
from tginject.services.multipart import decode_multipart

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_JSON_BODY_BYTES = 1024 * 1024  # 1 MiB
MAX_MULTIPART_BODY_BYTES = 10 * 1024 * 1024  # 10 MiB, room for attached media

# Precedence order when picking "the" message of an update
MESSAGE_FIELDS = ("message", "edited_message", "channel_post", "edited_channel_post")

PAYLOAD_FIELD = "payload"
MEDIA_FIELD = "media"

_BOUNDARY_RE = re.compile(r'(?:^|;)\s*boundary=(?:"([^"]+)"|([^;\s]+))', re.IGNORECASE)


# ---------------------------------------------------------------------------
# Content-Type dispatch
# ---------------------------------------------------------------------------

def is_multipart(content_type: Optional[str]) -> bool:
    return (content_type or "").strip().lower().startswith("multipart/form-data")


def extract_boundary(content_type: str) -> str:
    """
    Return the boundary parameter of a multipart Content-Type.

    Raises MissingBoundaryError when there is none.
    """
    match = _BOUNDARY_RE.search(content_type)
    if not match:
        raise MissingBoundaryError()
    boundary = (match.group(1) or match.group(2) or "").strip()
    if not boundary:
        raise MissingBoundaryError()
    return boundary


async def read_request_body(content_type: Optional[str], request: Request) -> RequestBody:
    """Read the body once into the variant chosen by the Content-Type."""
    if is_multipart(content_type):
        boundary = extract_boundary(content_type)
        raw = await read_body(request, MAX_MULTIPART_BODY_BYTES, "raw")
        return MultipartBody(fields=decode_multipart(raw, boundary))

    value = await read_body(request, MAX_JSON_BODY_BYTES, "json")
    return JsonBody(value=value)


# ---------------------------------------------------------------------------
# Payload extraction / validation
# ---------------------------------------------------------------------------

def _payload_from_multipart(body: MultipartBody) -> tuple[object, Optional[MediaUpload]]:
    payload_field = body.get(PAYLOAD_FIELD)
    if payload_field is None:
        raise MissingPayloadFieldError()

    try:
        payload = json.loads(payload_field.data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidPayloadJsonError(f"invalid JSON in payload field: {exc}")

    media: Optional[MediaUpload] = None
    media_field = body.get(MEDIA_FIELD)
    if media_field is not None and len(media_field.data) > 0:
        media = MediaUpload(
            data=media_field.data,
            filename=media_field.filename,
            content_type=media_field.content_type,
        )
    return payload, media


def _is_number(value: object) -> bool:
    # bool is an int subclass but not an update id
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def extract_message(update: dict) -> Optional[dict]:
    """Return the first message-bearing object of the update, by precedence."""
    for key in MESSAGE_FIELDS:
        candidate = update.get(key)
        if isinstance(candidate, dict):
            return candidate
    return None


def validate_payload(payload: object, media: Optional[MediaUpload] = None) -> ParsedInjectRequest:
    """
    Check the payload shape and pick out the update and its message.

    Non-object payloads are treated as an empty object.
    """
    if not isinstance(payload, dict):
        payload = {}

    update = payload.get("update")
    if not isinstance(update, dict):
        raise MissingUpdateError()

    if not _is_number(update.get("update_id")):
        raise InvalidUpdateShapeError()

    message = extract_message(update)
    if message is None:
        raise NoMessageInUpdateError()

    return ParsedInjectRequest(payload=payload, update=update, message=message, media=media)


async def classify_and_validate(content_type: Optional[str], request: Request) -> ParsedInjectRequest:
    """
    Read, decode and validate an inject request body.

    Raises:
        InjectError subclasses for every client-input problem (size, JSON,
        boundary, missing fields, update shape).
    """
    body = await read_request_body(content_type, request)

    if isinstance(body, MultipartBody):
        logger.debug(f"Decoded {len(body.fields)} multipart field(s)")
        payload, media = _payload_from_multipart(body)
    else:
        payload, media = body.value, None

    return validate_payload(payload, media)
