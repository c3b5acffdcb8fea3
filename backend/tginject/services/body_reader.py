"""
Bounded request body reader.

Streams a request body into memory with a hard byte cap. The cap is checked
on every chunk so a single oversized chunk is rejected without buffering the
rest of the stream.
"""

import json
import logging
from typing import Any, Literal

from starlette.requests import ClientDisconnect, Request

from tginject.errors import MalformedJsonError, PayloadTooLargeError, TransportError

logger = logging.getLogger(__name__)

BodyMode = Literal["json", "raw"]


async def read_body(request: Request, max_bytes: int, mode: BodyMode) -> Any:
    """
    Read the whole request body, refusing anything over ``max_bytes``.

    Args:
        request: Incoming Starlette request (body not yet consumed).
        max_bytes: Hard cap on the total body size.
        mode: "json" to decode UTF-8 and JSON-parse, "raw" for bytes.

    Returns:
        The parsed JSON value ({} for a blank body) in json mode, the body
        bytes in raw mode.

    Raises:
        PayloadTooLargeError: running total went past ``max_bytes``.
        MalformedJsonError: json mode and the body is not valid JSON.
        TransportError: the client went away mid-read.
    """
    chunks: list[bytes] = []
    total = 0
    stream = request.stream()
    try:
        async for chunk in stream:
            total += len(chunk)
            if total > max_bytes:
                chunks.clear()
                logger.warning(
                    f"Request body exceeded {max_bytes} bytes; aborting read"
                )
                raise PayloadTooLargeError()
            if chunk:
                chunks.append(chunk)
    except ClientDisconnect:
        chunks.clear()
        raise TransportError("client disconnected")
    except OSError as exc:
        chunks.clear()
        raise TransportError(str(exc))
    finally:
        await stream.aclose()

    raw = b"".join(chunks)
    if mode == "raw":
        return raw

    try:
        text = raw.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise MalformedJsonError(f"body is not valid UTF-8: {exc}")
    if not text:
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedJsonError(f"invalid JSON: {exc}")
