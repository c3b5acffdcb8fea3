"""
multipart/form-data decoder.

Works directly on the body bytes with an explicit cursor: find the
delimiter, find the end of the part headers, find the next delimiter, slice.
Malformed or truncated input ends decoding early and returns the parts
collected so far; it never raises. A short field list can therefore mean
the body was incomplete.
"""

import re
from typing import Optional

from tginject.models.inject import RawField

_CRLF = b"\r\n"
_HEADER_END = b"\r\n\r\n"

_NAME_RE = re.compile(r'(?<![\w*])name="([^"]*)"', re.IGNORECASE)
_FILENAME_RE = re.compile(r'filename="([^"]*)"', re.IGNORECASE)


def _parse_part_headers(block: bytes) -> dict[str, str]:
    """Parse ``name: value`` header lines; names are lower-cased."""
    headers: dict[str, str] = {}
    for line in block.decode("utf-8", errors="replace").split("\r\n"):
        name, sep, value = line.partition(":")
        if not sep:
            continue
        headers[name.strip().lower()] = value.strip()
    return headers


def _disposition_params(disposition: str) -> tuple[str, Optional[str]]:
    name_match = _NAME_RE.search(disposition)
    filename_match = _FILENAME_RE.search(disposition)
    name = name_match.group(1) if name_match else ""
    filename = filename_match.group(1) if filename_match else None
    return name, filename


def decode_multipart(body: bytes, boundary: str) -> list[RawField]:
    """
    Split a multipart body into its named parts.

    Args:
        body: The raw request body.
        boundary: Boundary token from the Content-Type header (without "--").

    Returns:
        Decoded fields in body order. Empty when the delimiter never appears.
    """
    delimiter = b"--" + boundary.encode("utf-8")
    fields: list[RawField] = []

    pos = body.find(delimiter)
    if pos == -1:
        return fields

    while True:
        pos += len(delimiter)

        # Closing delimiter
        if body[pos:pos + 2] == b"--":
            break
        if body[pos:pos + 2] == _CRLF:
            pos += 2

        header_end = body.find(_HEADER_END, pos)
        if header_end == -1:
            break

        headers = _parse_part_headers(body[pos:header_end])
        name, filename = _disposition_params(headers.get("content-disposition", ""))

        data_start = header_end + len(_HEADER_END)
        next_delimiter = body.find(delimiter, data_start)
        if next_delimiter == -1:
            break

        data_end = next_delimiter
        # The line break before a delimiter belongs to the delimiter
        if next_delimiter - 2 >= data_start and body[next_delimiter - 2:next_delimiter] == _CRLF:
            data_end = next_delimiter - 2

        fields.append(
            RawField(
                name=name,
                data=body[data_start:data_end],
                filename=filename,
                content_type=headers.get("content-type"),
            )
        )
        pos = next_delimiter

    return fields
