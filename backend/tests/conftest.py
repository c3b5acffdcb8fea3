"""Pytest configuration and shared helpers."""

import json

import pytest
from starlette.requests import Request


def make_request(
    chunks: list[bytes],
    content_type: str | None = None,
    disconnect_after: int | None = None,
    received: list | None = None,
) -> Request:
    """
    Build a Starlette Request whose body arrives in ``chunks``.

    ``disconnect_after`` sends http.disconnect once that many chunks were
    delivered. ``received``, when given, collects every chunk handed out so
    tests can check how much of the stream was consumed.
    """
    headers = []
    if content_type is not None:
        headers.append((b"content-type", content_type.encode()))
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/telegram/inject",
        "query_string": b"",
        "headers": headers,
    }
    pending = list(chunks)
    sent = 0

    async def receive():
        nonlocal sent
        if disconnect_after is not None and sent >= disconnect_after:
            return {"type": "http.disconnect"}
        chunk = pending.pop(0) if pending else b""
        sent += 1
        if received is not None:
            received.append(chunk)
        return {"type": "http.request", "body": chunk, "more_body": bool(pending)}

    return Request(scope, receive)


@pytest.fixture
def write_config(tmp_path, monkeypatch):
    """Write a config snapshot to disk and point TGINJECT_CONFIG_PATH at it."""
    path = tmp_path / "tginject.json"
    monkeypatch.setenv("TGINJECT_CONFIG_PATH", str(path))

    def _write(cfg: dict) -> dict:
        path.write_text(json.dumps(cfg))
        return cfg

    return _write
