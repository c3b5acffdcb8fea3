"""
Telegram inject router.

Lets a trusted caller push a Telegram Update into the bot's normal update
pipeline, bypassing Telegram's own delivery.

Endpoint:
  POST /telegram/inject?accountId=<optional>   (auth: Authorization: Bearer)

Bodies:
  application/json      {"update": {...}, "accountId"?: "..."}
  multipart/form-data   payload=<same JSON as text>, media=<file, optional>

Responses:
  202  {"ok": true, "message": "update processed", "updateId": N}
  400  bad body / update shape / unknown account
  401  plain text "Unauthorized"
  405  plain text, Allow: POST
  413  body over 1 MiB (JSON) / 10 MiB (multipart)
  500  the update pipeline failed
  503  inject not configured or misconfigured

Media that cannot be stored is logged and dropped; the update is still
delivered.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from tginject.auth import get_bearer_token, resolve_and_authenticate
from tginject.config import load_config
from tginject.errors import (
    DelegationError,
    InjectError,
    PayloadTooLargeError,
    UnauthorizedError,
)
from tginject.models.inject import InjectConfig, ParsedInjectRequest
from tginject.services.bot import (
    INJECT_CONTENT_TYPE_KEY,
    INJECT_FILE_PATH_KEY,
    InjectBot,
    create_telegram_bot,
)
from tginject.services.inject_request import classify_and_validate
from tginject.services.media_store import save_media_buffer

logger = logging.getLogger(__name__)

router = APIRouter()

INJECT_PATH = "/telegram/inject"
MEDIA_DIRECTION = "inbound"


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------

def _json(status_code: int, body: dict, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers=headers,
        media_type="application/json; charset=utf-8",
    )


def _error_response(exc: InjectError) -> Response:
    if isinstance(exc, UnauthorizedError):
        return PlainTextResponse("Unauthorized", status_code=401)

    headers = None
    if isinstance(exc, PayloadTooLargeError):
        # The rest of the body was never read; don't reuse the connection
        headers = {"Connection": "close"}
    return _json(exc.status_code, {"ok": False, "error": exc.message}, headers)


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------

async def _attach_media(parsed: ParsedInjectRequest, inject_config: InjectConfig) -> None:
    """Store attached media and stamp it onto the message. Best-effort."""
    media = parsed.media
    if media is None:
        return

    try:
        stored = await save_media_buffer(
            media.data,
            media.content_type,
            MEDIA_DIRECTION,
            inject_config.account_id,
            media.filename,
        )
    except Exception as e:
        logger.warning(
            f"Failed to store media for update {parsed.update_id} "
            f"({inject_config.account_id}); delivering without it: {e}"
        )
        return

    parsed.message[INJECT_FILE_PATH_KEY] = stored.path
    parsed.message[INJECT_CONTENT_TYPE_KEY] = stored.content_type


async def _shutdown_bot(bot: InjectBot) -> None:
    try:
        await bot.shutdown()
    except Exception as e:
        logger.warning(f"Inject bot shutdown failed: {e}")


async def _delegate(parsed: ParsedInjectRequest, inject_config: InjectConfig) -> None:
    """
    Run the update through a fresh bot for the resolved account.

    Raises DelegationError when the bot cannot be built or initialized, or
    when the update pipeline fails.
    """
    try:
        bot = create_telegram_bot(
            token=inject_config.bot_token,
            account_id=inject_config.account_id,
            config=inject_config.account_config,
        )
    except Exception as e:
        raise DelegationError(str(e)) from e

    try:
        await bot.init()
        await bot.handle_update(parsed.update)
    except Exception as e:
        raise DelegationError(str(e)) from e
    finally:
        await _shutdown_bot(bot)


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

async def inject_http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """
    App-level HTTPException handler.

    Routing answers any non-POST method on the inject path with 405; that
    response is rewritten to advertise only POST. Everything else gets
    FastAPI's default handling.
    """
    if exc.status_code == 405 and request.url.path == INJECT_PATH:
        return PlainTextResponse(
            "Method Not Allowed",
            status_code=405,
            headers={"Allow": "POST"},
        )
    return await http_exception_handler(request, exc)


@router.post(INJECT_PATH)
async def telegram_inject(request: Request) -> Response:
    """Authenticate, parse and deliver one injected Telegram update."""
    try:
        cfg = load_config()
        inject_config = resolve_and_authenticate(
            cfg,
            request.query_params.get("accountId") or None,
            get_bearer_token(request.headers.get("authorization")),
        )
        parsed = await classify_and_validate(request.headers.get("content-type"), request)
    except InjectError as e:
        if e.status_code >= 500:
            logger.error(f"Inject request rejected: {e.message}")
        return _error_response(e)

    await _attach_media(parsed, inject_config)

    try:
        await _delegate(parsed, inject_config)
    except DelegationError as e:
        logger.error(
            f"Update {parsed.update_id} failed in telegram account "
            f"{inject_config.account_id!r}: {e.message}"
        )
        return _error_response(e)

    logger.info(f"Injected update {parsed.update_id} into telegram account {inject_config.account_id!r}")
    return _json(
        202,
        {"ok": True, "message": "update processed", "updateId": parsed.update_id},
    )
