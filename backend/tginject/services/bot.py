"""
Update-processing engine for injected updates.

Wraps a python-telegram-bot ``Application`` built without an updater:
updates are pushed in by the inject endpoint instead of polled. One
InjectBot is created per request and shut down afterwards.

Pipeline for a message-bearing update:
  1. Normalize to InboundMessage (text/caption, sender, stored media).
  2. Mention detection: private chats and channels are always addressed;
     group messages need an @mention of the bot or a reply to the bot.
  3. Unaddressed group messages are dropped when ``requireMention`` is on
     (default), per account or per group (``groups.<chat_id>``).
  4. The message runs through the registered message middlewares in order;
     a middleware returning False stops the chain.
"""

import logging
import re
from typing import Any, Awaitable, Callable, Optional

from telegram import Chat, Message, MessageEntity, Update
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from tginject.models.inject import InboundMessage, StoredMedia

logger = logging.getLogger(__name__)

MessageMiddleware = Callable[[InboundMessage], Awaitable[Optional[bool]]]

# Side-channel keys stamped onto the message dict by the inject endpoint
INJECT_FILE_PATH_KEY = "_inject_file_path"
INJECT_CONTENT_TYPE_KEY = "_inject_content_type"

_GROUP_CHAT_TYPES = (Chat.GROUP, Chat.SUPERGROUP)


# ---------------------------------------------------------------------------
# Middleware registry
# ---------------------------------------------------------------------------

async def log_inbound_message(message: InboundMessage) -> None:
    media = f" media={message.media.path}" if message.media else ""
    logger.info(
        f"[{message.account_id}] chat={message.chat_id} ({message.chat_type}) "
        f"message={message.message_id} from={message.sender_name or message.sender_id} "
        f"mentioned={message.was_mentioned}{media}: {message.text[:200]!r}"
    )


_message_middlewares: list[MessageMiddleware] = [log_inbound_message]


def register_message_middleware(middleware: MessageMiddleware) -> None:
    """Append a middleware to the chain used by bots created from now on."""
    _message_middlewares.append(middleware)


def get_message_middlewares() -> list[MessageMiddleware]:
    return list(_message_middlewares)


# ---------------------------------------------------------------------------
# Normalization / mention detection
# ---------------------------------------------------------------------------

def detect_mention(message: Message, bot_username: Optional[str], bot_id: Optional[int]) -> bool:
    """Return True when the message addresses the bot."""
    if message.chat.type not in _GROUP_CHAT_TYPES:
        return True

    reply = message.reply_to_message
    if reply is not None and reply.from_user is not None and bot_id is not None:
        if reply.from_user.id == bot_id:
            return True

    if not bot_username:
        return False

    handle = f"@{bot_username}".lower()
    mentions = {
        **message.parse_entities([MessageEntity.MENTION]),
        **message.parse_caption_entities([MessageEntity.MENTION]),
    }
    if any(text.lower() == handle for text in mentions.values()):
        return True

    body = message.text or message.caption or ""
    return re.search(rf"{re.escape(handle)}(?!\w)", body, re.IGNORECASE) is not None


def _stored_media(message: Message) -> Optional[StoredMedia]:
    path = message.api_kwargs.get(INJECT_FILE_PATH_KEY)
    if not path:
        return None
    return StoredMedia(
        path=path,
        content_type=message.api_kwargs.get(INJECT_CONTENT_TYPE_KEY) or "application/octet-stream",
    )


def build_inbound_message(
    update: Update,
    account_id: str,
    bot_username: Optional[str] = None,
    bot_id: Optional[int] = None,
) -> Optional[InboundMessage]:
    """Normalize the update's message, or None when it carries none."""
    message = update.effective_message
    if message is None:
        return None

    sender = message.from_user
    sender_name = None
    if sender is not None:
        sender_name = sender.username or sender.full_name
    elif message.sender_chat is not None:
        sender_name = message.sender_chat.title

    return InboundMessage(
        account_id=account_id,
        update_id=update.update_id,
        chat_id=message.chat.id,
        chat_type=message.chat.type,
        message_id=message.message_id,
        text=message.text or message.caption or "",
        sender_id=sender.id if sender is not None else None,
        sender_name=sender_name,
        was_mentioned=detect_mention(message, bot_username, bot_id),
        edited=update.edited_message is not None or update.edited_channel_post is not None,
        media=_stored_media(message),
    )


def requires_mention(account_config: dict, chat_id: int) -> bool:
    groups = account_config.get("groups")
    if isinstance(groups, dict):
        group = groups.get(str(chat_id))
        if isinstance(group, dict) and "requireMention" in group:
            return bool(group["requireMention"])
    return bool(account_config.get("requireMention", True))


async def dispatch_message(
    message: InboundMessage,
    middlewares: list[MessageMiddleware],
    account_config: dict,
) -> bool:
    """
    Run the middleware chain for one message.

    Returns False when the message was dropped by mention gating or a
    middleware stopped the chain.
    """
    if (
        message.chat_type in _GROUP_CHAT_TYPES
        and not message.was_mentioned
        and requires_mention(account_config, message.chat_id)
    ):
        logger.debug(f"Ignoring unaddressed group message {message.message_id} in {message.chat_id}")
        return False

    for middleware in middlewares:
        if await middleware(message) is False:
            return False
    return True


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class InjectBot:
    """One account's update pipeline, scoped to a single inject request."""

    def __init__(
        self,
        application: Application,
        account_id: str,
        account_config: dict,
        middlewares: Optional[list[MessageMiddleware]] = None,
    ):
        self.application = application
        self.account_id = account_id
        self.account_config = account_config
        self.middlewares = middlewares if middlewares is not None else get_message_middlewares()
        self._errors: list[BaseException] = []

        application.add_handler(
            MessageHandler(
                filters.UpdateType.MESSAGES | filters.UpdateType.CHANNEL_POSTS,
                self._on_message,
            )
        )
        application.add_error_handler(self._on_error)

    def _bot_identity(self) -> tuple[Optional[str], Optional[int]]:
        bot = self.application.bot
        try:
            return bot.username, bot.id
        except RuntimeError:
            # Bot.get_me() has not run (init skipped)
            return None, None

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        bot_username, bot_id = self._bot_identity()
        message = build_inbound_message(update, self.account_id, bot_username, bot_id)
        if message is None:
            return
        await dispatch_message(message, self.middlewares, self.account_config)

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        self._errors.append(context.error)

    async def init(self) -> None:
        """Fetch the bot identity (getMe). Fails when Telegram is unreachable."""
        await self.application.initialize()

    async def handle_update(self, update: dict[str, Any]) -> None:
        """
        Process one update to completion.

        Raises the first exception any handler raised.
        """
        self._errors.clear()
        telegram_update = Update.de_json(update, self.application.bot)
        await self.application.process_update(telegram_update)
        if self._errors:
            raise self._errors[0]

    async def shutdown(self) -> None:
        await self.application.shutdown()


def create_telegram_bot(
    token: str,
    account_id: str,
    config: dict,
    middlewares: Optional[list[MessageMiddleware]] = None,
) -> InjectBot:
    """
    Build an InjectBot for one account.

    Args:
        token: The account's bot token.
        account_id: Resolved account id.
        config: The account's merged config (mention settings, groups).
        middlewares: Message middlewares; defaults to the registered chain.

    Raises:
        telegram.error.InvalidToken (and friends) when the token is unusable.
    """
    application = Application.builder().token(token).updater(None).build()
    return InjectBot(application, account_id, config, middlewares)
