"""
Models for the Telegram inject endpoint.

Models:
  RawField            — one decoded multipart part
  JsonBody            — request body variant: parsed JSON value
  MultipartBody       — request body variant: decoded multipart fields
  MediaUpload         — media bytes attached to a multipart request
  ParsedInjectRequest — validated payload, update and message
  InjectConfig        — resolved per-request account + inject secret
  StoredMedia         — result of persisting media
  InboundMessage      — normalized message handed to message middleware
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict


# ---------------------------------------------------------------------------
# Body decoding
# ---------------------------------------------------------------------------

@dataclass
class RawField:
    """A single multipart part. ``name`` is "" when the part has none."""
    name: str
    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None


@dataclass
class JsonBody:
    value: Any


@dataclass
class MultipartBody:
    fields: list[RawField] = field(default_factory=list)

    def get(self, name: str) -> Optional[RawField]:
        """Return the first field with exactly this name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None


RequestBody = Union[JsonBody, MultipartBody]


class MediaUpload(BaseModel):
    """Media bytes taken from the ``media`` multipart field."""

    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None


@dataclass
class ParsedInjectRequest:
    """
    A request that passed validation.

    ``message`` is the same dict object found inside ``update`` so stamping
    media onto it is visible to whoever receives ``update``.
    """
    payload: dict
    update: dict
    message: dict
    media: Optional[MediaUpload] = None

    @property
    def update_id(self) -> Union[int, float]:
        return self.update["update_id"]


# ---------------------------------------------------------------------------
# Account / auth
# ---------------------------------------------------------------------------

class InjectConfig(BaseModel):
    """Inject settings for one account, built fresh for every request."""
    model_config = ConfigDict(frozen=True)

    token: str
    account_id: str
    bot_token: str
    account_config: dict


class TelegramAccount(BaseModel):
    """A Telegram account after merging base and per-account config."""
    model_config = ConfigDict(frozen=True)

    account_id: str
    token: str
    config: dict


# ---------------------------------------------------------------------------
# Media / delegation
# ---------------------------------------------------------------------------

class StoredMedia(BaseModel):
    path: str
    content_type: str


@dataclass
class InboundMessage:
    """Telegram message after normalization by the inject bot."""
    account_id: str
    update_id: int
    chat_id: int
    chat_type: str
    message_id: int
    text: str = ""
    sender_id: Optional[int] = None
    sender_name: Optional[str] = None
    was_mentioned: bool = False
    edited: bool = False
    media: Optional[StoredMedia] = None
