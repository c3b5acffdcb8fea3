"""
Telegram account resolution.

The ``channels.telegram`` section holds base settings shared by every
account plus an optional ``accounts`` map of per-account overrides. An
account's effective config is the base section (minus ``accounts``)
shallow-merged with its own entry.
"""

import os
from typing import Optional

from tginject.config import get_telegram_section
from tginject.errors import AccountResolutionError
from tginject.models.inject import TelegramAccount

DEFAULT_ACCOUNT_ID = "default"


def list_telegram_account_ids(cfg: dict) -> list[str]:
    """Account ids under ``channels.telegram.accounts``, in config order."""
    accounts = get_telegram_section(cfg).get("accounts")
    if not isinstance(accounts, dict):
        return []
    return [str(account_id) for account_id in accounts]


def _normalize_account_id(account_id: Optional[str]) -> str:
    normalized = (account_id or "").strip()
    return normalized or DEFAULT_ACCOUNT_ID


def resolve_telegram_account(cfg: dict, account_id: Optional[str] = None) -> TelegramAccount:
    """
    Resolve one account's merged config and bot token.

    Args:
        cfg: Config snapshot from load_config().
        account_id: Account to resolve; None or "" means the default account.

    Raises:
        AccountResolutionError: Telegram is not configured at all, the named
            account does not exist, or its entry is not an object.
    """
    section = get_telegram_section(cfg)
    if not section:
        raise AccountResolutionError("channels.telegram is not configured")

    resolved_id = _normalize_account_id(account_id)
    base = {k: v for k, v in section.items() if k != "accounts"}
    accounts = section.get("accounts") or {}
    if not isinstance(accounts, dict):
        raise AccountResolutionError("channels.telegram.accounts must be an object")

    if resolved_id in accounts:
        override = accounts[resolved_id]
        if not isinstance(override, dict):
            raise AccountResolutionError(
                f"channels.telegram.accounts.{resolved_id} must be an object"
            )
    elif resolved_id == DEFAULT_ACCOUNT_ID:
        # Single-account deployments configure everything at the top level
        override = {}
    else:
        raise AccountResolutionError(f"unknown telegram account {resolved_id!r}")

    merged = {**base, **override}

    token = str(merged.get("botToken") or "").strip()
    if not token and resolved_id == DEFAULT_ACCOUNT_ID:
        token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()

    return TelegramAccount(account_id=resolved_id, token=token, config=merged)
