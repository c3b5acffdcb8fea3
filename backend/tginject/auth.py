"""
Bearer-token authentication for the Telegram inject endpoint.

Each Telegram account may enable injection with its own static secret:

    channels.telegram.accounts.<id>.inject = {"enabled": true, "token": "..."}

The caller's ``Authorization: Bearer <token>`` must equal that secret
exactly. Which account is checked:

1. ``?accountId=`` when given — only that account.
2. Otherwise the default account (single-account deployments), then the
   first account in config order with inject enabled. Accounts whose config
   cannot be resolved, or that are enabled without a secret, are skipped;
   when only misconfigured accounts are enabled the request fails with 503.

Token comparison is plain string equality (see DESIGN.md).
"""

import logging
from typing import Iterator, Optional

from tginject.errors import (
    AccountResolutionError,
    InjectionMisconfiguredError,
    InjectionNotConfiguredError,
    UnauthorizedError,
)
from tginject.models.inject import InjectConfig, TelegramAccount
from tginject.services.accounts import (
    DEFAULT_ACCOUNT_ID,
    list_telegram_account_ids,
    resolve_telegram_account,
)

logger = logging.getLogger(__name__)


def get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header value.

    Returns None when the header is missing, uses another scheme, or carries
    an empty token.
    """
    if not authorization:
        return None
    raw = authorization.strip()
    if not raw.lower().startswith("bearer "):
        return None
    token = raw[len("bearer "):].strip()
    return token or None


def _inject_enabled(account: TelegramAccount) -> bool:
    inject = account.config.get("inject")
    return isinstance(inject, dict) and inject.get("enabled") is True


def _implicit_accounts(cfg: dict) -> Iterator[TelegramAccount]:
    """Yield the default account, then named accounts in config order."""
    try:
        yield resolve_telegram_account(cfg, None)
    except AccountResolutionError as e:
        logger.debug(f"Default telegram account unavailable: {e.message}")

    for account_id in list_telegram_account_ids(cfg):
        if account_id == DEFAULT_ACCOUNT_ID:
            continue
        try:
            yield resolve_telegram_account(cfg, account_id)
        except AccountResolutionError as e:
            logger.debug(f"Skipping telegram account {account_id!r}: {e.message}")


def _find_inject_config(cfg: dict, requested_account_id: Optional[str]) -> InjectConfig:
    """
    Find the inject config that applies to this request.

    Without ``requested_account_id``, accounts that are enabled but have no
    secret are skipped in favor of a later usable one.

    Raises:
        AccountResolutionError: an explicitly requested account is unknown.
        InjectionNotConfiguredError: no candidate has inject enabled.
        InjectionMisconfiguredError: the requested account, or every enabled
            candidate, lacks a secret.
    """
    if requested_account_id:
        account = resolve_telegram_account(cfg, requested_account_id)
        if not _inject_enabled(account):
            raise InjectionNotConfiguredError()
        return get_telegram_inject_config(account)

    misconfigured: Optional[InjectionMisconfiguredError] = None
    for account in _implicit_accounts(cfg):
        if not _inject_enabled(account):
            continue
        try:
            return get_telegram_inject_config(account)
        except InjectionMisconfiguredError as e:
            logger.debug(f"Skipping telegram account {account.account_id!r}: {e.message}")
            if misconfigured is None:
                misconfigured = e

    if misconfigured is not None:
        raise misconfigured
    raise InjectionNotConfiguredError()


def get_telegram_inject_config(account: TelegramAccount) -> InjectConfig:
    """
    Build the inject config for an account that has inject enabled.

    Raises:
        InjectionMisconfiguredError: inject is enabled without a token.
    """
    inject = account.config.get("inject") or {}
    token = str(inject.get("token") or "").strip()
    if not token:
        raise InjectionMisconfiguredError(
            f"telegram.accounts.{account.account_id}.inject.enabled requires inject.token"
        )
    return InjectConfig(
        token=token,
        account_id=account.account_id,
        bot_token=account.token,
        account_config=account.config,
    )


def resolve_and_authenticate(
    cfg: dict,
    requested_account_id: Optional[str],
    bearer_token: Optional[str],
) -> InjectConfig:
    """
    Resolve the target account and check the caller's bearer token.

    Args:
        cfg: Config snapshot loaded for this request.
        requested_account_id: ``accountId`` query parameter, if any.
        bearer_token: Token from the Authorization header, if any.

    Returns:
        The InjectConfig of the authenticated account.

    Raises:
        AccountResolutionError: 400, requested account missing/malformed.
        InjectionNotConfiguredError: 503, no account has inject enabled.
        InjectionMisconfiguredError: 503, enabled without a secret.
        UnauthorizedError: 401, token missing or not equal to the secret.
    """
    inject_config = _find_inject_config(cfg, requested_account_id)

    if not bearer_token or bearer_token != inject_config.token:
        logger.warning(
            f"Rejected inject request for telegram account {inject_config.account_id!r}: "
            f"{'missing' if not bearer_token else 'invalid'} bearer token"
        )
        raise UnauthorizedError()

    return inject_config
