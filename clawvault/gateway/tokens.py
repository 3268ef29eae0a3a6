"""Resolve chat-platform tokens for channel integrations.

Sources are tried in a fixed order, first non-empty wins:
    vault (ChannelTokenStore) → config → environment → token file

Environment variables only apply to the default account. Account ids are
matched case-insensitively against channels.<channel>.accounts.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from clawvault.gateway.channel_tokens import ChannelTokenStore
from clawvault.vault.models import ChannelTokenEntry
from clawvault.vault.registry import VAULT_CHANNEL_DEFAULTS, channel_secret_name

logger = logging.getLogger(__name__)

TokenSource = Literal["vault", "config", "env", "tokenFile", "none"]

DEFAULT_ACCOUNT_ID = "default"


@dataclass(frozen=True)
class TokenResolution:
    token: str = field(repr=False)
    source: TokenSource = "none"


@dataclass(frozen=True)
class SlackTokenResolution:
    bot_token: str = field(repr=False)
    bot_token_source: TokenSource
    app_token: str = field(repr=False)
    app_token_source: TokenSource


def _is_default(account_id: str | None) -> bool:
    return not account_id or account_id.lower() == DEFAULT_ACCOUNT_ID


def _account_config(channel_cfg: dict[str, Any], account_id: str) -> dict[str, Any]:
    accounts = channel_cfg.get("accounts")
    if not isinstance(accounts, dict):
        return {}
    wanted = account_id.lower()
    for key, value in accounts.items():
        if key.lower() == wanted and isinstance(value, dict):
            return value
    return {}


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def resolve_channel_token(
    entry: ChannelTokenEntry,
    document: dict[str, Any],
    store: ChannelTokenStore | None = None,
    *,
    account_id: str | None = None,
    env: Mapping[str, str] | None = None,
    token_file_field: str | None = None,
) -> TokenResolution:
    """Resolve one channel token through vault → config → env → token file."""
    env = os.environ if env is None else env
    default = _is_default(account_id)
    channel_cfg = (document.get("channels") or {}).get(entry.channel)
    channel_cfg = channel_cfg if isinstance(channel_cfg, dict) else {}
    scoped_cfg = channel_cfg if default else _account_config(channel_cfg, account_id or "")

    if store is not None:
        name = channel_secret_name(entry.secret_name, None if default else account_id)
        token = _text(store.get(name))
        if token:
            return TokenResolution(token, "vault")

    token = _text(scoped_cfg.get(entry.token_field))
    if token:
        return TokenResolution(token, "config")

    if default:
        token = _text(env.get(entry.secret_name))
        if token:
            return TokenResolution(token, "env")

    if token_file_field:
        token_file = _text(scoped_cfg.get(token_file_field))
        if token_file:
            try:
                token = Path(token_file).expanduser().read_text(encoding="utf-8").strip()
            except OSError as e:
                logger.warning("%s token file unreadable (%s): %s", entry.channel, token_file, e)
                token = ""
            if token:
                return TokenResolution(token, "tokenFile")

    return TokenResolution("", "none")


def resolve_telegram_token(
    document: dict[str, Any],
    store: ChannelTokenStore | None = None,
    *,
    account_id: str | None = None,
    env: Mapping[str, str] | None = None,
) -> TokenResolution:
    return resolve_channel_token(
        VAULT_CHANNEL_DEFAULTS["telegram"],
        document,
        store,
        account_id=account_id,
        env=env,
        token_file_field="tokenFile",
    )


def resolve_discord_token(
    document: dict[str, Any],
    store: ChannelTokenStore | None = None,
    *,
    account_id: str | None = None,
    env: Mapping[str, str] | None = None,
) -> TokenResolution:
    """Discord token with any leading "Bot " prefix removed."""
    res = resolve_channel_token(
        VAULT_CHANNEL_DEFAULTS["discord"], document, store, account_id=account_id, env=env
    )
    token = res.token
    if token[:4].lower() == "bot ":
        token = token[4:].strip()
    return TokenResolution(token, res.source)


def resolve_slack_tokens(
    document: dict[str, Any],
    store: ChannelTokenStore | None = None,
    *,
    account_id: str | None = None,
    env: Mapping[str, str] | None = None,
) -> SlackTokenResolution:
    bot = resolve_channel_token(
        VAULT_CHANNEL_DEFAULTS["slack"], document, store, account_id=account_id, env=env
    )
    app = resolve_channel_token(
        VAULT_CHANNEL_DEFAULTS["slack-app"], document, store, account_id=account_id, env=env
    )
    return SlackTokenResolution(
        bot_token=bot.token,
        bot_token_source=bot.source,
        app_token=app.token,
        app_token_source=app.source,
    )
