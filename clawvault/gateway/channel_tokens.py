"""
In-memory store for channel tokens fetched from the vault sidecar.

At gateway startup, fetch_vault_channel_tokens() pulls chat-platform bot
tokens (Telegram, Discord, Slack) from the sidecar's token endpoint on the
internal network. Tokens are kept only in a ChannelTokenStore, which the
caller creates once and hands to each channel integration. Nothing is
written to disk or exported to the environment.

Usage:
    store = ChannelTokenStore()
    fetch_vault_channel_tokens(config_document, store)
    token = resolve_telegram_token(config_document, store).token
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlsplit

import httpx

from clawvault.config import get_config
from clawvault.gateway.config_file import vault_settings
from clawvault.vault.registry import (
    DEFAULT_PROXY_HOST,
    VAULT_CHANNEL_DEFAULTS,
    channel_secret_name,
    validate_proxy_host,
)

logger = logging.getLogger(__name__)


class ChannelTokenStore:
    """Process-lifetime map of secret name -> token."""

    def __init__(self) -> None:
        self._tokens: dict[str, str] = {}

    def get(self, secret_name: str) -> str | None:
        return self._tokens.get(secret_name)

    def set(self, secret_name: str, token: str) -> None:
        self._tokens[secret_name] = token

    def names(self) -> list[str]:
        return sorted(self._tokens)

    def clear(self) -> None:
        self._tokens.clear()

    def __contains__(self, secret_name: object) -> bool:
        return secret_name in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def __repr__(self) -> str:
        # Names only.
        return f"ChannelTokenStore({self.names()!r})"


def resolve_vault_host(document: dict[str, Any]) -> str:
    """Hostname of the first usable proxy URL, else "vault"."""
    for url in vault_settings(document).proxies.values():
        try:
            host = urlsplit(url).hostname or ""
            validate_proxy_host(host)
        except ValueError:  # includes InvalidHostnameError
            continue
        return host
    return DEFAULT_PROXY_HOST


def channel_token_names(document: dict[str, Any]) -> list[str]:
    """Base token names plus one per account configured under each channel."""
    names: list[str] = []
    channels = document.get("channels") or {}
    for entry in VAULT_CHANNEL_DEFAULTS.values():
        names.append(entry.secret_name)
        channel_cfg = channels.get(entry.channel)
        accounts = channel_cfg.get("accounts") if isinstance(channel_cfg, dict) else None
        if isinstance(accounts, dict):
            names.extend(channel_secret_name(entry.secret_name, a) for a in sorted(accounts))
    return names


def fetch_vault_channel_tokens(
    document: dict[str, Any],
    store: ChannelTokenStore,
    *,
    port: int | None = None,
    timeout: float | None = None,
) -> int:
    """Fetch channel tokens from the sidecar into store.

    Call once at startup, before channels are initialized. Failures are
    logged and skipped so channels can fall back to config/env tokens.
    Returns the number of tokens loaded.
    """
    if not vault_settings(document).enabled:
        return 0

    cfg = get_config()
    port = port or cfg.token_port
    timeout = timeout if timeout is not None else cfg.token_timeout
    host = resolve_vault_host(document)

    loaded = 0
    for secret_name in channel_token_names(document):
        url = f"http://{host}:{port}/tokens/{secret_name}"
        try:
            resp = httpx.get(url, timeout=timeout)
        except httpx.HTTPError as e:
            logger.warning("vault: failed to fetch %s: %s", secret_name, e)
            continue
        if resp.status_code != 200:
            logger.warning("vault: failed to fetch %s: HTTP %d", secret_name, resp.status_code)
            continue
        token = resp.text.strip()
        if not token:
            continue  # not configured in the vault
        store.set(secret_name, token)
        loaded += 1
        logger.info("vault: channel token loaded: %s", secret_name)
    return loaded
