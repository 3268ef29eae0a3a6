"""
Provider and channel-token registries.

Ports and secret names must match the server blocks in
clawvault/sidecar/nginx.conf.template. The sidecar discovers the variables it
needs from the template at startup, so adding a provider means editing both
the template and VAULT_PROVIDER_DEFAULTS.

Usage:
    from clawvault.vault.registry import provider_proxy_url
    provider_proxy_url("openai")            # "http://vault:8081"
    provider_proxy_url("openai", "my-vault")  # "http://my-vault:8081"
"""

from __future__ import annotations

import re

from clawvault.errors import InvalidHostnameError, InvalidPortError, InvalidProviderError
from clawvault.vault.models import ChannelTokenEntry, ProviderEntry

DEFAULT_PROXY_HOST = "vault"


def _provider(provider_id: str, port: int, secret_name: str) -> tuple[str, ProviderEntry]:
    return provider_id, ProviderEntry(provider_id=provider_id, port=port, secret_name=secret_name)


VAULT_PROVIDER_DEFAULTS: dict[str, ProviderEntry] = dict(
    [
        _provider("openai", 8081, "OPENAI_API_KEY"),
        _provider("anthropic", 8082, "ANTHROPIC_API_KEY"),
        _provider("deepgram", 8083, "DEEPGRAM_API_KEY"),
        _provider("openai-compat", 8084, "OPENAI_COMPAT_API_KEY"),
        _provider("google", 8085, "GEMINI_API_KEY"),
        _provider("groq", 8086, "GROQ_API_KEY"),
        _provider("xai", 8087, "XAI_API_KEY"),
        _provider("mistral", 8088, "MISTRAL_API_KEY"),
        _provider("brave", 8089, "BRAVE_API_KEY"),
        _provider("perplexity", 8090, "PERPLEXITY_API_KEY"),
    ]
)

# Channel tokens are served by the sidecar's token endpoint, not injected.
VAULT_CHANNEL_DEFAULTS: dict[str, ChannelTokenEntry] = {
    "telegram": ChannelTokenEntry(
        channel="telegram", secret_name="TELEGRAM_BOT_TOKEN", token_field="botToken"
    ),
    "discord": ChannelTokenEntry(
        channel="discord", secret_name="DISCORD_BOT_TOKEN", token_field="token"
    ),
    "slack": ChannelTokenEntry(
        channel="slack", secret_name="SLACK_BOT_TOKEN", token_field="botToken"
    ),
    "slack-app": ChannelTokenEntry(
        channel="slack", secret_name="SLACK_APP_TOKEN", token_field="appToken"
    ),
}

_VALID_HOSTNAME = re.compile(r"[a-zA-Z0-9][a-zA-Z0-9._-]*")
_VALID_PROVIDER_NAME = re.compile(r"[a-z][a-z0-9_-]*")


# ─── Validation ──────────────────────────────────────────────────────


def validate_proxy_host(host: str) -> None:
    """Reject hostnames that could smuggle a path, port or scheme into a URL."""
    if not _VALID_HOSTNAME.fullmatch(host):
        raise InvalidHostnameError(
            f"Invalid proxy hostname: {host!r}",
            hint="Hostnames must start with an alphanumeric character "
            "and contain only [a-zA-Z0-9._-].",
        )


def validate_provider_name(name: str) -> None:
    if not _VALID_PROVIDER_NAME.fullmatch(name):
        raise InvalidProviderError(
            f"Invalid provider name: {name!r}",
            hint="Provider names must match [a-z][a-z0-9_-]* (e.g. custom-llm, openai).",
        )


def validate_port(port: int | str) -> int:
    """Return port as an int, raising InvalidPortError outside 1-65535."""
    try:
        value = int(str(port).strip(), 10)
    except ValueError:
        value = 0
    if not 1 <= value <= 65535:
        raise InvalidPortError(
            f"Invalid port: {port!r}",
            hint="Port must be an integer between 1 and 65535.",
        )
    return value


# ─── Provider lookups ────────────────────────────────────────────────


def get_provider(provider: str) -> ProviderEntry | None:
    return VAULT_PROVIDER_DEFAULTS.get(provider.lower())


def provider_secret_name(provider: str) -> str | None:
    """Default secret name for a known provider, or None."""
    entry = get_provider(provider)
    return entry.secret_name if entry else None


def custom_secret_name(provider: str) -> str:
    """Secret name for a provider outside the registry: FOO-BAR -> FOO_BAR_API_KEY."""
    return re.sub(r"[^A-Z0-9]", "_", provider.upper()) + "_API_KEY"


def proxy_url(host: str, port: int) -> str:
    validate_proxy_host(host)
    return f"http://{host}:{port}"


def provider_proxy_url(provider: str, proxy_host: str = DEFAULT_PROXY_HOST) -> str | None:
    """Proxy URL for a known provider, or None if it has no registry entry."""
    entry = get_provider(provider)
    if entry is None:
        return None
    return proxy_url(proxy_host, entry.port)


def build_default_proxy_map(proxy_host: str = DEFAULT_PROXY_HOST) -> dict[str, str]:
    """Proxy URLs for every registry provider."""
    return {
        provider_id: proxy_url(proxy_host, entry.port)
        for provider_id, entry in VAULT_PROVIDER_DEFAULTS.items()
    }


def find_provider_by_secret_name(secret_name: str) -> ProviderEntry | None:
    """Reverse lookup: registry entry whose secret is secret_name."""
    for entry in VAULT_PROVIDER_DEFAULTS.values():
        if entry.secret_name == secret_name:
            return entry
    return None


# ─── Channel tokens ──────────────────────────────────────────────────


def channel_secret_name(base_name: str, account_id: str | None = None) -> str:
    """Secret name for a channel token; accounts get an uppercased suffix."""
    if not account_id:
        return base_name
    suffix = re.sub(r"[^A-Z0-9_]", "_", account_id.upper())
    return f"{base_name}_{suffix}"


def is_channel_token_secret(name: str) -> bool:
    for entry in VAULT_CHANNEL_DEFAULTS.values():
        if name == entry.secret_name or name.startswith(entry.secret_name + "_"):
            return True
    return False
