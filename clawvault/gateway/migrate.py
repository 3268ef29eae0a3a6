"""Move plaintext credentials from openclaw.json into vault.age.

Usage:
    clawvault migrate [--dry-run] [--proxy-host HOST]

Every provider credential and channel token in the config falls into one of
four states:

    NONE           no credential
    PROXY_MANAGED  already the sentinel value, left untouched
    MIGRATE        plaintext with a proxy path: moved into the vault
    NO_PROXY       plaintext without a proxy path (e.g. ollama): left in place

The state depends only on the config itself, so running migrate a second
time finds nothing to move and changes nothing.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from clawvault.config import Config, get_config
from clawvault.errors import MissingPublicKeyError
from clawvault.gateway.config_file import (
    ConfigSnapshot,
    delete_nested_key,
    read_config_snapshot,
    resolve_vault_file_path,
    save_if_changed,
    vault_proxies,
    vault_section,
)
from clawvault.output import print_rows, print_secret_key_notice
from clawvault.vault.crypto import decrypt_vault, encrypt_vault, generate_keypair
from clawvault.vault.keys import resolve_secret_key
from clawvault.vault.registry import (
    VAULT_CHANNEL_DEFAULTS,
    build_default_proxy_map,
    channel_secret_name,
    custom_secret_name,
    provider_proxy_url,
    provider_secret_name,
)

logger = logging.getLogger(__name__)

# apiKey value meaning "the vault proxy injects the real key".
VAULT_PROXY_PLACEHOLDER_KEY = "vault-proxy-managed"


class CredentialState(str, Enum):
    NONE = "none"
    PROXY_MANAGED = "proxy_managed"
    MIGRATE = "migrate"
    NO_PROXY = "no_proxy"


@dataclass
class ProviderMigration:
    provider: str
    secret_name: str
    api_key: str
    proxy_url: str

    @property
    def config_path(self) -> str:
        return f"models.providers.{self.provider}.apiKey"


@dataclass
class ChannelTokenMigration:
    secret_name: str
    token: str
    keys: tuple[str, ...]

    @property
    def config_path(self) -> str:
        return ".".join(self.keys)


@dataclass
class MigrationPlan:
    providers: list[ProviderMigration] = field(default_factory=list)
    channel_tokens: list[ChannelTokenMigration] = field(default_factory=list)
    left_in_place: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.providers) + len(self.channel_tokens)

    def secrets(self) -> dict[str, str]:
        result = {m.secret_name: m.api_key for m in self.providers}
        result.update({m.secret_name: m.token for m in self.channel_tokens})
        return result

    def proxy_mappings(self) -> dict[str, str]:
        return {m.provider: m.proxy_url for m in self.providers}


# ─── Scanning ────────────────────────────────────────────────────────


def classify_credential(value: Any, has_proxy_path: bool) -> CredentialState:
    if not isinstance(value, str) or not value.strip():
        return CredentialState.NONE
    if value.strip() == VAULT_PROXY_PLACEHOLDER_KEY:
        return CredentialState.PROXY_MANAGED
    if not has_proxy_path:
        return CredentialState.NO_PROXY
    return CredentialState.MIGRATE


def _provider_proxy(provider: str, proxies: dict[str, str], proxy_host: str) -> str | None:
    """Registry URL, else an explicitly configured mapping, else None."""
    return provider_proxy_url(provider, proxy_host) or proxies.get(provider)


def scan_config(document: dict[str, Any], proxy_host: str = "vault") -> MigrationPlan:
    """Find every credential in document that can move into the vault."""
    plan = MigrationPlan()
    existing_proxies = (document.get("vault") or {}).get("proxies") or {}

    providers = (document.get("models") or {}).get("providers") or {}
    for name in sorted(providers):
        provider_cfg = providers[name]
        if not isinstance(provider_cfg, dict):
            continue
        url = _provider_proxy(name, existing_proxies, proxy_host)
        api_key = provider_cfg.get("apiKey")
        state = classify_credential(api_key, bool(url))
        if state is CredentialState.NO_PROXY:
            plan.left_in_place.append(name)
        elif state is CredentialState.MIGRATE and url:
            plan.providers.append(
                ProviderMigration(
                    provider=name,
                    secret_name=provider_secret_name(name) or custom_secret_name(name),
                    api_key=api_key.strip(),
                    proxy_url=url,
                )
            )

    channels = document.get("channels") or {}
    for entry in VAULT_CHANNEL_DEFAULTS.values():
        channel_cfg = channels.get(entry.channel)
        if not isinstance(channel_cfg, dict):
            continue
        base = channel_cfg.get(entry.token_field)
        if classify_credential(base, True) is CredentialState.MIGRATE:
            plan.channel_tokens.append(
                ChannelTokenMigration(
                    secret_name=entry.secret_name,
                    token=base.strip(),
                    keys=("channels", entry.channel, entry.token_field),
                )
            )
        accounts = channel_cfg.get("accounts")
        if not isinstance(accounts, dict):
            continue
        for account_id in sorted(accounts):
            account_cfg = accounts[account_id]
            if not isinstance(account_cfg, dict):
                continue
            token = account_cfg.get(entry.token_field)
            if classify_credential(token, True) is CredentialState.MIGRATE:
                plan.channel_tokens.append(
                    ChannelTokenMigration(
                        secret_name=channel_secret_name(entry.secret_name, account_id),
                        token=token.strip(),
                        keys=("channels", entry.channel, "accounts", account_id, entry.token_field),
                    )
                )
    return plan


# ─── Config rewriting ────────────────────────────────────────────────


def with_default_proxies(document: dict[str, Any], proxy_host: str = "vault") -> dict[str, Any]:
    """Copy of document with registry proxy mappings added; existing entries win."""
    result = copy.deepcopy(document)
    proxies = vault_proxies(result)
    merged = {**build_default_proxy_map(proxy_host), **proxies}
    proxies.clear()
    proxies.update(merged)
    return result


def apply_migration(
    document: dict[str, Any],
    plan: MigrationPlan,
    *,
    public_key: str,
    proxy_host: str = "vault",
) -> dict[str, Any]:
    """Copy of document with migrated plaintext removed and the vault enabled."""
    result = with_default_proxies(document, proxy_host)
    section = vault_section(result)
    section["enabled"] = True
    section["publicKey"] = public_key
    vault_proxies(result).update(plan.proxy_mappings())

    for m in plan.providers:
        delete_nested_key(result, ("models", "providers", m.provider, "apiKey"))
    for m in plan.channel_tokens:
        delete_nested_key(result, m.keys)
    return result


# ─── Command ─────────────────────────────────────────────────────────


def migrate(
    *,
    proxy_host: str = "vault",
    dry_run: bool = False,
    cfg: Config | None = None,
) -> int:
    """Run the migration. Returns 0 on success.

    Raises VaultError subclasses for operator errors (bad key, bad host).
    """
    cfg = cfg or get_config()
    snapshot = read_config_snapshot(cfg.config_path)
    plan = scan_config(snapshot.config, proxy_host)
    # Validates proxy_host before anything is written.
    defaults = build_default_proxy_map(proxy_host)

    for name in plan.left_in_place:
        logger.info("Leaving %s apiKey in config: no vault proxy for this provider", name)

    if plan.total == 0:
        if dry_run:
            print("No plaintext secrets found. Default proxy mappings would be written.")
            return 0
        document = with_default_proxies(snapshot.config, proxy_host)
        save_if_changed(snapshot, document)
        print("No plaintext secrets found in config.")
        print(f"Default proxy mappings ensured ({len(defaults)} providers).")
        return 0

    _print_plan(plan)
    if dry_run:
        print()
        print("Dry run — no changes made.")
        return 0

    vault_path = resolve_vault_file_path(snapshot.config, cfg)
    public_key, identity, secrets = _open_vault(snapshot, vault_path)

    secrets.update(plan.secrets())
    encrypt_vault(secrets, public_key, vault_path)

    document = apply_migration(
        snapshot.config, plan, public_key=public_key, proxy_host=proxy_host
    )
    save_if_changed(snapshot, document)

    print()
    for m in plan.channel_tokens:
        print(f"Migrated channel token: {m.secret_name} (removed from {m.config_path})")
    print(f"Migrated {plan.total} secret(s) to vault.")
    print(f"Vault file: {vault_path}")
    if identity:
        print_secret_key_notice(identity)
    return 0


def _open_vault(
    snapshot: ConfigSnapshot, vault_path: Path
) -> tuple[str, str | None, dict[str, str]]:
    """Return (public key, newly generated identity or None, existing secrets)."""
    public_key = (snapshot.vault.public_key or "").strip()
    if not public_key:
        if vault_path.exists():
            raise MissingPublicKeyError(
                f"Vault file {vault_path} exists but vault.publicKey is not configured.",
                hint="Restore vault.publicKey in config, or run 'clawvault init --force'.",
            )
        keypair = generate_keypair()
        logger.info("Generated new vault keypair for %s", vault_path)
        return keypair.recipient, keypair.identity, {}

    if not vault_path.exists():
        return public_key, None, {}
    return public_key, None, decrypt_vault(vault_path, resolve_secret_key())


def _print_plan(plan: MigrationPlan) -> None:
    if plan.providers:
        print("Provider API keys:")
        print_rows([(m.provider, f"{m.secret_name} -> {m.proxy_url}") for m in plan.providers])
    if plan.channel_tokens:
        print("Channel tokens:")
        print_rows([(m.config_path, m.secret_name) for m in plan.channel_tokens])
