"""
clawvault vault — age-encrypted secret file plus provider registry.

Public API:
    generate_keypair()                         → AgeKeypair
    encrypt_vault(secrets, recipient, path)    → write vault.age (600, atomic)
    decrypt_vault(path, secret_key)            → {NAME: value}
    resolve_secret_key()                       → identity from env or prompt
    provider_proxy_url(provider, host)         → "http://vault:8081"
"""

from __future__ import annotations

from clawvault.vault.crypto import decrypt_vault, encrypt_vault, generate_keypair
from clawvault.vault.envfile import parse_secrets, serialize_secrets, validate_secret_name
from clawvault.vault.keys import resolve_secret_key
from clawvault.vault.models import AgeKeypair
from clawvault.vault.registry import (
    VAULT_CHANNEL_DEFAULTS,
    VAULT_PROVIDER_DEFAULTS,
    build_default_proxy_map,
    find_provider_by_secret_name,
    provider_proxy_url,
    provider_secret_name,
)

__all__ = [
    "AgeKeypair",
    "VAULT_CHANNEL_DEFAULTS",
    "VAULT_PROVIDER_DEFAULTS",
    "build_default_proxy_map",
    "decrypt_vault",
    "encrypt_vault",
    "find_provider_by_secret_name",
    "generate_keypair",
    "parse_secrets",
    "provider_proxy_url",
    "provider_secret_name",
    "resolve_secret_key",
    "serialize_secrets",
    "validate_secret_name",
]
