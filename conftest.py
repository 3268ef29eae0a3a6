"""
Root-level shared test fixtures.

Inherited by every test suite under tests/ and clawvault/*/tests/.
"""

from __future__ import annotations

import pytest

from clawvault.config import reset_config

ENV_VARS = [
    "AGE_SECRET_KEY",
    "OPENCLAW_STATE_DIR",
    "OPENCLAW_CONFIG_PATH",
    "OPENCLAW_VAULT_PATH",
    "CLAWVAULT_PROXY_HOST",
    "CLAWVAULT_TOKEN_PORT",
    "CLAWVAULT_TOKEN_TIMEOUT",
    "VAULT_SIDECAR_VAULT_FILE",
    "VAULT_SIDECAR_TEMPLATE",
    "VAULT_SIDECAR_SECRETS_DIR",
    "VAULT_SIDECAR_PROXY_BIN",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove clawvault env vars that leak between tests, and drop the cached config."""
    for key in ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def keypair():
    from clawvault.vault.crypto import generate_keypair

    return generate_keypair()


@pytest.fixture
def openclaw_home(tmp_path, monkeypatch):
    """Point config and vault paths at a temp dir. Returns the config path."""
    config_path = tmp_path / ".openclaw" / "openclaw.json"
    monkeypatch.setenv("OPENCLAW_STATE_DIR", str(tmp_path / ".openclaw"))
    monkeypatch.setenv("OPENCLAW_CONFIG_PATH", str(config_path))
    reset_config()
    return config_path
