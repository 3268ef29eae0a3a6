"""
Centralized configuration for clawvault.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from clawvault.config import get_config
    cfg = get_config()
    print(cfg.config_path)   # "/home/user/.openclaw/openclaw.json"
    print(cfg.proxy_host)    # "vault"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

SECRET_KEY_ENV = "AGE_SECRET_KEY"
DEFAULT_VAULT_FILENAME = "vault.age"


@dataclass(frozen=True)
class SidecarConfig:
    """Paths used inside the vault sidecar container."""

    vault_file: Path = Path("/etc/vault.age")
    template: Path = Path("/etc/nginx/nginx.conf.template")
    secrets_dir: Path = Path("/run/secrets")  # tmpfs, never persisted
    proxy_bin: str = "nginx"

    @property
    def rendered_config(self) -> Path:
        return self.secrets_dir / "nginx.conf"


@dataclass(frozen=True)
class Config:
    """Top-level clawvault configuration."""

    state_dir: Path = field(default_factory=lambda: Path.home() / ".openclaw")
    config_path: Path = field(
        default_factory=lambda: Path.home() / ".openclaw" / "openclaw.json"
    )
    vault_path_override: str = ""

    # Proxy / token endpoint
    proxy_host: str = "vault"
    token_port: int = 5335
    token_timeout: float = 5.0

    sidecar: SidecarConfig = field(default_factory=SidecarConfig)

    @property
    def default_vault_path(self) -> Path:
        return self.config_path.parent / DEFAULT_VAULT_FILENAME


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    state_dir = Path(
        os.environ.get("OPENCLAW_STATE_DIR", "").strip() or Path.home() / ".openclaw"
    ).expanduser()
    config_path = Path(
        os.environ.get("OPENCLAW_CONFIG_PATH", "").strip() or state_dir / "openclaw.json"
    ).expanduser()

    sidecar = SidecarConfig(
        vault_file=Path(os.environ.get("VAULT_SIDECAR_VAULT_FILE", "/etc/vault.age")),
        template=Path(
            os.environ.get("VAULT_SIDECAR_TEMPLATE", "/etc/nginx/nginx.conf.template")
        ),
        secrets_dir=Path(os.environ.get("VAULT_SIDECAR_SECRETS_DIR", "/run/secrets")),
        proxy_bin=os.environ.get("VAULT_SIDECAR_PROXY_BIN", "nginx"),
    )

    return Config(
        state_dir=state_dir,
        config_path=config_path,
        vault_path_override=os.environ.get("OPENCLAW_VAULT_PATH", "").strip(),
        proxy_host=os.environ.get("CLAWVAULT_PROXY_HOST", "vault"),
        token_port=int(os.environ.get("CLAWVAULT_TOKEN_PORT", "5335")),
        token_timeout=float(os.environ.get("CLAWVAULT_TOKEN_TIMEOUT", "5.0")),
        sidecar=sidecar,
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
