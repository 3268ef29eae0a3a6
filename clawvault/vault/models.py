"""Vault data models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AgeKeypair(BaseModel):
    """An age X25519 keypair. The identity is never persisted by clawvault."""

    identity: str  # AGE-SECRET-KEY-1...
    recipient: str  # age1...


class ProviderEntry(BaseModel):
    """Registry record for an upstream API provider served by the sidecar."""

    model_config = ConfigDict(frozen=True)

    provider_id: str
    port: int
    secret_name: str


class ChannelTokenEntry(BaseModel):
    """How a chat-platform token maps into the structured configuration."""

    model_config = ConfigDict(frozen=True)

    channel: str
    secret_name: str
    token_field: str


class VaultSettings(BaseModel):
    """The `vault` section of openclaw.json (read-only view)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    enabled: bool = False
    public_key: str | None = Field(default=None, alias="publicKey")
    proxies: dict[str, str] = {}
    file: str | None = None
