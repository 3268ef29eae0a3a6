"""Read and write openclaw.json as a whole document.

Every mutation reads a full snapshot, edits a deep copy, and writes the full
document back. There is no locking: two concurrent writers race and the last
one wins.
"""

from __future__ import annotations

import copy
import json
import os
import stat
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from clawvault.config import Config, get_config
from clawvault.errors import ConfigError
from clawvault.vault.models import VaultSettings


@dataclass
class ConfigSnapshot:
    path: Path
    exists: bool
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def vault(self) -> VaultSettings:
        return vault_settings(self.config)

    def copy(self) -> dict[str, Any]:
        """Deep copy of the document, safe to mutate."""
        return copy.deepcopy(self.config)


def read_config_snapshot(path: Path | None = None) -> ConfigSnapshot:
    """Load openclaw.json. A missing file is an empty document."""
    path = path or get_config().config_path
    if not path.exists():
        return ConfigSnapshot(path=path, exists=False, config={})
    try:
        data = json.loads(path.read_text(encoding="utf-8") or "{}")
    except (OSError, ValueError) as e:
        raise ConfigError(
            f"Cannot read config {path}: {e}",
            hint="Fix or restore the file, then re-run the command.",
        ) from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    return ConfigSnapshot(path=path, exists=True, config=data)


def write_config_file(path: Path, document: dict[str, Any]) -> None:
    """Atomically write the full document (mode 600, parent dir 700)."""
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, stat.S_IRUSR | stat.S_IWUSR)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(document, indent=2) + "\n")
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def save_if_changed(snapshot: ConfigSnapshot, document: dict[str, Any]) -> bool:
    """Write document unless it equals the snapshot. Returns True if written."""
    if snapshot.exists and document == snapshot.config:
        return False
    write_config_file(snapshot.path, document)
    return True


def vault_settings(document: dict[str, Any]) -> VaultSettings:
    section = document.get("vault")
    try:
        return VaultSettings.model_validate(section if isinstance(section, dict) else {})
    except ValidationError as e:
        raise ConfigError(
            f"Invalid vault section in config: {e.error_count()} error(s)",
            hint="vault.proxies must map provider names to URL strings.",
        ) from e


def vault_section(document: dict[str, Any]) -> dict[str, Any]:
    """The mutable `vault` dict of document, created if absent."""
    section = document.get("vault")
    if not isinstance(section, dict):
        section = {}
        document["vault"] = section
    return section


def vault_proxies(document: dict[str, Any]) -> dict[str, str]:
    """The mutable `vault.proxies` dict of document, created if absent."""
    section = vault_section(document)
    proxies = section.get("proxies")
    if not isinstance(proxies, dict):
        proxies = {}
        section["proxies"] = proxies
    return proxies


def resolve_vault_file_path(document: dict[str, Any], cfg: Config | None = None) -> Path:
    """Locate vault.age.

    Precedence:
        1. OPENCLAW_VAULT_PATH
        2. vault.file in the config document
        3. vault.age alongside openclaw.json
    """
    cfg = cfg or get_config()
    if cfg.vault_path_override:
        return Path(cfg.vault_path_override).expanduser().resolve()
    configured = (vault_settings(document).file or "").strip()
    if configured:
        return Path(configured).expanduser().resolve()
    return cfg.default_vault_path


def delete_nested_key(document: dict[str, Any], parts: Sequence[str]) -> None:
    """Delete document[a][b][c] for ("a", "b", "c"); missing keys are ignored."""
    current: Any = document
    for key in parts[:-1]:
        current = current.get(key) if isinstance(current, dict) else None
        if not isinstance(current, dict):
            return
    current.pop(parts[-1], None)
