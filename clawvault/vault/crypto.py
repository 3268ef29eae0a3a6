"""
age (X25519) encryption for the vault file.

The whole secret set is serialized to KEY=VALUE text and encrypted to a
single recipient. vault.age is always rewritten wholesale via temp file +
rename, mode 600, so a crash never leaves a partial vault behind.
"""

from __future__ import annotations

import logging
import os
import stat
import uuid
from pathlib import Path

from pyrage import decrypt, encrypt, x25519

from clawvault.errors import DecryptionFailedError, NotFoundError, VaultError
from clawvault.vault.envfile import parse_secrets, serialize_secrets
from clawvault.vault.models import AgeKeypair

logger = logging.getLogger(__name__)


def generate_keypair() -> AgeKeypair:
    """Generate a new age X25519 keypair."""
    identity = x25519.Identity.generate()
    return AgeKeypair(identity=str(identity), recipient=str(identity.to_public()))


def encrypt_vault(secrets: dict[str, str], recipient: str, vault_path: Path | str) -> None:
    """Encrypt secrets to recipient and atomically write vault_path (mode 600)."""
    try:
        public_key = x25519.Recipient.from_str(recipient.strip())
    except Exception as e:
        raise VaultError(
            f"Invalid vault public key: {recipient!r}",
            hint="vault.publicKey must be an age recipient (age1...).",
        ) from e

    ciphertext = encrypt(serialize_secrets(secrets).encode("utf-8"), [public_key])

    path = Path(vault_path)
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    _atomic_write(path, ciphertext)
    logger.debug("Wrote vault %s (%d secrets)", path, len(secrets))


def decrypt_vault(vault_path: Path | str, secret_key: str) -> dict[str, str]:
    """Decrypt vault_path with the age identity and return the parsed secrets."""
    path = Path(vault_path)
    if not path.exists():
        raise NotFoundError(
            f"Vault file not found: {path}",
            hint="Run 'clawvault init' to create one.",
        )
    ciphertext = path.read_bytes()
    try:
        identity = x25519.Identity.from_str(secret_key.strip())
        plaintext = decrypt(ciphertext, [identity]).decode("utf-8")
    except Exception as e:
        # Same message for both causes; never echo any plaintext.
        raise DecryptionFailedError(
            f"Failed to decrypt vault: {path}",
            hint="The vault file may be corrupted, or the decryption key may be wrong.",
        ) from e
    return parse_secrets(plaintext)


def _atomic_write(path: Path, data: bytes) -> None:
    """Write data to a sibling temp file created 600, then rename over path."""
    tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, stat.S_IRUSR | stat.S_IWUSR)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp, stat.S_IRUSR | stat.S_IWUSR)  # 600 regardless of umask
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
