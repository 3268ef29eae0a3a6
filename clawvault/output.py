"""Console output helpers shared by the CLI commands."""

from __future__ import annotations

import sys

from clawvault.config import SECRET_KEY_ENV


def print_rows(rows: list[tuple[str, str]], indent: str = "  ") -> None:
    """Print key/value rows with the keys padded to a common width."""
    if not rows:
        return
    width = max(len(k) for k, _ in rows) + 2
    for key, value in rows:
        print(f"{indent}{key + ':':<{width}}{value}".rstrip())


def print_error(message: str, hint: str = "") -> None:
    print(f"Error: {message}", file=sys.stderr)
    if hint:
        print(f"  {hint}", file=sys.stderr)


def print_secret_key_notice(identity: str) -> None:
    """Show a freshly generated identity. This is the only time it is printed."""
    print()
    print("  WARNING: Save this secret key securely. It will not be shown again:")
    print()
    print(f"    {identity}")
    print()
    print("  Store it in a password manager (KeePass, 1Password, etc.).")
    print("  You will need it for: add, remove, list, migrate.")
    print(f"  Provide it via: {SECRET_KEY_ENV}=<key> clawvault <command>")
