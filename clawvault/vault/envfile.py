"""KEY=VALUE plaintext format for the secrets held inside vault.age."""

from __future__ import annotations

import re

from clawvault.errors import InvalidNameError

SECRET_NAME_RE = re.compile(r"[A-Z][A-Z0-9_]*")


def is_valid_secret_name(name: str) -> bool:
    return bool(SECRET_NAME_RE.fullmatch(name))


def validate_secret_name(name: str) -> None:
    """Raise InvalidNameError unless name matches [A-Z][A-Z0-9_]*."""
    if not is_valid_secret_name(name):
        raise InvalidNameError(
            f"Invalid secret name: {name!r}",
            hint="Secret names must match [A-Z][A-Z0-9_]* (e.g. OPENAI_API_KEY).",
        )


def parse_secrets(plaintext: str) -> dict[str, str]:
    """Parse KEY=VALUE lines.

    Blank lines and `#` comments are skipped, as are lines without a key.
    One layer of matching single or double quotes is stripped from values;
    any further `=` characters are kept verbatim.
    """
    secrets: dict[str, str] = {}
    for raw_line in plaintext.split("\n"):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        secrets[key] = value
    return secrets


def _needs_quotes(value: str) -> bool:
    if value != value.strip():
        return True
    return len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"')


def serialize_secrets(secrets: dict[str, str]) -> str:
    """Serialize to one NAME=value per line with a trailing newline ("" when empty).

    Values that parse_secrets would otherwise alter (surrounding whitespace or
    quotes) are wrapped in double quotes.
    """
    if not secrets:
        return ""
    lines = []
    for key, value in secrets.items():
        if _needs_quotes(value):
            value = f'"{value}"'
        lines.append(f"{key}={value}\n")
    return "".join(lines)
