"""Resolve the age identity used to decrypt vault.age.

Precedence:
    1. AGE_SECRET_KEY environment variable (removed from the env once read)
    2. Interactive prompt, when stdin is a terminal
    3. KeyUnavailableError

The key is never written to disk or logged.
"""

from __future__ import annotations

import getpass
import os
import sys
from collections.abc import Callable, MutableMapping

from clawvault.config import SECRET_KEY_ENV
from clawvault.errors import KeyUnavailableError


def resolve_secret_key(
    env: MutableMapping[str, str] | None = None,
    interactive: bool | None = None,
    prompt: Callable[[str], str] = getpass.getpass,
) -> str:
    """Return the age secret key, scrubbing it from env after capture."""
    if env is None:
        env = os.environ
    if interactive is None:
        interactive = sys.stdin.isatty()

    raw = env.get(SECRET_KEY_ENV)
    if raw is not None:
        # Keep it out of any child process spawned later in this run.
        del env[SECRET_KEY_ENV]
        key = raw.strip()
        if key:
            return key

    if interactive:
        key = prompt(f"Enter {SECRET_KEY_ENV} (identity): ").strip()
        if not key:
            raise KeyUnavailableError("Empty secret key entered.")
        return key

    raise KeyUnavailableError(
        f"{SECRET_KEY_ENV} not available.",
        hint=(
            f"Provide it via environment variable: {SECRET_KEY_ENV}=<your-key> "
            "clawvault <command>, or run in an interactive terminal for a prompt."
        ),
    )
