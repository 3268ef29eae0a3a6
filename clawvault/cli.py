"""
clawvault CLI — manage the age-encrypted secret vault.

Usage:
    clawvault init              # Generate keypair, create vault.age, enable in config
    clawvault status            # Show vault configuration (no decryption needed)
    clawvault add NAME [VALUE]  # Add or update a secret
    clawvault remove NAME       # Remove a secret
    clawvault list              # List secret names (values hidden)
    clawvault migrate           # Move plaintext credentials from config into the vault
    clawvault sidecar           # Decrypt, render proxy config, exec the proxy
    clawvault tokens            # Fetch channel tokens from the sidecar
    clawvault version           # Show version

Commands that change vault.age or openclaw.json read, modify and rewrite the
whole file. Nothing is locked: run one at a time, the last writer wins.
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys

from clawvault.errors import InvalidInputError, MissingPublicKeyError, NotFoundError, VaultError
from clawvault.output import print_error, print_rows, print_secret_key_notice

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="clawvault",
        description="clawvault — age-encrypted secrets with a credential-injecting proxy sidecar.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")

    subparsers = parser.add_subparsers(dest="command")

    # init
    init_parser = subparsers.add_parser(
        "init", help="Generate keypair, create vault.age, update config"
    )
    init_parser.add_argument(
        "--force", action="store_true", help="Overwrite existing vault.age and keypair"
    )
    init_parser.add_argument("--proxy-host", help="Proxy hostname for auto-configured URLs")

    # status
    subparsers.add_parser("status", help="Show vault configuration and file state")

    # add
    add_parser = subparsers.add_parser("add", help="Add or update a secret")
    add_parser.add_argument("name", help="Secret name, e.g. OPENAI_API_KEY")
    add_parser.add_argument("value", nargs="?", help="Secret value (prefer --stdin)")
    add_parser.add_argument(
        "--stdin", action="store_true", help="Read the value from stdin (keeps it out of history)"
    )
    add_parser.add_argument(
        "--no-proxy", action="store_true", help="Skip proxy configuration for known providers"
    )
    add_parser.add_argument("--proxy-host", help="Proxy hostname for auto-configured URLs")
    add_parser.add_argument("--port", help="Sidecar port for a custom provider (with --provider)")
    add_parser.add_argument("--provider", help="Custom provider name (with --port)")

    # remove
    remove_parser = subparsers.add_parser(
        "remove",
        help="Remove a secret",
        description=(
            "Remove a secret from vault.age. The matching proxy mapping is removed too, "
            "but only for registry providers and custom providers whose secret is named "
            "<PROVIDER>_API_KEY. Other custom mappings stay in vault.proxies and must be "
            "removed from openclaw.json by hand."
        ),
    )
    remove_parser.add_argument("name", help="Secret name")

    # list
    list_parser = subparsers.add_parser("list", help="List secrets stored in vault.age")
    list_parser.add_argument(
        "--reveal", action="store_true", help="Show partial values (first 4 + last 4 chars)"
    )
    list_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON (with --reveal: raw plaintext values, handle with care)",
    )

    # migrate
    migrate_parser = subparsers.add_parser(
        "migrate", help="Move plaintext credentials from config into the vault"
    )
    migrate_parser.add_argument(
        "--dry-run", action="store_true", help="Preview changes without modifying files"
    )
    migrate_parser.add_argument("--proxy-host", help="Proxy hostname for auto-configured URLs")

    # sidecar
    subparsers.add_parser("sidecar", help="Start the vault sidecar (container entrypoint)")

    # tokens
    subparsers.add_parser("tokens", help="Fetch channel tokens from the sidecar")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from clawvault import __version__

        print(f"clawvault {__version__}")
        return 0

    commands = {
        "init": _cmd_init,
        "status": _cmd_status,
        "add": _cmd_add,
        "remove": _cmd_remove,
        "list": _cmd_list,
        "migrate": _cmd_migrate,
        "sidecar": _cmd_sidecar,
        "tokens": _cmd_tokens,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 0

    try:
        return handler(args)
    except VaultError as e:
        print_error(str(e), e.hint)
        return 1


# ─── Helpers ─────────────────────────────────────────────────────────


def mask_value(value: str) -> str:
    """First and last 4 characters visible, the rest '*'. Length is preserved."""
    if len(value) <= 8:
        return "*" * len(value)
    return value[:4] + "*" * (len(value) - 8) + value[-4:]


def _proxy_host(args: argparse.Namespace) -> str:
    from clawvault.config import get_config
    from clawvault.vault.registry import validate_proxy_host

    host = (getattr(args, "proxy_host", None) or get_config().proxy_host).strip()
    validate_proxy_host(host)
    return host


def _require_public_key(snapshot) -> str:
    public_key = (snapshot.vault.public_key or "").strip()
    if not public_key:
        raise MissingPublicKeyError(
            "No vault public key in config.", hint="Run 'clawvault init' first."
        )
    return public_key


def _require_vault_file(vault_path) -> None:
    if not vault_path.exists():
        raise NotFoundError(
            f"Vault file not found: {vault_path}", hint="Run 'clawvault init' to create one."
        )


def _read_secret_value(name: str, value: str | None, use_stdin: bool) -> str:
    """Value from the argument, else piped stdin, else an interactive prompt."""
    if value is not None:
        if not value:
            raise InvalidInputError("Secret value must not be empty.")
        return value
    if use_stdin:
        piped = sys.stdin.read().strip()
        if not piped:
            raise InvalidInputError("No value received on stdin.")
        return piped
    if sys.stdin.isatty():
        entered = getpass.getpass(f"Value for {name}: ").strip()
        if not entered:
            raise InvalidInputError("Empty value entered.")
        return entered
    raise InvalidInputError(
        "No secret value provided.",
        hint="Pass it as an argument, pipe it with --stdin, or run in a terminal.",
    )


# ─── Commands ────────────────────────────────────────────────────────


def _cmd_init(args: argparse.Namespace) -> int:
    from clawvault.errors import AlreadyExistsError
    from clawvault.gateway.config_file import (
        read_config_snapshot,
        resolve_vault_file_path,
        save_if_changed,
        vault_section,
    )
    from clawvault.gateway.migrate import with_default_proxies
    from clawvault.vault.crypto import encrypt_vault, generate_keypair

    proxy_host = _proxy_host(args)
    snapshot = read_config_snapshot()
    vault_path = resolve_vault_file_path(snapshot.config)

    if vault_path.exists() and not args.force:
        raise AlreadyExistsError(
            f"Vault file already exists: {vault_path}", hint="Use --force to overwrite."
        )

    keypair = generate_keypair()
    encrypt_vault({}, keypair.recipient, vault_path)

    document = with_default_proxies(snapshot.config, proxy_host)
    section = vault_section(document)
    section["enabled"] = True
    section["publicKey"] = keypair.recipient
    save_if_changed(snapshot, document)
    logger.info("Vault initialized at %s", vault_path)

    print("Vault initialized")
    print()
    print_rows([("Vault file", str(vault_path)), ("Public key", keypair.recipient)], indent="")
    print_secret_key_notice(keypair.identity)
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    from clawvault.gateway.config_file import read_config_snapshot, resolve_vault_file_path
    from clawvault.vault.crypto import decrypt_vault
    from clawvault.vault.keys import resolve_secret_key
    from clawvault.vault.registry import VAULT_CHANNEL_DEFAULTS

    snapshot = read_config_snapshot()
    settings = snapshot.vault
    vault_path = resolve_vault_file_path(snapshot.config)
    exists = vault_path.exists()

    rows = [
        ("Enabled", "yes" if settings.enabled else "no"),
        ("Vault file", str(vault_path)),
        ("File exists", "yes" if exists else "no"),
    ]
    if exists:
        rows.append(("File size", f"{vault_path.stat().st_size} bytes"))
    rows.append(("Public key", settings.public_key or "(not set)"))

    print("Vault status")
    print()
    print_rows(rows, indent="")

    print()
    if settings.proxies:
        print("Proxy mappings:")
        print_rows(list(settings.proxies.items()))
    else:
        print("Proxy mappings: (none)")

    # Channel token presence needs the key; without one, report nothing rather than prompt.
    stored: set[str] | None = None if exists else set()
    if exists:
        try:
            stored = set(decrypt_vault(vault_path, resolve_secret_key(interactive=False)))
        except VaultError as e:
            logger.debug("Skipping channel token details: %s", e)

    print()
    print("Channel tokens:")
    token_rows = []
    for entry in VAULT_CHANNEL_DEFAULTS.values():
        if stored is None:
            state = "unknown (no secret key)"
        elif entry.secret_name in stored:
            state = f"stored (endpoint: /tokens/{entry.secret_name})"
        else:
            state = "not configured"
        token_rows.append((entry.secret_name, state))
    print_rows(token_rows)
    return 0


def _cmd_add(args: argparse.Namespace) -> int:
    from clawvault.gateway.config_file import (
        read_config_snapshot,
        resolve_vault_file_path,
        save_if_changed,
        vault_proxies,
    )
    from clawvault.vault.crypto import decrypt_vault, encrypt_vault
    from clawvault.vault.envfile import validate_secret_name
    from clawvault.vault.keys import resolve_secret_key
    from clawvault.vault.registry import (
        find_provider_by_secret_name,
        is_channel_token_secret,
        proxy_url,
        validate_port,
        validate_provider_name,
    )

    name = args.name
    validate_secret_name(name)

    # All operator input is checked before anything is read or written.
    if (args.port is None) != (args.provider is None):
        raise InvalidInputError(
            "--port and --provider must be used together.",
            hint="Example: clawvault add CUSTOM_API_KEY --provider custom-llm --port 8091",
        )
    port = None
    if args.provider is not None:
        validate_provider_name(args.provider)
        port = validate_port(args.port)
    proxy_host = _proxy_host(args)

    value = _read_secret_value(name, args.value, args.stdin)

    snapshot = read_config_snapshot()
    public_key = _require_public_key(snapshot)
    vault_path = resolve_vault_file_path(snapshot.config)

    if vault_path.exists():
        secrets = decrypt_vault(vault_path, resolve_secret_key())
    else:
        secrets = {}

    is_update = name in secrets
    secrets[name] = value
    encrypt_vault(secrets, public_key, vault_path)
    print(f"{'Updated' if is_update else 'Added'} secret: {name}")

    if is_channel_token_secret(name):
        print(
            "Channel token stored. The gateway fetches it from the vault at startup "
            "(no proxy mapping needed)."
        )
        return 0
    if args.no_proxy:
        return 0

    document = snapshot.copy()
    proxies = vault_proxies(document)
    if args.provider is not None:
        url = proxy_url(proxy_host, port)
        proxies[args.provider] = url
        save_if_changed(snapshot, document)
        print(f"Configured proxy: {args.provider} -> {url}")
        return 0

    entry = find_provider_by_secret_name(name)
    if entry and not proxies.get(entry.provider_id):
        url = proxy_url(proxy_host, entry.port)
        proxies[entry.provider_id] = url
        save_if_changed(snapshot, document)
        print(f"Auto-configured proxy: {entry.provider_id} -> {url}")
    return 0


def _cmd_remove(args: argparse.Namespace) -> int:
    from clawvault.gateway.config_file import (
        read_config_snapshot,
        resolve_vault_file_path,
        save_if_changed,
        vault_proxies,
    )
    from clawvault.vault.crypto import decrypt_vault, encrypt_vault
    from clawvault.vault.envfile import validate_secret_name
    from clawvault.vault.keys import resolve_secret_key

    name = args.name
    validate_secret_name(name)

    snapshot = read_config_snapshot()
    public_key = _require_public_key(snapshot)
    vault_path = resolve_vault_file_path(snapshot.config)
    _require_vault_file(vault_path)

    secrets = decrypt_vault(vault_path, resolve_secret_key())
    if name not in secrets:
        raise NotFoundError(f"Secret not found in vault: {name}")

    del secrets[name]
    encrypt_vault(secrets, public_key, vault_path)
    print(f"Removed secret: {name}")

    provider = _provider_for_secret(name, snapshot.vault.proxies)
    if provider:
        document = snapshot.copy()
        vault_proxies(document).pop(provider, None)
        save_if_changed(snapshot, document)
        print(f"Removed proxy mapping: {provider}")
    return 0


def _provider_for_secret(name: str, proxies: dict[str, str]) -> str | None:
    """Provider whose proxy mapping belongs to secret name, if one is configured."""
    from clawvault.vault.registry import (
        custom_secret_name,
        find_provider_by_secret_name,
        get_provider,
    )

    entry = find_provider_by_secret_name(name)
    if entry:
        return entry.provider_id if entry.provider_id in proxies else None
    for provider in proxies:
        if get_provider(provider) is None and custom_secret_name(provider) == name:
            return provider
    return None


def _cmd_list(args: argparse.Namespace) -> int:
    from clawvault.gateway.config_file import read_config_snapshot, resolve_vault_file_path
    from clawvault.vault.crypto import decrypt_vault
    from clawvault.vault.keys import resolve_secret_key

    snapshot = read_config_snapshot()
    vault_path = resolve_vault_file_path(snapshot.config)
    _require_vault_file(vault_path)

    secrets = decrypt_vault(vault_path, resolve_secret_key())

    if args.json:
        # --json --reveal is the only path that prints plaintext.
        data = {k: v if args.reveal else mask_value(v) for k, v in secrets.items()}
        print(json.dumps(data, indent=2))
        return 0

    if not secrets:
        print("Vault is empty.")
        return 0

    print(f"Vault secrets ({len(secrets)})")
    print()
    print_rows(
        [(k, mask_value(v) if args.reveal else "(hidden)") for k, v in secrets.items()]
    )
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    from clawvault.gateway.migrate import migrate

    return migrate(proxy_host=_proxy_host(args), dry_run=args.dry_run)


def _cmd_sidecar(args: argparse.Namespace) -> int:
    from clawvault.sidecar.bootstrap import run_sidecar

    return run_sidecar()


def _cmd_tokens(args: argparse.Namespace) -> int:
    from clawvault.gateway.channel_tokens import (
        ChannelTokenStore,
        channel_token_names,
        fetch_vault_channel_tokens,
        resolve_vault_host,
    )
    from clawvault.gateway.config_file import read_config_snapshot
    from clawvault.gateway.tokens import (
        resolve_discord_token,
        resolve_slack_tokens,
        resolve_telegram_token,
    )

    snapshot = read_config_snapshot()
    if not snapshot.vault.enabled:
        print("Vault is not enabled in config; nothing to fetch.")
        return 0

    store = ChannelTokenStore()
    loaded = fetch_vault_channel_tokens(snapshot.config, store)
    print(f"Fetched {loaded} channel token(s) from {resolve_vault_host(snapshot.config)}")
    print()
    print_rows(
        [
            (name, "loaded" if name in store else "not available")
            for name in channel_token_names(snapshot.config)
        ]
    )

    slack = resolve_slack_tokens(snapshot.config, store)
    print()
    print("Resolved sources:")
    print_rows(
        [
            ("telegram", resolve_telegram_token(snapshot.config, store).source),
            ("discord", resolve_discord_token(snapshot.config, store).source),
            ("slack bot", slack.bot_token_source),
            ("slack app", slack.app_token_source),
        ]
    )
    store.clear()
    return 0


if __name__ == "__main__":
    sys.exit(main())
