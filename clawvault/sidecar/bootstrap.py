"""
Vault sidecar startup: decrypt secrets, render the proxy config, start the proxy.

Expects:
    AGE_SECRET_KEY                   age identity (removed from the env once read)
    /etc/vault.age                   encrypted secrets (read-only bind mount)
    /etc/nginx/nginx.conf.template   proxy config with ${SECRET_NAME} placeholders
    /run/secrets/                    tmpfs, never persisted to disk

Secret variables are discovered from the template rather than listed here, so
adding a provider only touches the template and the provider registry.
Per-account channel tokens have no fixed placeholder; their /tokens/ endpoints
are generated from the vault contents at the template's account-tokens marker.
Plaintext values exist only in process memory while the template is rendered;
the rendered config (mode 400) is the only secret-bearing artifact left.
"""

from __future__ import annotations

import logging
import os
import re
import stat
import uuid
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path

from clawvault.config import SidecarConfig, get_config
from clawvault.errors import NotFoundError, VaultError
from clawvault.sidecar.prerequisites import check_proxy
from clawvault.vault.crypto import decrypt_vault
from clawvault.vault.envfile import is_valid_secret_name
from clawvault.vault.keys import resolve_secret_key
from clawvault.vault.registry import is_channel_token_secret

logger = logging.getLogger(__name__)

# ${UPPER_CASE} only. nginx's own variables ($host, $http_upgrade, ...) are
# lowercase and unbraced, so they are never matched.
PLACEHOLDER_RE = re.compile(r"\$\{([A-Z][A-Z0-9_]*)\}")

# Replaced with one location block per account-qualified channel token.
ACCOUNT_TOKENS_MARKER = "# clawvault:account-tokens"

BUNDLED_TEMPLATE = Path(__file__).with_name("nginx.conf.template")


@dataclass
class BootstrapResult:
    rendered_path: Path
    variables: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    account_tokens: list[str] = field(default_factory=list)


def discover_template_vars(template: str) -> list[str]:
    """Sorted unique ${NAME} placeholders referenced by the template."""
    return sorted(set(PLACEHOLDER_RE.findall(template)))


def render_template(template: str, values: Mapping[str, str], names: Iterable[str]) -> str:
    """Substitute only the given placeholders; anything else is left verbatim."""
    wanted = set(names)

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in wanted:
            return match.group(0)
        return values.get(name, "")

    return PLACEHOLDER_RE.sub(_sub, template)


def _nginx_quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def render_account_token_locations(
    template: str, secrets: Mapping[str, str], referenced: Iterable[str]
) -> tuple[str, list[str]]:
    """Expand the account-token marker into one `location` per stored account token.

    Base channel tokens have fixed placeholders in the template. Account tokens
    (TELEGRAM_BOT_TOKEN_WORK, ...) depend on what the vault holds, so their
    endpoints are generated here. Templates without the marker are unchanged.
    """
    if ACCOUNT_TOKENS_MARKER not in template:
        return template, []

    skip = set(referenced)
    names = sorted(
        name
        for name, value in secrets.items()
        if value and name not in skip and is_channel_token_secret(name)
    )
    line_start = template.rfind("\n", 0, template.index(ACCOUNT_TOKENS_MARKER)) + 1
    indent = template[line_start : template.index(ACCOUNT_TOKENS_MARKER)]

    blocks = []
    for name in names:
        blocks.append(f"location = /tokens/{name} {{")
        blocks.append(f"    return 200 {_nginx_quote(secrets[name])};")
        blocks.append("}")
    expanded = f"\n{indent}".join(blocks) if blocks else ""
    return template.replace(ACCOUNT_TOKENS_MARKER, expanded, 1), names


def bootstrap(
    sidecar: SidecarConfig | None = None,
    env: MutableMapping[str, str] | None = None,
) -> BootstrapResult:
    """Decrypt the vault and write the rendered proxy config.

    Fails fast if the key, vault file or template is missing. Missing values
    for individual placeholders only produce a warning: those providers will
    answer 401 at request time.
    """
    sidecar = sidecar or get_config().sidecar
    env = os.environ if env is None else env

    secret_key = resolve_secret_key(env, interactive=False)
    if not sidecar.vault_file.exists():
        raise NotFoundError(f"{sidecar.vault_file} not found")
    if not sidecar.template.exists():
        raise NotFoundError(f"{sidecar.template} not found")

    template = sidecar.template.read_text(encoding="utf-8")
    names = discover_template_vars(template)
    if not names:
        raise VaultError(f"No secret variables found in {sidecar.template}")

    secrets = decrypt_vault(sidecar.vault_file, secret_key)
    del secret_key

    for name in list(secrets):
        if not is_valid_secret_name(name):
            logger.warning("Skipping invalid secret name: %r", name)
            del secrets[name]

    exported: list[str] = []
    try:
        for name in names:
            value = secrets.get(name)
            if value:
                env[name] = value
                exported.append(name)

        missing = [name for name in names if not env.get(name)]
        if missing:
            logger.warning("Missing secrets for template variables: %s", " ".join(missing))
            logger.warning("Proxy requests for these providers will fail with 401 errors.")

        rendered = render_template(template, env, names)
        rendered, account_tokens = render_account_token_locations(rendered, secrets, names)
        _write_locked(sidecar.rendered_config, rendered)
    finally:
        for name in exported:
            env.pop(name, None)
        secrets.clear()

    logger.info(
        "Rendered %s (%d variables, %d missing, %d account tokens)",
        sidecar.rendered_config,
        len(names),
        len(missing),
        len(account_tokens),
    )
    return BootstrapResult(
        rendered_path=sidecar.rendered_config,
        variables=names,
        missing=missing,
        account_tokens=account_tokens,
    )


def _write_locked(path: Path, content: str) -> None:
    """Atomically write content and leave it owner-read-only (400)."""
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, stat.S_IRUSR | stat.S_IWUSR)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp, stat.S_IRUSR)  # 400
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def exec_proxy(sidecar: SidecarConfig, rendered_path: Path) -> None:
    """Replace this process with the reverse proxy. Does not return."""
    prereq = check_proxy(sidecar.proxy_bin)
    if not prereq.ok:
        raise VaultError(f"Reverse proxy unavailable: {prereq.name}", hint=prereq.hint)
    logger.info("Starting %s %s", prereq.name, prereq.version)
    os.execv(prereq.path, [prereq.name, "-c", str(rendered_path), "-g", "daemon off;"])


def run_sidecar(sidecar: SidecarConfig | None = None) -> int:
    """Entry point for `clawvault sidecar`."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    sidecar = sidecar or get_config().sidecar
    result = bootstrap(sidecar)
    logger.info("Secrets decrypted, starting reverse proxy")
    exec_proxy(sidecar, result.rendered_path)
    return 0
