"""Tests for the vault sidecar startup sequence."""

import logging
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from clawvault.config import SidecarConfig
from clawvault.errors import DecryptionFailedError, KeyUnavailableError, NotFoundError, VaultError
from clawvault.gateway.migrate import scan_config
from clawvault.sidecar.bootstrap import (
    ACCOUNT_TOKENS_MARKER,
    BUNDLED_TEMPLATE,
    bootstrap,
    discover_template_vars,
    exec_proxy,
    render_account_token_locations,
    render_template,
)
from clawvault.sidecar.prerequisites import PrereqResult
from clawvault.vault.crypto import encrypt_vault, generate_keypair

TEMPLATE = """\
server {
    listen 8081;
    proxy_set_header Host $host;
    proxy_set_header Authorization "Bearer ${OPENAI_API_KEY}";
}
server {
    listen 8082;
    proxy_set_header x-api-key "${ANTHROPIC_API_KEY}";
    set $lower ${lowercase_var};
}
"""


@pytest.fixture
def sidecar(tmp_path: Path) -> SidecarConfig:
    template = tmp_path / "nginx.conf.template"
    template.write_text(TEMPLATE)
    return SidecarConfig(
        vault_file=tmp_path / "vault.age",
        template=template,
        secrets_dir=tmp_path / "run" / "secrets",
        proxy_bin="nginx",
    )


@pytest.fixture
def env(keypair) -> dict:
    return {"AGE_SECRET_KEY": keypair.identity, "PATH": "/usr/bin"}


class TestDiscover:
    def test_sorted_unique_uppercase(self):
        text = "${B_KEY} ${A_KEY} ${B_KEY} $host ${lower} ${1BAD}"
        assert discover_template_vars(text) == ["A_KEY", "B_KEY"]

    def test_none(self):
        assert discover_template_vars("listen 80; $host") == []


class TestRender:
    def test_only_named_vars_substituted(self):
        out = render_template("${A} ${B} $host", {"A": "1", "B": "2"}, ["A"])
        assert out == "1 ${B} $host"

    def test_missing_value_becomes_empty(self):
        assert render_template('"${A}"', {}, ["A"]) == '""'


class TestBootstrap:
    def test_renders_config(self, sidecar, keypair, env):
        encrypt_vault(
            {"OPENAI_API_KEY": "sk-openai", "ANTHROPIC_API_KEY": "sk-ant"},
            keypair.recipient,
            sidecar.vault_file,
        )
        result = bootstrap(sidecar, env)

        rendered = result.rendered_path.read_text()
        assert result.rendered_path == sidecar.secrets_dir / "nginx.conf"
        assert 'Authorization "Bearer sk-openai"' in rendered
        assert 'x-api-key "sk-ant"' in rendered
        assert "$host" in rendered
        assert "${lowercase_var}" in rendered
        assert result.variables == ["ANTHROPIC_API_KEY", "OPENAI_API_KEY"]
        assert result.missing == []

    def test_rendered_file_read_only(self, sidecar, keypair, env):
        encrypt_vault({"OPENAI_API_KEY": "x"}, keypair.recipient, sidecar.vault_file)
        result = bootstrap(sidecar, env)
        assert stat.S_IMODE(result.rendered_path.stat().st_mode) == 0o400

    def test_rerun_replaces_read_only_file(self, sidecar, keypair, env):
        encrypt_vault({"OPENAI_API_KEY": "first"}, keypair.recipient, sidecar.vault_file)
        bootstrap(sidecar, dict(env))
        encrypt_vault({"OPENAI_API_KEY": "second"}, keypair.recipient, sidecar.vault_file)
        result = bootstrap(sidecar, dict(env))
        assert "Bearer second" in result.rendered_path.read_text()
        assert [p.name for p in sidecar.secrets_dir.iterdir()] == ["nginx.conf"]

    def test_env_scrubbed(self, sidecar, keypair, env):
        encrypt_vault({"OPENAI_API_KEY": "sk-openai"}, keypair.recipient, sidecar.vault_file)
        bootstrap(sidecar, env)
        assert env == {"PATH": "/usr/bin"}

    def test_missing_secret_warns(self, sidecar, keypair, env, caplog):
        encrypt_vault({"OPENAI_API_KEY": "sk-openai"}, keypair.recipient, sidecar.vault_file)
        with caplog.at_level(logging.WARNING):
            result = bootstrap(sidecar, env)
        assert result.missing == ["ANTHROPIC_API_KEY"]
        assert "ANTHROPIC_API_KEY" in caplog.text
        assert 'x-api-key ""' in result.rendered_path.read_text()

    def test_unreferenced_secrets_not_exported(self, sidecar, keypair):
        encrypt_vault(
            {"OPENAI_API_KEY": "a", "PATH": "/evil", "TELEGRAM_BOT_TOKEN": "t"},
            keypair.recipient,
            sidecar.vault_file,
        )
        env = {"AGE_SECRET_KEY": keypair.identity, "PATH": "/usr/bin"}
        captured = {}

        def spy(template, values, names):
            captured.update({k: values.get(k) for k in ("PATH", "TELEGRAM_BOT_TOKEN")})
            return render_template(template, values, names)

        with patch("clawvault.sidecar.bootstrap.render_template", side_effect=spy):
            bootstrap(sidecar, env)
        assert captured == {"PATH": "/usr/bin", "TELEGRAM_BOT_TOKEN": None}
        assert env == {"PATH": "/usr/bin"}

    def test_secret_values_not_logged(self, sidecar, keypair, env, caplog):
        encrypt_vault({"OPENAI_API_KEY": "sk-never-log"}, keypair.recipient, sidecar.vault_file)
        with caplog.at_level(logging.DEBUG):
            bootstrap(sidecar, env)
        assert "sk-never-log" not in caplog.text

    def test_invalid_names_dropped_before_render(self, sidecar, keypair, env, caplog):
        sidecar.template.write_text(TEMPLATE + f"server {{\n    {ACCOUNT_TOKENS_MARKER}\n}}\n")
        encrypt_vault(
            {"OPENAI_API_KEY": "a", "TELEGRAM_BOT_TOKEN_work": "t-lower"},
            keypair.recipient,
            sidecar.vault_file,
        )
        with caplog.at_level(logging.WARNING):
            result = bootstrap(sidecar, env)
        assert "Skipping invalid secret name: 'TELEGRAM_BOT_TOKEN_work'" in caplog.text
        assert result.account_tokens == []
        assert "t-lower" not in result.rendered_path.read_text()


class TestAccountTokenLocations:
    TOKEN_SERVER = "server {\n    listen 5335;\n    # clawvault:account-tokens\n    location / {}\n}\n"

    def test_one_location_per_account_token(self):
        secrets = {"TELEGRAM_BOT_TOKEN_WORK": "t-work", "SLACK_APP_TOKEN_OPS": "xapp"}
        out, names = render_account_token_locations(self.TOKEN_SERVER, secrets, [])
        assert names == ["SLACK_APP_TOKEN_OPS", "TELEGRAM_BOT_TOKEN_WORK"]
        assert (
            "    location = /tokens/TELEGRAM_BOT_TOKEN_WORK {\n"
            '        return 200 "t-work";\n'
            "    }\n"
        ) in out
        assert ACCOUNT_TOKENS_MARKER not in out
        assert out.index("SLACK_APP_TOKEN_OPS") < out.index("location / {}")

    def test_skips_referenced_empty_and_non_channel(self):
        secrets = {
            "TELEGRAM_BOT_TOKEN": "base",
            "DISCORD_BOT_TOKEN_TEAM": "",
            "OPENAI_API_KEY": "sk",
        }
        out, names = render_account_token_locations(
            self.TOKEN_SERVER, secrets, ["TELEGRAM_BOT_TOKEN"]
        )
        assert names == []
        assert "location = /tokens/" not in out
        assert ACCOUNT_TOKENS_MARKER not in out

    def test_value_quoted_for_nginx(self):
        out, _ = render_account_token_locations(
            self.TOKEN_SERVER, {"SLACK_BOT_TOKEN_X": 'a"b\\c'}, []
        )
        assert 'return 200 "a\\"b\\\\c";' in out

    def test_template_without_marker_unchanged(self):
        assert render_account_token_locations(TEMPLATE, {"SLACK_BOT_TOKEN_X": "x"}, []) == (
            TEMPLATE,
            [],
        )

    def test_migrated_account_tokens_served_by_bundled_template(self, tmp_path, keypair, env):
        document = {
            "models": {"providers": {"openai": {"apiKey": "sk-openai"}}},
            "channels": {
                "telegram": {"botToken": "t-base", "accounts": {"work": {"botToken": "t-work"}}},
                "discord": {"accounts": {"team.a": {"token": "d-team"}}},
            },
        }
        plan = scan_config(document)
        sidecar = SidecarConfig(
            vault_file=tmp_path / "vault.age",
            template=BUNDLED_TEMPLATE,
            secrets_dir=tmp_path / "run" / "secrets",
            proxy_bin="nginx",
        )
        encrypt_vault(plan.secrets(), keypair.recipient, sidecar.vault_file)

        result = bootstrap(sidecar, env)

        token_server = result.rendered_path.read_text().split("listen 5335;", 1)[1]
        assert result.account_tokens == ["DISCORD_BOT_TOKEN_TEAM_A", "TELEGRAM_BOT_TOKEN_WORK"]
        for name, value in [
            ("TELEGRAM_BOT_TOKEN", "t-base"),
            ("TELEGRAM_BOT_TOKEN_WORK", "t-work"),
            ("DISCORD_BOT_TOKEN_TEAM_A", "d-team"),
        ]:
            location = f"location = /tokens/{name} {{"
            assert token_server.count(location) == 1
            block = token_server.split(location, 1)[1].split("}", 1)[0]
            assert f'return 200 "{value}";' in block
        assert token_server.index("TELEGRAM_BOT_TOKEN_WORK") < token_server.index("location / {")
        assert ACCOUNT_TOKENS_MARKER not in token_server
        assert env == {"PATH": "/usr/bin"}


class TestBootstrapFailures:
    def test_missing_key(self, sidecar, keypair):
        encrypt_vault({}, keypair.recipient, sidecar.vault_file)
        with pytest.raises(KeyUnavailableError):
            bootstrap(sidecar, {})

    def test_missing_vault(self, sidecar, env):
        with pytest.raises(NotFoundError, match="vault.age"):
            bootstrap(sidecar, env)
        assert "AGE_SECRET_KEY" not in env

    def test_missing_template(self, sidecar, keypair, env):
        encrypt_vault({}, keypair.recipient, sidecar.vault_file)
        sidecar.template.unlink()
        with pytest.raises(NotFoundError, match="template"):
            bootstrap(sidecar, env)

    def test_template_without_placeholders(self, sidecar, keypair, env):
        encrypt_vault({}, keypair.recipient, sidecar.vault_file)
        sidecar.template.write_text("server { listen 80; }")
        with pytest.raises(VaultError, match="No secret variables"):
            bootstrap(sidecar, env)

    def test_wrong_key(self, sidecar, keypair):
        encrypt_vault({"OPENAI_API_KEY": "x"}, keypair.recipient, sidecar.vault_file)
        with pytest.raises(DecryptionFailedError):
            bootstrap(sidecar, {"AGE_SECRET_KEY": generate_keypair().identity})
        assert not sidecar.rendered_config.exists()


class TestExecProxy:
    def test_missing_binary(self, sidecar, tmp_path):
        missing = PrereqResult(name="nginx", found=False, hint="Install nginx")
        with patch("clawvault.sidecar.bootstrap.check_proxy", return_value=missing):
            with pytest.raises(VaultError, match="unavailable"):
                exec_proxy(sidecar, tmp_path / "nginx.conf")

    def test_execs_in_foreground(self, sidecar, tmp_path):
        found = PrereqResult(name="nginx", found=True, version="1.27.0", path="/usr/sbin/nginx")
        conf = tmp_path / "nginx.conf"
        with (
            patch("clawvault.sidecar.bootstrap.check_proxy", return_value=found),
            patch("clawvault.sidecar.bootstrap.os.execv") as mock_exec,
        ):
            exec_proxy(sidecar, conf)
        mock_exec.assert_called_once_with(
            "/usr/sbin/nginx", ["nginx", "-c", str(conf), "-g", "daemon off;"]
        )
