"""Tests for settings loading and the CLI surface."""

import pytest
from click.testing import CliRunner

from fxmatrix import __version__
from fxmatrix.cli import cli
from fxmatrix.config import FxSettings, load_settings
from fxmatrix.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("FX_DATABASE_DIR", "FX_PROXY", "FX_RESTART_DELAY", "FX_ADMIN_USERS"):
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:

    def test_defaults(self, tmp_path):
        settings = load_settings(database_dir=tmp_path)
        assert settings.connect_timeout == 10
        assert settings.read_timeout == 120
        assert settings.total_timeout == 140
        assert settings.restart_delay == 10
        assert settings.api_host == "api.fxtwitter.com"
        assert settings.status_reply == "IKIRU"
        assert settings.session_db_path == tmp_path / "fxsession.sqlite3"
        assert settings.log_path == tmp_path / "fxmatrix.log"

    def test_database_dir_required(self):
        with pytest.raises(ConfigError, match="database_dir"):
            load_settings()

    def test_none_overrides_fall_through_to_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FX_DATABASE_DIR", str(tmp_path))
        monkeypatch.setenv("FX_PROXY", "socks5://127.0.0.1:9050")
        settings = load_settings(database_dir=None, proxy=None)
        assert settings.database_dir == tmp_path
        assert settings.proxy == "socks5://127.0.0.1:9050"

    def test_override_beats_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FX_PROXY", "http://env:3128")
        settings = load_settings(database_dir=tmp_path, proxy="http://cli:3128")
        assert settings.proxy == "http://cli:3128"

    def test_list_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FX_ADMIN_USERS", '["@admin:example.org"]')
        assert load_settings(database_dir=tmp_path).admin_users == ["@admin:example.org"]

    def test_invalid_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FX_RESTART_DELAY", "soon")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_settings(database_dir=tmp_path)

    def test_env_file(self, tmp_path):
        (tmp_path / ".env").write_text(f"FX_DATABASE_DIR={tmp_path}\nFX_STATUS_REPLY=alive\n")
        settings = FxSettings()
        assert settings.database_dir == tmp_path
        assert settings.status_reply == "alive"


class TestCli:

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"], obj={})
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_database_dir(self):
        result = CliRunner().invoke(cli, ["run"], obj={})
        assert result.exit_code == 2

    def test_help_without_database_dir(self):
        for args in (["--help"], ["login", "--help"], ["run", "--help"]):
            result = CliRunner().invoke(cli, args, obj={})
            assert result.exit_code == 0, args
            assert "Usage:" in result.output

    def test_login_missing_database_dir(self):
        result = CliRunner().invoke(cli, ["login", "--homeserver", "matrix.org"], obj={})
        assert result.exit_code == 2
        assert "database_dir" in result.output

    def test_login_without_credentials(self, tmp_path, monkeypatch):
        monkeypatch.setattr("fxmatrix.main.setup_logging", lambda *a, **kw: None)
        result = CliRunner().invoke(
            cli, ["--database-dir", str(tmp_path), "login", "--homeserver", "matrix.org"], obj={},
        )
        assert result.exit_code == 1
        assert "combo" in result.output

    def test_run_passes_settings(self, tmp_path, monkeypatch):
        seen = {}

        async def fake_run(settings, shutdown=None):
            seen["settings"] = settings

        monkeypatch.setattr("fxmatrix.main.setup_logging", lambda *a, **kw: None)
        monkeypatch.setattr("fxmatrix.main.run", fake_run)
        result = CliRunner().invoke(
            cli, ["--database-dir", str(tmp_path), "--proxy", "http://p:1", "run"], obj={},
        )

        assert result.exit_code == 0
        assert seen["settings"].database_dir == tmp_path
        assert seen["settings"].proxy == "http://p:1"
