"""Tests for settings loading, the provisioning facade and the CLI."""

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from cgprovision import cli
from cgprovision.args import parse_args
from cgprovision.common.errors import (
    ConfigError,
    DownloadError,
    HttpStatusError,
    NetworkError,
    UnsupportedProtocolVersion,
)
from cgprovision.common.http_client import TLSProbe
from cgprovision.constants import ExitCodes
from cgprovision.modules import AvailableLanguage
from cgprovision.service import ProvisioningService
from cgprovision.settings import Settings
from cgprovision.versioning import ProjectType, Resolution, parse_version


@pytest.fixture
def xdg_env(tmp_path):
    return {
        "XDG_CACHE_HOME": str(tmp_path / "cache"),
        "XDG_CONFIG_HOME": str(tmp_path / "config"),
        "XDG_DATA_HOME": str(tmp_path / "data"),
    }


class TestSettings:
    """Tests for Settings.load."""

    def test_xdg_defaults(self, tmp_path, xdg_env):
        settings = Settings.load(xdg_env)
        assert settings.cache_dir == tmp_path / "cache" / "codegame"
        assert settings.http_cache_dir == tmp_path / "cache" / "codegame" / "http"
        assert settings.components_dir == tmp_path / "data" / "codegame" / "components"
        assert settings.modules_file == tmp_path / "config" / "codegame" / "lang_modules.json"
        assert settings.github_token is None
        assert settings.max_concurrency == 4

    def test_environment_overrides(self, tmp_path, xdg_env):
        env = dict(
            xdg_env,
            CGPROVISION_CACHE_DIR=str(tmp_path / "c"),
            CGPROVISION_DATA_DIR=str(tmp_path / "d"),
            CGPROVISION_CONFIG_DIR=str(tmp_path / "cfg"),
            GITHUB_TOKEN="secret",
        )
        settings = Settings.load(env)
        assert settings.cache_dir == tmp_path / "c"
        assert settings.data_dir == tmp_path / "d"
        assert settings.overrides_file == tmp_path / "cfg" / "overrides.json"
        assert settings.github_token == "secret"

    def test_settings_file(self, tmp_path, xdg_env, caplog):
        config_dir = tmp_path / "config" / "codegame"
        config_dir.mkdir(parents=True)
        (config_dir / "settings.yaml").write_text(
            "max_concurrency: 8\ncomponent_owner: my-fork\ncolour: blue\n", encoding="utf-8"
        )
        with caplog.at_level(logging.WARNING):
            settings = Settings.load(xdg_env)
        assert settings.max_concurrency == 8
        assert settings.component_owner == "my-fork"
        assert "Ignoring unknown setting 'colour'" in caplog.text

    def test_environment_beats_settings_file(self, tmp_path, xdg_env):
        config_dir = tmp_path / "config" / "codegame"
        config_dir.mkdir(parents=True)
        (config_dir / "settings.yaml").write_text(f"cache_dir: {tmp_path / 'yaml'}\n", encoding="utf-8")
        settings = Settings.load(dict(xdg_env, CGPROVISION_CACHE_DIR=str(tmp_path / "env")))
        assert settings.cache_dir == tmp_path / "env"

    @pytest.mark.parametrize("content", ["max_concurrency: 0\n", "max_concurrency: many\n", "- a\n- b\n"])
    def test_invalid_settings_file(self, tmp_path, xdg_env, content):
        config_dir = tmp_path / "config" / "codegame"
        config_dir.mkdir(parents=True)
        (config_dir / "settings.yaml").write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            Settings.load(xdg_env)


@pytest.fixture
def service(tmp_path, xdg_env):
    return ProvisioningService(Settings.load(xdg_env), session=MagicMock())


class TestProvisioningService:
    """Tests for the facade wiring."""

    def test_shared_github_provider(self, service):
        assert service.components.provider is service.github
        assert service._provider("github", service.http) is service.github

    def test_prefetch_keeps_order_and_collects_errors(self, service):
        def fake_component(name, version, progress=None):
            if name == "cg-debug":
                raise NetworkError("offline")
            return Path(f"/cache/{name}/{version}")

        with patch.object(service, "component", side_effect=fake_component):
            results = service.prefetch_components([("cge-parser", "0.4"), ("cg-debug", "0.2")])

        assert results[0] == Path("/cache/cge-parser/0.4")
        assert isinstance(results[1], NetworkError)

    def test_prefetch_nothing(self, service):
        assert service.prefetch_components([]) == []

    def test_module_accepts_strings(self, service):
        service.modules.module_path = MagicMock(return_value=("resolution", Path("/m")))
        service.module("go", "client", "0.8")
        service.modules.module_path.assert_called_once_with("go", ProjectType.CLIENT, parse_version("0.8"), None)

    def test_base_url_probes_once(self, service):
        with patch.object(TLSProbe, "_probe", return_value=True) as probe_mock:
            assert service.base_url("http", "games.example.com") == "https://games.example.com"
            assert service.base_url("ws", "games.example.com") == "wss://games.example.com"
        probe_mock.assert_called_once()


class TestArgs:
    """Tests for argument parsing."""

    def test_component_command(self):
        args = parse_args(["--loglevel", "debug", "component", "cge-parser", "0.4"])
        assert args.LOG_LEVEL == "DEBUG"
        assert (args.COMMAND, args.NAME, args.VERSION) == ("component", "cge-parser", "0.4")

    def test_module_version_is_optional(self):
        args = parse_args(["module", "go", "server"])
        assert args.VERSION is None
        assert args.PROJECT_TYPE == "server"

    def test_invalid_project_type(self):
        with pytest.raises(SystemExit):
            parse_args(["module", "go", "desktop"])


class TestMain:
    """Tests for the CLI entry point and exit codes."""

    def _main(self, argv, service):
        with patch.object(cli, "Settings"), patch.object(cli, "ProvisioningService", return_value=service):
            with pytest.raises(SystemExit) as excinfo:
                cli.main(argv)
        return excinfo.value.code

    def test_component_prints_path(self, capsys):
        service = MagicMock()
        service.component.return_value = Path("/cache/cge-parser/0-4-1")

        assert self._main(["component", "cge-parser", "0.4"], service) == 0
        assert capsys.readouterr().out.strip() == str(Path("/cache/cge-parser/0-4-1"))

    def test_module_prints_path(self, capsys):
        service = MagicMock()
        resolution = Resolution(ProjectType.CLIENT, parse_version("0.8"), parse_version("0.10"), parse_version("0.5"))
        service.module.return_value = (resolution, Path("/modules/go/0-5"))

        assert self._main(["module", "go", "client", "0.8"], service) == 0
        service.module.assert_called_once_with("go", "client", "0.8")
        assert capsys.readouterr().out.strip() == str(Path("/modules/go/0-5"))

    def test_languages_listing(self, capsys):
        service = MagicMock()
        service.available_languages.return_value = {
            "go": AvailableLanguage("Go", True, True),
            "ts": AvailableLanguage("TypeScript", True, False),
        }
        assert self._main(["languages"], service) == 0
        assert capsys.readouterr().out.splitlines() == ["go\tGo\tclient,server", "ts\tTypeScript\tclient"]

    @pytest.mark.parametrize("error,code", [
        (NetworkError("offline"), ExitCodes.CONNECTION_ERROR),
        (HttpStatusError("https://example.com", 404), ExitCodes.CONNECTION_ERROR),
        (ConfigError("bad"), ExitCodes.CONFIG_ERROR),
        (DownloadError("truncated"), ExitCodes.FILE_ERROR),
        (UnsupportedProtocolVersion("0.9"), ExitCodes.RESOLUTION_ERROR),
    ])
    def test_error_exit_codes(self, error, code):
        service = MagicMock()
        service.component.side_effect = error
        assert self._main(["component", "cge-parser", "0.4"], service) == code.value

    def test_io_error_is_file_error(self):
        service = MagicMock()
        service.component.side_effect = PermissionError("denied")
        assert self._main(["component", "cge-parser", "0.4"], service) == ExitCodes.FILE_ERROR.value
