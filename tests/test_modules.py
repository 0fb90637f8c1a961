"""Tests for language modules: chain resolution, registry and execution."""

import json
import os
import subprocess
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from cgprovision.common.errors import (
    ConfigError,
    DecodeError,
    ModuleExecError,
    NoCompatibleModuleBuild,
    NoCompatibleVersion,
    UnsupportedProjectType,
    UnsupportedProtocolVersion,
)
from cgprovision.install import Installer
from cgprovision.modules import Action, Module, ModuleRegistry, exec_info, run_action
from cgprovision.modules.execute import ModuleInfo, parse_module_info
from cgprovision.overrides import OverrideTable
from cgprovision.versioning import ProjectType, parse_version
from helpers import FakeProvider, run_concurrently

CLIENT = ProjectType.CLIENT
SERVER = ProjectType.SERVER


def _module(tmp_path, provider=None, installed=None):
    return Module(
        lang="go",
        display_name="Go",
        provider=provider or FakeProvider(),
        provider_vars={},
        installer=Installer(tmp_path / "modules"),
        protocol_to_library={CLIENT: {"0.7": "0.9", "0.8": "0.10"}},
        library_to_module={CLIENT: {"0.9": "0.4", "0.10": "0.5"}},
        installed=installed,
    )


class TestModuleChain:
    """Tests for protocol -> library -> module resolution."""

    def test_resolve_walks_both_tables(self, tmp_path):
        resolution = _module(tmp_path).resolve(CLIENT, parse_version("0.8"))
        assert str(resolution.library_version) == "0.10"
        assert str(resolution.module_version) == "0.5"
        assert not resolution.overridden

    def test_unsupported_protocol_version(self, tmp_path):
        with pytest.raises(UnsupportedProtocolVersion) as excinfo:
            _module(tmp_path).resolve(CLIENT, parse_version("0.9"))
        assert "0.7, 0.8" in str(excinfo.value)

    def test_no_compatible_module_build(self, tmp_path):
        module = _module(tmp_path)
        with pytest.raises(NoCompatibleModuleBuild) as excinfo:
            module.find_compatible_module_version(CLIENT, parse_version("0.11"))
        assert isinstance(excinfo.value, NoCompatibleVersion)

    def test_missing_table_is_unsupported_project_type(self, tmp_path):
        with pytest.raises(UnsupportedProjectType):
            _module(tmp_path).resolve(SERVER, parse_version("0.8"))

    def test_latest_ignores_protocol(self, tmp_path):
        resolution = _module(tmp_path).resolve(CLIENT)
        assert str(resolution.module_version) == "0.5"
        assert resolution.library_version is None

    def test_install_prefers_known_executables(self, tmp_path):
        provider = FakeProvider()
        module = _module(tmp_path, provider, installed={"0.5": "/opt/go-module"})
        assert module.install(parse_version("0.5")) == Path("/opt/go-module")
        assert provider.downloads == []

    def test_install_downloads_once(self, tmp_path):
        provider = FakeProvider()
        module = _module(tmp_path, provider)
        first = module.install(parse_version("0.5"))
        second = module.install(parse_version("0.5"))
        assert first == second == tmp_path / "modules" / "go" / "0-5"
        assert provider.downloads == ["0.5"]


def _write_registry(tmp_path, data):
    path = tmp_path / "lang_modules.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _registry(tmp_path, data, provider=None, overrides=None, http=None):
    provider = provider or FakeProvider()
    override_path = tmp_path / "overrides.json"
    if overrides is not None:
        override_path.write_text(json.dumps(overrides), encoding="utf-8")
    return ModuleRegistry(
        _write_registry(tmp_path, data),
        http or MagicMock(),
        Installer(tmp_path / "modules"),
        OverrideTable(override_path),
        provider_factory=lambda name, http: provider,
    )


GO_ENTRY = {
    "display_name": "Go",
    "source": {"provider": "fake", "owner": "code-game-project", "repository": "go-module"},
    "library_to_module_versions": {"client": {"0.9": "0.4", "0.10": "0.5"}},
    "codegame_to_library_versions": {"client": {"0.7": "0.9", "0.8": "0.10"}},
}


class TestModuleRegistry:
    """Tests for loading modules from lang_modules.json."""

    def test_load_module_is_memoized(self, tmp_path):
        registry = _registry(tmp_path, {"go": GO_ENTRY})
        module = registry.load_module("go")
        assert module is registry.load_module("go")
        assert module.display_name == "Go"
        assert module.provider_vars == {"owner": "code-game-project", "repository": "go-module"}

    def test_concurrent_first_load_builds_once(self, tmp_path):
        registry = _registry(tmp_path, {"go": GO_ENTRY})
        build = registry._build_module

        def slow_build(lang):
            time.sleep(0.05)
            return build(lang)

        with patch.object(registry, "_build_module", side_effect=slow_build) as build_mock:
            modules = run_concurrently(lambda: registry.load_module("go"))

        build_mock.assert_called_once_with("go")
        assert all(module is modules[0] for module in modules)

    def test_unknown_language(self, tmp_path):
        with pytest.raises(ConfigError):
            _registry(tmp_path, {"go": GO_ENTRY}).load_module("cobol")

    @pytest.mark.parametrize("source,message", [
        (None, "missing 'source' field"),
        ({}, "missing 'source.provider' field"),
        ({"provider": 7}, "must be a string"),
    ])
    def test_invalid_source(self, tmp_path, source, message):
        entry = dict(GO_ENTRY, source=source)
        with pytest.raises(ConfigError) as excinfo:
            _registry(tmp_path, {"go": entry}).load_module("go")
        assert message in str(excinfo.value)

    def test_provider_var_errors_are_joined(self, tmp_path):
        registry = ModuleRegistry(
            _write_registry(tmp_path, {"go": dict(GO_ENTRY, source={"provider": "github"})}),
            MagicMock(),
            Installer(tmp_path / "modules"),
            OverrideTable(None),
        )
        with pytest.raises(ConfigError) as excinfo:
            registry.load_module("go")
        assert "missing 'owner' field, missing 'repository' field" in str(excinfo.value)

    def test_unknown_provider(self, tmp_path):
        registry = ModuleRegistry(
            _write_registry(tmp_path, {"go": dict(GO_ENTRY, source={"provider": "svn"})}),
            MagicMock(),
            Installer(tmp_path / "modules"),
            OverrideTable(None),
        )
        with pytest.raises(ConfigError):
            registry.load_module("go")

    def test_missing_registry_file(self, tmp_path):
        registry = ModuleRegistry(tmp_path / "absent.json", MagicMock(), Installer(tmp_path), OverrideTable(None))
        with pytest.raises(ConfigError):
            registry.load_module("go")

    def test_tables_by_local_reference(self, tmp_path):
        (tmp_path / "go_libs.json").write_text(json.dumps({"server": {"0.3": "0.2"}}), encoding="utf-8")
        (tmp_path / "go_cg.json").write_text(json.dumps({"0.8": "0.3"}), encoding="utf-8")
        entry = dict(
            GO_ENTRY,
            library_to_module_versions="go_libs.json",
            codegame_to_library_versions={"server": "go_cg.json"},
        )
        module = _registry(tmp_path, {"go": entry}).load_module("go")
        assert module.library_to_module == {SERVER: {"0.3": "0.2"}}
        assert module.protocol_to_library == {SERVER: {"0.8": "0.3"}}

    def test_tables_by_url_reference(self, tmp_path):
        http = MagicMock()
        body = MagicMock()
        body.read.return_value = b'{"client": {"1.0": "1.1"}}'
        http.fetch_file.return_value = body
        entry = dict(GO_ENTRY, library_to_module_versions="https://example.com/go/libs.json")

        module = _registry(tmp_path, {"go": entry}, http=http).load_module("go")

        assert module.library_to_module == {CLIENT: {"1.0": "1.1"}}
        assert http.fetch_file.call_args[0][0] == "https://example.com/go/libs.json"
        assert http.fetch_file.call_args[1]["max_age"] == 24 * 60 * 60

    def test_existing_binaries_are_registered(self, tmp_path):
        directory = tmp_path / "modules" / "go"
        directory.mkdir(parents=True)
        (directory / "0-5-1").write_bytes(b"")
        module = _registry(tmp_path, {"go": GO_ENTRY}).load_module("go")
        assert module.installed == {"0.5.1": str(directory / "0-5-1")}

    def test_available_languages_skips_broken_entries(self, tmp_path, caplog):
        registry = _registry(tmp_path, {"go": GO_ENTRY, "js": {"display_name": "JavaScript"}})
        languages = registry.available_languages()
        assert set(languages) == {"go"}
        assert languages["go"].supports_client
        assert not languages["go"].supports_server
        assert "js" in caplog.text


class TestModulePath:
    """Tests for override precedence on module requests."""

    def test_chain_then_install(self, tmp_path):
        provider = FakeProvider()
        resolution, path = _registry(tmp_path, {"go": GO_ENTRY}, provider).module_path(
            "go", CLIENT, parse_version("0.8")
        )
        assert str(resolution.module_version) == "0.5"
        assert path == tmp_path / "modules" / "go" / "0-5"
        assert provider.downloads == ["0.5"]

    def test_exact_override(self, tmp_path):
        registry = _registry(tmp_path, {"go": GO_ENTRY}, overrides={"go": {"0.8": "/opt/go-dev"}})
        resolution, path = registry.module_path("go", CLIENT, parse_version("0.8"))
        assert path == Path("/opt/go-dev")
        assert resolution.overridden

    def test_override_as_new_as_supported_version_wins(self, tmp_path):
        registry = _registry(tmp_path, {"go": GO_ENTRY}, overrides={"go": {"0.7.5": "/opt/go-dev"}})
        _, path = registry.module_path("go", CLIENT, parse_version("0.7"))
        assert path == Path("/opt/go-dev")

    def test_override_used_when_chain_fails(self, tmp_path):
        registry = _registry(tmp_path, {"go": GO_ENTRY}, overrides={"go": {"0.9.1": "/opt/go-next"}})
        _, path = registry.module_path("go", CLIENT, parse_version("0.9"))
        assert path == Path("/opt/go-next")

    def test_chain_failure_without_override(self, tmp_path):
        with pytest.raises(UnsupportedProtocolVersion):
            _registry(tmp_path, {"go": GO_ENTRY}).module_path("go", CLIENT, parse_version("0.9"))


class TestLocalModules:
    """Tests for modules backed by local executables."""

    def test_local_module_resolves_to_configured_path(self, tmp_path):
        entry = {
            "display_name": "Go (dev)",
            "source": {"provider": "local", "path": "/home/dev/go-module"},
            "codegame_to_library_versions": {"client": {"0.8": "0.10"}},
        }
        info = ModuleInfo(["info", "create"], {"client": [parse_version("0.10")]}, ["client"])
        registry = ModuleRegistry(
            _write_registry(tmp_path, {"go": entry}),
            MagicMock(),
            Installer(tmp_path / "modules"),
            OverrideTable(None),
        )
        with patch("cgprovision.modules.execute.exec_info", return_value=info) as exec_mock:
            resolution, path = registry.module_path("go", CLIENT, parse_version("0.8"))

        exec_mock.assert_called_once_with("/home/dev/go-module")
        assert str(resolution.module_version) == "0"
        assert path == Path("/home/dev/go-module")


class TestExecute:
    """Tests for running module executables."""

    def test_parse_module_info(self):
        info = parse_module_info(json.dumps({
            "actions": ["info", "create"],
            "library_versions": {"client": ["0.9", "0.10"]},
            "project_types": ["client"],
            "version": "0.5.1",
        }).encode())
        assert info.actions == ["info", "create"]
        assert [str(v) for v in info.library_versions["client"]] == ["0.9", "0.10"]
        assert str(info.version) == "0.5.1"

    @pytest.mark.parametrize("payload", [
        b"not json",
        b'{"actions": [], "project_types": []}',
        b'{"actions": [], "library_versions": {"client": ["x"]}, "project_types": []}',
    ])
    def test_invalid_info(self, payload):
        with pytest.raises(DecodeError):
            parse_module_info(payload)

    def test_exec_info_runs_info_action(self):
        completed = subprocess.CompletedProcess(
            ["/opt/m", "info"], 0,
            stdout=b'{"actions": ["info"], "library_versions": {}, "project_types": []}',
        )
        with patch("cgprovision.modules.execute.subprocess.run", return_value=completed) as run_mock:
            info = exec_info("/opt/m")
        assert run_mock.call_args[0][0] == ["/opt/m", "info"]
        assert info.actions == ["info"]

    def test_exec_info_process_failure(self):
        with patch("cgprovision.modules.execute.subprocess.run",
                   side_effect=subprocess.CalledProcessError(1, ["/opt/m", "info"])):
            with pytest.raises(ModuleExecError):
                exec_info("/opt/m")

    def test_run_action_passes_payload_file(self):
        seen = {}

        def fake_run(cmd, env, check):
            data_file = env["CG_MODULE_ACTION_DATA_FILE"]
            with open(data_file, encoding="utf-8") as f:
                seen["payload"] = json.load(f)
            seen["file"] = data_file
            seen["cmd"] = cmd
            return subprocess.CompletedProcess(cmd, 0)

        with patch("cgprovision.modules.execute.subprocess.run", side_effect=fake_run):
            run_action("/opt/m", Action.CREATE, {"game_name": "pong"})

        assert seen["cmd"] == ["/opt/m", "create"]
        assert seen["payload"] == {"game_name": "pong"}
        assert not os.path.exists(seen["file"])

    def test_run_action_nonzero_exit(self):
        with patch("cgprovision.modules.execute.subprocess.run",
                   return_value=subprocess.CompletedProcess(["/opt/m", "build"], 2)):
            with pytest.raises(ModuleExecError):
                run_action("/opt/m", Action.BUILD)
