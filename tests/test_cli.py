"""Tests for argument parsing, configuration and the CLI entry point."""

import json
import logging
import os

import pytest

from depapply.args import parse_args
from depapply.cli import main
from depapply.config import apply_cli_overrides, apply_config_overrides, load_config
from depapply.constants import Constants, ExitCodes
from depapply.errors import ArgumentInvalidError
from depapply.install import PackagesManifest
from depapply.projects import FolderProjectSystem

from helpers import write_nupkg

UNIVERSE_YAML = """
packages:
  - id: App
    version: 1.0.0
    dependencies:
      - {id: Lib, version: "[1.0,2.0)"}
  - id: Lib
    version: 1.0.0
  - id: Lib
    version: 1.5.0
  - id: Broken
    version: 1.0.0
    dependencies:
      - {id: Missing, version: "3.0"}
"""


@pytest.fixture(autouse=True)
def _restore_state(monkeypatch):
    saved = {k: v for k, v in vars(Constants).items() if k.isupper()}
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    monkeypatch.delenv(Constants.ENV_CONFIG, raising=False)
    monkeypatch.setenv(Constants.ENV_LOG_LEVEL, "INFO")
    yield
    for key, value in saved.items():
        setattr(Constants, key, value)
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def universe(tmp_path):
    path = tmp_path / "universe.yaml"
    path.write_text(UNIVERSE_YAML)
    return str(path)


def run_main(argv):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code


class TestParseArgs:
    """Sub-command arguments."""

    def test_resolve(self):
        args = parse_args(["resolve", "-m", "u.yaml", "-p", "App:1.0", "-p", "Web:2.0", "-b", "highest"])
        assert args.COMMAND == "resolve"
        assert args.TARGETS == ["App:1.0", "Web:2.0"]
        assert args.INSTALLED == []
        assert args.BEHAVIOR == "highest"
        assert args.LOG_LEVEL == "INFO"

    def test_install_flags(self):
        args = parse_args(["install", "--project", "p", "--file", "A.nupkg",
                           "--skip-assembly-references", "--no-binding-redirects", "-f", "net40"])
        assert args.PROJECT == "p"
        assert args.PACKAGE_FILE == "A.nupkg"
        assert args.SKIP_ASSEMBLY_REFERENCES and args.NO_BINDING_REDIRECTS
        assert args.FRAMEWORK == "net40"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_resolve_needs_a_package(self):
        with pytest.raises(SystemExit):
            parse_args(["resolve", "-m", "u.yaml"])


class TestLoadConfig:
    """Config file loading."""

    def test_no_path(self):
        assert load_config() == {}

    def test_yaml_section(self, tmp_path):
        path = tmp_path / "depapply.yml"
        path.write_text("depapply:\n  dependency_behavior: highest\n  resolver_max_rounds: 50\n")
        assert load_config(str(path)) == {"dependency_behavior": "highest", "resolver_max_rounds": 50}

    def test_json(self, tmp_path):
        path = tmp_path / "depapply.json"
        path.write_text(json.dumps({"target_framework": "net40"}))
        assert load_config(str(path)) == {"target_framework": "net40"}

    def test_env_variable(self, tmp_path, monkeypatch):
        path = tmp_path / "cfg.yaml"
        path.write_text("target_framework: net46\n")
        monkeypatch.setenv(Constants.ENV_CONFIG, str(path))
        assert load_config() == {"target_framework": "net46"}

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ArgumentInvalidError):
            load_config(str(path))

    def test_unparsable(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("a: [1, 2\n")
        with pytest.raises(ArgumentInvalidError):
            load_config(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))


class TestOverrides:
    """Config keys and CLI flags onto Constants."""

    def test_config_values_are_coerced(self):
        apply_config_overrides({
            "script_interpreter": "sh -e",
            "binding_redirects_disabled": "yes",
            "script_timeout_sec": "30",
        })
        assert Constants.SCRIPT_INTERPRETER == ["sh", "-e"]
        assert Constants.BINDING_REDIRECTS_DISABLED is True
        assert Constants.SCRIPT_TIMEOUT_SEC == 30

    def test_unknown_key_is_ignored(self, caplog):
        with caplog.at_level(logging.WARNING, logger="depapply.config"):
            apply_config_overrides({"colour": "blue"})
        assert "colour" in caplog.text

    def test_bad_value(self):
        with pytest.raises(ArgumentInvalidError):
            apply_config_overrides({"resolver_max_rounds": "many"})

    def test_cli_wins_over_config(self):
        apply_config_overrides({"dependency_behavior": "highest", "target_framework": "net40"})
        apply_cli_overrides(parse_args(["resolve", "-m", "u", "-p", "A:1", "-b", "lowest", "--max-rounds", "7"]))
        assert Constants.DEFAULT_DEPENDENCY_BEHAVIOR == "lowest"
        assert Constants.DEFAULT_TARGET_FRAMEWORK == "net40"
        assert Constants.RESOLVER_MAX_ROUNDS == 7


class TestResolveCommand:
    """``depapply resolve``."""

    def test_prints_dependencies_first(self, universe, capsys):
        assert run_main(["resolve", "-m", universe, "-p", "App:1.0.0"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.splitlines() == ["Lib 1.0.0", "App 1.0.0"]

    def test_behavior_flag(self, universe, capsys):
        run_main(["resolve", "-m", universe, "-p", "App:1.0.0", "-b", "highest"])
        assert capsys.readouterr().out.splitlines() == ["Lib 1.5.0", "App 1.0.0"]

    def test_behavior_from_config(self, universe, tmp_path, capsys):
        cfg = tmp_path / "cfg.yaml"
        cfg.write_text("dependency_behavior: highest\n")
        run_main(["resolve", "-c", str(cfg), "-m", universe, "-p", "App:1.0.0"])
        assert capsys.readouterr().out.splitlines()[0] == "Lib 1.5.0"

    def test_plan_against_installed(self, universe, capsys):
        run_main(["resolve", "-m", universe, "-p", "App:1.0.0", "-i", "Lib:1.5.0"])
        out = capsys.readouterr().out.splitlines()
        assert out == ["Lib 1.5.0", "App 1.0.0", "+ App.1.0.0"]

    def test_unsatisfiable(self, universe):
        assert run_main(["resolve", "-m", universe, "-p", "Broken:1.0.0"]) == ExitCodes.RESOLUTION_ERROR.value

    def test_bad_token(self, universe):
        assert run_main(["resolve", "-m", universe, "-p", "App"]) == ExitCodes.ARGUMENT_ERROR.value

    def test_missing_metadata_file(self, tmp_path):
        code = run_main(["resolve", "-m", str(tmp_path / "none.yaml"), "-p", "App:1.0.0"])
        assert code == ExitCodes.FILE_ERROR.value

    def test_folder_of_packages(self, tmp_path, capsys):
        feed = tmp_path / "feed"
        feed.mkdir()
        write_nupkg(feed, "App", "1.0.0", {"lib/net45/App.dll": b"MZ"}, dependencies=[("Lib", "1.0")])
        write_nupkg(feed, "Lib", "1.0.0", {"lib/net45/Lib.dll": b"MZ"})
        run_main(["resolve", "-m", str(feed), "-p", "App:1.0.0"])
        assert capsys.readouterr().out.splitlines() == ["Lib 1.0.0", "App 1.0.0"]


class TestInstallCommands:
    """``depapply install`` and ``depapply uninstall`` against a folder project."""

    def test_round_trip(self, tmp_path):
        project_dir = tmp_path / "App"
        project_dir.mkdir()
        package = write_nupkg(tmp_path, "A", "1.0.0", {
            "lib/net45/A.dll": b"MZ",
            "content/readme.txt": "hello",
        })

        code = run_main(["install", "--project", str(project_dir), "--file", package])
        assert code == ExitCodes.SUCCESS.value
        project = FolderProjectSystem(str(project_dir))
        assert project.list_references() == ["A"]
        assert sorted(project.list_items()) == ["packages.config", "readme.txt"]
        assert (project_dir / "packages" / "A.1.0.0" / "lib" / "net45" / "A.dll").exists()

        code = run_main(["uninstall", "--project", str(project_dir), "-p", "A:1.0.0"])
        assert code == ExitCodes.SUCCESS.value
        project = FolderProjectSystem(str(project_dir))
        assert project.list_references() == []
        assert project.list_items() == []
        assert not (project_dir / "readme.txt").exists()
        assert not (project_dir / "packages.config").exists()
        assert not (project_dir / "packages" / "A.1.0.0").exists()

    def test_incompatible_package(self, tmp_path):
        project_dir = tmp_path / "App"
        project_dir.mkdir()
        package = write_nupkg(tmp_path, "B", "1.0.0", {"lib/net46/B.dll": b"MZ"})
        code = run_main(["install", "--project", str(project_dir), "--file", package])
        assert code == ExitCodes.INSTALL_ERROR.value
        assert not os.path.exists(project_dir / "packages.config")

    def test_framework_flag(self, tmp_path):
        project_dir = tmp_path / "App"
        project_dir.mkdir()
        package = write_nupkg(tmp_path, "B", "1.0.0", {"lib/net46/B.dll": b"MZ"})
        code = run_main(["install", "--project", str(project_dir), "--file", package, "-f", "net46"])
        assert code == ExitCodes.SUCCESS.value

    def test_uninstall_unknown_package_is_not_an_error(self, tmp_path):
        project_dir = tmp_path / "App"
        project_dir.mkdir()
        code = run_main(["uninstall", "--project", str(project_dir), "-p", "A:1.0.0"])
        assert code == ExitCodes.SUCCESS.value

    def test_install_from_source_brings_dependencies(self, tmp_path, capsys):
        feed = tmp_path / "feed"
        feed.mkdir()
        write_nupkg(feed, "App", "1.0.0", {"lib/net45/App.dll": b"MZ"}, dependencies=[("Lib", "1.0")])
        write_nupkg(feed, "Lib", "1.0.0", {"lib/net45/Lib.dll": b"MZ"})
        project_dir = tmp_path / "Site"
        project_dir.mkdir()

        code = run_main(["install", "--project", str(project_dir), "-s", str(feed), "-p", "App:1.0.0"])
        assert code == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.splitlines() == ["+ Lib.1.0.0", "+ App.1.0.0"]
        installed = PackagesManifest(str(project_dir)).get_installed()
        assert [str(r.identity) for r in installed] == ["Lib.1.0.0", "App.1.0.0"]
        assert FolderProjectSystem(str(project_dir)).list_references() == ["Lib", "App"]

    def test_install_from_source_upgrades(self, tmp_path, capsys):
        feed = tmp_path / "feed"
        feed.mkdir()
        write_nupkg(feed, "Lib", "1.0.0", {"lib/net45/Lib.dll": b"MZ"})
        write_nupkg(feed, "Lib", "2.0.0", {"lib/net45/Lib.dll": b"MZ"})
        project_dir = tmp_path / "Site"
        project_dir.mkdir()
        run_main(["install", "--project", str(project_dir), "-s", str(feed), "-p", "Lib:1.0.0"])
        capsys.readouterr()

        code = run_main(["install", "--project", str(project_dir), "-s", str(feed), "-p", "Lib:2.0.0"])
        assert code == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.splitlines() == ["- Lib.1.0.0", "+ Lib.2.0.0"]
        installed = PackagesManifest(str(project_dir)).get_installed()
        assert [str(r.identity) for r in installed] == ["Lib.2.0.0"]
        assert not (project_dir / "packages" / "Lib.1.0.0").exists()

    def test_install_from_source_unsatisfiable(self, tmp_path):
        feed = tmp_path / "feed"
        feed.mkdir()
        write_nupkg(feed, "App", "1.0.0", {"lib/net45/App.dll": b"MZ"}, dependencies=[("Lib", "1.0")])
        project_dir = tmp_path / "Site"
        project_dir.mkdir()
        code = run_main(["install", "--project", str(project_dir), "-s", str(feed), "-p", "App:1.0.0"])
        assert code == ExitCodes.RESOLUTION_ERROR.value
        assert not (project_dir / "packages.config").exists()

    @pytest.mark.parametrize("extra", [
        [],
        ["-s", "feed"],
        ["--file", "A.nupkg", "-s", "feed", "-p", "A:1.0.0"],
    ])
    def test_install_mode_must_be_clear(self, tmp_path, extra):
        code = run_main(["install", "--project", str(tmp_path)] + extra)
        assert code == ExitCodes.ARGUMENT_ERROR.value
