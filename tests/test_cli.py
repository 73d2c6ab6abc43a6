import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from clib_install import __version__
from clib_install.cli import app as app_module
from tests.fakes.registry_client import FakeRegistryClient

runner = CliRunner()


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """An empty project directory with isolated cache and settings."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    monkeypatch.setattr(app_module, "CONFIG_FILE", tmp_path / "config.ini")
    return tmp_path


@pytest.fixture
def client(monkeypatch) -> FakeRegistryClient:
    fake = FakeRegistryClient()
    monkeypatch.setattr(app_module, "RegistryClient", lambda *args, **kwargs: fake)
    return fake


def test_version() -> None:
    result = runner.invoke(app_module.app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_install_and_save(project: Path, client: FakeRegistryClient) -> None:
    (project / "clib.json").write_text(json.dumps({"name": "app"}))
    client.add_package("owner/pkg", dependencies={"other/dep": "*"}, declared_version="1.0.0")
    client.add_package("other/dep")

    result = runner.invoke(app_module.app, ["owner/pkg", "--save"])

    assert result.exit_code == 0, result.output
    assert (project / "deps" / "pkg" / "lib.c").is_file()
    assert (project / "deps" / "dep" / "lib.h").is_file()
    assert json.loads((project / "clib.json").read_text()) == {
        "name": "app",
        "dependencies": {"owner/pkg": "1.0.0"},
    }
    assert "Install Complete" in result.output
    assert client.closed


def test_first_failing_target_exits_with_error(
    project: Path, client: FakeRegistryClient
) -> None:
    client.add_package("owner/pkg")

    result = runner.invoke(app_module.app, ["missing/pkg", "owner/pkg"])

    assert result.exit_code == 1
    assert client.manifest_calls == []
    assert not (project / "deps").exists()


def test_no_targets_installs_project_dependencies(
    project: Path, client: FakeRegistryClient
) -> None:
    (project / "package.json").write_text(
        json.dumps({"dependencies": {"owner/pkg": "*"}})
    )
    client.add_package("owner/pkg")

    result = runner.invoke(app_module.app, ["--quiet", "--out", "vendor"])

    assert result.exit_code == 0, result.output
    assert (project / "vendor" / "pkg" / "lib.c").is_file()
    assert "Install Complete" not in result.output


def test_no_targets_without_manifest_fails(
    project: Path, client: FakeRegistryClient
) -> None:
    result = runner.invoke(app_module.app, [])

    assert result.exit_code == 1
    assert client.manifest_calls == []


def test_save_failure_keeps_exit_code(project: Path, client: FakeRegistryClient) -> None:
    client.add_package("owner/pkg")

    result = runner.invoke(app_module.app, ["owner/pkg", "-S"])

    assert result.exit_code == 0, result.output
    assert (project / "deps" / "pkg" / "lib.c").is_file()


def test_invalid_concurrency(project: Path, client: FakeRegistryClient) -> None:
    result = runner.invoke(app_module.app, ["owner/pkg", "--concurrency", "100"])

    assert result.exit_code == 1
    assert client.index_calls == []


def test_clear_cache(project: Path, client: FakeRegistryClient) -> None:
    client.add_package("owner/pkg")
    runner.invoke(app_module.app, ["owner/pkg"])
    assert (project / "xdg-cache" / "clib" / "json").is_dir()

    result = runner.invoke(app_module.app, ["--clear-cache"])

    assert result.exit_code == 0
    assert not (project / "xdg-cache" / "clib" / "json").exists()


def test_undecodable_project_manifest(
    project: Path, client: FakeRegistryClient
) -> None:
    (project / "clib.json").write_bytes(b'{"dependencies": {"\xff": "*"}}')

    result = runner.invoke(app_module.app, ["."])

    assert result.exit_code == 1
    assert "ManifestParseError" in result.output
    assert client.index_calls == []
