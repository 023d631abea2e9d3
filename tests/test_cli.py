"""Tests for the manage_plugins command line."""

import json

import pytest

import manage_plugins
from conftest import camera_plugin, declaration, scanner_plugin, write_config, write_plugin

CAMERA = "com.acme.camera.CameraProvider"
SCANNER = "com.acme.scanner.ScannerProvider"


@pytest.fixture
def cli(workspace, monkeypatch):
    """Point the CLI at the temporary plugin workspace."""
    monkeypatch.setattr(manage_plugins, "BUNDLED_PLUGINS_DIR", workspace / "bundled")
    monkeypatch.setattr(manage_plugins, "INSTALLED_PLUGINS_DIR", workspace / "installed")
    monkeypatch.setattr(manage_plugins, "PLUGIN_CONFIG_FILE", workspace / "config.json")
    monkeypatch.setattr(manage_plugins, "EXTRA_PLUGIN_PATHS", [])
    write_plugin(workspace / "bundled", "camera", camera_plugin())
    write_plugin(workspace / "installed", "scanner", scanner_plugin())
    return workspace


def _trusted(workspace):
    return json.loads((workspace / "config.json").read_text(encoding="utf-8"))["trusted"]


def test_no_command_exits(cli):
    with pytest.raises(SystemExit) as excinfo:
        manage_plugins.main([])
    assert excinfo.value.code == 1


def test_trust_and_untrust(cli):
    manage_plugins.main(["trust", CAMERA])
    manage_plugins.main(["trust", SCANNER])
    assert _trusted(cli) == [CAMERA, SCANNER]

    manage_plugins.main(["untrust", CAMERA])
    assert _trusted(cli) == [SCANNER]


def test_list_and_info(cli):
    manage_plugins.main(["list"])
    manage_plugins.main(["info", CAMERA])
    with pytest.raises(SystemExit):
        manage_plugins.main(["info", "com.acme.Missing"])


def test_check_reports_conflicts(cli):
    write_plugin(cli / "installed", "camera2", declaration("com.other.Camera", "camera"))
    write_config(cli / "config.json", trusted=[CAMERA, SCANNER])
    manage_plugins.main(["check"])

    write_config(cli / "config.json", trusted=[CAMERA, SCANNER, "com.other.Camera"])
    with pytest.raises(SystemExit) as excinfo:
        manage_plugins.main(["check"])
    assert excinfo.value.code == 1


def test_compile(cli, android_project, ios_project):
    write_config(cli / "config.json", trusted=[CAMERA, SCANNER])

    manage_plugins.main([
        "compile",
        "--android", str(android_project.project_root),
        "--ios", str(ios_project.project_root),
    ])

    manifest = (android_project.project_root / "app/src/main/AndroidManifest.xml").read_text(encoding="utf-8")
    assert "android.permission.ACCESS_FINE_LOCATION" in manifest
    assert (ios_project.project_root / "App/Generated/BridgeRegistry.swift").is_file()


def test_compile_failure_exits(cli, android_project):
    write_config(cli / "config.json", trusted=[CAMERA])
    (android_project.project_root / "app/src/main/AndroidManifest.xml").unlink()

    with pytest.raises(SystemExit) as excinfo:
        manage_plugins.main(["compile", "--android", str(android_project.project_root)])
    assert excinfo.value.code == 1


def test_compile_requires_target(cli):
    with pytest.raises(SystemExit):
        manage_plugins.main(["compile"])


def test_doctor(cli):
    write_config(cli / "config.json", trusted=[CAMERA])
    manage_plugins.main(["doctor"])

    write_config(cli / "config.json", trusted=[CAMERA, "com.acme.Gone"])
    with pytest.raises(SystemExit):
        manage_plugins.main(["doctor"])


def test_doctor_reports_invalid_declaration(cli):
    write_config(cli / "config.json", trusted=[CAMERA])
    write_plugin(cli / "installed", "broken", declaration("com.acme.Broken", ""))

    with pytest.raises(SystemExit):
        manage_plugins.main(["doctor"])
