"""Shared builders for plugin and native project fixtures."""

import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

from weaver.compilers import BuildTarget
from weaver.plugins.manifest import Platform, parse_manifest
from weaver.plugins.registry import RegisteredPlugin, RegisteredPluginSet

ANDROID_MANIFEST = """\
<?xml version="1.0" encoding="utf-8"?>
<manifest xmlns:android="http://schemas.android.com/apk/res/android"
    package="com.example.host">

    <uses-permission android:name="android.permission.INTERNET" />

    <application
        android:label="Host">
        <activity android:name=".MainActivity" android:exported="true">
            <intent-filter>
                <action android:name="android.intent.action.MAIN" />
                <category android:name="android.intent.category.LAUNCHER" />
            </intent-filter>
        </activity>
    </application>
</manifest>
"""

BUILD_GRADLE = """\
plugins {
    id 'com.android.application'
}

android {
    namespace 'com.example.host'
    compileSdk 34

    defaultConfig {
        applicationId "com.example.host"
        minSdk 21
        targetSdk 34
    }
}

dependencies {
    implementation 'androidx.appcompat:appcompat:1.6.1'
}
"""

INFO_PLIST = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
\t<key>CFBundleName</key>
\t<string>Host</string>
</dict>
</plist>
"""

PODFILE = """\
platform :ios, '13.0'

target 'Host' do
  use_frameworks!
  pod 'Alamofire', '~> 5.0'
end
"""


def declaration(
    provider: str,
    namespace: str,
    functions: Optional[Dict[str, Dict[str, str]]] = None,
    permissions: Iterable[str] = (),
    **extra,
) -> dict:
    """Build a nested (schema v2) plugin declaration."""
    data = {
        "schema_version": 2,
        "provider": provider,
        "namespace": namespace,
        "permissions": list(permissions),
        "bridge": {"functions": functions or {}},
    }
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key].update(value)
        else:
            data[key] = value
    return data


def write_plugin(
    root: Path,
    dirname: str,
    data: dict,
    files: Optional[Dict[str, str]] = None,
    filename: str = "plugin.json",
) -> Path:
    """Write a plugin package (declaration plus any extra files) under root."""
    package = root / dirname
    package.mkdir(parents=True, exist_ok=True)
    (package / filename).write_text(json.dumps(data, indent=2), encoding="utf-8")
    for relative, content in (files or {}).items():
        path = package / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return package


def plugin_set(root: Path, declarations: List[dict], files: Optional[Dict[str, Dict[str, str]]] = None) -> RegisteredPluginSet:
    """Write declarations as packages and load them, in order, as an approved set."""
    plugins = []
    for index, data in enumerate(declarations):
        package = write_plugin(root, f"{index:02d}-{data['namespace']}", data, (files or {}).get(data["namespace"]))
        manifest = parse_manifest(package / "plugin.json")
        plugins.append(RegisteredPlugin(manifest=manifest, path=package, source="installed", declaration=package / "plugin.json"))
    return RegisteredPluginSet(plugins=tuple(plugins))


def camera_plugin(**extra) -> dict:
    return declaration(
        "com.acme.camera.CameraProvider",
        "camera",
        functions={"camera.takePhoto": {"android": "com.acme.camera.Camera#takePhoto", "ios": "CameraPlugin.takePhoto"}},
        permissions=["camera"],
        **extra,
    )


def scanner_plugin(**extra) -> dict:
    return declaration(
        "com.acme.scanner.ScannerProvider",
        "scanner",
        functions={"scanner.scan": {"android": "com.acme.scanner.Scanner#scan", "ios": "ScannerPlugin.scan"}},
        permissions=["camera", "location"],
        **extra,
    )


@pytest.fixture
def android_project(tmp_path) -> BuildTarget:
    root = tmp_path / "android-project"
    main = root / "app" / "src" / "main"
    main.mkdir(parents=True)
    (main / "AndroidManifest.xml").write_text(ANDROID_MANIFEST, encoding="utf-8")
    (root / "app" / "build.gradle").write_text(BUILD_GRADLE, encoding="utf-8")
    return BuildTarget(Platform.ANDROID, root)


@pytest.fixture
def ios_project(tmp_path) -> BuildTarget:
    root = tmp_path / "ios-project"
    (root / "App").mkdir(parents=True)
    (root / "App" / "Info.plist").write_text(INFO_PLIST, encoding="utf-8")
    (root / "Podfile").write_text(PODFILE, encoding="utf-8")
    return BuildTarget(Platform.IOS, root)


@pytest.fixture
def plugins_root(tmp_path) -> Path:
    root = tmp_path / "plugins"
    root.mkdir()
    return root


def write_config(path: Path, **config) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path) -> Path:
    """Empty bundled and installed plugin directories under tmp_path/plugins."""
    root = tmp_path / "plugins"
    (root / "bundled").mkdir(parents=True)
    (root / "installed").mkdir()
    return root
