"""Tests for the iOS compiler."""

import logging
import plistlib

import pytest

from conftest import INFO_PLIST, camera_plugin, declaration, plugin_set, scanner_plugin
from weaver.compilers import IOSCompiler
from weaver.compilers.ios import usage_key
from weaver.mutation import MutationError, MutationKind

GLUE = "App/Generated/BridgeRegistry.swift"
PLIST = "App/Info.plist"


def _read(target, relative):
    return (target.project_root / relative).read_text(encoding="utf-8")


def _plist(target):
    return plistlib.loads((target.project_root / PLIST).read_bytes())


class TestEndToEnd:
    def test_usage_descriptions_declared_once(self, ios_project, plugins_root):
        plugins = plugin_set(plugins_root, [camera_plugin(), scanner_plugin()])

        IOSCompiler().compile(ios_project, plugins)

        text = _read(ios_project, PLIST)
        assert text.count("<key>NSCameraUsageDescription</key>") == 1
        assert text.count("<key>NSLocationWhenInUseUsageDescription</key>") == 1
        assert _plist(ios_project) == {
            "CFBundleName": "Host",
            "NSCameraUsageDescription": "This app uses the camera.",
            "NSLocationWhenInUseUsageDescription": "This app uses your location.",
        }

    def test_glue_registers_functions(self, ios_project, plugins_root):
        plugins = plugin_set(plugins_root, [scanner_plugin(), camera_plugin()])

        IOSCompiler().compile(ios_project, plugins)

        glue = _read(ios_project, GLUE)
        assert '        bridge.registerFunction("camera.takePhoto", CameraPlugin.takePhoto)\n' in glue
        assert '        bridge.registerFunction("scanner.scan", ScannerPlugin.scan)\n' in glue
        assert glue.index("camera.takePhoto") < glue.index("scanner.scan")

    def test_compiling_twice_changes_nothing(self, ios_project, plugins_root):
        plugins = plugin_set(
            plugins_root,
            [camera_plugin(ios={"dependencies": ["GoogleMLKit/BarcodeScanning 3.2.0"], "deployment_target": "14.0"})],
            files={"camera": {"ios/CameraPlugin.swift": "final class CameraPlugin {}\n"}},
        )
        compiler = IOSCompiler()

        first = compiler.compile(ios_project, plugins)
        second = compiler.compile(ios_project, plugins)

        assert ios_project.project_root / "Podfile" in first.changed
        assert second.changed == []


class TestInfoPlist:
    def test_usage_key_mapping(self):
        assert usage_key("camera") == ("NSCameraUsageDescription", "the camera")
        assert usage_key("NSFaceIDUsageDescription") == ("NSFaceIDUsageDescription", "this feature")
        assert usage_key("internet") is None

    def test_description_precedence(self, ios_project, plugins_root):
        plugins = plugin_set(plugins_root, [
            camera_plugin(ios={"usage_descriptions": {"NSCameraUsageDescription": "Take photos & scan"}}),
            declaration("com.acme.Mic", "mic", permissions=["microphone", "location"],
                        ios={"usage_descriptions": {"location": "Tag recordings"}}),
        ])

        IOSCompiler({"usage_descriptions": {"location": "Find nearby stores"}}).compile(ios_project, plugins)

        values = _plist(ios_project)
        assert values["NSCameraUsageDescription"] == "Take photos & scan"
        assert values["NSLocationWhenInUseUsageDescription"] == "Find nearby stores"
        assert values["NSMicrophoneUsageDescription"] == "This app uses the microphone."
        assert "Take photos &amp; scan" in _read(ios_project, PLIST)

    def test_host_declared_key_is_kept(self, ios_project, plugins_root):
        host = INFO_PLIST.replace(
            "</dict>", "\t<key>NSCameraUsageDescription</key>\n\t<string>Host text</string>\n</dict>"
        )
        (ios_project.project_root / PLIST).write_text(host, encoding="utf-8")

        IOSCompiler().compile(ios_project, plugin_set(plugins_root, [camera_plugin()]))

        assert _read(ios_project, PLIST) == host

    def test_unknown_permission_warns(self, ios_project, plugins_root, caplog):
        plugins = plugin_set(plugins_root, [declaration("com.acme.Nfc", "nfc", permissions=["nfc", "internet"])])

        with caplog.at_level(logging.WARNING):
            IOSCompiler().compile(ios_project, plugins)

        assert "'nfc'" in caplog.text
        assert "'internet'" not in caplog.text
        assert _read(ios_project, PLIST) == INFO_PLIST

    def test_removed_permission_is_dropped(self, ios_project, plugins_root):
        compiler = IOSCompiler()
        compiler.compile(ios_project, plugin_set(plugins_root / "both", [camera_plugin(), scanner_plugin()]))
        compiler.compile(ios_project, plugin_set(plugins_root / "one", [camera_plugin()]))

        assert "NSLocationWhenInUseUsageDescription" not in _plist(ios_project)

    def test_url_schemes(self, ios_project, plugins_root):
        plugins = plugin_set(plugins_root, [
            camera_plugin(deep_links=["acme"]),
            scanner_plugin(deep_links=[{"scheme": "acme", "host": "scan"}, {"scheme": "scanner"}]),
        ])

        IOSCompiler().compile(ios_project, plugins)

        assert _plist(ios_project)["CFBundleURLTypes"] == [{"CFBundleURLSchemes": ["acme", "scanner"]}]

    def test_host_url_types_are_not_touched(self, ios_project, plugins_root, caplog):
        host = INFO_PLIST.replace(
            "</dict>",
            "\t<key>CFBundleURLTypes</key>\n\t<array>\n\t</array>\n</dict>",
        )
        (ios_project.project_root / PLIST).write_text(host, encoding="utf-8")

        with caplog.at_level(logging.WARNING):
            IOSCompiler().compile(ios_project, plugin_set(plugins_root, [camera_plugin(deep_links=["acme"])]))

        assert _plist(ios_project)["CFBundleURLTypes"] == []
        assert "already declares CFBundleURLTypes" in caplog.text


class TestPodfile:
    def test_pods_injected_and_pinned_versions_updated(self, ios_project, plugins_root):
        plugins = plugin_set(plugins_root, [camera_plugin(ios={"dependencies": [
            "GoogleMLKit/BarcodeScanning 3.2.0",
            "Alamofire ~> 5.8",
        ]})])

        IOSCompiler().compile(ios_project, plugins)

        assert _read(ios_project, "Podfile") == (
            "platform :ios, '13.0'\n"
            "\n"
            "target 'Host' do\n"
            "  pod 'GoogleMLKit/BarcodeScanning', '3.2.0'\n"
            "  use_frameworks!\n"
            "  pod 'Alamofire', '~> 5.8'\n"
            "end\n"
        )

    def test_deployment_target_raised_not_lowered(self, ios_project, plugins_root):
        compiler = IOSCompiler()
        compiler.compile(ios_project, plugin_set(plugins_root / "low", [camera_plugin(ios={"deployment_target": "12.0"})]))
        assert "platform :ios, '13.0'" in _read(ios_project, "Podfile")

        compiler.compile(ios_project, plugin_set(plugins_root / "high", [camera_plugin(ios={"deployment_target": "14.5"})]))
        assert "platform :ios, '14.5'" in _read(ios_project, "Podfile")

    def test_missing_platform_line_warns(self, ios_project, plugins_root, caplog):
        podfile = "target 'Host' do\n  use_frameworks!\nend\n"
        (ios_project.project_root / "Podfile").write_text(podfile, encoding="utf-8")
        plugins = plugin_set(plugins_root, [camera_plugin(ios={"deployment_target": "14.5"})])

        with caplog.at_level(logging.WARNING, logger="weaver.compilers.ios"):
            IOSCompiler().compile(ios_project, plugins)

        assert _read(ios_project, "Podfile") == podfile
        assert "No 'platform :ios' line" in caplog.text
        assert "14.5" in caplog.text

    def test_missing_target_block_reports_plugin(self, ios_project, plugins_root):
        (ios_project.project_root / "Podfile").write_text("platform :ios, '13.0'\n", encoding="utf-8")
        plugins = plugin_set(plugins_root, [camera_plugin(ios={"dependencies": ["Lottie 4.4.0"]})])

        with pytest.raises(MutationError, match="anchor not found") as excinfo:
            IOSCompiler().compile(ios_project, plugins)

        assert excinfo.value.step == "inject_dependencies"
        assert excinfo.value.plugin == "com.acme.camera.CameraProvider"
        assert excinfo.value.kind == MutationKind.GUARDED_INJECT


class TestSourcesAndGlue:
    def test_sources_copied_and_pruned(self, ios_project, plugins_root):
        files = {
            "camera": {"ios/CameraPlugin.swift": "final class CameraPlugin {}\n"},
            "scanner": {"ios/ScannerPlugin.swift": "final class ScannerPlugin {}\n"},
        }
        compiler = IOSCompiler()

        compiler.compile(ios_project, plugin_set(plugins_root / "both", [camera_plugin(), scanner_plugin()], files))
        plugins_dir = ios_project.project_root / "Plugins"
        assert (plugins_dir / "scanner" / "ScannerPlugin.swift").is_file()

        compiler.compile(ios_project, plugin_set(plugins_root / "one", [camera_plugin()], files))
        assert sorted(p.name for p in plugins_dir.iterdir()) == ["camera"]

    def test_events(self, ios_project, plugins_root):
        plugins = plugin_set(plugins_root, [camera_plugin(bridge={"events": {"camera.photoTaken": ["path", "width"]}})])

        IOSCompiler().compile(ios_project, plugins)

        assert 'bridge.registerEvent("camera.photoTaken", ["path", "width"])' in _read(ios_project, GLUE)

    def test_android_only_function_is_not_registered(self, ios_project, plugins_root):
        plugins = plugin_set(plugins_root, [declaration("com.acme.A", "a", functions={"a.vibrate": {"android": "A#vibrate"}})])

        IOSCompiler().compile(ios_project, plugins)

        assert "a.vibrate" not in _read(ios_project, GLUE)
