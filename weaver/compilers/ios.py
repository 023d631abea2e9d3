"""iOS compiler - weaves plugins into an Xcode project with a CocoaPods Podfile."""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from xml.sax.saxutils import escape

from weaver.compilers import glue
from weaver.compilers.base import BuildTarget, CompileResult, CompileStep, PlatformCompiler
from weaver.mutation import (
    XML_COMMENT,
    Anchor,
    MutationError,
    MutationKind,
    TransformError,
    apply_block_replace,
    apply_guarded_inject,
    apply_regex_replace,
    read_text,
    strip_block,
    write_if_changed,
)
from weaver.mutation.validators import balanced_brackets, plist_well_formed
from weaver.plugins.manifest import NativeDependency, Platform
from weaver.plugins.registry import RegisteredPluginSet, version_key

logger = logging.getLogger(__name__)

# Short permission name -> (Info.plist key, what the default description mentions)
USAGE_KEYS: Dict[str, Tuple[str, str]] = {
    "camera": ("NSCameraUsageDescription", "the camera"),
    "location": ("NSLocationWhenInUseUsageDescription", "your location"),
    "microphone": ("NSMicrophoneUsageDescription", "the microphone"),
    "contacts": ("NSContactsUsageDescription", "your contacts"),
    "storage": ("NSPhotoLibraryUsageDescription", "your photo library"),
    "photos": ("NSPhotoLibraryUsageDescription", "your photo library"),
    "bluetooth": ("NSBluetoothAlwaysUsageDescription", "Bluetooth"),
    "calendar": ("NSCalendarsUsageDescription", "your calendars"),
}

# Permissions that need no Info.plist entry on iOS
NO_USAGE_KEY = {"internet", "vibrate", "notifications"}

PLATFORM_PATTERN = re.compile(
    r"^(?P<prefix>[ \t]*platform[ \t]+:ios[ \t]*,[ \t]*(?P<quote>['\"]))(?P<value>[^'\"]+)(?P=quote)",
    re.MULTILINE,
)
TARGET_ANCHOR = re.compile(r"^[ \t]*target[ \t]+['\"][^'\"]+['\"][ \t]+do[ \t]*$", re.MULTILINE)


def usage_key(permission: str) -> Optional[Tuple[str, str]]:
    """Map a manifest permission to its usage description key, None if it has none."""
    if permission in USAGE_KEYS:
        return USAGE_KEYS[permission]
    if permission.startswith("NS") and permission.endswith("UsageDescription"):
        return permission, "this feature"
    return None


class IOSCompiler(PlatformCompiler):
    """Targets ``App/Info.plist`` and the project ``Podfile``.

    Settings:
        usage_descriptions: Permission (short name or plist key) to the text
            shown to users; overrides plugin-supplied text
    """

    platform = Platform.IOS
    default_source_dir = "ios"

    def sources_root(self, target: BuildTarget) -> Path:
        return target.project_root / "Plugins"

    def info_plist_path(self, target: BuildTarget) -> Path:
        return target.project_root / "App" / "Info.plist"

    def podfile_path(self, target: BuildTarget) -> Path:
        return target.project_root / "Podfile"

    def glue_path(self, target: BuildTarget) -> Path:
        return target.project_root / "App" / "Generated" / "BridgeRegistry.swift"

    # ------------------------------------------------------------------

    def render_glue(self, target: BuildTarget, plugin_set: RegisteredPluginSet, result: CompileResult) -> None:
        path = self.glue_path(target)
        try:
            source = glue.render_glue(self.platform, plugin_set)
        except glue.EntryPointError as e:
            raise MutationError(MutationKind.TEMPLATE_RENDER, path, e, plugin=e.plugin) from e
        except TransformError as e:
            raise MutationError(MutationKind.TEMPLATE_RENDER, path, e) from e
        result.record(path, write_if_changed(path, source, validate=balanced_brackets))

    def merge_config(self, target: BuildTarget, plugin_set: RegisteredPluginSet, result: CompileResult) -> None:
        plist = self.info_plist_path(target)
        result.record(plist, self._merge_usage_descriptions(plist, plugin_set))
        result.record(plist, self._merge_url_types(plist, plugin_set))

        deployment_target = plugin_set.min_version(self.platform)
        if deployment_target:
            podfile = self.podfile_path(target)
            result.record(podfile, self._raise_platform(podfile, deployment_target))

    def inject_dependencies(self, target: BuildTarget, plugin_set: RegisteredPluginSet, result: CompileResult) -> None:
        podfile = self.podfile_path(target)
        for plugin, dependency in plugin_set.dependencies(self.platform):
            with self.step(CompileStep.INJECT_DEPENDENCIES, plugin.id):
                result.record(podfile, self._inject_pod(podfile, dependency))

    # ------------------------------------------------------------------
    # Info.plist
    # ------------------------------------------------------------------

    def description_for(self, permission: str, key: str, noun: str, plugin_text: Dict[str, str]) -> str:
        overrides = self.settings.get("usage_descriptions") or {}
        for source in (overrides, plugin_text):
            for name in (permission, key):
                if source.get(name):
                    return source[name]
        return f"This app uses {noun}."

    def _merge_usage_descriptions(self, plist: Path, plugin_set: RegisteredPluginSet) -> bool:
        host = self.host_content(plist, lambda c: strip_block(c, "permissions", XML_COMMENT))
        plugin_text = plugin_set.usage_descriptions()

        entries: Dict[str, str] = {}
        for permission in plugin_set.permissions():
            mapped = usage_key(permission)
            if mapped is None:
                if permission not in NO_USAGE_KEY:
                    logger.warning(f"No iOS usage description key known for permission '{permission}', skipping")
                continue
            key, noun = mapped
            if key in entries or f"<key>{key}</key>" in host:
                continue
            entries[key] = self.description_for(permission, key, noun, plugin_text)

        lines: List[str] = []
        for key in sorted(entries):
            lines.append(f"\t<key>{key}</key>")
            lines.append(f"\t<string>{escape(entries[key])}</string>")

        return apply_block_replace(
            plist,
            "permissions",
            "\n".join(lines),
            XML_COMMENT,
            anchor=Anchor("</dict>", before=True, last=True),
            indent="\t",
            validate=plist_well_formed,
        )

    def _merge_url_types(self, plist: Path, plugin_set: RegisteredPluginSet) -> bool:
        schemes = []
        for link in plugin_set.deep_links():
            if link.scheme not in schemes:
                schemes.append(link.scheme)

        host = self.host_content(plist, lambda c: strip_block(c, "deep-links", XML_COMMENT))
        if schemes and "<key>CFBundleURLTypes</key>" in host:
            logger.warning(f"{plist} already declares CFBundleURLTypes, not adding plugin URL schemes")
            schemes = []

        block = ""
        if schemes:
            lines = [
                "\t<key>CFBundleURLTypes</key>",
                "\t<array>",
                "\t\t<dict>",
                "\t\t\t<key>CFBundleURLSchemes</key>",
                "\t\t\t<array>",
            ]
            lines.extend(f"\t\t\t\t<string>{escape(scheme)}</string>" for scheme in schemes)
            lines.extend(["\t\t\t</array>", "\t\t</dict>", "\t</array>"])
            block = "\n".join(lines)

        return apply_block_replace(
            plist,
            "deep-links",
            block,
            XML_COMMENT,
            anchor=Anchor("</dict>", before=True, last=True),
            indent="\t",
            validate=plist_well_formed,
        )

    # ------------------------------------------------------------------
    # Podfile
    # ------------------------------------------------------------------

    def _raise_platform(self, podfile: Path, required: str) -> bool:
        def _raise(match: re.Match) -> str:
            value = max(match.group("value"), required, key=version_key)
            return f"{match.group('prefix')}{value}{match.group('quote')}"

        if not PLATFORM_PATTERN.search(read_text(podfile, MutationKind.REGEX_REPLACE)):
            logger.warning(f"No 'platform :ios' line found in {podfile}, plugins require iOS {required}")
            return False

        changed = apply_regex_replace(podfile, PLATFORM_PATTERN, _raise, count=1)
        if changed:
            logger.info(f"Raised iOS deployment target in {podfile} to {required}")
        return changed

    def _inject_pod(self, podfile: Path, dependency: NativeDependency) -> bool:
        name = re.escape(dependency.coordinate)
        changed = False
        if dependency.version:
            pinned = re.compile(
                r"^(?P<prefix>[ \t]*pod[ \t]+(?P<q1>['\"])" + name + r"(?P=q1)[ \t]*,[ \t]*(?P<q2>['\"]))"
                r"(?P<version>[^'\"]+)(?P=q2)",
                re.MULTILINE,
            )
            changed = apply_regex_replace(
                podfile,
                pinned,
                lambda m: f"{m.group('prefix')}{dependency.version}{m.group('q2')}",
                required=False,
            )

        line = f"  pod '{dependency.coordinate}'"
        if dependency.version:
            line += f", '{dependency.version}'"
        guard = re.compile(r"^[ \t]*pod[ \t]+['\"]" + name + r"['\"]", re.MULTILINE)
        injected = apply_guarded_inject(podfile, line, Anchor(TARGET_ANCHOR), guard=guard)
        return changed or injected
