"""Android compiler - weaves plugins into a Gradle project."""

import logging
import re
import textwrap
from pathlib import Path
from typing import List
from xml.sax.saxutils import quoteattr

from weaver.compilers import glue
from weaver.compilers.base import BuildTarget, CompileResult, CompileStep, PlatformCompiler
from weaver.mutation import (
    SLASH_COMMENT,
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
from weaver.mutation.validators import balanced_brackets, xml_well_formed
from weaver.plugins.manifest import NativeDependency, Platform
from weaver.plugins.registry import RegisteredPluginSet, version_key

logger = logging.getLogger(__name__)

DEFAULT_GLUE_PACKAGE = "com.weaver.generated"
ANDROID_NAMESPACE = 'xmlns:android="http://schemas.android.com/apk/res/android"'

# Short permission names accepted in manifests
PERMISSION_MAP = {
    "camera": ["android.permission.CAMERA"],
    "location": ["android.permission.ACCESS_COARSE_LOCATION", "android.permission.ACCESS_FINE_LOCATION"],
    "microphone": ["android.permission.RECORD_AUDIO"],
    "contacts": ["android.permission.READ_CONTACTS"],
    "storage": ["android.permission.READ_EXTERNAL_STORAGE", "android.permission.WRITE_EXTERNAL_STORAGE"],
    "bluetooth": ["android.permission.BLUETOOTH", "android.permission.BLUETOOTH_CONNECT"],
    "notifications": ["android.permission.POST_NOTIFICATIONS"],
    "internet": ["android.permission.INTERNET"],
    "vibrate": ["android.permission.VIBRATE"],
    "calendar": ["android.permission.READ_CALENDAR", "android.permission.WRITE_CALENDAR"],
}

MIN_SDK_PATTERN = re.compile(r"^(?P<prefix>[ \t]*minSdk(?:Version)?[ \t]*=?[ \t]*)(?P<value>\d+)", re.MULTILINE)
DEPENDENCIES_ANCHOR = re.compile(r"^dependencies\s*\{", re.MULTILINE)


def android_permissions(permission: str) -> List[str]:
    """Map a manifest permission to Android permission names."""
    if permission in PERMISSION_MAP:
        return PERMISSION_MAP[permission]
    if "." in permission:
        return [permission]
    return [f"android.permission.{permission.upper()}"]


class AndroidCompiler(PlatformCompiler):
    """Targets ``app/src/main/AndroidManifest.xml`` and ``app/build.gradle[.kts]``.

    Settings:
        glue_package: Java package of the generated BridgeRegistry
    """

    platform = Platform.ANDROID
    default_source_dir = "android"

    @property
    def glue_package(self) -> str:
        return self.settings.get("glue_package") or DEFAULT_GLUE_PACKAGE

    def sources_root(self, target: BuildTarget) -> Path:
        return target.project_root / "app" / "src" / "weaver"

    def manifest_path(self, target: BuildTarget) -> Path:
        return target.project_root / "app" / "src" / "main" / "AndroidManifest.xml"

    def gradle_path(self, target: BuildTarget) -> Path:
        kts = target.project_root / "app" / "build.gradle.kts"
        return kts if kts.exists() else target.project_root / "app" / "build.gradle"

    def glue_path(self, target: BuildTarget) -> Path:
        package_dir = Path(*self.glue_package.split("."))
        return target.project_root / "app" / "src" / "main" / "java" / package_dir / "BridgeRegistry.java"

    # ------------------------------------------------------------------

    def render_glue(self, target: BuildTarget, plugin_set: RegisteredPluginSet, result: CompileResult) -> None:
        path = self.glue_path(target)
        try:
            source = glue.render_glue(self.platform, plugin_set, package=self.glue_package)
        except glue.EntryPointError as e:
            raise MutationError(MutationKind.TEMPLATE_RENDER, path, e, plugin=e.plugin) from e
        except TransformError as e:
            raise MutationError(MutationKind.TEMPLATE_RENDER, path, e) from e
        result.record(path, write_if_changed(path, source, validate=balanced_brackets))

    def merge_config(self, target: BuildTarget, plugin_set: RegisteredPluginSet, result: CompileResult) -> None:
        manifest = self.manifest_path(target)
        result.record(manifest, self._merge_permissions(manifest, plugin_set))
        result.record(manifest, self._merge_components(manifest, plugin_set))
        result.record(manifest, self._merge_deep_links(manifest, plugin_set))

        gradle = self.gradle_path(target)
        result.record(gradle, self._merge_source_sets(gradle, target, plugin_set))
        min_sdk = plugin_set.min_version(self.platform)
        if min_sdk:
            result.record(gradle, self._raise_min_sdk(gradle, min_sdk))

    def inject_dependencies(self, target: BuildTarget, plugin_set: RegisteredPluginSet, result: CompileResult) -> None:
        dependencies = plugin_set.dependencies(self.platform)
        if not dependencies:
            return

        gradle = self.gradle_path(target)
        kotlin = gradle.suffix == ".kts"
        for plugin, dependency in dependencies:
            with self.step(CompileStep.INJECT_DEPENDENCIES, plugin.id):
                result.record(gradle, self._inject_dependency(gradle, dependency, kotlin))

    # ------------------------------------------------------------------
    # AndroidManifest.xml
    # ------------------------------------------------------------------

    def _merge_permissions(self, manifest: Path, plugin_set: RegisteredPluginSet) -> bool:
        host = self.host_content(manifest, lambda c: strip_block(c, "permissions", XML_COMMENT))
        names = []
        for permission in plugin_set.permissions():
            for name in android_permissions(permission):
                if name in names:
                    continue
                if f'android:name="{name}"' in host:
                    logger.debug(f"Host manifest already declares {name}")
                    continue
                names.append(name)

        block = "\n".join(f"    <uses-permission android:name={quoteattr(n)} />" for n in sorted(names))
        return apply_block_replace(
            manifest,
            "permissions",
            block,
            XML_COMMENT,
            anchor=Anchor("<application", before=True),
            indent="    ",
            validate=xml_well_formed,
        )

    def _merge_components(self, manifest: Path, plugin_set: RegisteredPluginSet) -> bool:
        fragments = []
        for plugin, component in plugin_set.android_components():
            declaration = textwrap.dedent(component.declaration).strip("\n")
            with self.step(CompileStep.MERGE_CONFIG, plugin.id):
                try:
                    xml_well_formed(f"<application {ANDROID_NAMESPACE}>\n{declaration}\n</application>")
                except ValueError as e:
                    raise MutationError(MutationKind.BLOCK_REPLACE, manifest, f"validation failed: {e}") from e
            fragments.append(textwrap.indent(declaration, "        "))

        return apply_block_replace(
            manifest,
            "components",
            "\n".join(fragments),
            XML_COMMENT,
            anchor=Anchor("</application>", before=True, last=True),
            indent="        ",
            validate=xml_well_formed,
        )

    def _merge_deep_links(self, manifest: Path, plugin_set: RegisteredPluginSet) -> bool:
        filters = []
        for link in plugin_set.deep_links():
            data = f"android:scheme={quoteattr(link.scheme)}"
            if link.host:
                data += f" android:host={quoteattr(link.host)}"
            if link.path_prefix:
                data += f" android:pathPrefix={quoteattr(link.path_prefix)}"
            filters.append(
                "            <intent-filter>\n"
                '                <action android:name="android.intent.action.VIEW" />\n'
                '                <category android:name="android.intent.category.DEFAULT" />\n'
                '                <category android:name="android.intent.category.BROWSABLE" />\n'
                f"                <data {data} />\n"
                "            </intent-filter>"
            )

        return apply_block_replace(
            manifest,
            "deep-links",
            "\n".join(filters),
            XML_COMMENT,
            anchor=Anchor("</activity>", before=True),
            indent="            ",
            validate=xml_well_formed,
        )

    # ------------------------------------------------------------------
    # build.gradle
    # ------------------------------------------------------------------

    def _merge_source_sets(self, gradle: Path, target: BuildTarget, plugin_set: RegisteredPluginSet) -> bool:
        dirs = [f"src/weaver/{namespace}" for namespace in self.copied_namespaces(target, plugin_set)]
        if not dirs:
            block = ""
        elif gradle.suffix == ".kts":
            block = f"android.sourceSets.getByName(\"main\").java.srcDirs({', '.join(glue.quote(d) for d in dirs)})"
        else:
            block = f"android.sourceSets.main.java.srcDirs += [{', '.join(repr(d) for d in dirs)}]"

        return apply_block_replace(gradle, "plugin-sources", block, SLASH_COMMENT, validate=balanced_brackets)

    def _raise_min_sdk(self, gradle: Path, required: str) -> bool:
        def _raise(match: re.Match) -> str:
            current = match.group("value")
            value = max(current, required, key=version_key)
            return f"{match.group('prefix')}{value}"

        if not MIN_SDK_PATTERN.search(read_text(gradle, MutationKind.REGEX_REPLACE)):
            logger.warning(f"No literal minSdk found in {gradle}, plugins require minSdk {required}")
            return False

        changed = apply_regex_replace(gradle, MIN_SDK_PATTERN, _raise, count=1)
        if changed:
            logger.info(f"Raised minSdk in {gradle} to {required}")
        return changed

    def _inject_dependency(self, gradle: Path, dependency: NativeDependency, kotlin: bool) -> bool:
        coordinate = re.escape(dependency.coordinate)
        changed = False
        if dependency.version:
            # Existing declaration of the same coordinate pinned to another version
            pinned = re.compile(r"(?P<quote>['\"])" + coordinate + r":(?P<version>[^'\"]+)(?P=quote)")
            changed = apply_regex_replace(
                gradle,
                pinned,
                lambda m: f"{m.group('quote')}{dependency.coordinate}:{dependency.version}{m.group('quote')}",
                required=False,
                validate=balanced_brackets,
            )

        notation = dependency.coordinate + (f":{dependency.version}" if dependency.version else "")
        if kotlin:
            line = f"    {dependency.configuration}({glue.quote(notation)})"
        else:
            line = f"    {dependency.configuration} '{notation}'"

        guard = re.compile(r"['\"]" + coordinate + r"(?::[^'\"]*)?['\"]")
        injected = apply_guarded_inject(gradle, line, Anchor(DEPENDENCIES_ANCHOR), guard=guard, validate=balanced_brackets)
        return changed or injected


