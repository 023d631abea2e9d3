"""Plugin manifest model - describes a plugin's native requirements.

A plugin package ships one or more declaration files (``plugin.json``,
``plugin.yaml`` or ``<name>.plugin.json``). Two on-disk shapes are accepted
and normalized into the same :class:`PluginManifest`:

Legacy flat form (schema_version 1)::

    {
        "class": "com.acme.camera.CameraProvider",
        "namespace": "camera",
        "android_functions": {"camera.takePhoto": "com.acme.camera.Camera#takePhoto"},
        "ios_functions": {"camera.takePhoto": "CameraPlugin.takePhoto"},
        "permissions": ["camera"],
        "android_dependencies": ["androidx.camera:camera-core:1.3.0"],
        "url_schemes": ["acme"],
        "post_build": "hooks/post_build.sh"
    }

Current nested form (schema_version 2)::

    {
        "schema_version": 2,
        "provider": "com.acme.camera.CameraProvider",
        "namespace": "camera",
        "bridge": {
            "functions": {"camera.takePhoto": {"android": "...", "ios": "..."}},
            "events": {"camera.photoTaken": ["path", "width", "height"]}
        },
        "permissions": ["camera"],
        "android": {"dependencies": [...], "components": [...], "min_sdk": 24},
        "ios": {"dependencies": [...], "usage_descriptions": {...}},
        "deep_links": [{"scheme": "acme", "host": "open"}],
        "hooks": {"post_build": "hooks/post_build.sh"}
    }
"""

import json
import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

MANIFEST_FILES = ("plugin.json", "plugin.yaml", "plugin.yml")
MANIFEST_SUFFIXES = (".plugin.json", ".plugin.yaml", ".plugin.yml")

NAMESPACE_PATTERN = r"^[A-Za-z][A-Za-z0-9_.-]*$"
SCHEME_PATTERN = r"^[A-Za-z][A-Za-z0-9+.-]*$"


class ManifestError(Exception):
    """Raised when a plugin declaration cannot be read, parsed or validated."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class Platform(str, Enum):
    """Native platforms a plugin can target."""

    ANDROID = "android"
    IOS = "ios"


class HookName(str, Enum):
    """Points in the build at which plugin hooks run."""

    PRE_COMPILE = "pre_compile"
    POST_COMPILE = "post_compile"
    COPY_ASSETS = "copy_assets"
    POST_BUILD = "post_build"


class ComponentKind(str, Enum):
    ACTIVITY = "activity"
    SERVICE = "service"
    RECEIVER = "receiver"
    PROVIDER = "provider"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


def split_entry_point(platform: Platform, entry_point: str) -> Tuple[str, str]:
    """Split a native entry point into its owning type and member name.

    Android takes 'package.Class#method' (or 'package.Class::method'), iOS
    takes 'Type.function' (or 'Type#function').

    Raises:
        ValueError: If the owner or the member is missing
    """
    if platform == Platform.ANDROID:
        owner, sep, member = entry_point.rpartition("::" if "::" in entry_point else "#")
        if not (sep and owner and member):
            raise ValueError(f"android entry point must look like 'package.Class#method': {entry_point!r}")
    else:
        owner, sep, member = entry_point.replace("#", ".").rpartition(".")
        if not (sep and owner and member):
            raise ValueError(f"ios entry point must look like 'Type.function': {entry_point!r}")
    return owner, member


class BridgeFunction(_FrozenModel):
    """A synchronously callable native operation, bound per platform."""

    name: str = Field(..., min_length=1, description="Dot-qualified function name")
    android: Optional[str] = Field(default=None, description="Android entry point, e.g. 'com.acme.Camera#takePhoto'")
    ios: Optional[str] = Field(default=None, description="iOS entry point, e.g. 'CameraPlugin.takePhoto'")

    @field_validator("android")
    @classmethod
    def _android_shape(cls, value: Optional[str]) -> Optional[str]:
        if value:
            split_entry_point(Platform.ANDROID, value)
        return value

    @field_validator("ios")
    @classmethod
    def _ios_shape(cls, value: Optional[str]) -> Optional[str]:
        if value:
            split_entry_point(Platform.IOS, value)
        return value

    @model_validator(mode="after")
    def _require_entry_point(self) -> "BridgeFunction":
        if not (self.android or self.ios):
            raise ValueError(f"bridge function '{self.name}' declares no native entry point")
        return self

    def entry_point(self, platform: Platform) -> Optional[str]:
        return self.android if platform == Platform.ANDROID else self.ios


class BridgeEvent(_FrozenModel):
    """An event type whose payload is assigned to fields by position."""

    name: str = Field(..., min_length=1)
    field_names: Tuple[str, ...] = ()

    @field_validator("field_names")
    @classmethod
    def _unique_field_names(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        duplicates = sorted({f for f in value if value.count(f) > 1})
        if duplicates:
            raise ValueError(f"duplicate event fields: {', '.join(duplicates)}")
        return value


class NativeDependency(_FrozenModel):
    """A native package coordinate with an optional version constraint."""

    coordinate: str = Field(..., min_length=1)
    version: str = ""
    configuration: str = "implementation"

    @classmethod
    def parse(cls, platform: Platform, value: Any) -> "NativeDependency":
        """Parse 'group:artifact:version' (Android) or 'Pod ~> 1.0' (iOS) shorthand."""
        if isinstance(value, dict):
            data = dict(value)
            if "name" in data and "coordinate" not in data:
                data["coordinate"] = data.pop("name")
            return cls(**data)

        text = str(value).strip()
        if platform == Platform.ANDROID:
            parts = text.split(":")
            if len(parts) >= 3:
                return cls(coordinate=":".join(parts[:2]), version=":".join(parts[2:]))
            return cls(coordinate=text)

        name, _, version = text.partition(" ")
        return cls(coordinate=name, version=version.strip())


class AndroidComponent(_FrozenModel):
    kind: ComponentKind
    declaration: str = Field(..., min_length=1, description="XML fragment merged into <application>")


class DeepLink(_FrozenModel):
    scheme: str = Field(..., pattern=SCHEME_PATTERN)
    host: str = ""
    path_prefix: str = ""


class PluginManifest(_FrozenModel):
    """Normalized, immutable plugin declaration.

    Fields cannot be reassigned, but the mapping fields (``usage_descriptions``,
    ``dependencies``, ``sources``, ``min_versions``, ``hooks``) are plain dicts
    and callers must treat them as read-only. Use :meth:`model_copy` with
    ``update=`` to derive a changed manifest.
    """

    provider: str = Field(..., min_length=1, description="Trusted identity checked against the allowlist")
    namespace: str = Field(..., pattern=NAMESPACE_PATTERN, description="Unique short identifier")
    name: str = ""
    version: str = "0.0.0"
    schema_version: int = 2
    bridge_functions: Tuple[BridgeFunction, ...] = ()
    events: Tuple[BridgeEvent, ...] = ()
    permissions: FrozenSet[str] = frozenset()
    usage_descriptions: Dict[str, str] = Field(default_factory=dict)
    dependencies: Dict[Platform, Tuple[NativeDependency, ...]] = Field(default_factory=dict)
    android_components: Tuple[AndroidComponent, ...] = ()
    deep_links: Tuple[DeepLink, ...] = ()
    sources: Dict[Platform, str] = Field(default_factory=dict)
    min_versions: Dict[Platform, str] = Field(default_factory=dict)
    hooks: Dict[HookName, str] = Field(default_factory=dict)

    @field_validator("provider")
    @classmethod
    def _strip_provider(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("provider must not be blank")
        return value

    @field_validator("permissions")
    @classmethod
    def _clean_permissions(cls, value: FrozenSet[str]) -> FrozenSet[str]:
        cleaned = frozenset(p.strip() for p in value)
        if "" in cleaned:
            raise ValueError("permission identifiers must not be blank")
        return cleaned

    @field_validator("bridge_functions")
    @classmethod
    def _unique_functions(cls, value: Tuple[BridgeFunction, ...]) -> Tuple[BridgeFunction, ...]:
        names = [f.name for f in value]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate bridge functions: {', '.join(duplicates)}")
        return value

    @classmethod
    def from_declaration(cls, data: Any, source: Optional[Path] = None) -> "PluginManifest":
        """Build a manifest from either declaration shape.

        Raises:
            ManifestError: If the declaration is malformed
        """
        try:
            return cls.model_validate(normalize_declaration(data, source))
        except ValidationError as e:
            raise ManifestError(f"invalid manifest: {_describe(e)}", source) from e

    @property
    def display_name(self) -> str:
        return self.name or self.namespace

    def functions_for(self, platform: Platform) -> List[BridgeFunction]:
        """Bridge functions that have an entry point on the given platform."""
        return [f for f in self.bridge_functions if f.entry_point(platform)]

    def dependencies_for(self, platform: Platform) -> Tuple[NativeDependency, ...]:
        return self.dependencies.get(platform, ())


def is_declaration_file(path: Path) -> bool:
    """Check whether a file name marks a plugin declaration."""
    return path.name in MANIFEST_FILES or path.name.endswith(MANIFEST_SUFFIXES)


def load_declaration(path: Path) -> Dict[str, Any]:
    """Read a JSON or YAML declaration file.

    Raises:
        ManifestError: If the file cannot be read or parsed
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(f"cannot read declaration: {e}", path) from e

    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ManifestError(f"cannot parse declaration: {e}", path) from e

    if not isinstance(data, dict):
        raise ManifestError("declaration must be a mapping", path)
    return data


def parse_manifest(path: Path, strict: bool = False) -> PluginManifest:
    """Parse and validate a plugin declaration.

    Args:
        path: Declaration file
        strict: Resolve every lifecycle hook reference now instead of at invocation

    Returns:
        PluginManifest

    Raises:
        ManifestError: If the declaration is unreadable or invalid
    """
    data = load_declaration(path)
    manifest = PluginManifest.from_declaration(data, source=path)
    if strict:
        validate_hooks(manifest, path.parent, source=path)
    logger.debug(f"Parsed manifest {manifest.provider} (schema v{manifest.schema_version}) from {path}")
    return manifest


def resolve_hook(reference: str, package_root: Path) -> Optional[Path]:
    """Resolve a hook reference to an executable path.

    The reference is tried as a file relative to the package root, then as a
    command on PATH.
    """
    candidate = Path(reference)
    if not candidate.is_absolute():
        candidate = package_root / candidate
    if candidate.is_file():
        return candidate

    found = shutil.which(reference)
    return Path(found) if found else None


def validate_hooks(manifest: PluginManifest, package_root: Path, source: Optional[Path] = None) -> None:
    """Fail if any hook reference does not resolve."""
    for hook, reference in manifest.hooks.items():
        if resolve_hook(reference, package_root) is None:
            raise ManifestError(
                f"hook '{hook.value}' references unresolvable executable '{reference}'", source
            )


# ----------------------------------------------------------------------------
# Declaration normalization
# ----------------------------------------------------------------------------


def normalize_declaration(data: Any, source: Optional[Path] = None) -> Dict[str, Any]:
    """Convert either declaration shape into PluginManifest field values."""
    if not isinstance(data, dict):
        raise ManifestError("declaration must be a mapping", source)

    schema_version = data.get("schema_version")
    if schema_version is None:
        schema_version = 2 if _looks_nested(data) else 1

    if schema_version == 1:
        return _normalize_legacy(data, source)
    if schema_version == 2:
        return _normalize_nested(data, source)
    raise ManifestError(f"unsupported schema_version: {schema_version!r}", source)


def _looks_nested(data: Dict[str, Any]) -> bool:
    return any(isinstance(data.get(key), dict) for key in ("bridge", "android", "ios"))


def _normalize_legacy(data: Dict[str, Any], source: Optional[Path]) -> Dict[str, Any]:
    functions: Dict[str, Dict[str, Any]] = {}
    for name, entry in _mapping(data, "functions", source).items():
        functions[name] = _entry_points(name, entry, source)
    for platform in Platform:
        for name, entry in _mapping(data, f"{platform.value}_functions", source).items():
            functions.setdefault(name, {})[platform.value] = entry

    hooks = dict(_mapping(data, "hooks", source))
    for hook in HookName:
        if hook.value in data:
            hooks.setdefault(hook.value, data[hook.value])

    return {
        "provider": data.get("class") or data.get("provider"),
        "namespace": data.get("namespace"),
        "name": data.get("name", ""),
        "version": str(data.get("version", "0.0.0")),
        "schema_version": 1,
        "bridge_functions": [{"name": name, **entry} for name, entry in functions.items()],
        "events": _events(_mapping(data, "events", source), source),
        "permissions": _sequence(data, "permissions", source),
        "usage_descriptions": _mapping(data, "usage_descriptions", source),
        "dependencies": {
            platform.value: _dependencies(platform, _sequence(data, f"{platform.value}_dependencies", source))
            for platform in Platform
        },
        "android_components": _sequence(data, "android_components", source),
        "deep_links": [_deep_link(s) for s in _sequence(data, "url_schemes", source)],
        "sources": _compact({p.value: data.get(f"{p.value}_source_dir") for p in Platform}),
        "min_versions": _compact({"android": data.get("min_sdk"), "ios": data.get("deployment_target")}),
        "hooks": hooks,
    }


def _normalize_nested(data: Dict[str, Any], source: Optional[Path]) -> Dict[str, Any]:
    bridge = _mapping(data, "bridge", source)
    android = _mapping(data, "android", source)
    ios = _mapping(data, "ios", source)

    functions = [
        {"name": name, **_entry_points(name, entry, source)}
        for name, entry in _mapping(bridge, "functions", source).items()
    ]

    return {
        "provider": data.get("provider"),
        "namespace": data.get("namespace"),
        "name": data.get("name", ""),
        "version": str(data.get("version", "0.0.0")),
        "schema_version": 2,
        "bridge_functions": functions,
        "events": _events(_mapping(bridge, "events", source), source),
        "permissions": _sequence(data, "permissions", source),
        "usage_descriptions": _mapping(ios, "usage_descriptions", source),
        "dependencies": {
            Platform.ANDROID.value: _dependencies(Platform.ANDROID, _sequence(android, "dependencies", source)),
            Platform.IOS.value: _dependencies(Platform.IOS, _sequence(ios, "dependencies", source)),
        },
        "android_components": _sequence(android, "components", source),
        "deep_links": [_deep_link(d) for d in _sequence(data, "deep_links", source)],
        "sources": _compact({"android": android.get("source_dir"), "ios": ios.get("source_dir")}),
        "min_versions": _compact({"android": android.get("min_sdk"), "ios": ios.get("deployment_target")}),
        "hooks": _mapping(data, "hooks", source),
    }


def _mapping(data: Dict[str, Any], key: str, source: Optional[Path]) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestError(f"'{key}' must be a mapping", source)
    return value


def _sequence(data: Dict[str, Any], key: str, source: Optional[Path]) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ManifestError(f"'{key}' must be a list", source)
    return value


def _entry_points(name: str, entry: Any, source: Optional[Path]) -> Dict[str, Any]:
    if not isinstance(entry, dict):
        raise ManifestError(f"bridge function '{name}' must map platforms to entry points", source)
    return dict(entry)


def _events(events: Dict[str, Any], source: Optional[Path]) -> List[Dict[str, Any]]:
    result = []
    for name, field_names in events.items():
        if not isinstance(field_names, list):
            raise ManifestError(f"event '{name}' must list its fields in payload order", source)
        result.append({"name": name, "field_names": field_names})
    return result


def _dependencies(platform: Platform, values: List[Any]) -> List[NativeDependency]:
    return [NativeDependency.parse(platform, value) for value in values]


def _deep_link(value: Any) -> Any:
    return {"scheme": value} if isinstance(value, str) else value


def _compact(values: Dict[str, Any]) -> Dict[str, str]:
    return {key: str(value) for key, value in values.items() if value not in (None, "")}


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "manifest"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)
