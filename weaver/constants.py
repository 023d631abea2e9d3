"""Global constants for the plugin compiler."""

import os
from pathlib import Path

# Root that relative plugin paths resolve against (supports WEAVER_ROOT env var)
_root_env = os.getenv("WEAVER_ROOT", "")
WEAVER_ROOT = Path(_root_env).resolve() if _root_env else Path.cwd()


def _resolve(value: str) -> Path:
    """Resolve a configured path, relative paths against WEAVER_ROOT."""
    path = Path(value)
    return path if path.is_absolute() else (WEAVER_ROOT / path).resolve()


PLUGINS_DIR = WEAVER_ROOT / "plugins"
BUNDLED_PLUGINS_DIR = _resolve(os.getenv("WEAVER_BUNDLED_DIR", str(PLUGINS_DIR / "bundled")))
INSTALLED_PLUGINS_DIR = _resolve(os.getenv("WEAVER_INSTALLED_DIR", str(PLUGINS_DIR / "installed")))
PLUGIN_CONFIG_FILE = _resolve(os.getenv("WEAVER_PLUGIN_CONFIG", str(PLUGINS_DIR / "config.json")))

# Extra search paths, separated like PATH
EXTRA_PLUGIN_PATHS = [
    _resolve(p) for p in os.getenv("WEAVER_PLUGIN_PATHS", "").split(os.pathsep) if p
]

# Seconds a lifecycle hook may run before it is killed
HOOK_TIMEOUT = int(os.getenv("WEAVER_HOOK_TIMEOUT", "300"))

# Tag used in the begin/end markers of generated regions
MARKER_TAG = "weaver"
