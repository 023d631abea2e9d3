"""Report the camera plugin's generated sources after a native build."""

import os
from pathlib import Path

project_root = Path(os.environ.get("WEAVER_PROJECT_ROOT", "."))
namespace = os.environ["WEAVER_PLUGIN_NAMESPACE"]

for candidate in (project_root / "app" / "src" / "weaver" / namespace, project_root / "Plugins" / namespace):
    if candidate.is_dir():
        count = sum(1 for p in candidate.rglob("*") if p.is_file())
        print(f"{namespace}: {count} source file(s) in {candidate}")
