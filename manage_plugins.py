#!/usr/bin/env python3
"""Plugin management CLI tool."""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure project root is in path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

# Load environment variables before weaver.constants reads them
load_dotenv('.env')

log_level = os.getenv('LOG_LEVEL', 'WARNING')
logging.basicConfig(
    level=getattr(logging, log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

from rich.console import Console
from rich.table import Table

from weaver.compilers import BuildTarget
from weaver.constants import BUNDLED_PLUGINS_DIR, EXTRA_PLUGIN_PATHS, INSTALLED_PLUGINS_DIR, PLUGIN_CONFIG_FILE
from weaver.plugins.lifecycle import HookExecutionError
from weaver.plugins.manager import PluginManager
from weaver.plugins.manifest import ManifestError, Platform, is_declaration_file, parse_manifest, resolve_hook
from weaver.plugins.registry import PluginConflictError

console = Console()


def get_manager() -> PluginManager:
    """Create a PluginManager from the configured directories."""
    return PluginManager(
        bundled_dir=BUNDLED_PLUGINS_DIR,
        installed_dir=INSTALLED_PLUGINS_DIR,
        config_file=PLUGIN_CONFIG_FILE,
        extra_paths=EXTRA_PLUGIN_PATHS,
    )


def cmd_list(args):
    """List all discovered plugins."""
    plugins = get_manager().list_plugins()
    if not plugins:
        console.print("[yellow]No plugins found.[/yellow]")
        return

    table = Table(title="Plugins")
    table.add_column("Provider", style="cyan")
    table.add_column("Namespace")
    table.add_column("Version")
    table.add_column("Source")
    table.add_column("Schema")
    table.add_column("Trusted")
    for p in plugins:
        trusted = "[green]yes[/green]" if p["trusted"] else "[red]no[/red]"
        table.add_row(p["provider"], p["namespace"], p["version"], p["source"], f"v{p['schema_version']}", trusted)
    console.print(table)


def cmd_info(args):
    """Show detailed plugin information."""
    info = get_manager().get_plugin_info(args.provider)
    if not info:
        console.print(f"[red]Plugin '{args.provider}' not found.[/red]")
        sys.exit(1)

    console.print(f"Plugin: [cyan]{info['provider']}[/cyan]")
    console.print(f"  Name:        {info['name']}")
    console.print(f"  Namespace:   {info['namespace']}")
    console.print(f"  Version:     {info['version']}")
    console.print(f"  Source:      {info['source']}")
    console.print(f"  Path:        {info['path']}")
    console.print(f"  Trusted:     {info['trusted']}")
    if info["functions"]:
        console.print(f"  Functions:   {', '.join(info['functions'])}")
    if info["permissions"]:
        console.print(f"  Permissions: {', '.join(info['permissions'])}")
    if info["hooks"]:
        console.print(f"  Hooks:       {json.dumps(info['hooks'], indent=4, ensure_ascii=False)}")


def cmd_trust(args):
    """Add a provider to the allowlist."""
    manager = get_manager()
    if manager.get_plugin_info(args.provider) is None:
        console.print(f"[yellow]Warning: no discovered plugin declares '{args.provider}'.[/yellow]")
    manager.trust(args.provider)
    console.print(f"[green]Trusted '{args.provider}'.[/green]")


def cmd_untrust(args):
    """Remove a provider from the allowlist."""
    get_manager().untrust(args.provider)
    console.print(f"[green]Untrusted '{args.provider}'.[/green]")


def cmd_check(args):
    """Report conflicts among trusted plugins."""
    manager = get_manager()
    try:
        plugin_set = manager.registry.plugins()
    except ManifestError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    report = manager.registry.detect_conflicts(plugin_set)
    if not report:
        console.print(f"[green]No conflicts among {len(plugin_set)} trusted plugin(s).[/green]")
        return

    table = Table(title="Plugin conflicts")
    table.add_column("Kind", style="red")
    table.add_column("Identifier", style="cyan")
    table.add_column("Declared by")
    for conflict in report:
        table.add_row(conflict.kind.value, conflict.identifier, ", ".join(conflict.owners))
    console.print(table)
    sys.exit(1)


def cmd_compile(args):
    """Compile trusted plugins into native projects."""
    targets = []
    build_root = Path(args.build_root).resolve() if args.build_root else None
    if args.android:
        targets.append(BuildTarget(Platform.ANDROID, Path(args.android).resolve(), build_root))
    if args.ios:
        targets.append(BuildTarget(Platform.IOS, Path(args.ios).resolve(), build_root))
    if not targets:
        console.print("[red]Nothing to compile: pass --android and/or --ios.[/red]")
        sys.exit(1)

    try:
        report = get_manager().compile(targets, parallel=args.parallel)
    except (PluginConflictError, ManifestError, HookExecutionError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    for platform, result in report.results.items():
        console.print(
            f"[green]{platform.value}[/green]: {len(result.plugins)} plugin(s), "
            f"{len(result.changed)} file(s) changed"
        )
        for path in result.changed:
            console.print(f"  [dim]{path}[/dim]")
    for platform, error in report.failures.items():
        console.print(f"[red]{platform.value}: {error}[/red]")
    if not report.ok:
        sys.exit(1)


def cmd_doctor(args):
    """Run health checks on the plugin system."""
    issues = []

    # Check directories
    if not BUNDLED_PLUGINS_DIR.exists():
        issues.append(f"Bundled plugins directory missing: {BUNDLED_PLUGINS_DIR}")
    if not INSTALLED_PLUGINS_DIR.exists():
        issues.append(f"Installed plugins directory missing: {INSTALLED_PLUGINS_DIR}")
    for path in EXTRA_PLUGIN_PATHS:
        if not path.exists():
            issues.append(f"Extra plugin path missing: {path}")

    # Check config file
    if not PLUGIN_CONFIG_FILE.exists():
        issues.append(f"Plugin config file missing: {PLUGIN_CONFIG_FILE} (no plugins will be trusted)")
    else:
        try:
            with open(PLUGIN_CONFIG_FILE, encoding="utf-8") as f:
                json.load(f)
        except json.JSONDecodeError as e:
            issues.append(f"Plugin config file has invalid JSON: {e}")

    manager = get_manager()
    # Strict mode makes discovery raise on the first bad declaration
    manager.discovery.strict = False
    plugins = manager.discovery.discover_all()
    trusted_ids = manager.config_service.get_trusted_list()

    # Check for trusted providers that don't exist
    discovered_ids = {p.id for p in plugins}
    for tid in trusted_ids:
        if tid not in discovered_ids:
            issues.append(f"Trusted provider '{tid}' not found in any search path")

    # Check declarations and hook references
    for declaration in _declaration_files(manager):
        try:
            parse_manifest(declaration)
        except ManifestError as e:
            issues.append(f"Invalid declaration: {e}")
    for p in plugins:
        for hook, reference in p.manifest.hooks.items():
            if resolve_hook(reference, p.path) is None:
                issues.append(f"Plugin '{p.id}': {hook.value} hook does not resolve: {reference}")

    # Check conflicts among trusted plugins
    trusted = manager.registry.plugins()
    for conflict in manager.registry.detect_conflicts(trusted):
        issues.append(f"Conflict: {conflict.describe()}")

    if issues:
        console.print(f"[red]Found {len(issues)} issue(s):[/red]")
        for i, issue in enumerate(issues, 1):
            console.print(f"  {i}. {issue}")
        sys.exit(1)
    else:
        console.print(
            f"[green]All checks passed. {len(plugins)} plugin(s) found, {len(trusted)} trusted.[/green]"
        )


def _declaration_files(manager: PluginManager):
    for search_path, _ in manager.discovery.search_paths:
        if search_path.is_dir():
            for package_dir in sorted(p for p in search_path.iterdir() if p.is_dir()):
                yield from sorted(f for f in package_dir.iterdir() if f.is_file() and is_declaration_file(f))


def main(argv=None):
    parser = argparse.ArgumentParser(description="plugin-weaver plugin manager")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    subparsers.add_parser("list", help="List all plugins")

    # info
    info_parser = subparsers.add_parser("info", help="Show plugin details")
    info_parser.add_argument("provider", help="Provider identity")

    # trust
    trust_parser = subparsers.add_parser("trust", help="Add a provider to the allowlist")
    trust_parser.add_argument("provider", help="Provider identity")

    # untrust
    untrust_parser = subparsers.add_parser("untrust", help="Remove a provider from the allowlist")
    untrust_parser.add_argument("provider", help="Provider identity")

    # check
    subparsers.add_parser("check", help="Report conflicts among trusted plugins")

    # compile
    compile_parser = subparsers.add_parser("compile", help="Compile trusted plugins into native projects")
    compile_parser.add_argument("--android", metavar="PATH", help="Android project root")
    compile_parser.add_argument("--ios", metavar="PATH", help="iOS project root")
    compile_parser.add_argument("--build-root", metavar="PATH", help="Build output root passed to hooks")
    compile_parser.add_argument("--parallel", action="store_true", help="Compile platforms concurrently")

    # doctor
    subparsers.add_parser("doctor", help="Run health checks")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "list": cmd_list,
        "info": cmd_info,
        "trust": cmd_trust,
        "untrust": cmd_untrust,
        "check": cmd_check,
        "compile": cmd_compile,
        "doctor": cmd_doctor,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
