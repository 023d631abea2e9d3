"""Plugin lifecycle hooks - runs plugin-supplied executables at build points."""
from __future__ import annotations

import logging
import os
import subprocess
import sys
from typing import TYPE_CHECKING, Dict, List, Optional

from weaver.constants import HOOK_TIMEOUT
from weaver.plugins.manifest import HookName, resolve_hook
from weaver.plugins.registry import RegisteredPlugin, RegisteredPluginSet

if TYPE_CHECKING:
    from weaver.compilers.base import BuildTarget

logger = logging.getLogger(__name__)


class HookExecutionError(Exception):
    """Raised when a hook cannot be resolved, exits non-zero or times out."""

    def __init__(self, hook: HookName, plugin: str, returncode: Optional[int] = None, stderr: str = "", reason: str = ""):
        self.hook = hook
        self.plugin = plugin
        self.returncode = returncode
        self.stderr = stderr
        detail = reason or f"exited with code {returncode}"
        message = f"Hook {hook.value} of plugin '{plugin}' {detail}"
        if stderr.strip():
            message += f":\n{stderr.strip()}"
        super().__init__(message)


class HookRunner:
    """Runs one hook point for every plugin that declares it, in registration order."""

    def __init__(self, timeout: int = HOOK_TIMEOUT, fail_on_error: bool = True):
        self.timeout = timeout
        self.fail_on_error = fail_on_error

    def run(self, hook: HookName, plugin_set: RegisteredPluginSet, target: Optional[BuildTarget] = None) -> List[str]:
        """Run a hook point.

        Args:
            hook: Hook point to run
            plugin_set: Approved plugins
            target: Build target, exported to the hook environment when known

        Returns:
            Provider identities whose hook ran successfully

        Raises:
            HookExecutionError: On the first failing hook, unless fail_on_error is off
        """
        succeeded = []
        for plugin, reference in plugin_set.hooks(hook):
            try:
                self._execute(hook, plugin, reference, target)
            except HookExecutionError as e:
                if self.fail_on_error:
                    logger.error(str(e))
                    raise
                logger.warning(f"{e} (continuing, fail_on_error is off)")
                continue
            succeeded.append(plugin.id)
        return succeeded

    def _execute(self, hook: HookName, plugin: RegisteredPlugin, reference: str, target: Optional[BuildTarget]) -> None:
        executable = resolve_hook(reference, plugin.path)
        if executable is None:
            raise HookExecutionError(hook, plugin.id, reason=f"references unresolvable executable '{reference}'")

        cmd = [sys.executable, str(executable)] if executable.suffix == ".py" else [str(executable)]
        logger.info(f"Running {hook.value} hook of '{plugin.id}': {executable}")
        try:
            result = subprocess.run(
                cmd,
                cwd=plugin.path,
                env=self._environment(hook, plugin, target),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise HookExecutionError(hook, plugin.id, reason=f"timed out after {self.timeout} seconds") from e
        except OSError as e:
            raise HookExecutionError(hook, plugin.id, reason=f"could not be started: {e}") from e

        if result.stdout.strip():
            logger.debug(f"{hook.value} hook of '{plugin.id}' output:\n{result.stdout.rstrip()}")
        if result.returncode != 0:
            raise HookExecutionError(hook, plugin.id, returncode=result.returncode, stderr=result.stderr)

    @staticmethod
    def _environment(hook: HookName, plugin: RegisteredPlugin, target: Optional[BuildTarget]) -> Dict[str, str]:
        env = os.environ.copy()
        env["WEAVER_PLUGIN_DIR"] = str(plugin.path)
        env["WEAVER_PLUGIN_NAMESPACE"] = plugin.namespace
        env["WEAVER_HOOK"] = hook.value
        if target is not None:
            env["WEAVER_PLATFORM"] = target.platform.value
            env["WEAVER_PROJECT_ROOT"] = str(target.project_root)
            env["WEAVER_BUILD_ROOT"] = str(target.build_root)
        return env
