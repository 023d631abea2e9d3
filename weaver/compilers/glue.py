"""Bridge registration glue templates.

The generated unit binds every dot-qualified bridge function name to its
native entry point and declares every event with its payload fields in
positional order. Output is sorted by name so identical plugin sets render
byte-identical files.
"""

from typing import Dict, List

from weaver.mutation import TemplateRegistry, TransformError
from weaver.plugins.manifest import Platform, split_entry_point
from weaver.plugins.registry import RegisteredPluginSet

JAVA_GLUE = "android.bridge_registry"
SWIFT_GLUE = "ios.bridge_registry"

GLUE_TEMPLATES = TemplateRegistry({
    JAVA_GLUE: """\
// Generated by plugin-weaver. Do not edit.
package ${package};

import java.util.Map;

public final class BridgeRegistry {
    public interface Bridge {
        void registerFunction(String name, Function function);

        void registerEvent(String name, String[] fields);
    }

    public interface Function {
        Map<String, Object> call(Map<String, Object> payload) throws Exception;
    }

    private BridgeRegistry() {
    }

    public static void register(Bridge bridge) {
${functions}${events}    }
}
""",
    SWIFT_GLUE: """\
// Generated by plugin-weaver. Do not edit.
import Foundation

protocol PluginBridge {
    func registerFunction(_ name: String, _ function: @escaping ([String: Any]) throws -> [String: Any])
    func registerEvent(_ name: String, _ fields: [String])
}

enum BridgeRegistry {
    static func register(_ bridge: PluginBridge) {
${functions}${events}    }
}
""",
})


class EntryPointError(TransformError):
    """A plugin's bridge entry point cannot be turned into a native reference."""

    def __init__(self, message: str, plugin: str):
        self.plugin = plugin
        super().__init__(message)


def java_method_reference(entry_point: str) -> str:
    """'com.acme.Camera#takePhoto' -> 'com.acme.Camera::takePhoto'."""
    try:
        owner, method = split_entry_point(Platform.ANDROID, entry_point)
    except ValueError as e:
        raise TransformError(str(e)) from e
    return f"{owner}::{method}"


def swift_function_reference(entry_point: str) -> str:
    """'CameraPlugin#takePhoto' or 'CameraPlugin.takePhoto' -> 'CameraPlugin.takePhoto'."""
    try:
        owner, function = split_entry_point(Platform.IOS, entry_point)
    except ValueError as e:
        raise TransformError(str(e)) from e
    return f"{owner}.{function}"


def quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _lines(lines: List[str]) -> str:
    return "".join(f"        {line}\n" for line in lines)


def glue_values(platform: Platform, plugin_set: RegisteredPluginSet) -> Dict[str, str]:
    """Template values for a platform's registration unit.

    Raises:
        EntryPointError: Naming the plugin whose entry point is malformed
    """
    functions = []
    for plugin, function in plugin_set.bridge_functions(platform):
        entry_point = function.entry_point(platform)
        try:
            if platform == Platform.ANDROID:
                reference = java_method_reference(entry_point)
            else:
                reference = swift_function_reference(entry_point)
        except TransformError as e:
            raise EntryPointError(f"{function.name}: {e}", plugin.id) from e
        functions.append(f"bridge.registerFunction({quote(function.name)}, {reference});")

    events = []
    for _, event in plugin_set.events():
        fields = ", ".join(quote(f) for f in event.field_names)
        if platform == Platform.ANDROID:
            events.append(f"bridge.registerEvent({quote(event.name)}, new String[] {{{fields}}});")
        else:
            events.append(f"bridge.registerEvent({quote(event.name)}, [{fields}])")

    if platform == Platform.IOS:
        functions = [line.rstrip(";") for line in functions]
    return {"functions": _lines(functions), "events": _lines(events)}


def render_glue(platform: Platform, plugin_set: RegisteredPluginSet, **values: str) -> str:
    """Render the registration unit source for a platform."""
    name = JAVA_GLUE if platform == Platform.ANDROID else SWIFT_GLUE
    return GLUE_TEMPLATES.render(name, {**glue_values(platform, plugin_set), **values})
