"""Platform compilers that weave approved plugins into native project trees."""

from weaver.compilers.android import AndroidCompiler
from weaver.compilers.base import BuildTarget, CompileResult, CompileStep, PlatformCompiler
from weaver.compilers.ios import IOSCompiler
from weaver.plugins.manifest import Platform

COMPILERS = {
    Platform.ANDROID: AndroidCompiler,
    Platform.IOS: IOSCompiler,
}

__all__ = [
    "AndroidCompiler",
    "BuildTarget",
    "COMPILERS",
    "CompileResult",
    "CompileStep",
    "IOSCompiler",
    "PlatformCompiler",
]
