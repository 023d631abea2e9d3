"""plugin-weaver: compiles native capability plugins into host mobile projects."""

__version__ = "0.4.0"
