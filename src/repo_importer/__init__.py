"""Import hosted git repositories into workspace projects."""

__version__ = "0.1.0"
