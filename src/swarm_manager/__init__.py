"""Note-driven task decomposition and sandboxed agent orchestration."""

__version__ = "0.1.0"
