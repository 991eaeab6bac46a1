"""gralph: autonomous coding-agent loops with crash-safe session state."""

__version__ = "0.4.0"
