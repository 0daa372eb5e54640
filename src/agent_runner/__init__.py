"""Run AI agent CLIs and keep their conversations on disk."""

__version__ = "0.1.0"
