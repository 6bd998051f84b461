"""Factory Automation Simulator: SQLite storage and an HTTP API for items, facilities and pipelines."""

__version__ = "1.0.0"

__all__ = ["__version__"]