"""ensemble - specialist agent orchestration."""

__version__ = "0.4.0"
