"""KashflowSync status server (FastAPI)."""

__version__ = "1.0.0"
