"""Stratum - layered CRUD service with code-first schema migrations."""

__version__ = "0.1.0"
