"""
vblog core test suite.

This package contains:
- unit/: Unit tests (temporary SQLite files, in-memory analytics backends)
"""
