"""
CLI tools for vblog administration.

This module provides command-line tools for:
- backup: Export collections to JSON files with a timestamped copy
- import: Replace collections from JSON files and resync counters

Invariants:
    - Tools work offline (no running application required)
    - All operations are logged
"""

from .backup import BackupTool
from .importer import ImportTool

__all__ = ["BackupTool", "ImportTool"]
