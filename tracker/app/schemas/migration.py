"""
Count summaries returned by the migration and maintenance routines.
"""

from pydantic import BaseModel


class CopyReport(BaseModel):
    """Relational -> document copy."""
    copied: int = 0
    skipped: int = 0
    failed: int = 0


class InsertReport(BaseModel):
    """Document -> relational copy."""
    inserted: int = 0
    skipped: int = 0
    failed: int = 0


class NormalizeReport(BaseModel):
    fixed: int = 0
    skipped: int = 0
    failed: int = 0
