"""memindex database layer."""

from memindex.db.connection import Database
from memindex.db.migrations import MIGRATIONS, initialize, run_migrations
from memindex.db.vectors import Vector

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "Vector",
]
