"""Database engine and repository for Wattly."""

from wattly.db.engine import close_db, get_db, init_db
from wattly.db.repository import Repository

__all__ = ["close_db", "get_db", "init_db", "Repository"]
