"""Database utilities and session management."""

from mindsift.db.base import Base, BaseModel
from mindsift.db.session import (
    AsyncSessionLocal,
    check_db_health,
    close_db,
    engine,
    init_db,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    # Session management
    "AsyncSessionLocal",
    "engine",
    "init_db",
    "close_db",
    "check_db_health",
]
