"""
Database Base Classes and Common Utilities

Foundation for all ORM models in MindSift.

Key Concepts:
--------------
1. Base: DeclarativeBase bound to a metadata object with naming conventions
2. CommonTableAttributes: id / created_at / updated_at shared by every table
3. BaseModel: the abstract class models inherit from
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, registry


# ================================
# Naming Convention for Constraints
# ================================
# ix_video_chunks_video_id, fk_video_chunks_video_id_videos, pk_videos ...
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

orm_registry = registry(metadata=metadata)


# ================================
# Base DeclarativeBase Class
# ================================
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        class Video(Base):
            __tablename__ = "videos"
            id: Mapped[int] = mapped_column(primary_key=True)
    """

    registry = orm_registry
    metadata = metadata

    __tablename__: str


# ================================
# Common Table Attributes Mixin
# ================================
class CommonTableAttributes:
    """
    Mixin that gives every table a surrogate key and UTC audit timestamps.

    - id: auto-incrementing primary key
    - created_at: set once on insert
    - updated_at: refreshed on every UPDATE issued through the ORM
    """

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
        comment="Auto-incrementing primary key"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="Timestamp when record was created (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="Timestamp when record was last updated (UTC)"
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"

    def dict(self) -> dict[str, Any]:
        """Convert the row to a plain dictionary keyed by column name."""
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }


# ================================
# Convenient Base Model
# ================================
class BaseModel(Base, CommonTableAttributes):
    """
    Ready-to-use base class for all application models.

    Just do:
        class Video(BaseModel):
            __tablename__ = "videos"
            ...
    """

    __abstract__ = True


# ================================
# String Length Constraints
# ================================
String20 = String(20)
String32 = String(32)
String64 = String(64)
String255 = String(255)
String500 = String(500)
