"""
SQLAlchemy ORM model for the movie catalog database.

This module defines the ``movies`` table: identity and creation timestamp are
assigned by the database, and ``version`` is the optimistic-lock token.
"""

from datetime import datetime
from typing import List

from sqlalchemy import (
    BigInteger, Integer, Text, JSON, TIMESTAMP, CheckConstraint, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


# SQLite only auto-assigns ids for an INTEGER PRIMARY KEY
IdType = BigInteger().with_variant(Integer, "sqlite")
GenresType = JSON().with_variant(JSONB, "postgresql")


class MovieRecord(Base):
    """
    Movie table storing catalog entries.

    Attributes:
        id: Primary key, auto-incremented, never reused
        created_at: Timestamp when record was created
        title: Movie title (required)
        year: Release year
        runtime: Runtime in minutes
        genres: JSON array of genre names
        version: Starts at 1, incremented on every update
    """
    __tablename__ = 'movies'

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.current_timestamp()
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    runtime: Mapped[int] = mapped_column(Integer, nullable=False)
    genres: Mapped[List[str]] = mapped_column(GenresType, nullable=False)
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default="1"
    )

    # Constraints and indexes
    __table_args__ = (
        CheckConstraint("runtime >= 0", name='movies_runtime_check'),
        CheckConstraint("year BETWEEN 1888 AND 9999", name='movies_year_check'),
        CheckConstraint("version >= 1", name='movies_version_check'),
        Index('idx_movies_title', 'title'),
        Index('idx_movies_year', 'year'),
        {'sqlite_autoincrement': True},
    )

    def __repr__(self) -> str:
        return f"<MovieRecord(id={self.id}, title='{self.title}', year={self.year}, version={self.version})>"
