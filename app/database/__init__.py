"""
Database module for the movie catalog.

This module provides the ORM model, connection management, and the record
store operations using SQLAlchemy.
"""

from app.database.models import Base, MovieRecord
from app.database.connection import DatabaseManager, get_db_manager
from app.database.init_db import init_database, verify_schema
from app.database import crud

__all__ = [
    # Models
    'Base',
    'MovieRecord',
    # Connection
    'DatabaseManager',
    'get_db_manager',
    # Initialization
    'init_database',
    'verify_schema',
    # CRUD module
    'crud',
]
