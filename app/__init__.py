"""
Movie Catalog Record Store Package.

This package contains the core application logic, including the movie entity,
validation helpers, filtering/sorting rules, and database operations.
"""

__version__ = "1.0.0"
