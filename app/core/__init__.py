"""
Core domain package: the movie entity, filtering rules and error kinds.
"""

from app.core.errors import (
    ErrorKind,
    MovieStoreError,
    RecordNotFound,
    EditConflict,
    ValidationFailure,
    StorageFailure,
)
from app.core.movie import Movie, MovieUpdate, validate_movie, require_valid_movie
from app.core.filters import (
    Filters,
    Metadata,
    UnsafeSortParameter,
    calculate_metadata,
    validate_filters,
    require_valid_filters,
)

__all__ = [
    # Errors
    'ErrorKind',
    'MovieStoreError',
    'RecordNotFound',
    'EditConflict',
    'ValidationFailure',
    'StorageFailure',
    # Movie
    'Movie',
    'MovieUpdate',
    'validate_movie',
    'require_valid_movie',
    # Filters
    'Filters',
    'Metadata',
    'UnsafeSortParameter',
    'calculate_metadata',
    'validate_filters',
    'require_valid_filters',
]
