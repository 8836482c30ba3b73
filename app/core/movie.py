"""
Movie entity and its domain rules.

The store assigns ``id``, ``created_at`` and ``version``; callers only ever
supply title, year, runtime and genres (plus the version they last read when
updating).
"""

from datetime import datetime

from pydantic import BaseModel

from app.core.errors import ValidationFailure
from app.utils.validator import Validator


FIRST_FILM_YEAR = 1888
MAX_TITLE_BYTES = 500
MAX_GENRES = 5


class Movie(BaseModel):
    """
    A movie record.

    Attributes:
        id: Store-assigned identifier, 0 until inserted
        created_at: Store-assigned creation timestamp
        title: Movie title
        year: Release year
        runtime: Runtime in minutes
        genres: Ordered list of genres; None means the field was not supplied
        version: Optimistic-lock token, 1 on creation
    """

    id: int = 0
    created_at: datetime | None = None
    title: str = ""
    year: int = 0
    runtime: int = 0
    genres: list[str] | None = None
    version: int = 0

    class Config:
        from_attributes = True


class MovieUpdate(BaseModel):
    """Partial update request (all fields optional)."""

    title: str | None = None
    year: int | None = None
    runtime: int | None = None
    genres: list[str] | None = None

    def apply_to(self, movie: Movie) -> Movie:
        """
        Merge the supplied fields onto a previously fetched movie.

        Fields left as None keep the stored value. The movie's id and version
        are untouched so the following update is checked against the version
        that was read.
        """
        for field, value in self.model_dump(exclude_none=True).items():
            setattr(movie, field, value)
        return movie


def validate_movie(v: Validator, movie: Movie) -> None:
    """Record every rule the movie violates in the given validator."""
    v.check(movie.title != "", "title", "must be provided")
    v.check(len(movie.title.encode("utf-8")) <= MAX_TITLE_BYTES, "title",
            f"must not be more than {MAX_TITLE_BYTES} bytes long")

    v.check(movie.year != 0, "year", "must be provided")
    v.check(movie.year >= FIRST_FILM_YEAR, "year", f"must be greater than {FIRST_FILM_YEAR - 1}")
    v.check(movie.year <= datetime.now().year, "year", "must not be in the future")

    v.check(movie.runtime != 0, "runtime", "must be provided")
    v.check(movie.runtime > 0, "runtime", "must be a positive integer")

    genres = movie.genres
    v.check(genres is not None, "genres", "must be provided")
    genres = genres or []
    v.check(len(genres) >= 1, "genres", "must contain at least 1 genre")
    v.check(len(genres) <= MAX_GENRES, "genres", f"must not contain more than {MAX_GENRES} genres")
    v.check(Validator.unique(genres), "genres", "must not contain duplicate values")


def require_valid_movie(movie: Movie) -> None:
    """
    Validate a movie and raise if it breaks any rule.

    Raises:
        ValidationFailure: Carrying one message per offending field
    """
    v = Validator()
    validate_movie(v, movie)
    if not v.valid():
        raise ValidationFailure(v.errors)
