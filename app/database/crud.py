"""
Record store operations for movies.

This module provides the five storage operations (insert, get, update,
delete, list). Each call runs under a per-call deadline, and every backend
error surfaces as ``StorageFailure``. Updates use optimistic concurrency: the
write only applies when the stored version equals the version the caller
last read.
"""

import json
import logging
from contextlib import contextmanager
from typing import Generator, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select, type_coerce, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import config
from app.core.errors import EditConflict, RecordNotFound, StorageFailure
from app.core.filters import Filters
from app.core.movie import Movie
from app.database.connection import statement_deadline
from app.database.models import MovieRecord

logger = logging.getLogger(__name__)


# Sort tokens map onto fixed column objects; query text never contains client input
SORT_COLUMNS = {
    "id": MovieRecord.id,
    "title": MovieRecord.title,
    "year": MovieRecord.year,
    "runtime": MovieRecord.runtime,
}

MOVIE_SORT_SAFELIST: Tuple[str, ...] = tuple(SORT_COLUMNS) + tuple(f"-{name}" for name in SORT_COLUMNS)


def _query_timeout(session: Session) -> float:
    return session.info.get("query_timeout") or config.get_query_timeout()


@contextmanager
def _store_call(session: Session, operation: str) -> Generator[None, None, None]:
    """
    Run a store operation under the deadline and translate backend errors.

    Commits inside the deadline when the block completes; rolls back on any
    exception.

    Raises:
        StorageFailure: On any SQLAlchemy error, including timeouts
    """
    try:
        with statement_deadline(session.connection(), _query_timeout(session)):
            yield
            session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("%s failed: %s", operation, e)
        raise StorageFailure(f"{operation} failed") from e
    except Exception:
        session.rollback()
        raise


def _to_movie(record: MovieRecord) -> Movie:
    return Movie(
        id=record.id,
        created_at=record.created_at,
        title=record.title,
        year=record.year,
        runtime=record.runtime,
        genres=list(record.genres),
        version=record.version,
    )


def insert_movie(session: Session, movie: Movie) -> Movie:
    """
    Persist a new movie.

    The database assigns id, created_at and version (1); they are written
    back into ``movie``.

    Args:
        session: Database session
        movie: Validated movie with id/created_at/version unset

    Returns:
        The same Movie object, now carrying its stored identity

    Raises:
        StorageFailure: On constraint violation, timeout or connectivity failure
    """
    record = MovieRecord(
        title=movie.title,
        year=movie.year,
        runtime=movie.runtime,
        genres=list(movie.genres or []),
    )
    with _store_call(session, "insert movie"):
        session.add(record)
        session.flush()
        session.refresh(record)
        assigned = (record.id, record.created_at, record.version)

    movie.id, movie.created_at, movie.version = assigned
    logger.debug("inserted movie id=%s", movie.id)
    return movie


def get_movie(session: Session, movie_id: int) -> Movie:
    """
    Get a movie by ID.

    Args:
        session: Database session
        movie_id: Movie ID

    Returns:
        Fully populated Movie

    Raises:
        RecordNotFound: If the id is below 1 or no row matches
        StorageFailure: On any other backend error
    """
    if movie_id < 1:
        raise RecordNotFound()

    with _store_call(session, "get movie"):
        record = session.execute(
            select(MovieRecord).where(MovieRecord.id == movie_id)
        ).scalar_one_or_none()
        if record is None:
            raise RecordNotFound()
        return _to_movie(record)


def update_movie(session: Session, movie: Movie) -> Movie:
    """
    Replace a movie's title, year, runtime and genres.

    The write is a single conditional statement matching both id and the
    version the caller last read. On success the new version is written back
    into ``movie``.

    Args:
        session: Database session
        movie: Full movie carrying the id and the version it was read at

    Returns:
        The same Movie object with its version bumped

    Raises:
        EditConflict: If the row is gone or was updated by someone else first
        StorageFailure: On any other backend error
    """
    stmt = (
        update(MovieRecord)
        .where(MovieRecord.id == movie.id, MovieRecord.version == movie.version)
        .values(
            title=movie.title,
            year=movie.year,
            runtime=movie.runtime,
            genres=list(movie.genres or []),
            version=MovieRecord.version + 1,
        )
        .returning(MovieRecord.version)
        .execution_options(synchronize_session=False)
    )
    with _store_call(session, "update movie"):
        new_version = session.execute(stmt).scalar_one_or_none()
        if new_version is None:
            logger.info("edit conflict on movie id=%s at version %s", movie.id, movie.version)
            raise EditConflict()

    movie.version = new_version
    logger.debug("updated movie id=%s to version %s", movie.id, new_version)
    return movie


def delete_movie(session: Session, movie_id: int) -> None:
    """
    Delete a movie.

    Args:
        session: Database session
        movie_id: Movie ID

    Raises:
        RecordNotFound: If the id is below 1 or no row was deleted
        StorageFailure: On any other backend error
    """
    if movie_id < 1:
        raise RecordNotFound()

    stmt = (
        delete(MovieRecord)
        .where(MovieRecord.id == movie_id)
        .execution_options(synchronize_session=False)
    )
    with _store_call(session, "delete movie"):
        result = session.execute(stmt)
        if result.rowcount == 0:
            raise RecordNotFound()

    logger.debug("deleted movie id=%s", movie_id)


def _title_condition(session: Session, title: str):
    if session.get_bind().dialect.name == "postgresql":
        return func.to_tsvector("simple", MovieRecord.title).bool_op("@@")(
            func.plainto_tsquery("simple", title)
        )
    return func.title_matches(MovieRecord.title, title) == 1


def _genres_condition(session: Session, genres: List[str]):
    if session.get_bind().dialect.name == "postgresql":
        return type_coerce(MovieRecord.genres, JSONB).contains(genres)
    return func.genres_contain(MovieRecord.genres, json.dumps(genres)) == 1


def list_movies(
    session: Session,
    title: str = "",
    genres: Optional[Iterable[str]] = None,
    filters: Optional[Filters] = None,
) -> Tuple[List[Movie], int]:
    """
    List movies matching a title phrase and a genre set, one page at a time.

    Args:
        session: Database session
        title: Search phrase; every word must appear in the title ("" matches all,
            a phrase with no words matches none)
        genres: Genres every returned movie must have (empty matches all)
        filters: Validated page/sort selection (default: first page by id)

    Returns:
        Tuple of (movies on the requested page, total matching records)

    Raises:
        UnsafeSortParameter: If the sort value is not in the filters' safelist
        StorageFailure: On any backend error
    """
    if filters is None:
        filters = Filters(sort_safelist=MOVIE_SORT_SAFELIST)

    # Resolve the sort before anything touches the session
    sort_name = filters.sort_column()
    if sort_name not in SORT_COLUMNS:
        raise ValueError(f"no sortable column named {sort_name!r}")
    sort_column = SORT_COLUMNS[sort_name]
    order = sort_column.desc() if filters.sort_descending() else sort_column.asc()

    required_genres = list(dict.fromkeys(genres or []))

    conditions = []
    if title:
        conditions.append(_title_condition(session, title))
    if required_genres:
        conditions.append(_genres_condition(session, required_genres))

    page_query = (
        select(MovieRecord)
        .where(*conditions)
        .order_by(order, MovieRecord.id.asc())
        .limit(filters.limit())
        .offset(filters.offset())
    )
    count_query = select(func.count(MovieRecord.id)).where(*conditions)

    with _store_call(session, "list movies"):
        records = session.execute(page_query).scalars().all()
        total = session.execute(count_query).scalar_one()
        movies = [_to_movie(r) for r in records]

    return movies, total
