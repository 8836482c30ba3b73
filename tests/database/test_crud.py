"""
Unit tests for the movie record store.

Tests insert, get, update, delete and list using an in-memory SQLite
database for fast, isolated testing.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import (
    EditConflict, ErrorKind, RecordNotFound, StorageFailure
)
from app.core.filters import Filters, UnsafeSortParameter
from app.core.movie import Movie
from app.database import crud
from app.database.connection import DEADLINE_KEY, DatabaseManager
from app.database.models import MovieRecord


@pytest.fixture
def db_manager():
    """Create an in-memory SQLite database with the schema in place."""
    manager = DatabaseManager("sqlite:///:memory:", timeout=3)
    manager.create_tables()
    yield manager
    manager.close()


@pytest.fixture
def session(db_manager):
    """Create a new database session for testing."""
    session = db_manager.get_session()
    yield session
    session.close()


def make_movie(title='Casablanca', year=1942, runtime=102, genres=None) -> Movie:
    return Movie(title=title, year=year, runtime=runtime, genres=genres or ['drama'])


def filters(**kwargs) -> Filters:
    return Filters(sort_safelist=crud.MOVIE_SORT_SAFELIST, **kwargs)


class TestInsertMovie:
    """Tests for inserting movies."""

    def test_insert_assigns_identity(self, session):
        """Test that insert writes id, created_at and version back."""
        movie = make_movie()
        returned = crud.insert_movie(session, movie)

        assert returned is movie
        assert movie.id >= 1
        assert movie.created_at is not None
        assert movie.version == 1

    def test_insert_then_get_round_trips(self, session):
        """Test that a fetched movie equals the inserted one in every field."""
        movie = crud.insert_movie(
            session, make_movie(title='Black Narcissus', genres=['drama', 'romance'])
        )

        assert crud.get_movie(session, movie.id) == movie

    def test_ids_strictly_increase_and_are_not_reused(self, session):
        """Test that ids keep increasing even after the newest row is deleted."""
        first = crud.insert_movie(session, make_movie(title='First'))
        second = crud.insert_movie(session, make_movie(title='Second'))
        crud.delete_movie(session, second.id)
        third = crud.insert_movie(session, make_movie(title='Third'))

        assert first.id < second.id < third.id

    def test_insert_constraint_violation_is_storage_failure(self, session):
        """Test that a rejected row surfaces as a generic storage failure."""
        with pytest.raises(StorageFailure) as exc_info:
            crud.insert_movie(session, make_movie(year=1000))

        assert exc_info.value.kind == ErrorKind.STORAGE_FAILURE
        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)

    def test_failed_commit_leaves_movie_unassigned(self, db_manager, session, monkeypatch):
        """Test that a movie keeps no stored identity when the commit fails."""
        def failing_commit():
            raise OperationalError('COMMIT', None, Exception('disk I/O error'))

        monkeypatch.setattr(session, 'commit', failing_commit)
        movie = make_movie()

        with pytest.raises(StorageFailure):
            crud.insert_movie(session, movie)

        assert movie.id == 0
        assert movie.created_at is None
        assert movie.version == 0
        with db_manager.session_scope() as other:
            assert crud.list_movies(other, filters=filters()) == ([], 0)

    def test_commit_runs_within_deadline(self, session, monkeypatch):
        """Test that the commit is issued while the deadline is still active."""
        real_commit = session.commit
        seen = []

        def watching_commit():
            seen.append(DEADLINE_KEY in session.connection().info)
            real_commit()

        monkeypatch.setattr(session, 'commit', watching_commit)

        crud.insert_movie(session, make_movie())

        assert seen == [True]

    def test_deadline_cleared_after_call(self, db_manager, session):
        """Test that no deadline is left behind on the pooled connection."""
        crud.insert_movie(session, make_movie())

        with db_manager.engine.connect() as connection:
            assert DEADLINE_KEY not in connection.info


class TestGetMovie:
    """Tests for fetching movies."""

    def test_get_not_found(self, session):
        """Test that getting a non-existent movie raises RecordNotFound."""
        with pytest.raises(RecordNotFound) as exc_info:
            crud.get_movie(session, 999)

        assert exc_info.value.kind == ErrorKind.RECORD_NOT_FOUND

    @pytest.mark.parametrize('movie_id', [0, -1, -42])
    def test_get_invalid_id_skips_storage(self, movie_id):
        """Test that ids below 1 fail without touching the session."""
        session = MagicMock(spec=Session)

        with pytest.raises(RecordNotFound):
            crud.get_movie(session, movie_id)

        assert session.method_calls == []

    def test_storage_error_is_wrapped(self, db_manager, session):
        """Test that a backend error surfaces as StorageFailure."""
        db_manager.drop_tables()

        with pytest.raises(StorageFailure) as exc_info:
            crud.get_movie(session, 1)

        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)


class TestUpdateMovie:
    """Tests for optimistic-concurrency updates."""

    def test_update_replaces_fields_and_bumps_version(self, session):
        """Test a successful update."""
        movie = crud.insert_movie(session, make_movie())

        movie.title = 'Casablanca (Restored)'
        movie.runtime = 103
        movie.genres = ['drama', 'war']
        crud.update_movie(session, movie)

        assert movie.version == 2
        stored = crud.get_movie(session, movie.id)
        assert stored.title == 'Casablanca (Restored)'
        assert stored.runtime == 103
        assert stored.genres == ['drama', 'war']
        assert stored.version == 2
        assert stored.created_at == movie.created_at

    def test_version_increments_by_one_per_update(self, session):
        """Test that each update advances the version by exactly one."""
        movie = crud.insert_movie(session, make_movie())

        for expected in (2, 3, 4):
            movie.runtime += 1
            crud.update_movie(session, movie)
            assert movie.version == expected

    def test_stale_version_conflicts(self, session):
        """Test that an update from an outdated read fails and changes nothing."""
        movie = crud.insert_movie(session, make_movie())
        first_reader = crud.get_movie(session, movie.id)
        second_reader = crud.get_movie(session, movie.id)

        first_reader.title = 'Winner'
        crud.update_movie(session, first_reader)

        second_reader.title = 'Loser'
        with pytest.raises(EditConflict) as exc_info:
            crud.update_movie(session, second_reader)

        assert exc_info.value.kind == ErrorKind.EDIT_CONFLICT
        assert second_reader.version == 1
        stored = crud.get_movie(session, movie.id)
        assert stored.title == 'Winner'
        assert stored.version == 2

    def test_update_deleted_movie_conflicts(self, session):
        """Test that updating a row that no longer exists is an edit conflict."""
        movie = crud.insert_movie(session, make_movie())
        crud.delete_movie(session, movie.id)

        with pytest.raises(EditConflict):
            crud.update_movie(session, movie)


class TestDeleteMovie:
    """Tests for deleting movies."""

    def test_delete_movie(self, session):
        """Test deleting a movie."""
        movie = crud.insert_movie(session, make_movie())

        crud.delete_movie(session, movie.id)

        with pytest.raises(RecordNotFound):
            crud.get_movie(session, movie.id)

    def test_delete_twice(self, session):
        """Test that the second delete of the same movie is RecordNotFound."""
        movie = crud.insert_movie(session, make_movie())
        crud.delete_movie(session, movie.id)

        with pytest.raises(RecordNotFound):
            crud.delete_movie(session, movie.id)

    @pytest.mark.parametrize('movie_id', [0, -7])
    def test_delete_invalid_id_skips_storage(self, movie_id):
        """Test that ids below 1 fail without touching the session."""
        session = MagicMock(spec=Session)

        with pytest.raises(RecordNotFound):
            crud.delete_movie(session, movie_id)

        assert session.method_calls == []


class TestListMovies:
    """Tests for filtered, sorted, paginated listing."""

    def test_sort_by_year(self, session):
        """Test ascending year sort."""
        a = crud.insert_movie(session, make_movie(title='A', year=2000))
        b = crud.insert_movie(session, make_movie(title='B', year=1999))

        movies, total = crud.list_movies(session, '', [], filters(sort='year'))

        assert [m.id for m in movies] == [b.id, a.id]
        assert total == 2

    def test_ties_broken_by_ascending_id(self, session):
        """Test that equal sort keys fall back to id order in both directions."""
        ids = [crud.insert_movie(session, make_movie(title=f'M{i}', year=1990)).id for i in range(3)]
        newer = crud.insert_movie(session, make_movie(title='Newer', year=2001))

        movies, _ = crud.list_movies(session, filters=filters(sort='-year'))

        assert [m.id for m in movies] == [newer.id] + ids

    def test_genre_containment(self, session):
        """Test that only movies holding every requested genre match."""
        noir = crud.insert_movie(session, make_movie(title='Noir', genres=['drama', 'noir']))
        crud.insert_movie(session, make_movie(title='Comedy', genres=['comedy']))

        movies, total = crud.list_movies(session, genres=['drama'], filters=filters())
        assert [m.id for m in movies] == [noir.id]
        assert total == 1

        movies, total = crud.list_movies(session, genres=['drama', 'comedy'], filters=filters())
        assert movies == []
        assert total == 0

    def test_title_search_matches_tokens(self, session):
        """Test that every word of the phrase must appear in the title."""
        matrix = crud.insert_movie(session, make_movie(title='The Matrix'))
        reloaded = crud.insert_movie(session, make_movie(title='The Matrix Reloaded'))
        crud.insert_movie(session, make_movie(title='Inception'))

        movies, _ = crud.list_movies(session, 'matrix', filters=filters())
        assert [m.id for m in movies] == [matrix.id, reloaded.id]

        movies, _ = crud.list_movies(session, 'Reloaded MATRIX', filters=filters())
        assert [m.id for m in movies] == [reloaded.id]

    def test_title_search_is_not_substring(self, session):
        """Test that a word fragment does not match."""
        crud.insert_movie(session, make_movie(title='The Matrix'))

        movies, total = crud.list_movies(session, 'matr', filters=filters())

        assert movies == []
        assert total == 0

    def test_phrase_without_words_matches_nothing(self, session):
        """Test that a phrase made only of punctuation matches no titles."""
        crud.insert_movie(session, make_movie(title='The Matrix'))

        movies, total = crud.list_movies(session, '???', filters=filters())

        assert movies == []
        assert total == 0

    def test_empty_filters_match_everything(self, session):
        """Test that no title phrase and no genres return all movies."""
        for i in range(3):
            crud.insert_movie(session, make_movie(title=f'Movie {i}'))

        movies, total = crud.list_movies(session, '', [], filters())

        assert len(movies) == 3
        assert total == 3

    def test_pagination_reports_total(self, session):
        """Test that a page is bounded while the total ignores paging."""
        ids = [crud.insert_movie(session, make_movie(title=f'Movie {i}')).id for i in range(5)]

        movies, total = crud.list_movies(session, filters=filters(page=2, page_size=2))
        assert [m.id for m in movies] == ids[2:4]
        assert total == 5

        movies, total = crud.list_movies(session, filters=filters(page=3, page_size=2))
        assert [m.id for m in movies] == ids[4:]
        assert total == 5

    def test_page_past_the_end_is_empty(self, session):
        """Test that an out-of-range page is an empty success."""
        crud.insert_movie(session, make_movie())

        movies, total = crud.list_movies(session, filters=filters(page=10, page_size=5))

        assert movies == []
        assert total == 1

    def test_unsafe_sort_rejected_before_query(self):
        """Test that an unsafelisted sort never reaches the session."""
        session = MagicMock(spec=Session)
        unsafe = filters(sort='year; DROP TABLE movies')

        with pytest.raises(UnsafeSortParameter):
            crud.list_movies(session, 'matrix', ['drama'], unsafe)

        assert session.method_calls == []

    def test_safelisted_name_without_column_rejected(self):
        """Test that a safelist entry with no sortable column is refused."""
        session = MagicMock(spec=Session)

        with pytest.raises(ValueError):
            crud.list_movies(session, filters=Filters(sort='genres', sort_safelist=('genres',)))

        assert session.method_calls == []

    def test_timeout_is_storage_failure(self, session):
        """Test that exceeding the deadline surfaces as StorageFailure."""
        session.add_all(
            MovieRecord(title=f'Movie {i}', year=1950, runtime=90, genres=['drama'])
            for i in range(500)
        )
        session.commit()
        session.info['query_timeout'] = 1e-9

        with pytest.raises(StorageFailure):
            crud.list_movies(session, 'movie', ['drama'], filters(sort='-title'))
