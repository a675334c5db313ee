"""Test configuration and fixtures for the Library Circulation server.

1. Isolated test databases - each test gets its own SQLite file
2. Configuration isolation - LIBRARY_* variables are cleared and the
   configuration singleton is reset around every test
3. A pinned clock - circulation dates are computed from a fixed Monday
4. Logfire configured locally so spans never leave the process
"""

import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from pathlib import Path

import logfire
import pytest

from library_circulation.config import reset_config
from library_circulation.database import session as session_module
from library_circulation.database.book_repository import BookCreateSchema, BookRepository
from library_circulation.database.circulation_repository import CirculationRepository
from library_circulation.database.session import DatabaseManager
from library_circulation.database.user_repository import UserCreateSchema, UserRepository
from library_circulation.models.book import Book
from library_circulation.models.user import Role, User

# Monday, 3 June 2024
MONDAY = datetime(2024, 6, 3, 10, 0)


class FixedClock:
    """A settable "now" for circulation code."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(scope="session", autouse=True)
def local_logfire():
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch) -> Generator[None, None, None]:
    """Remove LIBRARY_* variables and point the default database into tmp_path."""
    for key in list(os.environ):
        if key.startswith("LIBRARY_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("LIBRARY_DATABASE_PATH", str(tmp_path / "default.db"))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def db_manager(tmp_path: Path) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'library.db'}", max_retries=3)
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def installed_db(db_manager: DatabaseManager, monkeypatch) -> DatabaseManager:
    """Make db_manager the process-wide manager used by tools and resources."""
    monkeypatch.setattr(session_module, "_db_manager", db_manager)
    return db_manager


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(MONDAY)


@pytest.fixture
def circulation(db_manager: DatabaseManager, clock: FixedClock) -> CirculationRepository:
    return CirculationRepository(db_manager, clock)


@pytest.fixture
def users(db_manager: DatabaseManager) -> dict[str, User]:
    accounts = [
        UserCreateSchema(id="admin_rahman", email="rahman@example.com", role=Role.ADMIN),
        UserCreateSchema(id="librarian_nasrin", email="nasrin@example.com", role=Role.LIBRARIAN),
        UserCreateSchema(id="reader_tania", email="tania@example.com", display_name="Tania"),
        UserCreateSchema(id="reader_imran", email="imran@example.com"),
    ]
    with db_manager.session_scope() as session:
        repo = UserRepository(session)
        created = [repo.create(account, now=MONDAY) for account in accounts]
    return {
        "admin": created[0],
        "librarian": created[1],
        "reader": created[2],
        "other_reader": created[3],
    }


@pytest.fixture
def make_book(db_manager: DatabaseManager) -> Callable[..., Book]:
    def _make(total: int = 3, title: str = "Pather Panchali", **fields) -> Book:
        data = BookCreateSchema(
            title=title,
            author=fields.pop("author", "Bibhutibhushan Bandyopadhyay"),
            genre=fields.pop("genre", "Fiction"),
            rack=fields.pop("rack", "A-1"),
            total_copies=total,
        )
        with db_manager.session_scope() as session:
            return BookRepository(session).create(data, now=MONDAY)

    return _make


@pytest.fixture
def make_readers(db_manager: DatabaseManager) -> Callable[[int], list[str]]:
    """Create ``count`` extra reader accounts and return their ids."""

    def _make(count: int) -> list[str]:
        ids = [f"reader_{n:03d}" for n in range(count)]
        with db_manager.session_scope() as session:
            repo = UserRepository(session)
            for user_id in ids:
                repo.create(UserCreateSchema(id=user_id, email=f"{user_id}@example.com"))
        return ids

    return _make


@pytest.fixture
def fetch_book(db_manager: DatabaseManager) -> Callable[[str], Book | None]:
    """Read the current state of a book in a fresh session."""

    def _fetch(book_id: str) -> Book | None:
        with db_manager.session_scope() as session:
            return BookRepository(session).get_by_id(book_id)

    return _fetch
