#!/usr/bin/env python3
"""
Initialize the Library Circulation database.

This script:
1. Creates all database tables
2. Optionally loads sample accounts, books, loans and a reservation
3. Verifies the expected tables exist

Usage:
    python scripts/init_database.py [--drop-existing] [--sample-data] [--database-url URL]
"""

import argparse
import logging
import sys

from sqlalchemy import inspect

from library_circulation.database import DatabaseManager, get_db_manager
from library_circulation.database.book_repository import BookCreateSchema, BookRepository
from library_circulation.database.circulation_repository import CirculationRepository
from library_circulation.database.user_repository import UserCreateSchema, UserRepository
from library_circulation.models.user import Role

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"books", "borrow_records", "borrow_history", "reservations", "users"}

SAMPLE_USERS = [
    UserCreateSchema(id="admin_rahman", email="rahman@library.example.org", role=Role.ADMIN),
    UserCreateSchema(
        id="librarian_nasrin", email="nasrin@library.example.org", role=Role.LIBRARIAN
    ),
    UserCreateSchema(id="reader_tania", email="tania@example.org", display_name="Tania"),
    UserCreateSchema(id="reader_imran", email="imran@example.org", display_name="Imran"),
]

SAMPLE_BOOKS = [
    BookCreateSchema(
        title="Pather Panchali",
        author="Bibhutibhushan Bandyopadhyay",
        genre="Fiction",
        rack="A-1",
        total_copies=12,
    ),
    BookCreateSchema(
        title="Gitanjali", author="Rabindranath Tagore", genre="Poetry", rack="B-2", total_copies=4
    ),
    BookCreateSchema(
        title="Lalsalu", author="Syed Waliullah", genre="Fiction", rack="A-2", total_copies=1
    ),
]


def load_sample_data(db_manager: DatabaseManager) -> None:
    with db_manager.session_scope() as session:
        users = UserRepository(session)
        for user in SAMPLE_USERS:
            users.create(user)

    with db_manager.session_scope() as session:
        books = BookRepository(session)
        created = [books.create(book) for book in SAMPLE_BOOKS]

    circulation = CirculationRepository(db_manager)
    pather, gitanjali, lalsalu = created
    circulation.borrow(pather.id, "reader_tania")
    circulation.manual_issue(lalsalu.id, "reader_imran", "librarian_nasrin")
    circulation.reserve(gitanjali.id, "reader_tania")


def main():
    parser = argparse.ArgumentParser(description="Initialize the Library Circulation database")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Load sample data after creating tables",
    )
    parser.add_argument("--database-url", help="Override default database URL")

    args = parser.parse_args()

    db_manager = get_db_manager(args.database_url)
    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        db_manager.init_database(drop_existing=args.drop_existing)

        if args.sample_data:
            logger.info("Loading sample data...")
            load_sample_data(db_manager)

        tables = set(inspect(db_manager.engine).get_table_names())
        logger.info("Tables: %s", ", ".join(sorted(tables)))
        missing = EXPECTED_TABLES - tables
        if missing:
            logger.error("Missing expected tables: %s", ", ".join(sorted(missing)))
            sys.exit(1)

        logger.info("Database initialization complete")
    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
