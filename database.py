import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from config import settings

logger = logging.getLogger(__name__)

# Loan status values stored in loans.status
STATUS_BORROWED = "Borrowed"
STATUS_RETURNED = "Returned"


def resolve_database_file(db_file: Optional[str] = None) -> str:
    """Return the database file to use.

    Priority:
    1) an explicit ``db_file`` argument
    2) LIBRARY_DB_FILE, read at call time so tests can point elsewhere
    3) the configured default from settings
    """
    return db_file or os.environ.get("LIBRARY_DB_FILE") or settings.database_file


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database.

    Connections run in autocommit mode; writes are grouped explicitly with
    :func:`transaction`. Foreign keys must be switched on per connection for
    ``ON DELETE CASCADE`` to apply.
    """
    conn = sqlite3.connect(
        resolve_database_file(db_file),
        timeout=settings.database_timeout,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block of statements as one write transaction.

    ``BEGIN IMMEDIATE`` takes the write lock up front, so a read made inside
    the block cannot be invalidated by another writer before it commits.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


def create_tables(db_file: Optional[str] = None) -> None:
    """Create tables, indexes and views if they don't exist."""
    conn = get_db_connection(db_file)
    try:
        # WAL lets readers run while a loan transaction holds the write lock
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.executescript(f"""
            BEGIN;

            CREATE TABLE IF NOT EXISTS borrowers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                phone TEXT,
                created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                publication_year INTEGER NOT NULL CHECK (publication_year > 0),
                genre TEXT,
                available BOOLEAN NOT NULL DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS loans (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                borrower_id INTEGER NOT NULL,
                book_id INTEGER NOT NULL,
                loan_date DATE NOT NULL DEFAULT (date('now')),
                return_date DATE,
                status TEXT NOT NULL DEFAULT '{STATUS_BORROWED}'
                    CHECK (status IN ('{STATUS_BORROWED}', '{STATUS_RETURNED}')),
                FOREIGN KEY (borrower_id) REFERENCES borrowers(id) ON DELETE CASCADE,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_books_title ON books(title);
            CREATE INDEX IF NOT EXISTS idx_books_author ON books(author);
            CREATE INDEX IF NOT EXISTS idx_loans_borrower_id ON loans(borrower_id);
            CREATE INDEX IF NOT EXISTS idx_loans_book_id ON loans(book_id);
            CREATE INDEX IF NOT EXISTS idx_loans_status ON loans(status);

            -- at most one open loan per book
            CREATE UNIQUE INDEX IF NOT EXISTS idx_loans_open_book
                ON loans(book_id) WHERE status = '{STATUS_BORROWED}';

            CREATE VIEW IF NOT EXISTS active_loans AS
                SELECT l.id AS loan_id,
                       br.name AS borrower_name,
                       b.title AS book_title,
                       l.loan_date AS loan_date
                FROM loans l
                JOIN borrowers br ON br.id = l.borrower_id
                JOIN books b ON b.id = l.book_id
                WHERE l.status = '{STATUS_BORROWED}';

            CREATE VIEW IF NOT EXISTS available_books AS
                SELECT id, title, author, publication_year, genre
                FROM books
                WHERE available = 1;

            COMMIT;
        """)
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialise the database, creating the schema if needed."""
    create_tables(db_file)
    logger.debug(f"Database ready at {resolve_database_file(db_file)}")
