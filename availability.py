"""Keeps ``books.available`` in step with the loan ledger.

A book is available exactly when no loan on it has status Borrowed. The
functions here are the only code that writes ``books.available``; they take
the caller's connection and must run inside the caller's transaction so the
flag and the loan rows change together.
"""
import logging
import sqlite3
from typing import Iterable, List

from database import STATUS_BORROWED

logger = logging.getLogger(__name__)

_SYNC_SQL = f"""
    UPDATE books
    SET available = NOT EXISTS (
        SELECT 1 FROM loans WHERE loans.book_id = books.id AND loans.status = '{STATUS_BORROWED}'
    )
    WHERE id = ?
"""


def sync_availability(conn: sqlite3.Connection, book_id: int) -> bool:
    """Re-derive availability for one book and return the new value."""
    conn.execute(_SYNC_SQL, (book_id,))
    row = conn.execute("SELECT available FROM books WHERE id = ?", (book_id,)).fetchone()
    available = bool(row["available"]) if row else False
    logger.debug(f"Availability synced: book={book_id} available={available}")
    return available


def open_loan_book_ids(conn: sqlite3.Connection, borrower_id: int) -> List[int]:
    """Books currently out with a borrower; needed before a cascading delete."""
    rows = conn.execute(
        "SELECT book_id FROM loans WHERE borrower_id = ? AND status = ?",
        (borrower_id, STATUS_BORROWED),
    ).fetchall()
    return [row["book_id"] for row in rows]


def sync_books(conn: sqlite3.Connection, book_ids: Iterable[int]) -> None:
    for book_id in book_ids:
        sync_availability(conn, book_id)
