import sqlite3
from typing import List, Optional

from database import STATUS_BORROWED, STATUS_RETURNED, get_db_connection
from models import ActiveLoan, Book, Loan, LoanStatus

_LOAN_COLUMNS = "id, borrower_id, book_id, loan_date, return_date, status"


# ------------------------- Row helpers ------------------------- #
# Writes happen only through the loan service, inside its transaction.

def fetch_loan(conn: sqlite3.Connection, loan_id: int) -> Optional[Loan]:
    row = conn.execute(f"SELECT {_LOAN_COLUMNS} FROM loans WHERE id = ?", (loan_id,)).fetchone()
    return Loan.from_dict(dict(row)) if row else None


def insert_loan(conn: sqlite3.Connection, borrower_id: int, book_id: int, loan_date: str) -> int:
    cursor = conn.execute(
        "INSERT INTO loans (borrower_id, book_id, loan_date, status) VALUES (?, ?, ?, ?)",
        (borrower_id, book_id, loan_date, STATUS_BORROWED),
    )
    return cursor.lastrowid


def close_loan(conn: sqlite3.Connection, loan_id: int, return_date: str) -> None:
    conn.execute(
        "UPDATE loans SET status = ?, return_date = ? WHERE id = ?",
        (STATUS_RETURNED, return_date, loan_id),
    )


class LoanLedger:
    """Read side of the loans table, including the active-loans report."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    def get_loan(self, loan_id: int) -> Optional[Loan]:
        conn = get_db_connection(self.db_file)
        try:
            return fetch_loan(conn, loan_id)
        finally:
            conn.close()

    def list_loans(self, *, borrower_id: Optional[int] = None, book_id: Optional[int] = None,
                   status: Optional[LoanStatus] = None) -> List[Loan]:
        """List loans, newest first, with optional filters."""
        clauses = []
        params = []
        if borrower_id is not None:
            clauses.append("borrower_id = ?")
            params.append(borrower_id)
        if book_id is not None:
            clauses.append("book_id = ?")
            params.append(book_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(LoanStatus(status).value)

        query = f"SELECT {_LOAN_COLUMNS} FROM loans"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY loan_date DESC, id DESC"

        conn = get_db_connection(self.db_file)
        try:
            rows = conn.execute(query, params).fetchall()
            return [Loan.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def active_loans(self) -> List[ActiveLoan]:
        """Open loans with borrower name and book title. Computed on every call."""
        conn = get_db_connection(self.db_file)
        try:
            rows = conn.execute(
                "SELECT loan_id, borrower_name, book_title, loan_date FROM active_loans "
                "ORDER BY loan_date, loan_id"
            ).fetchall()
            return [ActiveLoan.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def available_books(self) -> List[Book]:
        conn = get_db_connection(self.db_file)
        try:
            rows = conn.execute(
                "SELECT id, title, author, publication_year, genre FROM available_books ORDER BY title, id"
            ).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()
