from datetime import datetime
from typing import Any, Dict, List, Optional

from catalog import CatalogStore
from circulation import LoanService
from database import STATUS_BORROWED, get_db_connection, initialize_database, resolve_database_file
from errors import NotFoundError
from ledger import LoanLedger
from models import ActiveLoan, Book, Borrower, Loan, LoanStatus


class Library:
    """Wires the catalog, the loan ledger and the loan service over one database file."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        # Resolved once so every component and every later call use the same file,
        # even if LIBRARY_DB_FILE changes afterwards.
        self.db_file = resolve_database_file(db_file)
        initialize_database(self.db_file)  # Ensure tables, indexes and views exist
        self.catalog = CatalogStore(self.db_file)
        self.ledger = LoanLedger(self.db_file)
        self.loans = LoanService(self.db_file)

    # ------------------------- Books ------------------------- #
    def add_book(self, title: str, author: str, publication_year: int, genre: Optional[str] = None) -> Book:
        return self.catalog.add_book(title, author, publication_year, genre)

    def find_book(self, book_id: int) -> Optional[Book]:
        return self.catalog.get_book(book_id)

    def get_book(self, book_id: int) -> Book:
        """Like find_book, but a missing book is an error."""
        book = self.catalog.get_book(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found.")
        return book

    def list_books(self, available: Optional[bool] = None) -> List[Book]:
        return self.catalog.list_books(available)

    def search_books(self, query: str) -> List[Book]:
        return self.catalog.search_books(query)

    def update_book(self, book_id: int, **fields) -> Book:
        return self.catalog.update_book(book_id, **fields)

    def remove_book(self, book_id: int) -> bool:
        return self.catalog.remove_book(book_id)

    def available_books(self) -> List[Book]:
        return self.ledger.available_books()

    # ------------------------- Borrowers ------------------------- #
    def add_borrower(self, name: str, email: str, phone: Optional[str] = None) -> Borrower:
        return self.catalog.add_borrower(name, email, phone)

    def find_borrower(self, borrower_id: int) -> Optional[Borrower]:
        return self.catalog.get_borrower(borrower_id)

    def get_borrower(self, borrower_id: int) -> Borrower:
        borrower = self.catalog.get_borrower(borrower_id)
        if borrower is None:
            raise NotFoundError(f"Borrower {borrower_id} not found.")
        return borrower

    def find_borrower_by_email(self, email: str) -> Optional[Borrower]:
        return self.catalog.find_borrower_by_email(email)

    def list_borrowers(self) -> List[Borrower]:
        return self.catalog.list_borrowers()

    def update_borrower(self, borrower_id: int, **fields) -> Borrower:
        return self.catalog.update_borrower(borrower_id, **fields)

    def remove_borrower(self, borrower_id: int) -> bool:
        return self.catalog.remove_borrower(borrower_id)

    # ------------------------- Loans ------------------------- #
    def borrow_book(self, borrower_id: int, book_id: int, now: Optional[datetime] = None) -> Loan:
        return self.loans.borrow_book(borrower_id, book_id, now)

    def return_book(self, loan_id: int, now: Optional[datetime] = None) -> Loan:
        return self.loans.return_book(loan_id, now)

    def get_loan(self, loan_id: int) -> Loan:
        loan = self.ledger.get_loan(loan_id)
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found.")
        return loan

    def list_loans(self, *, borrower_id: Optional[int] = None, book_id: Optional[int] = None,
                   status: Optional[LoanStatus] = None) -> List[Loan]:
        return self.ledger.list_loans(borrower_id=borrower_id, book_id=book_id, status=status)

    def active_loans(self) -> List[ActiveLoan]:
        return self.ledger.active_loans()

    # ------------------------- Reporting ------------------------- #
    def get_statistics(self) -> Dict[str, Any]:
        """Get library statistics."""
        conn = get_db_connection(self.db_file)
        try:
            row = conn.execute(f"""
                SELECT
                    (SELECT COUNT(*) FROM books) AS total_books,
                    (SELECT COUNT(*) FROM books WHERE available = 1) AS available_books,
                    (SELECT COUNT(*) FROM borrowers) AS total_borrowers,
                    (SELECT COUNT(*) FROM loans WHERE status = '{STATUS_BORROWED}') AS active_loans,
                    (SELECT COUNT(*) FROM loans) AS total_loans
            """).fetchone()
            return dict(row)
        finally:
            conn.close()

    def close(self) -> None:
        """Connections are opened per operation, so there is nothing to release.

        Kept so callers (and tests) can treat the library as a closable resource.
        """
        return None
