import logging
import sqlite3
from datetime import datetime
from typing import Optional

from availability import sync_availability
from catalog import fetch_book, fetch_borrower
from config import settings
from database import get_db_connection, transaction
from errors import AlreadyBorrowedError, NotFoundError
from ledger import close_loan, fetch_loan, insert_loan
from models import Loan

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


class LoanService:
    """Borrow and return books.

    Each operation is a single write transaction: the loan row and the book's
    availability change together or not at all.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    def borrow_book(self, borrower_id: int, book_id: int, now: Optional[datetime] = None) -> Loan:
        """Open a loan of ``book_id`` for ``borrower_id``.

        Raises NotFoundError if the book or borrower is missing and
        AlreadyBorrowedError if the book has an open loan.
        """
        now = now or datetime.utcnow()
        loan_date = now.date().isoformat()

        conn = get_db_connection(self.db_file)
        try:
            with transaction(conn):
                book = fetch_book(conn, book_id)
                if book is None:
                    raise NotFoundError(f"Book {book_id} not found.")
                if fetch_borrower(conn, borrower_id) is None:
                    raise NotFoundError(f"Borrower {borrower_id} not found.")
                if not book.available:
                    raise AlreadyBorrowedError(f"Book {book_id} is already borrowed.")
                try:
                    loan_id = insert_loan(conn, borrower_id, book_id, loan_date)
                except sqlite3.IntegrityError as e:
                    # idx_loans_open_book: another open loan slipped in
                    raise AlreadyBorrowedError(f"Book {book_id} is already borrowed.") from e
                sync_availability(conn, book_id)
                loan = fetch_loan(conn, loan_id)
        except AlreadyBorrowedError:
            logger.warning(f"Borrow refused: book={book_id} borrower={borrower_id} already borrowed")
            raise
        finally:
            conn.close()

        logger.info(f"Loan opened: loan={loan.id} book={book_id} borrower={borrower_id}")
        return loan

    def return_book(self, loan_id: int, now: Optional[datetime] = None) -> Loan:
        """Close a loan and make its book available again.

        Returning a loan that is already closed changes nothing and returns
        the loan as stored, keeping its original return date.
        """
        now = now or datetime.utcnow()
        return_date = now.date().isoformat()

        conn = get_db_connection(self.db_file)
        try:
            with transaction(conn):
                loan = fetch_loan(conn, loan_id)
                if loan is None:
                    raise NotFoundError(f"Loan {loan_id} not found.")
                if not loan.is_open:
                    logger.warning(f"Loan {loan_id} was already returned on {loan.return_date}; nothing to do")
                    return loan
                close_loan(conn, loan_id, return_date)
                sync_availability(conn, loan.book_id)
                loan = fetch_loan(conn, loan_id)
        finally:
            conn.close()

        logger.info(f"Loan closed: loan={loan.id} book={loan.book_id}")
        return loan
