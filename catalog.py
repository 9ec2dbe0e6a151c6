import logging
import re
import sqlite3
from typing import List, Optional

from availability import open_loan_book_ids, sync_books
from config import settings
from database import get_db_connection, transaction
from errors import NotFoundError, ValidationError
from models import Book, Borrower
from utils.validators import EmailValidator, TextValidator, YearValidator

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

_BOOK_COLUMNS = "id, title, author, publication_year, genre, available"
_BORROWER_COLUMNS = "id, name, email, phone, created_at"


# ------------------------- Row helpers ------------------------- #
# These take an open connection so the loan service can call them inside
# its own transaction.

def fetch_book(conn: sqlite3.Connection, book_id: int) -> Optional[Book]:
    row = conn.execute(f"SELECT {_BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,)).fetchone()
    return Book.from_dict(dict(row)) if row else None


def fetch_borrower(conn: sqlite3.Connection, borrower_id: int) -> Optional[Borrower]:
    row = conn.execute(
        f"SELECT {_BORROWER_COLUMNS} FROM borrowers WHERE id = ?", (borrower_id,)
    ).fetchone()
    return Borrower.from_dict(dict(row)) if row else None


class CatalogStore:
    """Books and borrowers, with validation and the unique email constraint."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    # ------------------------- Books ------------------------- #
    def add_book(self, title: str, author: str, publication_year: int, genre: Optional[str] = None) -> Book:
        """Validate and insert a book. New books are always available."""
        book = Book(
            title=TextValidator.require(title, "Title"),
            author=TextValidator.require(author, "Author"),
            publication_year=YearValidator.validate(publication_year),
            genre=TextValidator.optional(genre),
        )
        conn = get_db_connection(self.db_file)
        try:
            with transaction(conn):
                cursor = conn.execute(
                    "INSERT INTO books (title, author, publication_year, genre) VALUES (?, ?, ?, ?)",
                    (book.title, book.author, book.publication_year, book.genre),
                )
            book.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"Book rejected by the database: {e}") from e
        finally:
            conn.close()
        logger.info(f"Book added: id={book.id} title={book.title!r}")
        return book

    def get_book(self, book_id: int) -> Optional[Book]:
        conn = get_db_connection(self.db_file)
        try:
            return fetch_book(conn, book_id)
        finally:
            conn.close()

    def list_books(self, available: Optional[bool] = None) -> List[Book]:
        """List books ordered by title, optionally filtered by availability."""
        query = f"SELECT {_BOOK_COLUMNS} FROM books"
        params: tuple = ()
        if available is not None:
            query += " WHERE available = ?"
            params = (1 if available else 0,)
        query += " ORDER BY title, id"
        conn = get_db_connection(self.db_file)
        try:
            rows = conn.execute(query, params).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def search_books(self, query: str) -> List[Book]:
        """Search for books by title, author or genre."""
        # LIKE wildcards in the query match literally
        escaped = re.sub(r"([\\%_])", r"\\\1", TextValidator.normalize(query))
        pattern = f"%{escaped}%"
        conn = get_db_connection(self.db_file)
        try:
            rows = conn.execute(
                f"SELECT {_BOOK_COLUMNS} FROM books "
                "WHERE title LIKE ? ESCAPE '\\' OR author LIKE ? ESCAPE '\\' OR genre LIKE ? ESCAPE '\\' "
                "ORDER BY title, id",
                (pattern, pattern, pattern),
            ).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def update_book(self, book_id: int, *, title: Optional[str] = None, author: Optional[str] = None,
                    publication_year: Optional[int] = None, genre: Optional[str] = None) -> Book:
        """Update descriptive fields of a book. Availability is not editable here."""
        if title is None and author is None and publication_year is None and genre is None:
            raise ValidationError("Nothing to update. Provide title, author, publication_year and/or genre.")

        conn = get_db_connection(self.db_file)
        try:
            with transaction(conn):
                book = fetch_book(conn, book_id)
                if book is None:
                    raise NotFoundError(f"Book {book_id} not found.")
                if title is not None:
                    book.title = TextValidator.require(title, "Title")
                if author is not None:
                    book.author = TextValidator.require(author, "Author")
                if publication_year is not None:
                    book.publication_year = YearValidator.validate(publication_year)
                if genre is not None:
                    book.genre = TextValidator.optional(genre)
                conn.execute(
                    "UPDATE books SET title = ?, author = ?, publication_year = ?, genre = ? WHERE id = ?",
                    (book.title, book.author, book.publication_year, book.genre, book_id),
                )
            return book
        finally:
            conn.close()

    def remove_book(self, book_id: int) -> bool:
        """Delete a book; its loans go with it."""
        conn = get_db_connection(self.db_file)
        try:
            with transaction(conn):
                cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            removed = cursor.rowcount > 0
        finally:
            conn.close()
        if removed:
            logger.info(f"Book removed: id={book_id}")
        return removed

    # ------------------------- Borrowers ------------------------- #
    def add_borrower(self, name: str, email: str, phone: Optional[str] = None) -> Borrower:
        """Register a borrower. Emails are unique regardless of case."""
        name = TextValidator.require(name, "Name")
        email = EmailValidator.validate(email)
        phone = TextValidator.optional(phone)

        conn = get_db_connection(self.db_file)
        try:
            with transaction(conn):
                cursor = conn.execute(
                    "INSERT INTO borrowers (name, email, phone) VALUES (?, ?, ?)",
                    (name, email, phone),
                )
                borrower = fetch_borrower(conn, cursor.lastrowid)
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"Borrower with email {email} already exists.") from e
        finally:
            conn.close()
        logger.info(f"Borrower added: id={borrower.id} email={borrower.email}")
        return borrower

    def get_borrower(self, borrower_id: int) -> Optional[Borrower]:
        conn = get_db_connection(self.db_file)
        try:
            return fetch_borrower(conn, borrower_id)
        finally:
            conn.close()

    def find_borrower_by_email(self, email: str) -> Optional[Borrower]:
        conn = get_db_connection(self.db_file)
        try:
            row = conn.execute(
                f"SELECT {_BORROWER_COLUMNS} FROM borrowers WHERE email = ?", (email.strip(),)
            ).fetchone()
            return Borrower.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def list_borrowers(self) -> List[Borrower]:
        conn = get_db_connection(self.db_file)
        try:
            rows = conn.execute(f"SELECT {_BORROWER_COLUMNS} FROM borrowers ORDER BY name, id").fetchall()
            return [Borrower.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def update_borrower(self, borrower_id: int, *, name: Optional[str] = None,
                        phone: Optional[str] = None) -> Borrower:
        """Update name and/or phone. Email and creation time are fixed."""
        if name is None and phone is None:
            raise ValidationError("Nothing to update. Provide name and/or phone.")

        conn = get_db_connection(self.db_file)
        try:
            with transaction(conn):
                borrower = fetch_borrower(conn, borrower_id)
                if borrower is None:
                    raise NotFoundError(f"Borrower {borrower_id} not found.")
                if name is not None:
                    borrower.name = TextValidator.require(name, "Name")
                if phone is not None:
                    # an empty string clears the phone number
                    borrower.phone = TextValidator.optional(phone)
                conn.execute(
                    "UPDATE borrowers SET name = ?, phone = ? WHERE id = ?",
                    (borrower.name, borrower.phone, borrower_id),
                )
            return borrower
        finally:
            conn.close()

    def remove_borrower(self, borrower_id: int) -> bool:
        """Delete a borrower; their loans go with them.

        Books the borrower still had out become available again in the same
        transaction.
        """
        conn = get_db_connection(self.db_file)
        try:
            with transaction(conn):
                book_ids = open_loan_book_ids(conn, borrower_id)
                cursor = conn.execute("DELETE FROM borrowers WHERE id = ?", (borrower_id,))
                sync_books(conn, book_ids)
            removed = cursor.rowcount > 0
        finally:
            conn.close()
        if removed:
            logger.info(f"Borrower removed: id={borrower_id}")
        return removed
