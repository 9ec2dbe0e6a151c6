from __future__ import annotations

from enum import Enum


class LoanStatus(str, Enum):
    BORROWED = "Borrowed"
    RETURNED = "Returned"


class Book:
    """Represents a single book in the catalog."""

    def __init__(self, title: str, author: str, publication_year: int, genre: str | None = None,
                 available: bool = True, id: int | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.publication_year = publication_year
        self.genre = genre.strip() if genre else None
        # Derived from the loan ledger; only the loan service changes it
        self.available = bool(available)

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.publication_year})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "publication_year": self.publication_year,
            "genre": self.genre,
            "available": self.available,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            publication_year=data["publication_year"],
            genre=data.get("genre"),
            available=data.get("available", True),
        )


class Borrower:
    """A library member who can borrow books."""

    def __init__(self, name: str, email: str, phone: str | None = None,
                 created_at: str | None = None, id: int | None = None) -> None:
        self.id = id
        self.name = name.strip()
        self.email = email.strip()
        self.phone = phone.strip() if phone else None
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} <{self.email}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Borrower":
        return Borrower(
            id=data.get("id"),
            name=data["name"],
            email=data["email"],
            phone=data.get("phone"),
            created_at=data.get("created_at"),
        )


class Loan:
    """A book borrowed by a borrower, open (Borrowed) or closed (Returned)."""

    def __init__(self, id: int, borrower_id: int, book_id: int, loan_date: str,
                 return_date: str | None = None, status: LoanStatus | str = LoanStatus.BORROWED) -> None:
        self.id = id
        self.borrower_id = borrower_id
        self.book_id = book_id
        self.loan_date = loan_date
        self.return_date = return_date
        self.status = LoanStatus(status)

    @property
    def is_open(self) -> bool:
        return self.status is LoanStatus.BORROWED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "borrower_id": self.borrower_id,
            "book_id": self.book_id,
            "loan_date": self.loan_date,
            "return_date": self.return_date,
            "status": self.status.value,
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        return Loan(
            id=data["id"],
            borrower_id=data["borrower_id"],
            book_id=data["book_id"],
            loan_date=data["loan_date"],
            return_date=data.get("return_date"),
            status=data.get("status", LoanStatus.BORROWED),
        )


class ActiveLoan:
    """One row of the active-loans report."""

    def __init__(self, loan_id: int, borrower_name: str, book_title: str, loan_date: str) -> None:
        self.loan_id = loan_id
        self.borrower_name = borrower_name
        self.book_title = book_title
        self.loan_date = loan_date

    def to_dict(self) -> dict:
        return {
            "loan_id": self.loan_id,
            "borrower_name": self.borrower_name,
            "book_title": self.book_title,
            "loan_date": self.loan_date,
        }

    @staticmethod
    def from_dict(data: dict) -> "ActiveLoan":
        return ActiveLoan(
            loan_id=data["loan_id"],
            borrower_name=data["borrower_name"],
            book_title=data["book_title"],
            loan_date=data["loan_date"],
        )
