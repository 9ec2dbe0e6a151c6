import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest

from database import get_db_connection
from errors import AlreadyBorrowedError, NotFoundError
from models import LoanStatus


def test_borrow_marks_book_unavailable(lib, alice, dune):
    loan = lib.borrow_book(alice.id, dune.id, now=datetime(2024, 3, 1, 10, 30))

    assert loan.status is LoanStatus.BORROWED
    assert loan.borrower_id == alice.id
    assert loan.book_id == dune.id
    assert loan.loan_date == "2024-03-01"
    assert loan.return_date is None
    assert lib.find_book(dune.id).available is False
    open_loans = lib.list_loans(book_id=dune.id, status=LoanStatus.BORROWED)
    assert [l.id for l in open_loans] == [loan.id]


def test_borrow_defaults_loan_date_to_today(lib, alice, dune):
    loan = lib.borrow_book(alice.id, dune.id)
    assert loan.loan_date == datetime.utcnow().date().isoformat()


def test_borrow_unknown_book(lib, alice):
    with pytest.raises(NotFoundError, match="Book"):
        lib.borrow_book(alice.id, 404)
    assert lib.list_loans() == []


def test_borrow_unknown_borrower_leaves_book_available(lib, dune):
    with pytest.raises(NotFoundError, match="Borrower"):
        lib.borrow_book(404, dune.id)
    assert lib.find_book(dune.id).available is True
    assert lib.list_loans() == []


def test_borrow_already_borrowed_changes_nothing(lib, alice, bob, dune):
    first = lib.borrow_book(alice.id, dune.id)

    with pytest.raises(AlreadyBorrowedError):
        lib.borrow_book(bob.id, dune.id)

    loans = lib.list_loans()
    assert [l.id for l in loans] == [first.id]
    assert lib.find_book(dune.id).available is False


def test_return_makes_book_available(lib, alice, dune):
    loan = lib.borrow_book(alice.id, dune.id, now=datetime(2024, 3, 1))

    returned = lib.return_book(loan.id, now=datetime(2024, 3, 15))

    assert returned.status is LoanStatus.RETURNED
    assert returned.return_date == "2024-03-15"
    assert returned.loan_date == "2024-03-01"
    assert lib.find_book(dune.id).available is True


def test_return_unknown_loan(lib):
    with pytest.raises(NotFoundError, match="Loan"):
        lib.return_book(12345)


def test_return_twice_is_a_no_op(lib, alice, bob, dune):
    loan = lib.borrow_book(alice.id, dune.id, now=datetime(2024, 3, 1))
    lib.return_book(loan.id, now=datetime(2024, 3, 2))
    lib.borrow_book(bob.id, dune.id, now=datetime(2024, 3, 3))

    again = lib.return_book(loan.id, now=datetime(2024, 3, 9))

    assert again.status is LoanStatus.RETURNED
    assert again.return_date == "2024-03-02"
    # Bob's loan is untouched, so the book stays out
    assert lib.find_book(dune.id).available is False


def test_borrow_return_scenario(lib, alice, bob, dune):
    first = lib.borrow_book(alice.id, dune.id)
    assert lib.find_book(dune.id).available is False

    with pytest.raises(AlreadyBorrowedError):
        lib.borrow_book(bob.id, dune.id)

    lib.return_book(first.id)
    assert lib.find_book(dune.id).available is True

    second = lib.borrow_book(bob.id, dune.id)
    assert second.borrower_id == bob.id
    assert lib.find_book(dune.id).available is False
    assert len(lib.list_loans(book_id=dune.id)) == 2


def test_active_loans_view(lib, alice, bob, dune):
    hobbit = lib.add_book("The Hobbit", "J.R.R. Tolkien", 1937)
    l1 = lib.borrow_book(alice.id, dune.id, now=datetime(2024, 1, 5))
    l2 = lib.borrow_book(bob.id, hobbit.id, now=datetime(2024, 1, 2))

    active = lib.active_loans()
    assert [(a.loan_id, a.borrower_name, a.book_title, a.loan_date) for a in active] == [
        (l2.id, "Bob Borrower", "The Hobbit", "2024-01-02"),
        (l1.id, "Alice Reader", "Dune", "2024-01-05"),
    ]

    lib.return_book(l2.id)
    assert [a.loan_id for a in lib.active_loans()] == [l1.id]


def test_available_books_view(lib, alice, dune):
    hobbit = lib.add_book("The Hobbit", "J.R.R. Tolkien", 1937)
    lib.borrow_book(alice.id, dune.id)
    assert [b.id for b in lib.available_books()] == [hobbit.id]
    assert [b.id for b in lib.list_books(available=False)] == [dune.id]


def test_deleting_borrower_removes_open_loan_and_frees_book(lib, alice, dune):
    loan = lib.borrow_book(alice.id, dune.id)

    assert lib.remove_borrower(alice.id) is True

    assert lib.list_loans() == []
    with pytest.raises(NotFoundError):
        lib.get_loan(loan.id)
    assert lib.find_book(dune.id).available is True


def test_deleting_book_removes_its_loans(lib, alice, dune):
    loan = lib.borrow_book(alice.id, dune.id)

    assert lib.remove_book(dune.id) is True

    conn = get_db_connection(lib.db_file)
    try:
        orphans = conn.execute("SELECT COUNT(*) FROM loans WHERE id = ?", (loan.id,)).fetchone()[0]
    finally:
        conn.close()
    assert orphans == 0
    assert lib.active_loans() == []


def test_statistics(lib, alice, bob, dune):
    lib.add_book("The Hobbit", "J.R.R. Tolkien", 1937)
    loan = lib.borrow_book(alice.id, dune.id)
    lib.return_book(loan.id)
    lib.borrow_book(bob.id, dune.id)

    assert lib.get_statistics() == {
        "total_books": 2,
        "available_books": 1,
        "total_borrowers": 2,
        "active_loans": 1,
        "total_loans": 2,
    }


def test_concurrent_borrows_have_one_winner(lib, dune):
    contenders = [lib.add_borrower(f"Reader {i}", f"reader{i}@example.com") for i in range(8)]
    start = threading.Barrier(len(contenders))

    def attempt(borrower_id):
        start.wait()
        try:
            lib.loans.borrow_book(borrower_id, dune.id)
            return "ok"
        except AlreadyBorrowedError:
            return "already"

    with ThreadPoolExecutor(max_workers=len(contenders)) as pool:
        results = list(pool.map(attempt, [b.id for b in contenders]))

    assert results.count("ok") == 1
    assert results.count("already") == len(contenders) - 1
    assert len(lib.list_loans(status=LoanStatus.BORROWED)) == 1
    assert lib.find_book(dune.id).available is False


def test_open_loan_index_rejects_second_borrowed_loan(lib, alice, bob, dune):
    conn = get_db_connection(lib.db_file)
    try:
        # An open loan written behind the service's back leaves the book flagged available
        conn.execute(
            "INSERT INTO loans (borrower_id, book_id, status) VALUES (?, ?, 'Borrowed')",
            (alice.id, dune.id),
        )
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO loans (borrower_id, book_id, status) VALUES (?, ?, 'Borrowed')",
                (bob.id, dune.id),
            )
    finally:
        conn.close()
    assert lib.find_book(dune.id).available is True

    with pytest.raises(AlreadyBorrowedError):
        lib.borrow_book(bob.id, dune.id)

    loans = lib.list_loans()
    assert [(l.borrower_id, l.book_id) for l in loans] == [(alice.id, dune.id)]
    assert lib.list_loans(borrower_id=bob.id) == []
