import csv
import json
import subprocess
import sys
from typing import NoReturn, Optional

import typer
from rich.console import Console

from config import settings
from errors import LibraryError
from library import Library
from models import LoanStatus
from seed import seed_demo_data
from utils.ui_helpers import (
    ACTIVE_LOAN_COLUMNS,
    BOOK_COLUMNS,
    BORROWER_COLUMNS,
    LOAN_COLUMNS,
    format_active_loan,
    format_book,
    format_borrower,
    format_loan,
    print_records,
    print_stats_result,
    set_output_mode,
)

APP_NAME = "Library Loans CLI"

console = Console()

app = typer.Typer(help=APP_NAME)


def _get_library() -> Library:
    # Built per command so LIBRARY_DB_FILE is read at call time
    return Library()


def _fail(e: Exception) -> NoReturn:
    print(f"Error: {e}")
    raise typer.Exit(code=1)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    if output:
        set_output_mode(output)


@app.command("init-db")
def cli_init_db():
    """Create the database schema if it doesn't exist."""
    lib = _get_library()
    print(f"Database ready: {lib.db_file}")


# --- Books ---
@app.command("add-book")
def cli_add_book(
    title: str,
    author: str,
    year: int,
    genre: Optional[str] = typer.Option(None, "--genre", "-g", help="Optional genre"),
):
    """Add a book to the catalog."""
    lib = _get_library()
    try:
        book = lib.add_book(title, author, year, genre)
    except LibraryError as e:
        _fail(e)
    print(f"Added book {book.id}: {book.title} by {book.author}")


@app.command("books")
def cli_books(
    available: Optional[bool] = typer.Option(None, "--available/--on-loan", help="Filter by availability"),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Search title, author or genre"),
):
    """List books."""
    lib = _get_library()
    books = lib.search_books(query) if query else lib.list_books(available)
    if query and available is not None:
        books = [b for b in books if b.available == available]
    print_records(books, title="Books", columns=BOOK_COLUMNS, plain=format_book,
                  empty_message="No books in library.")


@app.command("remove-book")
def cli_remove_book(book_id: int):
    """Remove a book and its loan history."""
    lib = _get_library()
    if lib.remove_book(book_id):
        print(f"Book {book_id} has been removed.")
    else:
        print(f"Book {book_id} not found.")
        raise typer.Exit(code=1)


# --- Borrowers ---
@app.command("add-borrower")
def cli_add_borrower(
    name: str,
    email: str,
    phone: Optional[str] = typer.Option(None, "--phone", "-p", help="Optional phone number"),
):
    """Register a borrower."""
    lib = _get_library()
    try:
        borrower = lib.add_borrower(name, email, phone)
    except LibraryError as e:
        _fail(e)
    print(f"Added borrower {borrower.id}: {borrower.name} <{borrower.email}>")


@app.command("borrowers")
def cli_borrowers():
    """List borrowers."""
    lib = _get_library()
    print_records(lib.list_borrowers(), title="Borrowers", columns=BORROWER_COLUMNS,
                  plain=format_borrower, empty_message="No borrowers registered.")


@app.command("remove-borrower")
def cli_remove_borrower(borrower_id: int):
    """Remove a borrower and their loans."""
    lib = _get_library()
    if lib.remove_borrower(borrower_id):
        print(f"Borrower {borrower_id} has been removed.")
    else:
        print(f"Borrower {borrower_id} not found.")
        raise typer.Exit(code=1)


# --- Loans ---
@app.command("borrow")
def cli_borrow(borrower_id: int, book_id: int):
    """Lend a book to a borrower."""
    lib = _get_library()
    try:
        loan = lib.borrow_book(borrower_id, book_id)
    except LibraryError as e:
        _fail(e)
    print(f"Loan {loan.id}: book {loan.book_id} borrowed by {loan.borrower_id} on {loan.loan_date}")


@app.command("return")
def cli_return(loan_id: int):
    """Return a borrowed book."""
    lib = _get_library()
    try:
        loan = lib.return_book(loan_id)
    except LibraryError as e:
        _fail(e)
    print(f"Loan {loan.id} returned on {loan.return_date}")


@app.command("loans")
def cli_loans(
    status: Optional[LoanStatus] = typer.Option(None, "--status", "-s", case_sensitive=False),
    borrower_id: Optional[int] = typer.Option(None, "--borrower", help="Only this borrower's loans"),
    book_id: Optional[int] = typer.Option(None, "--book", help="Only loans of this book"),
):
    """List loans, newest first."""
    lib = _get_library()
    loans = lib.list_loans(borrower_id=borrower_id, book_id=book_id, status=status)
    print_records(loans, title="Loans", columns=LOAN_COLUMNS, plain=format_loan,
                  empty_message="No loans found.")


@app.command("active")
def cli_active():
    """Show books currently on loan."""
    lib = _get_library()
    print_records(lib.active_loans(), title="Active Loans", columns=ACTIVE_LOAN_COLUMNS,
                  plain=format_active_loan, empty_message="No active loans.")


@app.command("export")
def cli_export(format: str = "csv", output: str = "active_loans"):
    """Export the active-loans report to a file (csv or json)."""
    rows = [a.to_dict() for a in _get_library().active_loans()]
    fmt = format.lower()

    if fmt == "csv":
        filename = f"{output}.csv"
        with open(filename, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=["loan_id", "borrower_name", "book_title", "loan_date"])
            writer.writeheader()
            writer.writerows(rows)
    elif fmt == "json":
        filename = f"{output}.json"
        with open(filename, "w", encoding="utf-8") as jsonfile:
            json.dump(rows, jsonfile, indent=2, ensure_ascii=False)
    else:
        print(f"Unsupported format: {format}. Use csv or json.")
        raise typer.Exit(code=1)

    print(f"Exported {len(rows)} active loans to {filename}")


# --- Misc ---
@app.command("stats")
def cli_stats():
    """Show library statistics."""
    print_stats_result(_get_library().get_statistics())


@app.command("seed")
def cli_seed():
    """Load demo borrowers, books and loans into an empty library."""
    counts = seed_demo_data(_get_library())
    if not any(counts.values()):
        print("Library already has data; nothing seeded.")
        return
    print(f"Seeded {counts['borrowers']} borrowers, {counts['books']} books and {counts['loans']} loans.")


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, help="Bind address"),
    port: int = typer.Option(settings.api_port, help="Port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the HTTP API with uvicorn."""
    print(f"Starting API on http://{host}:{port}")
    cmd = [sys.executable, "-m", "uvicorn", "api:app", "--host", host, "--port", str(port)]
    if reload:
        cmd.append("--reload")
    try:
        subprocess.run(cmd, check=False)
    except KeyboardInterrupt:
        console.print("[dim]Server stopped[/]")


if __name__ == "__main__":
    app()
