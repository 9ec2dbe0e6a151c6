import os
import json
from typing import Any, Dict, List, Sequence, Tuple
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

# (attribute, column title) pairs per record type
BOOK_COLUMNS = [("id", "ID"), ("title", "Title"), ("author", "Author"),
                ("publication_year", "Year"), ("genre", "Genre"), ("available", "Available")]
BORROWER_COLUMNS = [("id", "ID"), ("name", "Name"), ("email", "Email"), ("phone", "Phone")]
LOAN_COLUMNS = [("id", "ID"), ("borrower_id", "Borrower"), ("book_id", "Book"),
                ("loan_date", "Loaned"), ("return_date", "Returned"), ("status", "Status")]
ACTIVE_LOAN_COLUMNS = [("loan_id", "Loan"), ("borrower_name", "Borrower"),
                       ("book_title", "Book"), ("loan_date", "Since")]


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode
    # unknown values keep the current mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def format_book(b: Any) -> str:
    state = "available" if b.available else "on loan"
    return f"{b.id} - {b.title} by {b.author} ({b.publication_year}) [{state}]"


def format_borrower(b: Any) -> str:
    return f"{b.id} - {b.name} <{b.email}>"


def format_loan(l: Any) -> str:
    line = f"{l.id} - book {l.book_id} to borrower {l.borrower_id} on {l.loan_date} [{l.status.value}]"
    if l.return_date:
        line += f" returned {l.return_date}"
    return line


def format_active_loan(a: Any) -> str:
    return f"{a.loan_id} - {a.book_title} borrowed by {a.borrower_name} since {a.loan_date}"


def print_records(records: Sequence[Any], *, title: str, columns: List[Tuple[str, str]],
                  plain, empty_message: str) -> None:
    """Print records according to the current output mode.
    - plain: one line per record via ``plain(record)``, or ``empty_message``
    - json: JSON array of ``record.to_dict()``
    - rich: Rich table with ``columns``
    """
    if not records:
        # same message in every mode so empty output stays predictable
        print(empty_message)
        return

    mode = get_output_mode()
    if mode == "json":
        print(json.dumps([r.to_dict() for r in records], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for _, header in columns:
            table.add_column(header)
        for r in records:
            data = r.to_dict()
            table.add_row(*("" if data.get(key) is None else str(data.get(key)) for key, _ in columns))
        _console.print(table)
    else:
        for r in records:
            print(plain(r))


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics according to the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = {
        "total_books": "Total Books",
        "available_books": "Available Books",
        "total_borrowers": "Borrowers",
        "active_loans": "Active Loans",
        "total_loans": "Total Loans",
    }

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in labels.items())
        _console.print(Panel.fit(content, title="Stats", border_style="blue"))
    else:
        for key, label in labels.items():
            print(f"{label}: {stats.get(key, 0)}")
