import logging
from typing import Dict

from library import Library

logger = logging.getLogger(__name__)

DEMO_BORROWERS = [
    ("Ana Souza", "ana.souza@example.com", "+55 11 91234-5678"),
    ("Bruno Lima", "bruno.lima@example.com", None),
    ("Carla Mendes", "carla.mendes@example.com", "+55 21 99876-5432"),
]

DEMO_BOOKS = [
    ("Dom Casmurro", "Machado de Assis", 1899, "Novel"),
    ("The Hobbit", "J.R.R. Tolkien", 1937, "Fantasy"),
    ("Clean Code", "Robert C. Martin", 2008, "Software"),
    ("Dune", "Frank Herbert", 1965, "Science Fiction"),
]


def seed_demo_data(lib: Library) -> Dict[str, int]:
    """Fill an empty library with a few borrowers, books and two open loans.

    Does nothing when borrowers or books already exist.
    """
    stats = lib.get_statistics()
    if stats["total_books"] or stats["total_borrowers"]:
        logger.info("Library already has data; skipping demo seed")
        return {"borrowers": 0, "books": 0, "loans": 0}

    borrowers = [lib.add_borrower(name, email, phone) for name, email, phone in DEMO_BORROWERS]
    books = [lib.add_book(title, author, year, genre) for title, author, year, genre in DEMO_BOOKS]

    lib.borrow_book(borrowers[0].id, books[0].id)
    lib.borrow_book(borrowers[1].id, books[2].id)

    return {"borrowers": len(borrowers), "books": len(books), "loans": 2}
