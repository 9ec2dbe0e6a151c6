import pytest

from library import Library


@pytest.fixture
def db_file(tmp_path, monkeypatch):
    # Unique database per test; LIBRARY_DB_FILE also covers code that builds its own Library()
    path = str(tmp_path / "library_test.db")
    monkeypatch.setenv("LIBRARY_DB_FILE", path)
    return path


@pytest.fixture
def lib(db_file):
    lib = Library(db_file=db_file)
    yield lib
    lib.close()


@pytest.fixture
def alice(lib):
    return lib.add_borrower("Alice Reader", "alice@example.com", "555-0100")


@pytest.fixture
def bob(lib):
    return lib.add_borrower("Bob Borrower", "bob@example.com")


@pytest.fixture
def dune(lib):
    return lib.add_book("Dune", "Frank Herbert", 1965, "Science Fiction")
