class LibraryError(Exception):
    """Base class for errors raised by the catalog, the ledger and the loan service."""


class NotFoundError(LibraryError, LookupError):
    """A referenced book, borrower or loan does not exist."""


class AlreadyBorrowedError(LibraryError):
    """The book already has an open loan."""


class ValidationError(LibraryError, ValueError):
    """Input rejected by validation or by a uniqueness constraint."""
