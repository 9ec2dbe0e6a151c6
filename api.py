import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from config import settings
from database import get_db_connection
from errors import AlreadyBorrowedError, LibraryError, NotFoundError, ValidationError
from library import Library
from models import LoanStatus

logger = logging.getLogger(__name__)

library = Library()

app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Security ---
# Two roles: managers (API_KEY) may change data, readers may only query it.
# Reads are open unless READ_API_KEY is configured.
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class Role(str, Enum):
    READER = "reader"
    MANAGER = "manager"


def resolve_role(api_key: Optional[str]) -> Optional[Role]:
    if api_key and api_key == settings.api_key:
        return Role.MANAGER
    if api_key and settings.read_api_key and api_key == settings.read_api_key:
        return Role.READER
    return None


def require_manager(api_key: Optional[str] = Security(api_key_header)) -> Role:
    """Dependency for endpoints that modify data."""
    if resolve_role(api_key) is not Role.MANAGER:
        raise HTTPException(status_code=403, detail="Could not validate credentials")
    return Role.MANAGER


def require_reader(api_key: Optional[str] = Security(api_key_header)) -> Optional[Role]:
    """Dependency for read endpoints."""
    role = resolve_role(api_key)
    if role is None and settings.read_api_key:
        raise HTTPException(status_code=403, detail="Could not validate credentials")
    return role


# --- Models ---
class BookModel(BaseModel):
    id: int
    title: str
    author: str
    publication_year: int
    genre: Optional[str] = None
    available: bool


class BookCreateModel(BaseModel):
    title: str
    author: str
    publication_year: int
    genre: Optional[str] = None


class UpdateBookModel(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    publication_year: Optional[int] = None
    genre: Optional[str] = None


class BorrowerModel(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    created_at: Optional[str] = None


class BorrowerCreateModel(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None


class UpdateBorrowerModel(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


class LoanModel(BaseModel):
    id: int
    borrower_id: int
    book_id: int
    loan_date: str
    return_date: Optional[str] = None
    status: LoanStatus


class BorrowRequest(BaseModel):
    borrower_id: int = Field(description="Borrower taking the book")
    book_id: int = Field(description="Book to lend")


class ActiveLoanModel(BaseModel):
    loan_id: int
    borrower_name: str
    book_title: str
    loan_date: str


class StatsModel(BaseModel):
    total_books: int
    available_books: int
    total_borrowers: int
    active_loans: int
    total_loans: int


# --- Helper Functions ---
def _http_error(exc: LibraryError) -> HTTPException:
    """Translate a library error into the matching HTTP error."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AlreadyBorrowedError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


# --- Health ---
@app.get("/health")
def health():
    """Lightweight health check with a quick database round trip."""
    db_ok = True
    try:
        conn = get_db_connection(library.db_file)
        try:
            conn.execute("SELECT 1")
        finally:
            conn.close()
    except Exception as e:
        logger.error(f"Health check database probe failed: {e}")
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "db": db_ok,
        "version": settings.app_version,
    }


# --- Books ---
@app.get("/books", response_model=List[BookModel], dependencies=[Depends(require_reader)])
def get_books(
    available: Optional[bool] = Query(None, description="Filter by availability"),
    q: Optional[str] = Query(None, description="Search title, author or genre"),
):
    """List books, optionally searching or filtering by availability."""
    books = library.search_books(q) if q else library.list_books(available)
    if q and available is not None:
        books = [b for b in books if b.available == available]
    return [BookModel(**b.to_dict()) for b in books]


@app.post("/books", response_model=BookModel, dependencies=[Depends(require_manager)])
def add_book(payload: BookCreateModel):
    """Add a book to the catalog. New books start out available."""
    try:
        book = library.add_book(payload.title, payload.author, payload.publication_year, payload.genre)
    except LibraryError as e:
        raise _http_error(e)
    return BookModel(**book.to_dict())


@app.get("/books/{book_id}", response_model=BookModel, dependencies=[Depends(require_reader)])
def get_book(book_id: int):
    try:
        return BookModel(**library.get_book(book_id).to_dict())
    except LibraryError as e:
        raise _http_error(e)


@app.put("/books/{book_id}", response_model=BookModel, dependencies=[Depends(require_manager)])
def update_book(book_id: int, update: UpdateBookModel):
    """Update descriptive fields of a book."""
    try:
        book = library.update_book(book_id, **update.model_dump(exclude_none=True))
    except LibraryError as e:
        raise _http_error(e)
    return BookModel(**book.to_dict())


@app.delete("/books/{book_id}", dependencies=[Depends(require_manager)])
def delete_book(book_id: int):
    """Delete a book together with its loans."""
    if not library.remove_book(book_id):
        raise HTTPException(status_code=404, detail="Book not found.")
    return {"message": "Book removed."}


# --- Borrowers ---
@app.get("/borrowers", response_model=List[BorrowerModel], dependencies=[Depends(require_reader)])
def get_borrowers():
    return [BorrowerModel(**b.to_dict()) for b in library.list_borrowers()]


@app.post("/borrowers", response_model=BorrowerModel, dependencies=[Depends(require_manager)])
def add_borrower(payload: BorrowerCreateModel):
    """Register a borrower. Emails must be unique."""
    try:
        borrower = library.add_borrower(payload.name, payload.email, payload.phone)
    except LibraryError as e:
        raise _http_error(e)
    return BorrowerModel(**borrower.to_dict())


@app.get("/borrowers/{borrower_id}", response_model=BorrowerModel, dependencies=[Depends(require_reader)])
def get_borrower(borrower_id: int):
    try:
        return BorrowerModel(**library.get_borrower(borrower_id).to_dict())
    except LibraryError as e:
        raise _http_error(e)


@app.put("/borrowers/{borrower_id}", response_model=BorrowerModel, dependencies=[Depends(require_manager)])
def update_borrower(borrower_id: int, update: UpdateBorrowerModel):
    try:
        borrower = library.update_borrower(borrower_id, **update.model_dump(exclude_none=True))
    except LibraryError as e:
        raise _http_error(e)
    return BorrowerModel(**borrower.to_dict())


@app.delete("/borrowers/{borrower_id}", dependencies=[Depends(require_manager)])
def delete_borrower(borrower_id: int):
    """Delete a borrower together with their loans."""
    if not library.remove_borrower(borrower_id):
        raise HTTPException(status_code=404, detail="Borrower not found.")
    return {"message": "Borrower removed."}


@app.get("/borrowers/{borrower_id}/loans", response_model=List[LoanModel], dependencies=[Depends(require_reader)])
def get_borrower_loans(borrower_id: int, status: Optional[LoanStatus] = None):
    try:
        library.get_borrower(borrower_id)
    except LibraryError as e:
        raise _http_error(e)
    return [LoanModel(**l.to_dict()) for l in library.list_loans(borrower_id=borrower_id, status=status)]


# --- Loans ---
@app.get("/loans/active", response_model=List[ActiveLoanModel], dependencies=[Depends(require_reader)])
def get_active_loans():
    """Open loans with borrower name and book title."""
    return [ActiveLoanModel(**a.to_dict()) for a in library.active_loans()]


@app.get("/loans", response_model=List[LoanModel], dependencies=[Depends(require_reader)])
def get_loans(
    status: Optional[LoanStatus] = None,
    borrower_id: Optional[int] = None,
    book_id: Optional[int] = None,
):
    loans = library.list_loans(borrower_id=borrower_id, book_id=book_id, status=status)
    return [LoanModel(**l.to_dict()) for l in loans]


@app.post("/loans", response_model=LoanModel, dependencies=[Depends(require_manager)])
def borrow_book(request: BorrowRequest):
    """Lend a book. Fails with 409 if the book is already out."""
    try:
        loan = library.borrow_book(request.borrower_id, request.book_id)
    except LibraryError as e:
        raise _http_error(e)
    return LoanModel(**loan.to_dict())


@app.get("/loans/{loan_id}", response_model=LoanModel, dependencies=[Depends(require_reader)])
def get_loan(loan_id: int):
    try:
        return LoanModel(**library.get_loan(loan_id).to_dict())
    except LibraryError as e:
        raise _http_error(e)


@app.post("/loans/{loan_id}/return", response_model=LoanModel, dependencies=[Depends(require_manager)])
def return_book(loan_id: int):
    """Close a loan. Returning an already returned loan is a no-op."""
    try:
        loan = library.return_book(loan_id)
    except LibraryError as e:
        raise _http_error(e)
    return LoanModel(**loan.to_dict())


# --- Stats ---
@app.get("/stats", response_model=StatsModel, dependencies=[Depends(require_reader)])
def get_library_stats():
    """Counts of books, borrowers and loans."""
    return StatsModel(**library.get_statistics())


@app.get("/")
def read_root():
    return {"name": settings.app_name, "version": settings.app_version, "docs": "/docs"}
