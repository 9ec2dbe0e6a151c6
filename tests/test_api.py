import importlib

import pytest
from fastapi.testclient import TestClient

from config import settings

HEADERS = {"X-API-Key": settings.api_key}


@pytest.fixture
def client(db_file):
    # Reload api so its module-level Library() uses the per-test database
    import api as api_module
    importlib.reload(api_module)

    with TestClient(api_module.app) as test_client:
        yield test_client


def _create_borrower(client, name="Ana Souza", email="ana@example.com"):
    response = client.post("/borrowers", json={"name": name, "email": email}, headers=HEADERS)
    assert response.status_code == 200
    return response.json()


def _create_book(client, title="Dom Casmurro", year=1899):
    payload = {"title": title, "author": "Machado de Assis", "publication_year": year}
    response = client.post("/books", json=payload, headers=HEADERS)
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["db"] is True


def test_get_books_empty(client):
    response = client.get("/books")
    assert response.status_code == 200
    assert response.json() == []


def test_add_book_with_valid_api_key(client):
    book = _create_book(client)
    assert book["title"] == "Dom Casmurro"
    assert book["available"] is True
    assert client.get(f"/books/{book['id']}").json()["publication_year"] == 1899


def test_add_book_with_invalid_api_key(client):
    payload = {"title": "X", "author": "Y", "publication_year": 2000}
    response = client.post("/books", json=payload, headers={"X-API-Key": "invalid-key"})
    assert response.status_code == 403


def test_add_book_without_api_key(client):
    payload = {"title": "X", "author": "Y", "publication_year": 2000}
    assert client.post("/books", json=payload).status_code == 403


def test_add_book_with_zero_year_is_rejected(client):
    payload = {"title": "X", "author": "Y", "publication_year": 0}
    response = client.post("/books", json=payload, headers=HEADERS)
    assert response.status_code == 400


def test_get_missing_book(client):
    assert client.get("/books/999").status_code == 404


def test_update_and_delete_book(client):
    book = _create_book(client)

    response = client.put(f"/books/{book['id']}", json={"genre": "Novel"}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["genre"] == "Novel"
    assert response.json()["title"] == "Dom Casmurro"

    assert client.delete(f"/books/{book['id']}", headers=HEADERS).status_code == 200
    assert client.get(f"/books/{book['id']}").status_code == 404
    assert client.delete(f"/books/{book['id']}", headers=HEADERS).status_code == 404


def test_duplicate_borrower_email(client):
    _create_borrower(client)
    response = client.post("/borrowers", json={"name": "Other", "email": "ana@example.com"}, headers=HEADERS)
    assert response.status_code == 400


def test_update_borrower(client):
    borrower = _create_borrower(client)
    response = client.put(f"/borrowers/{borrower['id']}", json={"phone": "555-0199"}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["phone"] == "555-0199"
    assert response.json()["email"] == "ana@example.com"


def test_loan_lifecycle(client):
    ana = _create_borrower(client)
    bruno = _create_borrower(client, "Bruno Lima", "bruno@example.com")
    book = _create_book(client)

    response = client.post("/loans", json={"borrower_id": ana["id"], "book_id": book["id"]}, headers=HEADERS)
    assert response.status_code == 200
    loan = response.json()
    assert loan["status"] == "Borrowed"
    assert client.get(f"/books/{book['id']}").json()["available"] is False

    response = client.post("/loans", json={"borrower_id": bruno["id"], "book_id": book["id"]}, headers=HEADERS)
    assert response.status_code == 409

    active = client.get("/loans/active").json()
    assert active == [{
        "loan_id": loan["id"],
        "borrower_name": "Ana Souza",
        "book_title": "Dom Casmurro",
        "loan_date": loan["loan_date"],
    }]

    response = client.post(f"/loans/{loan['id']}/return", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["status"] == "Returned"
    assert response.json()["return_date"] is not None
    assert client.get(f"/books/{book['id']}").json()["available"] is True
    assert client.get("/loans/active").json() == []

    response = client.post("/loans", json={"borrower_id": bruno["id"], "book_id": book["id"]}, headers=HEADERS)
    assert response.status_code == 200

    history = client.get(f"/borrowers/{ana['id']}/loans").json()
    assert [l["status"] for l in history] == ["Returned"]
    assert len(client.get("/loans", params={"status": "Borrowed"}).json()) == 1


def test_borrow_missing_book(client):
    ana = _create_borrower(client)
    response = client.post("/loans", json={"borrower_id": ana["id"], "book_id": 999}, headers=HEADERS)
    assert response.status_code == 404


def test_return_missing_loan(client):
    assert client.post("/loans/999/return", headers=HEADERS).status_code == 404


def test_borrow_requires_manager_key(client):
    response = client.post("/loans", json={"borrower_id": 1, "book_id": 1})
    assert response.status_code == 403


def test_delete_borrower_cascades(client):
    ana = _create_borrower(client)
    book = _create_book(client)
    loan = client.post("/loans", json={"borrower_id": ana["id"], "book_id": book["id"]}, headers=HEADERS).json()

    assert client.delete(f"/borrowers/{ana['id']}", headers=HEADERS).status_code == 200

    assert client.get(f"/loans/{loan['id']}").status_code == 404
    assert client.get(f"/books/{book['id']}").json()["available"] is True


def test_stats(client):
    ana = _create_borrower(client)
    book = _create_book(client)
    _create_book(client, "Memorias Postumas", 1881)
    client.post("/loans", json={"borrower_id": ana["id"], "book_id": book["id"]}, headers=HEADERS)

    assert client.get("/stats").json() == {
        "total_books": 2,
        "available_books": 1,
        "total_borrowers": 1,
        "active_loans": 1,
        "total_loans": 1,
    }


def test_read_key_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "read_api_key", "reader-key")

    assert client.get("/books").status_code == 403
    assert client.get("/books", headers={"X-API-Key": "reader-key"}).status_code == 200
    assert client.get("/books", headers=HEADERS).status_code == 200

    payload = {"title": "X", "author": "Y", "publication_year": 2000}
    response = client.post("/books", json=payload, headers={"X-API-Key": "reader-key"})
    assert response.status_code == 403


def test_loans_of_missing_borrower(client):
    assert client.get("/borrowers/999/loans").status_code == 404


def test_filter_loans_by_book(client):
    ana = _create_borrower(client)
    bruno = _create_borrower(client, "Bruno Lima", "bruno@example.com")
    first = _create_book(client)
    second = _create_book(client, "Memorias Postumas", 1881)
    loan = client.post("/loans", json={"borrower_id": ana["id"], "book_id": first["id"]}, headers=HEADERS).json()
    client.post("/loans", json={"borrower_id": bruno["id"], "book_id": second["id"]}, headers=HEADERS)

    response = client.get("/loans", params={"book_id": first["id"]})
    assert response.status_code == 200
    assert [l["id"] for l in response.json()] == [loan["id"]]
    assert client.get("/loans", params={"book_id": 999}).json() == []


def test_malformed_bodies_are_unprocessable(client):
    response = client.post("/borrowers", json={"name": "No Email"}, headers=HEADERS)
    assert response.status_code == 422

    payload = {"title": "X", "author": "Y", "publication_year": "abc"}
    response = client.post("/books", json=payload, headers=HEADERS)
    assert response.status_code == 422
