import time
from datetime import datetime, timezone

from fastapi.testclient import TestClient

from library_catalog.api import create_app
from library_catalog.config import Settings
from library_catalog.database import StoreError
from library_catalog.library import Library


def _create(client, **payload):
    response = client.post("/api/books", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_get_books_empty(client):
    response = client.get("/api/books")
    assert response.status_code == 200
    assert response.json() == []


def test_create_book_defaults_to_home(client):
    response = client.post("/api/books", json={"title": "Dune", "author": "Herbert"})
    assert response.status_code == 201
    book = response.json()
    assert book["title"] == "Dune"
    assert book["status"] == "home"
    assert book["borrowedBy"] == ""
    assert book["borrowedSince"] == ""
    assert book["coverUrl"] == ""
    assert isinstance(book["id"], int)
    assert book["createdAt"] == book["updatedAt"]
    assert book["createdAt"].endswith("Z")


def test_create_lent_without_borrower_is_rejected(client):
    response = client.post("/api/books", json={"title": "Dune", "author": "Herbert",
                                               "status": "lent", "borrowedBy": ""})
    assert response.status_code == 400
    assert "borrowedBy" in response.json()["error"]
    assert client.get("/api/books").json() == []


def test_create_lent_without_date_uses_today(client):
    before = datetime.now(timezone.utc).date()
    book = _create(client, title="Dune", author="Herbert", status="lent", borrowedBy="Anna")
    after = datetime.now(timezone.utc).date()
    assert book["borrowedSince"] in {before.isoformat(), after.isoformat()}


def test_create_with_too_long_cover_url_is_rejected(client):
    response = client.post("/api/books", json={"title": "Dune", "author": "Herbert",
                                               "coverUrl": "h" * 501})
    assert response.status_code == 400
    assert "coverUrl" in response.json()["error"]


def test_create_with_non_object_body_is_rejected(client):
    response = client.post("/api/books", json=["Dune", "Herbert"])
    assert response.status_code == 400
    assert response.json() == {"error": "Title is required."}


def test_create_with_malformed_json_is_rejected(client):
    response = client.post("/api/books", content=b"{not json",
                           headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert "error" in response.json()


def test_get_single_book(client):
    book = _create(client, title="Dune", author="Herbert", coverUrl="http://covers/dune.jpg")
    response = client.get(f"/api/books/{book['id']}")
    assert response.status_code == 200
    assert response.json() == book


def test_get_missing_book_returns_404(client):
    response = client.get("/api/books/4242")
    assert response.status_code == 404
    assert response.json() == {"error": "Book not found."}


def test_put_home_after_lent_clears_lending_fields(client):
    book = _create(client, title="Dune", author="Herbert", status="lent",
                   borrowedBy="Anna", borrowedSince="2026-10-01")
    response = client.put(f"/api/books/{book['id']}", json={"status": "home"})
    assert response.status_code == 200
    updated = response.json()
    assert updated["status"] == "home"
    assert updated["borrowedBy"] == ""
    assert updated["borrowedSince"] == ""
    assert updated["title"] == "Dune"
    assert updated["createdAt"] == book["createdAt"]


def test_put_missing_book_returns_404(client):
    response = client.put("/api/books/4242", json={"title": "Nope", "author": "Nobody"})
    assert response.status_code == 404
    assert response.json() == {"error": "Book not found."}


def test_put_invalid_returns_400(client):
    book = _create(client, title="Dune", author="Herbert")
    response = client.put(f"/api/books/{book['id']}", json={"status": "lent"})
    assert response.status_code == 400
    assert "borrowedBy" in response.json()["error"]


def test_non_integer_id_is_rejected(client):
    response = client.put("/api/books/abc", json={"title": "Dune"})
    assert response.status_code == 422


def test_delete_book(client):
    book = _create(client, title="Dune", author="Herbert")
    response = client.delete(f"/api/books/{book['id']}")
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert client.get(f"/api/books/{book['id']}").status_code == 404


def test_delete_missing_book_reports_false(client):
    response = client.delete("/api/books/4242")
    assert response.status_code == 200
    assert response.json() == {"ok": False}


def test_list_is_newest_first(client):
    first = _create(client, title="A", author="X")
    second = _create(client, title="B", author="X")
    # Aynı milisaniyede oluşturulsalar bile id azalan sırada gelir
    ids = [b["id"] for b in client.get("/api/books").json()]
    assert ids == [second["id"], first["id"]]


def test_list_filter_query(client):
    _create(client, title="Dune", author="Herbert")
    _create(client, title="Emma", author="Austen", status="lent", borrowedBy="Anna")
    titles = [b["title"] for b in client.get("/api/books", params={"q": "ann"}).json()]
    assert titles == ["Emma"]


def test_store_failure_returns_generic_500(client, monkeypatch):
    async def broken(self, query=None):
        raise StoreError("connection refused: password=hunter2")

    monkeypatch.setattr(Library, "list_books", broken)
    response = client.get("/api/books")
    assert response.status_code == 500
    assert response.json() == {"error": "Server error"}
    assert "hunter2" not in response.text


def test_shutdown_acknowledges(client):
    response = client.post("/api/shutdown")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["db"] is True
    assert response.json()["status"] == "healthy"


def test_root_serves_ui(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "/api/books" in response.text


def test_shutdown_fires_trigger_after_delay(client):
    assert client.post("/api/shutdown").json() == {"ok": True}
    time.sleep(client.app.state.settings.shutdown_delay + 0.3)
    assert client.shutdown_calls == [True]


def test_unexpected_error_returns_generic_500(db_file, monkeypatch):
    async def broken(self, book_id):
        raise KeyError("internal detail: column borrowed_by")

    monkeypatch.setattr(Library, "get_book", broken)
    app = create_app(Settings(db_backend="sqlite", sqlite_file=db_file),
                     shutdown_trigger=lambda: None)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        response = test_client.get("/api/books/1")
    assert response.status_code == 500
    assert response.json() == {"error": "Server error"}
    assert "internal detail" not in response.text


def test_out_of_range_id_on_update_returns_404(client):
    response = client.put("/api/books/99999999999999999999", json={"title": "Dune", "author": "Herbert"})
    assert response.status_code == 404
    assert response.json() == {"error": "Book not found."}


def test_out_of_range_id_on_delete_reports_false(client):
    response = client.delete("/api/books/99999999999999999999")
    assert response.status_code == 200
    assert response.json() == {"ok": False}
    assert client.get("/api/books/-99999999999999999999").status_code == 404
