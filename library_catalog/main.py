import asyncio
import dataclasses
import logging
from typing import Any, Awaitable, Callable, List, Optional

import typer
import uvicorn
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from library_catalog.book import STATUS_HOME, STATUS_LENT, Book
from library_catalog.config import Settings, settings as default_settings
from library_catalog.database import StoreError, create_store
from library_catalog.library import Library
from library_catalog.validators import BookValidationError

APP_NAME = "Library Catalog CLI"

app = typer.Typer(name="library-catalog", help="Ev kütüphanesi kataloğu", add_completion=False)
console = Console()

state = {"settings": default_settings}


@app.callback()
def main(
    db_file: Optional[str] = typer.Option(
        None, "--db-file", help="Verilen SQLite dosyasını kullan (DB_BACKEND ayarını geçersiz kılar)."
    ),
):
    """Kitapları ekle, ödünç ver, geri al ve listele."""
    settings = default_settings
    if db_file:
        settings = dataclasses.replace(settings, db_backend="sqlite", sqlite_file=db_file)
    state["settings"] = settings
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run(action: Callable[[Library], Awaitable[Any]]) -> Any:
    """Depoyu aç, şemayı hazırla, işlemi çalıştır ve depoyu kapat."""
    settings: Settings = state["settings"]

    async def runner():
        store = create_store(settings)
        await store.open()
        try:
            library = Library(store)
            await library.init_schema()
            return await action(library)
        finally:
            await store.close()

    try:
        return asyncio.run(runner())
    except BookValidationError as e:
        console.print(f"[bold red]Doğrulama hatası:[/] {escape(str(e))}")
        raise typer.Exit(code=1)
    except StoreError as e:
        console.print(f"[bold red]Veritabanı hatası:[/] {escape(str(e))}")
        raise typer.Exit(code=1)


def _print_books(books: List[Book]) -> None:
    table = Table(title=APP_NAME, box=box.ROUNDED)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Author")
    table.add_column("Status")
    table.add_column("Details")
    for b in books:
        status = "[yellow]lent[/]" if b.is_lent else "[green]home[/]"
        details = f"{escape(b.borrowed_by)} • {b.borrowed_since}" if b.is_lent else "—"
        table.add_row(str(b.id), escape(b.title), escape(b.author), status, details)
    console.print(table)


def _report_missing(book_id: int) -> None:
    console.print(f"[bold red]No book with id {book_id}.[/]")
    raise typer.Exit(code=1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Dinlenecek adres (varsayılan: API_HOST)."),
    port: Optional[int] = typer.Option(None, help="Dinlenecek port (varsayılan: PORT)."),
):
    """API'yi ve arayüzü uvicorn ile çalıştır."""
    from library_catalog.api import create_app

    settings: Settings = state["settings"]
    host = host or settings.api_host
    port = port or settings.api_port
    console.print(f"[green]API running on http://{host}:{port}[/]")
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())


@app.command("init-db")
def init_db():
    """Şemayı oluştur (tekrar çalıştırmak güvenlidir)."""
    total = _run(lambda library: library.count_books())
    console.print(f"[green]Database ready.[/] {total} book(s) in catalog.")


@app.command("list")
def list_books(query: Optional[str] = typer.Option(None, "--query", "-q", help="Başlık/yazar/ödünç alan araması.")):
    """Kitapları en son güncellenen önce olacak şekilde listele."""
    books = _run(lambda library: library.list_books(query))
    if not books:
        console.print("No books in catalog.")
        return
    _print_books(books)


@app.command()
def add(
    title: str,
    author: str,
    cover_url: str = typer.Option("", "--cover-url", help="Kapak görseli adresi."),
):
    """Yeni bir kitap ekle (durum: home)."""
    book = _run(lambda library: library.create_book(
        {"title": title, "author": author, "status": STATUS_HOME, "coverUrl": cover_url}
    ))
    console.print(f"[green]Added:[/] #{book.id} {escape(book.title)} by {escape(book.author)}")


@app.command()
def lend(
    book_id: int,
    borrower: str,
    since: str = typer.Option("", "--since", help="YYYY-MM-DD; boşsa bugünün tarihi."),
):
    """Kitabı ödünç verilmiş olarak işaretle."""
    book = _run(lambda library: library.update_book(
        book_id, {"status": STATUS_LENT, "borrowedBy": borrower, "borrowedSince": since}
    ))
    if book is None:
        _report_missing(book_id)
    console.print(f"[yellow]Lent:[/] #{book.id} {escape(book.title)} to {escape(book.borrowed_by)} "
                  f"since {book.borrowed_since}")


@app.command("return")
def return_book(book_id: int):
    """Kitabı geri alındı (home) olarak işaretle."""
    book = _run(lambda library: library.update_book(book_id, {"status": STATUS_HOME}))
    if book is None:
        _report_missing(book_id)
    console.print(f"[green]Returned:[/] #{book.id} {escape(book.title)} is back home.")


@app.command()
def remove(book_id: int):
    """Kitabı katalogdan sil."""
    removed = _run(lambda library: library.delete_book(book_id))
    if not removed:
        _report_missing(book_id)
    console.print(f"Book with id {book_id} has been removed.")


if __name__ == "__main__":
    app()
