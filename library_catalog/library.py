import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from library_catalog.book import Book
from library_catalog.database import initialize_database
from library_catalog.validators import BookInput, sanitize_book

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# INTEGER / BIGINT kimlik aralığı (işaretli 64 bit)
MIN_BOOK_ID = -2 ** 63
MAX_BOOK_ID = 2 ** 63 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601, milisaniye hassasiyetinde ve 'Z' sonekiyle (2026-10-19T08:15:00.123Z)."""
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Library:
    """Kitap koleksiyonunu ve veri kalıcılığını yönetir.

    Depo istemcisi dışarıdan verilir; açma/kapatma sorumluluğu çağırana aittir.
    """

    def __init__(self, store, clock: Clock = utcnow) -> None:
        self.store = store
        self.clock = clock

    async def init_schema(self) -> None:
        await initialize_database(self.store)

    async def ping(self) -> bool:
        row = await self.store.fetch_one("SELECT 1 AS ok")
        return bool(row)

    # ------------------------- Çekirdek işlemler ------------------------- #
    async def list_books(self, query: Optional[str] = None) -> List[Book]:
        """Tüm kitapları en son güncellenen önce gelecek şekilde listele.

        `query` verilirse başlık, yazar ve ödünç alan kişi içinde büyük/küçük harf
        duyarsız alt dize araması yapılır.
        """
        rows = await self.store.fetch_all(
            "SELECT * FROM books ORDER BY updated_at DESC, id DESC"
        )
        books = [Book.from_row(row) for row in rows]
        needle = (query or "").strip().casefold()
        if not needle:
            return books
        return [
            b for b in books
            if needle in b.title.casefold()
            or needle in b.author.casefold()
            or needle in b.borrowed_by.casefold()
        ]

    async def count_books(self) -> int:
        row = await self.store.fetch_one("SELECT COUNT(*) AS total FROM books")
        return int(row["total"]) if row else 0

    async def get_book(self, book_id: int) -> Optional[Book]:
        if not MIN_BOOK_ID <= book_id <= MAX_BOOK_ID:
            return None
        row = await self.store.fetch_one("SELECT * FROM books WHERE id = %s", (book_id,))
        return Book.from_row(row) if row else None

    async def create_book(self, payload: Any) -> Book:
        now = self.clock()
        data = sanitize_book(payload, today=now.date())
        ts = format_timestamp(now)
        row = await self.store.fetch_one(
            """
            INSERT INTO books (title, author, status, borrowed_by, borrowed_since, cover_url, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (data.title, data.author, data.status, data.borrowed_by,
             data.borrowed_since, data.cover_url, ts, ts),
        )
        book = Book.from_row(row)
        logger.info(f"Kitap eklendi: #{book.id} {book.title!r}")
        return book

    async def update_book(self, book_id: int, payload: Any) -> Optional[Book]:
        """Mevcut kaydı gelen alanlarla birleştirip yeniden doğrular.

        Kitap yoksa None döner. Durum "home" olarak kaydedilirse ödünç bilgileri
        her zaman temizlenir.
        """
        existing = await self.get_book(book_id)
        if existing is None:
            return None

        merged = {**existing.fields(), **BookInput.canonical_fields(payload)}
        now = self.clock()
        data = sanitize_book(merged, today=now.date())
        row = await self.store.fetch_one(
            """
            UPDATE books
            SET title = %s,
                author = %s,
                status = %s,
                borrowed_by = %s,
                borrowed_since = %s,
                cover_url = %s,
                updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (data.title, data.author, data.status, data.borrowed_by,
             data.borrowed_since, data.cover_url, format_timestamp(now), book_id),
        )
        # Okuma ile yazma arasında silinmiş olabilir
        if row is None:
            return None
        book = Book.from_row(row)
        logger.info(f"Kitap güncellendi: #{book.id} ({book.status})")
        return book

    async def delete_book(self, book_id: int) -> bool:
        if not MIN_BOOK_ID <= book_id <= MAX_BOOK_ID:
            return False
        removed = await self.store.execute("DELETE FROM books WHERE id = %s", (book_id,))
        if removed > 0:
            logger.info(f"Kitap silindi: #{book_id}")
            return True
        return False
