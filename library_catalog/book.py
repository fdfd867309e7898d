from __future__ import annotations

from typing import Any, Mapping

STATUS_HOME = "home"
STATUS_LENT = "lent"


class Book:
    """Katalogdaki tek bir kitap kaydını temsil eder."""

    def __init__(self, id: int, title: str, author: str, status: str = STATUS_HOME,
                 borrowed_by: str = "", borrowed_since: str = "", cover_url: str = "",
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.title = title
        self.author = author
        self.status = status
        self.borrowed_by = borrowed_by
        self.borrowed_since = borrowed_since
        self.cover_url = cover_url
        self.created_at = created_at
        self.updated_at = updated_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (#{self.id})"

    def __repr__(self) -> str:  # pragma: no cover
        return f"Book(id={self.id!r}, title={self.title!r}, status={self.status!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    @property
    def is_lent(self) -> bool:
        return self.status == STATUS_LENT

    def fields(self) -> dict:
        """Düzenlenebilir alanlar, kanonik (snake_case) adlarla."""
        return {
            "title": self.title,
            "author": self.author,
            "status": self.status,
            "borrowed_by": self.borrowed_by,
            "borrowed_since": self.borrowed_since,
            "cover_url": self.cover_url,
        }

    def to_dict(self) -> dict:
        """API'nin döndürdüğü JSON şekli (camelCase)."""
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "status": self.status,
            "borrowedBy": self.borrowed_by,
            "borrowedSince": self.borrowed_since,
            "coverUrl": self.cover_url,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Book":
        # Eski satırlarda NULL kalmış sütunlar boş dize olarak normalleştirilir
        return Book(
            id=row["id"],
            title=row["title"],
            author=row["author"],
            status=row["status"],
            borrowed_by=row.get("borrowed_by") or "",
            borrowed_since=row.get("borrowed_since") or "",
            cover_url=row.get("cover_url") or "",
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
