from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, field_validator

from library_catalog.book import STATUS_HOME, STATUS_LENT

COVER_URL_MAX_LENGTH = 500

# Kanonik ad -> kabul edilen anahtarlar (önce camelCase, sonra eski snake_case)
FIELD_ALIASES = {
    "borrowed_by": ("borrowedBy", "borrowed_by"),
    "borrowed_since": ("borrowedSince", "borrowed_since"),
    "cover_url": ("coverUrl", "cover_url"),
}
PLAIN_FIELDS = ("title", "author", "status")


class BookValidationError(ValueError):
    """İstemci verisi bir alan kısıtını ihlal ettiğinde yükseltilir."""


def coerce_text(value: Any) -> str:
    """Gevşek tipli bir değeri metne çevirir (None -> "")."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    return str(value)


class BookInput(BaseModel):
    """İstemciden gelen ham kitap verisinin kanonik adlarla ifadesi.

    Tüm alanlar isteğe bağlıdır; zorunluluk kontrolleri `sanitize_book` içinde yapılır.
    """

    title: str = ""
    author: str = ""
    status: str = STATUS_HOME
    borrowed_by: str = ""
    borrowed_since: str = ""
    cover_url: str = ""

    @field_validator("title", "author", "borrowed_by", "borrowed_since", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return coerce_text(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> str:
        # Yalnızca tam eşleşme "lent" sayılır, geri kalan her şey "home"
        return STATUS_LENT if value == STATUS_LENT else STATUS_HOME

    @field_validator("cover_url", mode="before")
    @classmethod
    def _coerce_cover_url(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @staticmethod
    def canonical_fields(payload: Any) -> Dict[str, Any]:
        """Payload'da bulunan (None olmayan) alanları kanonik adlarıyla döndürür.

        Sözlük olmayan payload'lar boş kabul edilir.
        """
        if not isinstance(payload, Mapping):
            return {}
        fields: Dict[str, Any] = {}
        for name in PLAIN_FIELDS:
            if payload.get(name) is not None:
                fields[name] = payload[name]
        for name, keys in FIELD_ALIASES.items():
            for key in keys:
                value = payload.get(key)
                if value is None:
                    continue
                # Kapak adresinde yalnızca metin değerler sayılır
                if name == "cover_url" and not isinstance(value, str):
                    continue
                fields[name] = value
                break
        return fields

    @classmethod
    def from_payload(cls, payload: Any) -> "BookInput":
        return cls(**cls.canonical_fields(payload))


@dataclass(frozen=True)
class BookFields:
    """Doğrulanmış, kalıcı hale getirilmeye hazır kitap alanları."""

    title: str
    author: str
    status: str
    borrowed_by: str
    borrowed_since: str
    cover_url: str

    def as_dict(self) -> Dict[str, str]:
        return asdict(self)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def sanitize_book(payload: Any, today: Optional[date] = None) -> BookFields:
    """Ham girdiyi doğrulayıp kanonik kayda dönüştürür.

    Geçersiz girdide `BookValidationError` yükseltir. Ödünç verilmiş ve tarihi
    olmayan kayıtlar için `today` (varsayılan: bugünün UTC tarihi) kullanılır.
    """
    data = payload if isinstance(payload, BookInput) else BookInput.from_payload(payload)

    title = data.title.strip()
    author = data.author.strip()
    if not title:
        raise BookValidationError("Title is required.")
    if not author:
        raise BookValidationError("Author is required.")

    cover_url = data.cover_url.strip()
    if len(cover_url) > COVER_URL_MAX_LENGTH:
        raise BookValidationError(
            f"Cover URL (coverUrl) is too long, maximum is {COVER_URL_MAX_LENGTH} characters."
        )

    borrowed_by = data.borrowed_by.strip()
    borrowed_since = data.borrowed_since.strip()
    if data.status == STATUS_HOME:
        borrowed_by = ""
        borrowed_since = ""
    else:
        if not borrowed_by:
            raise BookValidationError("Borrower (borrowedBy) is required when status is 'lent'.")
        if not borrowed_since:
            borrowed_since = (today or today_utc()).isoformat()

    return BookFields(
        title=title,
        author=author,
        status=data.status,
        borrowed_by=borrowed_by,
        borrowed_since=borrowed_since,
        cover_url=cover_url,
    )
