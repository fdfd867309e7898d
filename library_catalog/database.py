import asyncio
import logging
import os
import queue
import sqlite3
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

import psycopg
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from library_catalog.config import Settings

logger = logging.getLogger(__name__)

Params = Sequence[Any]
Row = Dict[str, Any]

# Şema tanımları, her iki arka uç için de tekrar tekrar çalıştırılabilir
CREATE_TABLE = {
    "postgres": """
        CREATE TABLE IF NOT EXISTS books (
            id SERIAL PRIMARY KEY,
            title TEXT NOT NULL,
            author TEXT NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('home', 'lent')),
            borrowed_by TEXT,
            borrowed_since TEXT,
            cover_url TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "sqlite": """
        CREATE TABLE IF NOT EXISTS books (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            author TEXT NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('home', 'lent')),
            borrowed_by TEXT,
            borrowed_since TEXT,
            cover_url TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
}

# Eski tablolar için ek sütunlar. SQLite "IF NOT EXISTS" desteklemez; sütun zaten
# varsa hata verir ve bu hata yutulur.
MIGRATIONS = {
    "postgres": ["ALTER TABLE books ADD COLUMN IF NOT EXISTS cover_url TEXT"],
    "sqlite": ["ALTER TABLE books ADD COLUMN cover_url TEXT"],
}

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS books_updated_at_idx ON books (updated_at DESC)",
]


class StoreError(RuntimeError):
    """Veritabanı bağlantı veya sorgu hatası."""


class SqliteStore:
    """Sınırlı bir bağlantı havuzu ile SQLite deposu.

    Her sorgu `asyncio.to_thread` ile bir iş parçacığında çalışır, böylece olay
    döngüsü engellenmez. Sorgular `%s` yer tutucularıyla yazılır.
    """

    dialect = "sqlite"

    def __init__(self, db_file: str, pool_size: int = 5, connect_timeout: float = 5.0) -> None:
        self.db_file = db_file
        self.pool_size = pool_size
        self.connect_timeout = connect_timeout
        self._pool: Optional[queue.Queue] = None
        self._created = 0
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_file, check_same_thread=False, timeout=self.connect_timeout)
        conn.row_factory = sqlite3.Row
        # Eşzamanlı okuma/yazma için WAL modu
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    async def open(self) -> None:
        if self._pool is not None:
            return
        directory = os.path.dirname(os.path.abspath(self.db_file))
        os.makedirs(directory, exist_ok=True)
        self._pool = queue.Queue(maxsize=self.pool_size)
        self._created = 0
        logger.info(f"SQLite deposu açıldı: {self.db_file} (havuz={self.pool_size})")

    async def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is None:
            return
        while True:
            try:
                pool.get_nowait().close()
            except queue.Empty:
                break
        logger.info("SQLite deposu kapatıldı")

    def _acquire(self) -> sqlite3.Connection:
        if self._pool is None:
            raise StoreError("Store is not open.")
        try:
            return self._pool.get_nowait()
        except queue.Empty:
            pass
        with self._lock:
            can_create = self._created < self.pool_size
            if can_create:
                self._created += 1
        if can_create:
            try:
                return self._connect()
            except sqlite3.Error as e:
                with self._lock:
                    self._created -= 1
                raise StoreError(f"Could not connect to SQLite: {e}") from e
        try:
            return self._pool.get(timeout=self.connect_timeout)
        except queue.Empty as e:
            raise StoreError("Timed out waiting for a database connection.") from e

    def _release(self, conn: sqlite3.Connection) -> None:
        pool = self._pool
        if pool is None:
            conn.close()
            return
        try:
            pool.put_nowait(conn)
        except queue.Full:
            conn.close()

    def _run(self, sql: str, params: Params) -> Tuple[List[Row], int]:
        conn = self._acquire()
        try:
            cursor = conn.execute(sql.replace("%s", "?"), tuple(params))
            rows = [dict(row) for row in cursor.fetchall()]
            rowcount = cursor.rowcount
            conn.commit()
            return rows, rowcount
        except (sqlite3.Error, OverflowError) as e:
            # OverflowError: parametre SQLite INTEGER aralığına sığmıyor
            conn.rollback()
            raise StoreError(str(e)) from e
        finally:
            self._release(conn)

    async def fetch_all(self, sql: str, params: Params = ()) -> List[Row]:
        rows, _ = await asyncio.to_thread(self._run, sql, params)
        return rows

    async def fetch_one(self, sql: str, params: Params = ()) -> Optional[Row]:
        rows = await self.fetch_all(sql, params)
        return rows[0] if rows else None

    async def execute(self, sql: str, params: Params = ()) -> int:
        _, rowcount = await asyncio.to_thread(self._run, sql, params)
        return rowcount


class PostgresStore:
    """psycopg asenkron bağlantı havuzu üzerinden PostgreSQL deposu."""

    dialect = "postgres"

    def __init__(self, conninfo: str, max_size: int = 10, idle_timeout: float = 30.0,
                 connect_timeout: float = 5.0) -> None:
        self.conninfo = conninfo
        self.max_size = max_size
        self.idle_timeout = idle_timeout
        self.connect_timeout = connect_timeout
        self._pool = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresStore":
        conninfo = make_conninfo(
            host=settings.db_host,
            port=settings.db_port,
            user=settings.db_user,
            password=settings.db_password,
            dbname=settings.db_name,
        )
        return cls(
            conninfo,
            max_size=settings.db_pool_max,
            idle_timeout=settings.db_idle_timeout,
            connect_timeout=settings.db_connect_timeout,
        )

    async def open(self) -> None:
        if self._pool is not None:
            return
        pool = AsyncConnectionPool(
            self.conninfo,
            min_size=1,
            max_size=self.max_size,
            max_idle=self.idle_timeout,
            timeout=self.connect_timeout,
            kwargs={"autocommit": True, "row_factory": dict_row},
            open=False,
        )
        try:
            await pool.open(wait=True, timeout=self.connect_timeout)
        except psycopg.Error as e:
            # PoolTimeout da psycopg.OperationalError alt sınıfıdır
            await pool.close()
            raise StoreError(f"Could not connect to PostgreSQL: {e}") from e
        self._pool = pool
        logger.info(f"PostgreSQL havuzu açıldı (max_size={self.max_size})")

    async def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()
            logger.info("PostgreSQL havuzu kapatıldı")

    async def _run(self, sql: str, params: Params, fetch: bool) -> Tuple[List[Row], int]:
        if self._pool is None:
            raise StoreError("Store is not open.")
        try:
            async with self._pool.connection() as conn:
                cursor = await conn.execute(sql, tuple(params) or None)
                rows = await cursor.fetchall() if fetch and cursor.description else []
                return rows, cursor.rowcount
        except psycopg.Error as e:
            raise StoreError(str(e)) from e

    async def fetch_all(self, sql: str, params: Params = ()) -> List[Row]:
        rows, _ = await self._run(sql, params, fetch=True)
        return rows

    async def fetch_one(self, sql: str, params: Params = ()) -> Optional[Row]:
        rows = await self.fetch_all(sql, params)
        return rows[0] if rows else None

    async def execute(self, sql: str, params: Params = ()) -> int:
        _, rowcount = await self._run(sql, params, fetch=False)
        return rowcount


def create_store(settings: Settings):
    """Ayarlara göre yapılandırılmış (henüz açılmamış) bir depo döndürür."""
    if settings.db_backend == "sqlite":
        return SqliteStore(
            settings.sqlite_file,
            pool_size=settings.db_pool_max,
            connect_timeout=settings.db_connect_timeout,
        )
    if settings.db_backend == "postgres":
        return PostgresStore.from_settings(settings)
    raise ValueError(f"Unknown DB_BACKEND: {settings.db_backend!r} (expected 'postgres' or 'sqlite')")


async def create_tables(store) -> None:
    """Veritabanında mevcut değilse kitap tablosunu ve dizinlerini oluşturur."""
    await store.execute(CREATE_TABLE[store.dialect])
    for statement in MIGRATIONS[store.dialect]:
        try:
            await store.execute(statement)
        except StoreError as e:
            # Zaten uygulanmış geçiş, zararsız
            logger.debug(f"Geçiş atlandı ({statement}): {e}")
    for statement in CREATE_INDEXES:
        await store.execute(statement)


async def initialize_database(store) -> None:
    """Şemayı hazırlar; her başlangıçta çağrılması güvenlidir."""
    await create_tables(store)
    logger.info(f"Veritabanı şeması hazır ({store.dialect})")
