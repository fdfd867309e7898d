import asyncio
import logging
import os
import signal
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from library_catalog.config import Settings, settings as default_settings
from library_catalog.database import StoreError, create_store
from library_catalog.library import Library
from library_catalog.validators import BookValidationError

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


class BookModel(BaseModel):
    id: int
    title: str
    author: str
    status: str
    borrowedBy: str = ""
    borrowedSince: str = ""
    coverUrl: str = ""
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class DeleteResultModel(BaseModel):
    ok: bool


class HealthModel(BaseModel):
    status: str
    db: bool
    version: str


def _terminate_process() -> None:
    """Uvicorn'un düzgün kapanması için sürecin kendisine SIGTERM gönder."""
    os.kill(os.getpid(), signal.SIGTERM)


def get_library(request: Request) -> Library:
    return request.app.state.library


def _as_object(payload: Any) -> Dict[str, Any]:
    # JSON nesnesi olmayan gövdeler boş nesne sayılır ve doğrulamada reddedilir
    return payload if isinstance(payload, dict) else {}


def create_app(settings: Optional[Settings] = None, store=None,
               shutdown_trigger: Callable[[], None] = _terminate_process) -> FastAPI:
    """FastAPI uygulamasını oluşturur.

    Depo verilmezse ayarlardan oluşturulur. Depo, uygulamanın yaşam döngüsü
    boyunca açık kalır: başlangıçta açılır ve şema hazırlanır, kapanışta kapatılır.
    """
    settings = settings or default_settings
    store = store if store is not None else create_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.open()
        try:
            library = Library(store)
            await library.init_schema()
            app.state.library = library
            yield
        finally:
            await store.close()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.shutdown_trigger = shutdown_trigger

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Hata işleyicileri ---
    # Tüm hata gövdeleri {"error": "..."} şeklindedir
    @app.exception_handler(BookValidationError)
    async def validation_error_handler(request: Request, exc: BookValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Veritabanı hatası: {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Server error"})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail},
                            headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def request_error_handler(request: Request, exc: RequestValidationError):
        if any(err.get("loc", ("",))[0] == "path" for err in exc.errors()):
            return JSONResponse(status_code=422, content={"error": "Invalid book id."})
        # Bozuk JSON gövdesi
        return JSONResponse(status_code=400, content={"error": "Invalid request body."})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Beklenmeyen hata: {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Server error"})

    # --- Kitaplar ---
    @app.get("/api/books", response_model=List[BookModel])
    async def list_books(q: Optional[str] = Query(None, description="Başlık/yazar/ödünç alan içinde arama"),
                         library: Library = Depends(get_library)):
        books = await library.list_books(q)
        return [b.to_dict() for b in books]

    @app.get("/api/books/{book_id}", response_model=BookModel)
    async def get_book(book_id: int, library: Library = Depends(get_library)):
        book = await library.get_book(book_id)
        if book is None:
            raise HTTPException(status_code=404, detail="Book not found.")
        return book.to_dict()

    @app.post("/api/books", response_model=BookModel, status_code=201)
    async def create_book(payload: Any = Body(None), library: Library = Depends(get_library)):
        book = await library.create_book(_as_object(payload))
        return book.to_dict()

    @app.put("/api/books/{book_id}", response_model=BookModel)
    async def update_book(book_id: int, payload: Any = Body(None),
                          library: Library = Depends(get_library)):
        book = await library.update_book(book_id, _as_object(payload))
        if book is None:
            raise HTTPException(status_code=404, detail="Book not found.")
        return book.to_dict()

    @app.delete("/api/books/{book_id}", response_model=DeleteResultModel)
    async def delete_book(book_id: int, library: Library = Depends(get_library)):
        return {"ok": await library.delete_book(book_id)}

    # --- Yardımcı uç noktalar ---
    @app.post("/api/shutdown")
    async def shutdown(request: Request):
        """Hemen onay döndürür, kısa bir süre sonra süreci sonlandırır."""
        logger.warning("Kapatma isteği alındı")
        loop = asyncio.get_running_loop()
        loop.call_later(settings.shutdown_delay, request.app.state.shutdown_trigger)
        return {"ok": True}

    @app.get("/health", response_model=HealthModel)
    async def health(library: Library = Depends(get_library)):
        """Hafif sağlık uç noktası; veritabanına hızlı bir sorgu atar."""
        try:
            db_ok = await library.ping()
        except StoreError:
            db_ok = False
        return {"status": "healthy" if db_ok else "degraded", "db": db_ok,
                "version": settings.app_version}

    # --- Statik Dosyalar ---
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    @app.get("/", include_in_schema=False)
    def read_root():
        """Ana HTML sayfasını sun."""
        return FileResponse(STATIC_DIR / "index.html")

    return app


app = create_app()
