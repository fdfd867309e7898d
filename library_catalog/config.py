import os
from dataclasses import dataclass, field
from typing import List
from dotenv import load_dotenv

from library_catalog import __version__

load_dotenv()


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class Settings:
    # API Ayarları
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("PORT", "3001"))
    cors_origins: List[str] = field(default_factory=lambda: _env_list("CORS_ORIGINS", "*"))
    # Kapatma isteği onaylandıktan sonra SIGTERM gönderilmeden önceki bekleme
    shutdown_delay: float = float(os.getenv("SHUTDOWN_DELAY", "0.2"))

    # Veritabanı Ayarları
    db_backend: str = os.getenv("DB_BACKEND", "postgres").lower()  # postgres | sqlite
    db_host: str = os.getenv("DB_HOST", "localhost")
    db_port: int = int(os.getenv("DB_PORT", "5432"))
    db_user: str = os.getenv("DB_USER", "postgres")
    db_password: str = os.getenv("DB_PASSWORD", "postgres")
    db_name: str = os.getenv("DB_NAME", "appdb")
    db_pool_max: int = int(os.getenv("DB_POOL_MAX", "10"))
    db_idle_timeout: float = float(os.getenv("DB_IDLE_TIMEOUT", "30"))
    db_connect_timeout: float = float(os.getenv("DB_CONNECT_TIMEOUT", "5"))
    sqlite_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")

    # Uygulama Ayarları
    app_name: str = os.getenv("APP_NAME", "Home Library Catalog")
    app_version: str = os.getenv("APP_VERSION", __version__)
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
