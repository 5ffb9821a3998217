from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from clipcloud.database.mysql import MySQLMetadataStore
from clipcloud.database.redis_manager import RedisManager
from clipcloud.utils.file_manager import FilePayloadStore


def _load_env_file(env_path: Optional[Path] = None) -> None:
    # real environment variables win over .env entries
    if env_path is not None:
        load_dotenv(env_path, override=False)
    else:
        load_dotenv(override=False)


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    ssl: bool = False

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "RedisConfig":
        _load_env_file(env_path)

        uri = os.getenv("REDIS_URI")
        if uri:
            return cls.from_uri(uri)

        host = os.getenv("REDIS_HOST", cls.host)
        port_raw = os.getenv("REDIS_PORT")
        db_raw = os.getenv("REDIS_DB")
        password = os.getenv("REDIS_PASSWORD") or None

        port = int(port_raw) if port_raw else cls.port
        db = int(db_raw) if db_raw else cls.db

        return cls(host=host, port=port, db=db, password=password)

    @classmethod
    def from_uri(cls, uri: str) -> "RedisConfig":
        parsed = urlparse(uri)
        if parsed.scheme not in {"redis", "rediss"}:
            raise ValueError(
                f"Unsupported Redis URI scheme: {parsed.scheme!r}")

        host = parsed.hostname or cls.host
        port = parsed.port or cls.port
        password = parsed.password or None
        db_fragment = parsed.path.lstrip("/")
        db = int(db_fragment) if db_fragment else cls.db

        return cls(host=host, port=port, db=db, password=password,
                   ssl=parsed.scheme == "rediss")

    def create_manager(self) -> RedisManager:
        return RedisManager(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            ssl=self.ssl,
        )


@dataclass(frozen=True)
class MySQLConfig:
    host: str = "127.0.0.1"
    user: str = "root"
    password: str = ""
    database: str = "clipscape"
    port: int = 3306

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "MySQLConfig":
        _load_env_file(env_path)
        return cls(
            host=os.getenv("MYSQL_HOST", cls.host),
            user=os.getenv("MYSQL_USER", cls.user),
            password=os.getenv("MYSQL_PASS", cls.password),
            database=os.getenv("MYSQL_DB", cls.database),
            port=int(os.getenv("MYSQL_PORT", str(cls.port))),
        )

    def create_store(self) -> MySQLMetadataStore:
        return MySQLMetadataStore(
            host=self.host,
            user=self.user,
            password=self.password,
            database=self.database,
            port=self.port,
        )


@dataclass(frozen=True)
class StorageConfig:
    payload_dir: Path = Path.home() / ".clipscape" / "payloads"

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "StorageConfig":
        _load_env_file(env_path)
        raw = os.getenv("CLIPBOARD_PAYLOAD_DIR")
        return cls(payload_dir=Path(raw).expanduser()) if raw else cls()

    def create_payload_store(self) -> FilePayloadStore:
        return FilePayloadStore(self.payload_dir)


@dataclass(frozen=True)
class ClipboardSettings:
    """Paging and retention limits applied by the coordinator."""
    default_page_size: int = 50
    max_page_size: int = 100
    max_items_per_owner: int = 200

    def __post_init__(self) -> None:
        for name in ("default_page_size", "max_page_size", "max_items_per_owner"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "ClipboardSettings":
        _load_env_file(env_path)
        return cls(
            default_page_size=_positive_int("CLIPBOARD_DEFAULT_PAGE_SIZE", cls.default_page_size),
            max_page_size=_positive_int("CLIPBOARD_MAX_PAGE_SIZE", cls.max_page_size),
            max_items_per_owner=_positive_int("CLIPBOARD_MAX_ITEMS_PER_OWNER", cls.max_items_per_owner),
        )
