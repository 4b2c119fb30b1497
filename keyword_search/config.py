"""
Service configuration.

Values come from environment variables, optionally loaded from `.env.local`
(local dev, highest priority) or `.env` at the project root. CLI options are
applied on top by keyword_search.cli.
"""

import ipaddress
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlsplit

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 9069

_env_loaded = False


def load_environment() -> Optional[Path]:
    """
    Load .env.local (preferred) or .env into os.environ, once per process.

    Returns:
        Path of the loaded file, or None if neither exists
    """
    global _env_loaded
    if _env_loaded:
        return None
    _env_loaded = True

    for candidate in (PROJECT_ROOT / ".env.local", PROJECT_ROOT / ".env"):
        if candidate.exists():
            load_dotenv(candidate, override=True)
            logger.info(f"Loaded environment from: {candidate}")
            return candidate

    logger.debug("No .env.local or .env file found - using system environment variables only")
    return None


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


@dataclass
class Settings:
    """Runtime settings for the keyword search server"""

    # Network
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    socket_addr: Optional[str] = None  # "ip:port", overrides host/port
    download_url_prefix: Optional[str] = None

    # Storage
    storage_backend: str = "local"  # "local" | "gcs"
    storage_dir: str = "index_storage"
    gcs_bucket: Optional[str] = None
    gcs_prefix: str = "indexes"
    reload_on_startup: bool = True

    # Index builds
    build_workers: int = 2
    max_pending_builds: int = 8
    max_file_size: int = 100 * 1024 * 1024  # 100MB

    # Ranking
    bm25_k1: float = 1.2
    bm25_b: float = 0.75
    default_top_k: int = 5
    max_top_k: int = 100

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/keyword-search.log"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (call load_environment() first)"""
        return cls(
            host=os.getenv("HOST", DEFAULT_HOST),
            port=_env_int("PORT", DEFAULT_PORT),
            socket_addr=os.getenv("SOCKET_ADDR") or None,
            download_url_prefix=os.getenv("DOWNLOAD_URL_PREFIX") or None,
            storage_backend=os.getenv("STORAGE_BACKEND", "local").lower(),
            storage_dir=os.getenv("INDEX_STORAGE_DIR", "index_storage"),
            gcs_bucket=os.getenv("GCS_BUCKET") or None,
            gcs_prefix=os.getenv("GCS_PREFIX", "indexes"),
            reload_on_startup=_env_bool("RELOAD_ON_STARTUP", True),
            build_workers=_env_int("BUILD_WORKERS", 2),
            max_pending_builds=_env_int("MAX_PENDING_BUILDS", 8),
            max_file_size=_env_int("MAX_FILE_SIZE", 100 * 1024 * 1024),
            bm25_k1=_env_float("BM25_K1", 1.2),
            bm25_b=_env_float("BM25_B", 0.75),
            default_top_k=_env_int("DEFAULT_TOP_K", 5),
            max_top_k=_env_int("MAX_TOP_K", 100),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE", "logs/keyword-search.log"),
        )

    def validate(self) -> "Settings":
        """
        Check settings consistency.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: first invalid setting found
        """
        if self.build_workers < 1:
            raise ConfigurationError(f"build_workers must be >= 1, got {self.build_workers}")
        if self.max_pending_builds < 1:
            raise ConfigurationError(f"max_pending_builds must be >= 1, got {self.max_pending_builds}")
        if self.max_file_size < 1:
            raise ConfigurationError(f"max_file_size must be >= 1, got {self.max_file_size}")
        if self.bm25_k1 < 0:
            raise ConfigurationError(f"bm25_k1 must be >= 0, got {self.bm25_k1}")
        if not 0.0 <= self.bm25_b <= 1.0:
            raise ConfigurationError(f"bm25_b must be within [0, 1], got {self.bm25_b}")
        if self.max_top_k < 1:
            raise ConfigurationError(f"max_top_k must be >= 1, got {self.max_top_k}")
        if not 1 <= self.default_top_k <= self.max_top_k:
            raise ConfigurationError(
                f"default_top_k must be within [1, {self.max_top_k}], got {self.default_top_k}"
            )
        if self.storage_backend not in ("local", "gcs"):
            raise ConfigurationError(
                f"Unknown storage backend: {self.storage_backend}. Valid options: local, gcs"
            )
        if self.storage_backend == "gcs" and not self.gcs_bucket:
            raise ConfigurationError("GCS_BUCKET is required when STORAGE_BACKEND=gcs")
        self.resolve_download_url_prefix()
        return self

    def bind_address(self) -> Tuple[str, int]:
        """
        Resolve the listening (host, port). socket_addr wins over host/port.

        Raises:
            ConfigurationError: malformed socket address or port
        """
        if self.socket_addr:
            host, sep, port = self.socket_addr.rpartition(":")
            host = host.strip("[]")
            if not sep or not host:
                raise ConfigurationError(
                    f"Invalid socket address {self.socket_addr!r}, expected IP:PORT"
                )
            try:
                ipaddress.ip_address(host)
                port_number = int(port)
            except ValueError:
                raise ConfigurationError(
                    f"Invalid socket address {self.socket_addr!r}, expected IP:PORT"
                )
        else:
            host, port_number = self.host, self.port

        if not 0 < port_number < 65536:
            raise ConfigurationError(f"Port must be within 1-65535, got {port_number}")
        return host, port_number

    def resolve_download_url_prefix(self) -> str:
        """
        Base URL used to build `download_url` in create responses.

        Explicit prefix: validated and reduced to scheme://host[:port].
        Otherwise derived from the bind address:
            0.0.0.0:9069   → http://localhost:9069
            10.0.0.5:9069  → http://10.0.0.5:9069

        Raises:
            ConfigurationError: invalid prefix or IPv6 bind address
        """
        if self.download_url_prefix:
            parts = urlsplit(self.download_url_prefix)
            if parts.scheme not in ("http", "https") or not parts.hostname:
                raise ConfigurationError(
                    f"Failed to parse `download_url_prefix`: {self.download_url_prefix!r} "
                    f"(expected http(s)://host[:port])"
                )
            try:
                port = parts.port
            except ValueError as e:
                raise ConfigurationError(f"Failed to parse `download_url_prefix`: {e}")
            host = parts.hostname
            if ":" in host:
                host = f"[{host}]"
            return f"{parts.scheme}://{host}:{port}" if port else f"{parts.scheme}://{host}"

        host, port = self.bind_address()
        if host in ("localhost", ""):
            return f"http://localhost:{port}"
        try:
            address = ipaddress.ip_address(host)
        except ValueError:
            # Hostname binding (e.g. HOST=myserver.local)
            return f"http://{host}:{port}"
        if address.version == 6:
            raise ConfigurationError("ipv6 is not supported")
        if address.is_unspecified:
            return f"http://localhost:{port}"
        return f"http://{address}:{port}"

    def download_url(self, index_name: str) -> str:
        return f"{self.resolve_download_url_prefix()}/v1/index/download/{index_name}"
