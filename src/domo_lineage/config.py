import os
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass
from dotenv import load_dotenv, find_dotenv


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class LineageConfig:
    """Configuration for the lineage client"""

    # Vendor API settings
    domo_api_host: Optional[str] = None
    domo_api_token: Optional[str] = None
    offline: bool = False
    request_timeout: float = 10
    max_retries: int = 3

    # Cache settings
    cache_dir: str = ".cache"
    cache_ttl_seconds: float = 3600
    use_file_cache: bool = False

    # Traversal bounds
    lineage_max_depth: int = 3
    lineage_max_nodes: int = 500
    remote_max_depth: int = 50
    max_concurrency: int = 8

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'LineageConfig':
        """Create config from environment variables"""
        if env_file:
            load_dotenv(env_file)
        else:
            env_file = find_dotenv(usecwd=True)
            if env_file:
                load_dotenv(env_file)

        return cls(
            # Vendor API settings
            domo_api_host=os.getenv("DOMO_API_HOST"),
            domo_api_token=os.getenv("DOMO_API_TOKEN"),
            offline=_env_bool("DOMO_OFFLINE"),
            request_timeout=float(os.getenv("DOMO_REQUEST_TIMEOUT", "10")),
            max_retries=int(os.getenv("DOMO_MAX_RETRIES", "3")),

            # Cache settings
            cache_dir=os.getenv("DOMO_CACHE_DIR", ".cache"),
            cache_ttl_seconds=float(os.getenv("DOMO_CACHE_TTL", "3600")),
            use_file_cache=_env_bool("DOMO_USE_FILE_CACHE"),

            # Traversal bounds
            lineage_max_depth=int(os.getenv("LINEAGE_MAX_DEPTH", "3")),
            lineage_max_nodes=int(os.getenv("LINEAGE_MAX_NODES", "500")),
            remote_max_depth=int(os.getenv("LINEAGE_REMOTE_MAX_DEPTH", "50")),
            max_concurrency=int(os.getenv("LINEAGE_MAX_CONCURRENCY", "8")),
        )

    def validate(self) -> None:
        """Validate configuration"""
        if not self.offline:
            if not self.domo_api_host:
                raise ValueError("DOMO_API_HOST is required when not in offline mode")
            if not self.domo_api_token:
                raise ValueError("DOMO_API_TOKEN is required when not in offline mode")

        if self.lineage_max_depth < 0:
            raise ValueError("Lineage max depth must not be negative")
        if self.lineage_max_nodes < 1:
            raise ValueError("Lineage max nodes must be at least 1")
        if self.remote_max_depth < 1:
            raise ValueError("Remote lineage max depth must be at least 1")
        if self.max_concurrency < 1:
            raise ValueError("Max concurrency must be at least 1")

    @property
    def base_url(self) -> Optional[str]:
        if not self.domo_api_host:
            return None
        host = self.domo_api_host.strip().rstrip("/")
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        return host

    def get_client_config(self) -> Dict[str, Any]:
        """Get connector configuration"""
        return {
            "base_url": self.base_url,
            "token": self.domo_api_token,
            "timeout": self.request_timeout,
            "max_retries": self.max_retries,
        }


class LineageSetup:
    """Wires cache, connector, adapter and service from a config"""

    def __init__(self, config: LineageConfig, offline_file: Optional[str] = None):
        self.config = config
        self.offline_file = offline_file
        self.cache = None
        self.connector = None
        self.source = None
        self.adapter = None
        self.service = None

    def setup(self) -> None:
        """Setup all components based on configuration"""
        self._setup_cache()
        self._setup_sources()
        self._setup_service()

    def _setup_cache(self) -> None:
        from .cache import CacheManager

        self.cache = CacheManager(
            ttl_seconds=self.config.cache_ttl_seconds,
            use_file_cache=self.config.use_file_cache,
            cache_dir=Path(self.config.cache_dir),
        )

    def _setup_sources(self) -> None:
        """Offline export file wins over the live API"""
        if self.offline_file:
            from .platforms.json_file import JsonFileSource
            self.source = JsonFileSource(self.offline_file)
            return

        if not self.config.offline:
            from .platforms.domo import DomoConnector
            self.connector = DomoConnector(self.config)
            self.source = self.connector

    def _setup_service(self) -> None:
        from .lineage.adapter import EntityStoreAdapter
        from .service import LineageService

        self.adapter = EntityStoreAdapter(
            source=self.source,
            cache=self.cache,
            cache_ttl=self.config.cache_ttl_seconds,
        )
        self.service = LineageService(
            adapter=self.adapter,
            lineage_source=self.connector,
            config=self.config,
        )

    def get_service(self):
        """Get the lineage service, setting up on first use"""
        if self.service is None:
            self.setup()
        return self.service

    def get_cache(self):
        """Get the record cache"""
        if self.cache is None:
            self._setup_cache()
        return self.cache
