"""
CaproneSearch Config
====================

Process-wide defaults, read from the environment (``CAPRONE_*``) and
overridable per call. Precedence for any value is:

    explicit argument  >  injected Settings instance  >  built-in default

Example:
    # CAPRONE_HOSTS='["https://es1:9200"]' CAPRONE_BULK_LIMIT=500
    settings = Settings()
    index = ProductIndex(settings=settings)
"""

from typing import Any, Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CAPRONE_")

    # Connection
    hosts: List[str] = ["http://localhost:9200"]
    api_key: Optional[str] = None
    basic_auth_user: Optional[str] = None
    basic_auth_password: Optional[str] = None
    verify_certs: bool = True
    request_timeout: Optional[float] = None

    # Index naming
    index_prefix: str = ""

    # Bulk batching
    bulk_limit: int = 1_000
    bulk_max_mb: int = 100

    # Refresh the index after bulk writes and delete-by-query
    auto_refresh: bool = False

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``elasticsearch.Elasticsearch``."""
        conn_kwargs: Dict[str, Any] = {
            "hosts": self.hosts,
            "verify_certs": self.verify_certs
        }

        if self.api_key:
            conn_kwargs["api_key"] = self.api_key
        elif self.basic_auth_user:
            conn_kwargs["basic_auth"] = (self.basic_auth_user, self.basic_auth_password or "")

        if self.request_timeout is not None:
            conn_kwargs["request_timeout"] = self.request_timeout

        return conn_kwargs


def resolve(explicit: Any, settings: Optional[Settings], name: str) -> Any:
    """Return ``explicit`` unless it is None, else the setting ``name``."""
    if explicit is not None:
        return explicit

    return getattr(settings if settings is not None else Settings(), name)
