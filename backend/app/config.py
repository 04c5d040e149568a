import os
from typing import List


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def __init__(self) -> None:
        self.env = os.getenv("APP_ENV", "local")
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"
        # Shared secret for the owner dashboard and admin CRUD. Empty means nobody gets in.
        self.owner_password = os.getenv("OWNER_PASSWORD", "")
        # Durable backend. Empty keeps the coordinator in cache-only mode.
        self.db_url = (os.getenv("DATABASE_URL") or "").strip()
        self.db_pool_min = _env_int("DB_POOL_MIN_SIZE", 1)
        self.db_pool_max = _env_int("DB_POOL_MAX_SIZE", 5)
        # Seconds to wait for a pooled connection before the call counts as a durable failure.
        self.db_timeout = max(1, _env_int("DB_TIMEOUT_SECONDS", 5))
        self.master_store_id = _env_int("MASTER_STORE_ID", 1)
        # Day buckets and "today" are computed in this zone, not the host's.
        self.report_tz = (os.getenv("REPORT_TZ") or "UTC").strip() or "UTC"
        self.catalog_chunk_size = max(1, _env_int("CATALOG_CHUNK_SIZE", 500))
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["*"],
        )


settings = Settings()
