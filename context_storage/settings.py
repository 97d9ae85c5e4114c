from __future__ import annotations

import os
from dataclasses import dataclass

from .config import DEFAULT_HOST, DEFAULT_PORT, StorageConfig


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    # Connection
    redis_host: str
    redis_port: int
    redis_db: int
    redis_password: str | None
    use_tls: bool

    # Key layout
    key_prefix: str | None

    # SCAN page size used by keys/delete/clean
    scan_count: int

    def to_config(self) -> StorageConfig:
        return StorageConfig(
            host=self.redis_host,
            port=self.redis_port,
            db=self.redis_db,
            password=self.redis_password,
            tls=self.use_tls or None,
            prefix=self.key_prefix,
            scan_count=self.scan_count,
        )


def get_settings() -> Settings:
    return Settings(
        redis_host=os.getenv("CONTEXT_REDIS_HOST", DEFAULT_HOST),
        redis_port=_env_int("CONTEXT_REDIS_PORT", DEFAULT_PORT),
        redis_db=_env_int("CONTEXT_REDIS_DB", 0),
        redis_password=os.getenv("CONTEXT_REDIS_PASSWORD") or None,
        use_tls=_env_bool("CONTEXT_REDIS_TLS", False),
        key_prefix=os.getenv("CONTEXT_REDIS_PREFIX") or None,
        scan_count=_env_int("CONTEXT_REDIS_SCAN_COUNT", 1000),
    )
