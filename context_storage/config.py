from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 6379


class StorageConfig(BaseModel):
    """
    Configuration handed over by the host:
      {
        "host": "127.0.0.1",   # Redis server address
        "port": 6379,
        "db": 0,               # logical database
        "prefix": "app",       # optional; keys become "app:<scope>:<key>"
        "password": "...",     # optional; sent with AUTH on connect
        "tls": {...} | true,   # optional; ssl_* options for the connection
        "retryStrategy": Retry # optional; a redis.retry.Retry
      }

    Only ``prefix`` is interpreted by the storage itself. Everything else is
    passed to the Redis client as is.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, arbitrary_types_allowed=True)

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    db: int = 0
    prefix: str | None = None
    password: SecretStr | None = None
    tls: bool | dict[str, Any] | None = None
    retry_strategy: Any = Field(default=None, alias="retryStrategy")
    scan_count: int = Field(default=1000, alias="scanCount", ge=1)

    @field_validator("host", mode="before")
    @classmethod
    def _default_host(cls, v: Any) -> Any:
        return v or DEFAULT_HOST

    @field_validator("port", mode="before")
    @classmethod
    def _default_port(cls, v: Any) -> Any:
        return v or DEFAULT_PORT

    @field_validator("db", mode="before")
    @classmethod
    def _default_db(cls, v: Any) -> Any:
        return v or 0

    @field_validator("prefix", mode="before")
    @classmethod
    def _blank_prefix(cls, v: Any) -> Any:
        return v or None

    @classmethod
    def from_host_config(cls, config: "StorageConfig | Mapping[str, Any] | None") -> "StorageConfig":
        if isinstance(config, StorageConfig):
            return config
        return cls.model_validate(dict(config or {}))

    def connection_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "db": self.db,
            "decode_responses": True,
        }
        if self.password is not None:
            kwargs["password"] = self.password.get_secret_value()
        if self.tls:
            kwargs["ssl"] = True
            if isinstance(self.tls, dict):
                for k, v in self.tls.items():
                    kwargs[k if k.startswith("ssl_") else f"ssl_{k}"] = v
        if self.retry_strategy is not None:
            kwargs["retry"] = self.retry_strategy
        return kwargs
