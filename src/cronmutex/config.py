from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cronmutex.cache.client import MAX_RELATIVE_TTL


class UnknownServerError(KeyError):
    """A server name has no entry in the configured server table."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"Unknown server name: {self.name!r}"


class ServerEndpoint(BaseModel):
    """Connection parameters of one cache server."""

    host: str
    port: int = Field(default=6379, ge=1, le=65535)
    db: int = Field(default=0, ge=0)
    password: str | None = None
    connect_timeout: float | None = Field(default=None, gt=0)


def _default_servers() -> dict[str, ServerEndpoint]:
    return {"default": ServerEndpoint(host="127.0.0.1", port=6379)}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CRONMUTEX_", env_file=".env", extra="ignore")

    # Server name -> endpoint, e.g.
    # CRONMUTEX_SERVERS='{"default": {"host": "10.0.0.5", "port": 6379}}'
    servers: dict[str, ServerEndpoint] = Field(default_factory=_default_servers)

    # Lock record and last-run marker lifetimes (seconds)
    lock_ttl: int = Field(default=10, ge=1, le=MAX_RELATIVE_TTL)
    metadata_ttl: int = Field(default=MAX_RELATIVE_TTL, ge=0, le=MAX_RELATIVE_TTL)

    # Namespace for keys on a shared cache
    key_prefix: str = ""

    # Release with compare-and-delete instead of an unconditional delete
    safe_release: bool = False

    # Logging
    log_level: str = "WARNING"
    log_json: bool = False

    def resolve_server(self, name: str) -> ServerEndpoint:
        try:
            return self.servers[name]
        except KeyError:
            raise UnknownServerError(name) from None


settings = Settings()
