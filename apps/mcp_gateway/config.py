"""Runtime settings for the MCP gateway."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

__all__ = ["DEFAULT_TOOLPACKS_DIR", "GatewaySettings"]

DEFAULT_TOOLPACKS_DIR = Path(__file__).resolve().parent / "toolpacks"

_ENV_PREFIX = "MCP_GATEWAY_"
_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(raw: str | None, default: bool) -> bool:
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True, slots=True)
class GatewaySettings:
    """Listening address, public URL and guardrails for the gateway."""

    host: str = "127.0.0.1"
    port: int = 3000
    public_base_url: str | None = None
    max_body_bytes: int = 1_048_576
    keepalive_seconds: float = 15.0
    stream_queue_size: int = 256
    mirror_messages: bool = False
    toolpacks_dir: Path = field(default=DEFAULT_TOOLPACKS_DIR)
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if self.max_body_bytes <= 0:
            raise ValueError("max_body_bytes must be a positive integer")
        if self.keepalive_seconds <= 0:
            raise ValueError("keepalive_seconds must be positive")
        if self.stream_queue_size <= 0:
            raise ValueError("stream_queue_size must be a positive integer")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        if self.public_base_url is not None:
            if not self.public_base_url.startswith(("http://", "https://")):
                raise ValueError("public_base_url must be an absolute http(s) URL")
            object.__setattr__(self, "public_base_url", self.public_base_url.rstrip("/"))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatewaySettings:
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(_ENV_PREFIX + name)
            return value if value not in (None, "") else None

        defaults = cls()
        port = get("PORT") or env.get("PORT") or None
        try:
            return cls(
                host=get("HOST") or defaults.host,
                port=int(port) if port else defaults.port,
                public_base_url=get("PUBLIC_BASE_URL"),
                max_body_bytes=int(get("MAX_BODY_BYTES") or defaults.max_body_bytes),
                keepalive_seconds=float(get("KEEPALIVE_SECONDS") or defaults.keepalive_seconds),
                stream_queue_size=int(get("STREAM_QUEUE_SIZE") or defaults.stream_queue_size),
                mirror_messages=_env_bool(get("MIRROR_MESSAGES"), defaults.mirror_messages),
                toolpacks_dir=Path(get("TOOLPACKS_DIR") or defaults.toolpacks_dir),
                log_level=(get("LOG_LEVEL") or defaults.log_level).upper(),
            )
        except ValueError as exc:
            raise ValueError(f"Invalid {_ENV_PREFIX}* setting: {exc}") from exc

    def with_overrides(self, **overrides: Any) -> GatewaySettings:
        """Return a copy with every non-``None`` override applied."""

        return replace(self, **{key: value for key, value in overrides.items() if value is not None})
