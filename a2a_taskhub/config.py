from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

DEFAULT_EVENT_BUFFER_SIZE = 100

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class ServerMode(str, Enum):
    REPLY = "reply"
    AGENT = "agent"


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(slots=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3000
    mode: ServerMode = ServerMode.REPLY
    event_buffer_size: int = DEFAULT_EVENT_BUFFER_SIZE
    strict_transitions: bool = False
    cors_origins: tuple[str, ...] = ()
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str | None = None
    log_level: str = "INFO"
    sse_heartbeat_interval: float = 15.0

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host must be non-empty")
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if self.sse_heartbeat_interval <= 0:
            raise ValueError("sse_heartbeat_interval must be > 0")
        if self.event_buffer_size < 1:
            raise ValueError("event_buffer_size must be >= 1")
        try:
            self.mode = ServerMode(self.mode)
        except ValueError as exc:
            raise ValueError(f"mode must be one of {[item.value for item in ServerMode]}") from exc
        self.log_level = self.log_level.upper()
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError(f"unknown log level {self.log_level!r}")
        self.cors_origins = tuple(self.cors_origins)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        if "A2A_HOST" in env:
            kwargs["host"] = env["A2A_HOST"]
        if "A2A_PORT" in env:
            kwargs["port"] = _parse_int("A2A_PORT", env["A2A_PORT"])
        if "A2A_MODE" in env:
            kwargs["mode"] = env["A2A_MODE"].strip().lower()
        if "A2A_EVENT_BUFFER" in env:
            kwargs["event_buffer_size"] = _parse_int("A2A_EVENT_BUFFER", env["A2A_EVENT_BUFFER"])
        if "A2A_STRICT_TRANSITIONS" in env:
            kwargs["strict_transitions"] = _parse_bool("A2A_STRICT_TRANSITIONS", env["A2A_STRICT_TRANSITIONS"])
        if "A2A_CORS_ORIGINS" in env:
            kwargs["cors_origins"] = tuple(
                origin.strip() for origin in env["A2A_CORS_ORIGINS"].split(",") if origin.strip()
            )
        if "OPENAI_MODEL" in env:
            kwargs["openai_model"] = env["OPENAI_MODEL"]
        if env.get("OPENAI_BASE_URL"):
            kwargs["openai_base_url"] = env["OPENAI_BASE_URL"]
        if "A2A_LOG_LEVEL" in env:
            kwargs["log_level"] = env["A2A_LOG_LEVEL"]
        if "A2A_SSE_HEARTBEAT" in env:
            kwargs["sse_heartbeat_interval"] = _parse_float("A2A_SSE_HEARTBEAT", env["A2A_SSE_HEARTBEAT"])
        return cls(**kwargs)  # type: ignore[arg-type]
