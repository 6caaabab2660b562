"""Assemble the store, reply generator and dispatcher behind the HTTP surface."""

from __future__ import annotations

import logging

from .agent import EchoReplyGenerator, OpenAIReplyGenerator, ReplyGenerator
from .bindings.http import create_a2a_http_app
from .config import ServerConfig, ServerMode
from .dispatcher import JsonRpcDispatcher
from .store import InMemoryTaskStore

logger = logging.getLogger("a2a_taskhub.server")


def build_generator(config: ServerConfig) -> ReplyGenerator:
    """Pick the reply generator the configured mode expects."""

    if config.mode is ServerMode.AGENT:
        return OpenAIReplyGenerator(config.openai_model, base_url=config.openai_base_url)
    return EchoReplyGenerator()


def build_dispatcher(
    config: ServerConfig | None = None,
    *,
    generator: ReplyGenerator | None = None,
) -> JsonRpcDispatcher:
    config = config or ServerConfig()
    store = InMemoryTaskStore(
        event_buffer_size=config.event_buffer_size,
        strict_transitions=config.strict_transitions,
    )
    return JsonRpcDispatcher(
        store,
        generator=generator or build_generator(config),
        mode=config.mode,
    )


def create_app(
    config: ServerConfig | None = None,
    *,
    generator: ReplyGenerator | None = None,
    include_docs: bool = False,
):
    """Return a FastAPI app serving JSON-RPC on ``POST /`` and snapshots on ``GET /events``."""

    config = config or ServerConfig()
    dispatcher = build_dispatcher(config, generator=generator)
    logger.info(
        "a2a_app_created",
        extra={
            "mode": config.mode.value,
            "strict_transitions": config.strict_transitions,
            "event_buffer_size": config.event_buffer_size,
        },
    )
    return create_a2a_http_app(dispatcher, config=config, include_docs=include_docs)


__all__ = ["build_dispatcher", "build_generator", "create_app"]
