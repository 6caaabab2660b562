from typing import Any

from ..config import ServerConfig
from ..dispatcher import JsonRpcDispatcher
from ..errors import http_status_for_code
from ..sse import stream_task_events


def create_a2a_http_app(
    dispatcher: JsonRpcDispatcher,
    *,
    config: ServerConfig | None = None,
    include_docs: bool = False,
):
    try:
        from fastapi import FastAPI, Request
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse, StreamingResponse
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise RuntimeError("FastAPI is required for the A2A HTTP binding. Install with `pip install fastapi`.") from exc

    config = config or ServerConfig()
    docs_url = "/docs" if include_docs else None
    openapi_url = "/openapi.json" if include_docs else None

    app = FastAPI(
        title="A2A task server",
        docs_url=docs_url,
        openapi_url=openapi_url,
    )
    app.state.dispatcher = dispatcher
    app.state.config = config

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(config.cors_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _jsonrpc_response(content: dict[str, Any], *, status_code: int) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=content,
            media_type="application/json",
        )

    @app.post("/")
    async def jsonrpc(request: Request) -> JSONResponse:
        raw = await request.body()
        response = await dispatcher.dispatch(raw or b"{}")
        status_code = 200
        if response.error is not None:
            status_code = http_status_for_code(response.error.code)
        return _jsonrpc_response(response.to_wire(), status_code=status_code)

    @app.get("/events")
    async def events() -> StreamingResponse:
        return StreamingResponse(
            stream_task_events(dispatcher.store, heartbeat_interval=config.sse_heartbeat_interval),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    return app


__all__ = ["create_a2a_http_app"]
