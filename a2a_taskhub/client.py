from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from .dispatcher import CANCEL_METHOD, GET_METHOD, SEND_METHOD
from .errors import INTERNAL_ERROR
from .models import (
    JSONRPC_VERSION,
    JsonRpcResponse,
    Message,
    Task,
    TaskIdParams,
    TaskQueryParams,
    TaskSendParams,
    TextPart,
)


def _require_httpx():
    try:
        import httpx
    except ImportError as exc:
        raise RuntimeError("httpx is required for A2AClient. Install with `pip install httpx`.") from exc
    return httpx


def _normalize_base_url(url: str) -> str:
    return url.rstrip("/") + "/"


class A2AClientError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


def _decode_response(body: str) -> JsonRpcResponse:
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        raise A2AClientError(INTERNAL_ERROR, f"Server returned a non-JSON body: {body[:200]!r}") from exc
    try:
        return JsonRpcResponse.model_validate(payload)
    except ValidationError as exc:
        raise A2AClientError(INTERNAL_ERROR, f"Server returned an invalid envelope: {exc}") from exc


@dataclass(slots=True)
class A2AClient:
    base_url: str
    timeout_s: float | None = 30.0
    headers: Mapping[str, str] | None = None
    client: Any | None = None

    @asynccontextmanager
    async def _client_context(self):
        if self.client is not None:
            yield self.client
            return
        httpx = _require_httpx()
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            yield client

    def _base_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.headers:
            headers.update(self.headers)
        return headers

    async def _call(self, method: str, params: dict[str, Any]) -> Task:
        envelope = {
            "jsonrpc": JSONRPC_VERSION,
            "id": uuid.uuid4().hex,
            "method": method,
            "params": params,
        }
        httpx = _require_httpx()
        try:
            async with self._client_context() as client:
                response = await client.post(
                    _normalize_base_url(self.base_url),
                    json=envelope,
                    headers=self._base_headers(),
                )
                body = response.text
        except httpx.HTTPError as exc:
            raise A2AClientError(INTERNAL_ERROR, f"HTTP request failed: {exc}") from exc
        decoded = _decode_response(body)
        if decoded.error is not None:
            raise A2AClientError(decoded.error.code, decoded.error.message)
        if decoded.result is None:
            raise A2AClientError(INTERNAL_ERROR, "Server returned neither result nor error")
        return decoded.result

    async def send_task(
        self,
        text: str,
        *,
        task_id: str | None = None,
        session_id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Task:
        params = TaskSendParams(
            id=task_id or uuid.uuid4().hex,
            session_id=session_id or uuid.uuid4().hex,
            message=Message(role="user", parts=[TextPart(text=text)]),
            metadata=dict(metadata) if metadata else None,
        )
        return await self._call(SEND_METHOD, params.to_wire())

    async def get_task(self, task_id: str) -> Task:
        return await self._call(GET_METHOD, TaskQueryParams(id=task_id).to_wire())

    async def cancel_task(self, task_id: str) -> Task:
        return await self._call(CANCEL_METHOD, TaskIdParams(id=task_id).to_wire())


__all__ = ["A2AClient", "A2AClientError"]
