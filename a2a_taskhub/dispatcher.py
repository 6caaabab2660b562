"""JSON-RPC routing for the ``tasks/*`` methods."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from .agent import AgentAdapter, EchoReplyGenerator, ReplyGenerator, agent_text_message
from .config import ServerMode
from .errors import (
    A2AError,
    InternalServerError,
    InvalidRequestError,
    InvalidStateTransitionError,
    MethodNotFoundError,
    TaskNotFoundError,
)
from .models import (
    ACTIVE_STATES,
    Artifact,
    JsonRpcRequest,
    JsonRpcResponse,
    Message,
    RequestId,
    Task,
    TaskIdParams,
    TaskQueryParams,
    TaskSendParams,
    TaskState,
    TaskStatus,
    TextPart,
)
from .store import TaskStore

logger = logging.getLogger("a2a_taskhub.dispatcher")

SEND_METHOD = "tasks/send"
GET_METHOD = "tasks/get"
CANCEL_METHOD = "tasks/cancel"

RESULT_ARTIFACT_TEXT = "This is a sample artifact from the A2A task server."

ParamsT = TypeVar("ParamsT", bound=BaseModel)


def _format_validation_error(exc: ValidationError) -> str:
    details = []
    for error in exc.errors(include_url=False):
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        details.append(f"{location}: {message}" if location else message)
    return "; ".join(details) or str(exc)


def _decode_payload(payload: bytes | str | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(payload, Mapping):
        return payload
    try:
        decoded = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequestError(f"Malformed JSON: {exc}") from exc
    if not isinstance(decoded, dict):
        raise InvalidRequestError("Request payload must be a JSON object")
    return decoded


def _extract_request_id(envelope: Mapping[str, Any]) -> RequestId:
    value = envelope.get("id")
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        return value
    return None


def _parse(model: type[ParamsT], payload: Mapping[str, Any]) -> ParamsT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRequestError(_format_validation_error(exc)) from exc


def result_artifact() -> Artifact:
    return Artifact(
        name="result",
        description="Task result",
        parts=[TextPart(text=RESULT_ARTIFACT_TEXT)],
        index=0,
        last_chunk=True,
    )


class JsonRpcDispatcher:
    """Decode a JSON-RPC envelope, run the task operation, encode the outcome.

    ``dispatch`` never raises for protocol or domain failures; every outcome is
    a :class:`JsonRpcResponse` carrying either the task or an error.
    """

    def __init__(
        self,
        store: TaskStore,
        *,
        generator: ReplyGenerator | None = None,
        mode: ServerMode | str = ServerMode.REPLY,
    ) -> None:
        self._store = store
        self._generator = generator or EchoReplyGenerator()
        self._adapter = AgentAdapter(self._generator)
        self._mode = ServerMode(mode)
        self._methods: dict[str, Callable[[Mapping[str, Any]], Awaitable[Task]]] = {
            SEND_METHOD: self._send_task,
            GET_METHOD: self._get_task,
            CANCEL_METHOD: self._cancel_task,
        }

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def mode(self) -> ServerMode:
        return self._mode

    async def dispatch(self, payload: bytes | str | Mapping[str, Any]) -> JsonRpcResponse:
        request_id: RequestId = None
        try:
            envelope = _decode_payload(payload)
            request_id = _extract_request_id(envelope)
            if not isinstance(envelope.get("method"), str):
                raise InvalidRequestError("Missing method")
            request = _parse(JsonRpcRequest, envelope)
            handler = self._methods.get(request.method)
            if handler is None:
                raise MethodNotFoundError(request.method)
            logger.info(
                "jsonrpc_request",
                extra={"method": request.method, "request_id": request_id},
            )
            task = await handler(request.params or {})
        except A2AError as exc:
            logger.warning(
                "jsonrpc_error",
                extra={"code": exc.code, "request_id": request_id, "detail": exc.detail},
            )
            return JsonRpcResponse(id=request_id, error=exc.to_jsonrpc_error())
        except Exception as exc:
            logger.exception("jsonrpc_internal_error", extra={"request_id": request_id})
            error = InternalServerError(str(exc) or type(exc).__name__)
            return JsonRpcResponse(id=request_id, error=error.to_jsonrpc_error())
        return JsonRpcResponse(id=request_id, result=task)

    async def _send_task(self, payload: Mapping[str, Any]) -> Task:
        params = _parse(TaskSendParams, payload)
        if self._mode is ServerMode.AGENT:
            return await self._send_to_agent(params)
        return await self._send_with_reply(params)

    async def _get_task(self, payload: Mapping[str, Any]) -> Task:
        params = _parse(TaskQueryParams, payload)
        return await self._store.get_task(params.id)

    async def _cancel_task(self, payload: Mapping[str, Any]) -> Task:
        params = _parse(TaskIdParams, payload)
        return await self._store.cancel_task(params.id)

    async def _generate(self, message: Message) -> Message:
        try:
            return await self._generator.generate_reply(message)
        except A2AError:
            raise
        except Exception as exc:
            raise InternalServerError(f"Reply generation failed: {exc}") from exc

    async def _send_with_reply(self, params: TaskSendParams) -> Task:
        try:
            existing: Task | None = await self._store.get_task(params.id)
        except TaskNotFoundError:
            existing = None

        if existing is not None:
            if existing.status.state != TaskState.INPUT_REQUIRED:
                raise InvalidRequestError(f"Task {params.id} is not in input-required state")
            reply = await self._generate(params.message)
            # The task may have been canceled while the reply was generated.
            return await self._store.update_status(
                params.id,
                TaskStatus(state=TaskState.COMPLETED, message=reply),
                from_states=(TaskState.INPUT_REQUIRED,),
            )

        reply = await self._generate(params.message)
        task = Task(
            id=params.id,
            session_id=params.session_id,
            status=TaskStatus(state=TaskState.COMPLETED, message=reply),
            artifacts=[result_artifact()],
            metadata=params.metadata,
        )
        return await self._store.create_task(task)

    async def _send_to_agent(self, params: TaskSendParams) -> Task:
        submitted = Task(
            id=params.id,
            session_id=params.session_id,
            status=TaskStatus(state=TaskState.SUBMITTED, message=params.message),
            metadata=params.metadata,
        )
        await self._store.create_task(submitted)
        working = await self._store.update_status(
            params.id,
            TaskStatus(state=TaskState.WORKING, message=params.message),
        )

        # No store lock is held while the agent runs.
        try:
            processed = await self._adapter.handle(working)
        except Exception as exc:
            await self._mark_failed(params.id, exc)
            if isinstance(exc, A2AError):
                raise
            raise InternalServerError(f"Agent failed to handle task {params.id}: {exc}") from exc

        try:
            await self._store.update_status(processed.id, processed.status, from_states=ACTIVE_STATES)
        except InvalidStateTransitionError as exc:
            logger.info(
                "agent_reply_discarded",
                extra={"task_id": processed.id, "state": exc.current.value},
            )
            return await self._store.get_task(processed.id)
        for artifact in processed.artifacts or []:
            await self._store.add_artifact(processed.id, artifact)
        return await self._store.get_task(processed.id)

    async def _mark_failed(self, task_id: str, exc: Exception) -> None:
        status = TaskStatus(
            state=TaskState.FAILED,
            message=agent_text_message(f"Agent error: {exc}"),
        )
        try:
            await self._store.update_status(task_id, status, from_states=ACTIVE_STATES)
        except A2AError as mark_exc:
            logger.warning(
                "task_mark_failed_rejected",
                extra={"task_id": task_id, "code": mark_exc.code, "detail": mark_exc.detail},
            )


__all__ = [
    "CANCEL_METHOD",
    "GET_METHOD",
    "JsonRpcDispatcher",
    "RESULT_ARTIFACT_TEXT",
    "SEND_METHOD",
    "result_artifact",
]
