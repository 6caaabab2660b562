from __future__ import annotations

from typing import Any

from .models import JsonRpcError, TaskState

INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603
TASK_NOT_FOUND = -32001
TASK_NOT_CANCELABLE = -32002
UNSUPPORTED_OPERATION = -32004

_HTTP_STATUS_BY_CODE = {
    INVALID_REQUEST: 400,
    METHOD_NOT_FOUND: 404,
    TASK_NOT_FOUND: 404,
    TASK_NOT_CANCELABLE: 400,
    UNSUPPORTED_OPERATION: 400,
    INTERNAL_ERROR: 500,
}


def http_status_for_code(code: int) -> int:
    """HTTP status suggested for a JSON-RPC error code (500 when unknown)."""

    return _HTTP_STATUS_BY_CODE.get(code, 500)


class A2AError(Exception):
    def __init__(
        self,
        *,
        code: int,
        title: str,
        detail: str | None = None,
        data: Any | None = None,
    ) -> None:
        super().__init__(f"{title}: {detail}" if detail else title)
        self.code = code
        self.title = title
        self.detail = detail
        self.data = data

    @property
    def status_code(self) -> int:
        return http_status_for_code(self.code)

    @property
    def message(self) -> str:
        return str(self)

    def to_jsonrpc_error(self) -> JsonRpcError:
        return JsonRpcError(code=self.code, message=self.message, data=self.data)


class InvalidRequestError(A2AError):
    def __init__(self, detail: str) -> None:
        super().__init__(code=INVALID_REQUEST, title="Invalid request", detail=detail)


class InvalidStateTransitionError(InvalidRequestError):
    def __init__(self, task_id: str, current: TaskState, requested: TaskState) -> None:
        super().__init__(
            f"Task {task_id} cannot move from {TaskState(current).value} to {TaskState(requested).value}"
        )
        self.task_id = task_id
        self.current = TaskState(current)
        self.requested = TaskState(requested)


class MethodNotFoundError(A2AError):
    def __init__(self, method: str) -> None:
        super().__init__(code=METHOD_NOT_FOUND, title="Method not found", detail=method)
        self.method = method


class TaskNotFoundError(A2AError):
    def __init__(self, task_id: str) -> None:
        super().__init__(code=TASK_NOT_FOUND, title="Task not found", detail=task_id)
        self.task_id = task_id


class TaskNotCancelableError(A2AError):
    def __init__(self, task_id: str, state: TaskState) -> None:
        state = TaskState(state)
        super().__init__(
            code=TASK_NOT_CANCELABLE,
            title="Task cannot be canceled",
            detail=f"Task {task_id} cannot be canceled in state {state.value}",
        )
        self.task_id = task_id
        self.state = state


class UnsupportedOperationError(A2AError):
    def __init__(self, detail: str) -> None:
        super().__init__(code=UNSUPPORTED_OPERATION, title="Unsupported operation", detail=detail)


class InternalServerError(A2AError):
    def __init__(self, detail: str) -> None:
        super().__init__(code=INTERNAL_ERROR, title="Internal server error", detail=detail)


__all__ = [
    "A2AError",
    "INTERNAL_ERROR",
    "INVALID_REQUEST",
    "InternalServerError",
    "InvalidRequestError",
    "InvalidStateTransitionError",
    "METHOD_NOT_FOUND",
    "MethodNotFoundError",
    "TASK_NOT_CANCELABLE",
    "TASK_NOT_FOUND",
    "TaskNotCancelableError",
    "TaskNotFoundError",
    "UNSUPPORTED_OPERATION",
    "UnsupportedOperationError",
    "http_status_for_code",
]
