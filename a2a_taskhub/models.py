from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, model_validator
from pydantic.alias_generators import to_camel

JSONRPC_VERSION = "2.0"


def utc_now() -> datetime:
    return datetime.now(UTC)


class A2ABaseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TaskState(str, Enum):
    SUBMITTED = "submitted"
    WORKING = "working"
    INPUT_REQUIRED = "input-required"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


TERMINAL_STATES = frozenset(
    {
        TaskState.COMPLETED,
        TaskState.CANCELED,
        TaskState.FAILED,
        TaskState.REJECTED,
    }
)

CANCELABLE_STATES = frozenset(
    {
        TaskState.SUBMITTED,
        TaskState.WORKING,
        TaskState.INPUT_REQUIRED,
    }
)

ACTIVE_STATES = frozenset(TaskState) - TERMINAL_STATES


class FileContent(A2ABaseModel):
    name: str | None = None
    mime_type: str | None = None
    bytes: str | None = None
    uri: str | None = None

    @model_validator(mode="after")
    def _oneof_content(self) -> FileContent:
        provided = [self.bytes, self.uri]
        if sum(value is not None for value in provided) != 1:
            raise ValueError("FileContent must set exactly one of bytes or uri")
        return self


class TextPart(A2ABaseModel):
    type: Literal["text"] = "text"
    text: str
    metadata: dict[str, Any] | None = None


class FilePart(A2ABaseModel):
    type: Literal["file"] = "file"
    file: FileContent
    metadata: dict[str, Any] | None = None


class DataPart(A2ABaseModel):
    type: Literal["data"] = "data"
    data: dict[str, Any]
    metadata: dict[str, Any] | None = None


_PART_KEYS = ("text", "file", "data")


def part_kind(value: Any) -> str | None:
    """Infer the part variant from the keys present, ignoring any ``type`` key."""

    if isinstance(value, (TextPart, FilePart, DataPart)):
        return value.type
    if isinstance(value, Mapping):
        for key in _PART_KEYS:
            if key in value:
                return key
    return None


Part = Annotated[
    Annotated[TextPart, Tag("text")] | Annotated[FilePart, Tag("file")] | Annotated[DataPart, Tag("data")],
    Discriminator(
        part_kind,
        custom_error_type="invalid_part",
        custom_error_message="Part must carry one of 'text', 'file' or 'data'",
    ),
]


class Message(A2ABaseModel):
    role: str
    parts: list[Part]
    metadata: dict[str, Any] | None = None

    def text(self, separator: str = " ") -> str:
        return separator.join(part.text for part in self.parts if isinstance(part, TextPart))


class TaskStatus(A2ABaseModel):
    state: TaskState
    message: Message | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class Artifact(A2ABaseModel):
    name: str | None = None
    description: str | None = None
    parts: list[Part]
    index: int = 0
    append: bool | None = None
    last_chunk: bool | None = None
    metadata: dict[str, Any] | None = None


class Task(A2ABaseModel):
    id: str
    session_id: str | None = None
    status: TaskStatus
    artifacts: list[Artifact] | None = None
    metadata: dict[str, Any] | None = None


class TaskIdParams(A2ABaseModel):
    id: str
    metadata: dict[str, Any] | None = None


class TaskQueryParams(A2ABaseModel):
    id: str
    history_length: int | None = Field(default=None, ge=0)
    metadata: dict[str, Any] | None = None


class TaskSendParams(A2ABaseModel):
    id: str
    session_id: str | None = None
    message: Message
    history_length: int | None = Field(default=None, ge=0)
    metadata: dict[str, Any] | None = None


RequestId = str | int | None


class JsonRpcRequest(A2ABaseModel):
    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: RequestId = None
    method: str
    params: dict[str, Any] | None = None


class JsonRpcError(A2ABaseModel):
    code: int
    message: str
    data: Any | None = None

    def to_wire(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": self.data}


class JsonRpcResponse(A2ABaseModel):
    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: RequestId = None
    result: Task | None = None
    error: JsonRpcError | None = None

    @model_validator(mode="after")
    def _oneof_outcome(self) -> JsonRpcResponse:
        if (self.result is None) == (self.error is None):
            raise ValueError("JsonRpcResponse must set exactly one of result or error")
        return self

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.to_wire()
        elif self.result is not None:
            payload["result"] = self.result.to_wire()
        return payload


__all__ = [
    "ACTIVE_STATES",
    "A2ABaseModel",
    "Artifact",
    "CANCELABLE_STATES",
    "DataPart",
    "FileContent",
    "FilePart",
    "JSONRPC_VERSION",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "Message",
    "Part",
    "RequestId",
    "TERMINAL_STATES",
    "Task",
    "TaskIdParams",
    "TaskQueryParams",
    "TaskSendParams",
    "TaskState",
    "TaskStatus",
    "TextPart",
    "part_kind",
    "utc_now",
]
