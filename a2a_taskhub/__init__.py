"""Task lifecycle and JSON-RPC protocol layer for A2A task exchange."""

from .agent import AgentAdapter, EchoReplyGenerator, OpenAIReplyGenerator, ReplyGenerator
from .bindings.http import create_a2a_http_app
from .client import A2AClient, A2AClientError
from .config import ServerConfig, ServerMode
from .dispatcher import JsonRpcDispatcher
from .errors import (
    A2AError,
    InternalServerError,
    InvalidRequestError,
    InvalidStateTransitionError,
    MethodNotFoundError,
    TaskNotCancelableError,
    TaskNotFoundError,
    UnsupportedOperationError,
)
from .models import (
    Artifact,
    DataPart,
    FileContent,
    FilePart,
    Message,
    Task,
    TaskState,
    TaskStatus,
    TextPart,
)
from .server import build_dispatcher, create_app
from .store import InMemoryTaskStore, TaskStore

__all__ = [
    "A2AClient",
    "A2AClientError",
    "A2AError",
    "AgentAdapter",
    "Artifact",
    "DataPart",
    "EchoReplyGenerator",
    "FileContent",
    "FilePart",
    "InMemoryTaskStore",
    "InternalServerError",
    "InvalidRequestError",
    "InvalidStateTransitionError",
    "JsonRpcDispatcher",
    "Message",
    "MethodNotFoundError",
    "OpenAIReplyGenerator",
    "ReplyGenerator",
    "ServerConfig",
    "ServerMode",
    "Task",
    "TaskNotCancelableError",
    "TaskNotFoundError",
    "TaskState",
    "TaskStatus",
    "TaskStore",
    "TextPart",
    "UnsupportedOperationError",
    "build_dispatcher",
    "create_a2a_http_app",
    "create_app",
]

__version__ = "0.1.0"
