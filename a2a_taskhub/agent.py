"""Reply generation and the adapter that feeds replies back into tasks."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Protocol

from .errors import InvalidRequestError
from .models import Artifact, DataPart, FilePart, Message, Task, TaskState, TaskStatus, TextPart

logger = logging.getLogger("a2a_taskhub.agent")

AGENT_ROLE = "agent"
DEFAULT_REPLY_PREFIX = "A2A server received: "


def agent_text_message(text: str) -> Message:
    return Message(role=AGENT_ROLE, parts=[TextPart(text=text)])


class ReplyGenerator(Protocol):
    async def generate_reply(self, message: Message) -> Message: ...


class EchoReplyGenerator:
    """Answer with the message's text parts behind a fixed prefix."""

    def __init__(self, prefix: str = DEFAULT_REPLY_PREFIX) -> None:
        self.prefix = prefix

    async def generate_reply(self, message: Message) -> Message:
        return agent_text_message(f"{self.prefix}{message.text()}")


def _render_part(part: Any) -> str | None:
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, DataPart):
        return json.dumps(part.data, ensure_ascii=False, sort_keys=True)
    if isinstance(part, FilePart):
        label = part.file.name or part.file.uri or "inline file"
        return f"[file: {label}]"
    return None


class OpenAIReplyGenerator:
    """Reply through an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        system_prompt: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        try:
            from openai import AsyncOpenAI
        except ImportError as e:
            raise ImportError("OpenAI SDK not installed. Install with: pip install a2a-taskhub[openai]") from e

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key required. Set OPENAI_API_KEY environment variable or pass api_key.")

        self._model = model
        self._system_prompt = system_prompt
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    @property
    def model(self) -> str:
        return self._model

    def _build_messages(self, message: Message) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self._system_prompt:
            messages.append({"role": "system", "content": self._system_prompt})
        rendered = [text for part in message.parts if (text := _render_part(part)) is not None]
        messages.append({"role": "user", "content": "\n".join(rendered)})
        return messages

    async def generate_reply(self, message: Message) -> Message:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=self._build_messages(message),
        )
        if not response.choices:
            return agent_text_message("")
        choice = response.choices[0]
        logger.debug(
            "openai_reply_generated",
            extra={"model": self._model, "finish_reason": choice.finish_reason},
        )
        return agent_text_message(choice.message.content or "")


class AgentAdapter:
    """Turn a reply generator into ``handle(task) -> task``.

    The adapter works on a copy of the task and never touches the store; the
    caller applies the returned status and artifacts.
    """

    def __init__(self, generator: ReplyGenerator, *, artifact_name: str = "response") -> None:
        self._generator = generator
        self._artifact_name = artifact_name

    async def handle(self, task: Task) -> Task:
        message = task.status.message
        if message is None:
            raise InvalidRequestError(f"Task {task.id} carries no message to answer")
        reply = await self._generator.generate_reply(message)
        artifact = Artifact(
            name=self._artifact_name,
            parts=[part.model_copy(deep=True) for part in reply.parts],
            index=0,
            last_chunk=True,
        )
        return task.model_copy(
            update={
                "status": TaskStatus(state=TaskState.COMPLETED, message=reply),
                "artifacts": [artifact],
            },
            deep=True,
        )


__all__ = [
    "AGENT_ROLE",
    "AgentAdapter",
    "DEFAULT_REPLY_PREFIX",
    "EchoReplyGenerator",
    "OpenAIReplyGenerator",
    "ReplyGenerator",
    "agent_text_message",
]
