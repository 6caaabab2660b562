from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Collection, Coroutine, Mapping
from datetime import datetime
from typing import Any, Protocol

from .config import DEFAULT_EVENT_BUFFER_SIZE
from .errors import InvalidStateTransitionError, TaskNotCancelableError, TaskNotFoundError
from .models import CANCELABLE_STATES, Artifact, Task, TaskState, TaskStatus, utc_now

logger = logging.getLogger("a2a_taskhub.store")

Unsubscribe = Callable[[], Coroutine[Any, Any, None]]

ALLOWED_TRANSITIONS: Mapping[TaskState, frozenset[TaskState]] = {
    TaskState.SUBMITTED: frozenset(
        {
            TaskState.WORKING,
            TaskState.INPUT_REQUIRED,
            TaskState.COMPLETED,
            TaskState.CANCELED,
            TaskState.FAILED,
            TaskState.REJECTED,
        }
    ),
    TaskState.WORKING: frozenset(
        {
            TaskState.INPUT_REQUIRED,
            TaskState.COMPLETED,
            TaskState.CANCELED,
            TaskState.FAILED,
        }
    ),
    TaskState.INPUT_REQUIRED: frozenset(
        {
            TaskState.COMPLETED,
            TaskState.CANCELED,
            TaskState.FAILED,
        }
    ),
    TaskState.COMPLETED: frozenset(),
    TaskState.CANCELED: frozenset(),
    TaskState.FAILED: frozenset(),
    TaskState.REJECTED: frozenset(),
    TaskState.UNKNOWN: frozenset(),
}


def is_transition_allowed(current: TaskState, new: TaskState) -> bool:
    """Return whether ``current -> new`` is an edge of the task state machine.

    Re-entering the same state is always allowed; it refreshes the status
    message and timestamp without changing the lifecycle position.
    """

    if current == new:
        return True
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def _stamp(previous: datetime | None) -> datetime:
    now = utc_now()
    if previous is not None and previous > now:
        return previous
    return now


class TaskEventBroker:
    """Fan-out of task snapshots to bounded subscriber queues.

    Delivery is best-effort: a subscriber whose queue is full misses the event.
    """

    def __init__(self, maxsize: int = DEFAULT_EVENT_BUFFER_SIZE) -> None:
        self._maxsize = maxsize
        self._subscribers: set[asyncio.Queue[Task]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> tuple[asyncio.Queue[Task], Unsubscribe]:
        queue: asyncio.Queue[Task] = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.add(queue)

        async def _unsubscribe() -> None:
            self._subscribers.discard(queue)

        return queue, _unsubscribe

    def publish(self, task: Task) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(task.model_copy(deep=True))
            except asyncio.QueueFull:
                logger.debug("subscriber_queue_full", extra={"task_id": task.id})
                continue


class TaskStore(Protocol):
    async def create_task(self, task: Task) -> Task: ...

    async def get_task(self, task_id: str) -> Task: ...

    async def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        from_states: Collection[TaskState] | None = None,
    ) -> Task: ...

    async def add_artifact(self, task_id: str, artifact: Artifact) -> Task: ...

    async def cancel_task(self, task_id: str) -> Task: ...

    async def subscribe(self) -> tuple[asyncio.Queue[Task], Unsubscribe]: ...


class InMemoryTaskStore:
    """Process-local task registry with one lock per task id."""

    def __init__(
        self,
        *,
        event_buffer_size: int = DEFAULT_EVENT_BUFFER_SIZE,
        strict_transitions: bool = False,
    ) -> None:
        self._tasks: dict[str, Task] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._events = TaskEventBroker(maxsize=event_buffer_size)
        self._strict_transitions = strict_transitions

    @property
    def strict_transitions(self) -> bool:
        return self._strict_transitions

    @property
    def subscriber_count(self) -> int:
        return self._events.subscriber_count

    def _lock_for(self, task_id: str) -> asyncio.Lock:
        lock = self._locks.get(task_id)
        if lock is None:
            raise TaskNotFoundError(task_id)
        return lock

    def _current(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _commit(self, task: Task) -> Task:
        self._tasks[task.id] = task
        self._events.publish(task)
        return task.model_copy(deep=True)

    async def create_task(self, task: Task) -> Task:
        lock = self._locks.setdefault(task.id, asyncio.Lock())
        async with lock:
            existing = self._tasks.get(task.id)
            previous = existing.status.timestamp if existing is not None else None
            status = task.status.model_copy(update={"timestamp": _stamp(previous)})
            record = task.model_copy(update={"status": status}, deep=True)
            logger.debug(
                "task_created",
                extra={
                    "task_id": task.id,
                    "state": TaskState(status.state).value,
                    "overwrite": existing is not None,
                },
            )
            return self._commit(record)

    async def get_task(self, task_id: str) -> Task:
        async with self._lock_for(task_id):
            return self._current(task_id).model_copy(deep=True)

    async def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        from_states: Collection[TaskState] | None = None,
    ) -> Task:
        """Replace the task status.

        ``from_states`` makes the update conditional: it is applied only while
        the stored state is one of them, checked under the task lock.
        """

        async with self._lock_for(task_id):
            stored = self._current(task_id)
            current = stored.status
            if from_states is not None and current.state not in from_states:
                raise InvalidStateTransitionError(task_id, current.state, status.state)
            if self._strict_transitions and not is_transition_allowed(current.state, status.state):
                raise InvalidStateTransitionError(task_id, current.state, status.state)
            new_status = status.model_copy(update={"timestamp": _stamp(current.timestamp)}, deep=True)
            task = stored.model_copy(update={"status": new_status}, deep=True)
            logger.debug(
                "task_status_updated",
                extra={
                    "task_id": task_id,
                    "previous_state": TaskState(current.state).value,
                    "state": TaskState(new_status.state).value,
                },
            )
            return self._commit(task)

    async def add_artifact(self, task_id: str, artifact: Artifact) -> Task:
        async with self._lock_for(task_id):
            stored = self._current(task_id)
            artifacts = list(stored.artifacts or [])
            if artifact.append:
                for position, existing in enumerate(artifacts):
                    if existing.index == artifact.index:
                        artifacts[position] = existing.model_copy(
                            update={
                                "parts": [*existing.parts, *artifact.parts],
                                "last_chunk": artifact.last_chunk,
                                "metadata": artifact.metadata or existing.metadata,
                            },
                            deep=True,
                        )
                        break
                else:
                    artifacts.append(artifact.model_copy(deep=True))
            else:
                artifacts.append(artifact.model_copy(deep=True))
            task = stored.model_copy(update={"artifacts": artifacts}, deep=True)
            logger.debug(
                "task_artifact_added",
                extra={
                    "task_id": task_id,
                    "artifact_index": artifact.index,
                    "append": bool(artifact.append),
                },
            )
            return self._commit(task)

    async def cancel_task(self, task_id: str) -> Task:
        async with self._lock_for(task_id):
            stored = self._current(task_id)
            current = stored.status
            if current.state not in CANCELABLE_STATES:
                raise TaskNotCancelableError(task_id, current.state)
            new_status = TaskStatus(
                state=TaskState.CANCELED,
                message=current.message,
                timestamp=_stamp(current.timestamp),
            )
            task = stored.model_copy(update={"status": new_status}, deep=True)
            logger.debug(
                "task_canceled",
                extra={"task_id": task_id, "previous_state": TaskState(current.state).value},
            )
            return self._commit(task)

    async def subscribe(self) -> tuple[asyncio.Queue[Task], Unsubscribe]:
        return self._events.subscribe()


__all__ = [
    "ALLOWED_TRANSITIONS",
    "InMemoryTaskStore",
    "TaskEventBroker",
    "TaskStore",
    "Unsubscribe",
    "is_transition_allowed",
]
