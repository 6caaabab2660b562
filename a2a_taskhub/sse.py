"""Server-sent event framing for store snapshots."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator

from .models import TERMINAL_STATES, Task
from .store import TaskStore

DEFAULT_HEARTBEAT_INTERVAL = 15.0

UPDATE_EVENT = "task-update"
FINAL_EVENT = "task-final"
HEARTBEAT_FRAME = b": heartbeat\n\n"


def encode_task_event(task: Task, *, event_id: int | None = None) -> bytes:
    """Frame one snapshot; tasks in a terminal state are sent as ``task-final``."""

    event = FINAL_EVENT if task.status.state in TERMINAL_STATES else UPDATE_EVENT
    data = json.dumps(task.to_wire(), ensure_ascii=False, separators=(",", ":"))
    lines = [] if event_id is None else [f"id: {event_id}"]
    lines += [f"event: {event}", f"data: {data}"]
    return ("\n".join(lines) + "\n\n").encode()


async def stream_task_events(
    store: TaskStore,
    *,
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
) -> AsyncIterator[bytes]:
    """Yield every snapshot the store publishes from the first iteration on.

    The subscription is taken inside the generator, so a stream that is never
    iterated never registers a queue.
    """

    queue, unsubscribe = await store.subscribe()
    try:
        sequence = 0
        while True:
            try:
                task = await asyncio.wait_for(queue.get(), timeout=heartbeat_interval)
            except TimeoutError:
                yield HEARTBEAT_FRAME
                continue
            sequence += 1
            yield encode_task_event(task, event_id=sequence)
    finally:
        await unsubscribe()


__all__ = [
    "DEFAULT_HEARTBEAT_INTERVAL",
    "FINAL_EVENT",
    "HEARTBEAT_FRAME",
    "UPDATE_EVENT",
    "encode_task_event",
    "stream_task_events",
]
