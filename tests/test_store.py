from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from a2a_taskhub.errors import InvalidStateTransitionError, TaskNotCancelableError, TaskNotFoundError
from a2a_taskhub.models import ACTIVE_STATES, Artifact, Message, Task, TaskState, TaskStatus, TextPart, utc_now
from a2a_taskhub.store import InMemoryTaskStore, is_transition_allowed


def _task(task_id: str = "task-1", state: TaskState = TaskState.SUBMITTED) -> Task:
    return Task(
        id=task_id,
        session_id="session-1",
        status=TaskStatus(state=state),
    )


def _agent_message(text: str) -> Message:
    return Message(role="agent", parts=[TextPart(text=text)])


def _drain(queue: asyncio.Queue[Task]) -> list[Task]:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


@pytest.mark.asyncio
async def test_get_unknown_task_raises_not_found() -> None:
    store = InMemoryTaskStore()
    with pytest.raises(TaskNotFoundError) as excinfo:
        await store.get_task("missing")
    assert excinfo.value.task_id == "missing"


@pytest.mark.asyncio
async def test_create_then_get_returns_equal_task() -> None:
    store = InMemoryTaskStore()
    created = await store.create_task(_task())
    fetched = await store.get_task("task-1")
    assert fetched == created
    assert fetched.session_id == "session-1"
    assert fetched.status.state is TaskState.SUBMITTED


@pytest.mark.asyncio
async def test_returned_tasks_are_copies() -> None:
    store = InMemoryTaskStore()
    created = await store.create_task(_task())
    created.status.state = TaskState.FAILED
    fetched = await store.get_task("task-1")
    assert fetched.status.state is TaskState.SUBMITTED


@pytest.mark.asyncio
async def test_create_overwrites_existing_id() -> None:
    store = InMemoryTaskStore()
    await store.create_task(_task(state=TaskState.COMPLETED))
    await store.create_task(_task(state=TaskState.SUBMITTED))
    fetched = await store.get_task("task-1")
    assert fetched.status.state is TaskState.SUBMITTED


@pytest.mark.asyncio
async def test_update_status_is_read_after_write() -> None:
    store = InMemoryTaskStore()
    await store.create_task(_task())
    updated = await store.update_status(
        "task-1",
        TaskStatus(state=TaskState.WORKING, message=_agent_message("Working on it...")),
    )
    assert updated.status.state is TaskState.WORKING
    fetched = await store.get_task("task-1")
    assert fetched.status.state is TaskState.WORKING
    assert fetched.status.message is not None
    assert fetched.status.message.parts[0].text == "Working on it..."


@pytest.mark.asyncio
async def test_update_status_unknown_task() -> None:
    store = InMemoryTaskStore()
    with pytest.raises(TaskNotFoundError):
        await store.update_status("missing", TaskStatus(state=TaskState.WORKING))


@pytest.mark.asyncio
async def test_store_stamps_monotonic_timestamps() -> None:
    store = InMemoryTaskStore()
    future = utc_now() + timedelta(hours=1)
    await store.create_task(Task(id="task-1", status=TaskStatus(state=TaskState.SUBMITTED, timestamp=future)))
    first = await store.get_task("task-1")
    assert first.status.timestamp <= utc_now()

    stale = utc_now() - timedelta(days=1)
    second = await store.update_status("task-1", TaskStatus(state=TaskState.WORKING, timestamp=stale))
    assert second.status.timestamp >= first.status.timestamp
    third = await store.cancel_task("task-1")
    assert third.status.timestamp >= second.status.timestamp


@pytest.mark.asyncio
async def test_permissive_store_allows_backward_transition() -> None:
    store = InMemoryTaskStore()
    await store.create_task(_task(state=TaskState.COMPLETED))
    updated = await store.update_status("task-1", TaskStatus(state=TaskState.SUBMITTED))
    assert updated.status.state is TaskState.SUBMITTED


@pytest.mark.asyncio
async def test_strict_store_rejects_illegal_transition() -> None:
    store = InMemoryTaskStore(strict_transitions=True)
    await store.create_task(_task(state=TaskState.COMPLETED))
    with pytest.raises(InvalidStateTransitionError):
        await store.update_status("task-1", TaskStatus(state=TaskState.SUBMITTED))
    fetched = await store.get_task("task-1")
    assert fetched.status.state is TaskState.COMPLETED


@pytest.mark.asyncio
async def test_conditional_update_rejects_unexpected_state_without_event() -> None:
    store = InMemoryTaskStore()
    await store.create_task(_task(state=TaskState.WORKING))
    await store.cancel_task("task-1")
    queue, _ = await store.subscribe()

    with pytest.raises(InvalidStateTransitionError) as excinfo:
        await store.update_status(
            "task-1",
            TaskStatus(state=TaskState.COMPLETED),
            from_states=ACTIVE_STATES,
        )
    assert excinfo.value.current is TaskState.CANCELED
    assert queue.empty()
    fetched = await store.get_task("task-1")
    assert fetched.status.state is TaskState.CANCELED


@pytest.mark.asyncio
async def test_conditional_update_applies_from_expected_state() -> None:
    store = InMemoryTaskStore()
    await store.create_task(_task(state=TaskState.INPUT_REQUIRED))
    updated = await store.update_status(
        "task-1",
        TaskStatus(state=TaskState.COMPLETED),
        from_states=(TaskState.INPUT_REQUIRED,),
    )
    assert updated.status.state is TaskState.COMPLETED


@pytest.mark.asyncio
async def test_strict_store_follows_lifecycle_graph() -> None:
    store = InMemoryTaskStore(strict_transitions=True)
    await store.create_task(_task())
    for state in (TaskState.WORKING, TaskState.INPUT_REQUIRED, TaskState.COMPLETED):
        updated = await store.update_status("task-1", TaskStatus(state=state))
        assert updated.status.state is state


@pytest.mark.parametrize(
    ("current", "new", "allowed"),
    [
        (TaskState.SUBMITTED, TaskState.REJECTED, True),
        (TaskState.WORKING, TaskState.REJECTED, False),
        (TaskState.WORKING, TaskState.SUBMITTED, False),
        (TaskState.INPUT_REQUIRED, TaskState.WORKING, False),
        (TaskState.INPUT_REQUIRED, TaskState.FAILED, True),
        (TaskState.CANCELED, TaskState.WORKING, False),
        (TaskState.WORKING, TaskState.WORKING, True),
    ],
)
def test_transition_graph(current: TaskState, new: TaskState, allowed: bool) -> None:
    assert is_transition_allowed(current, new) is allowed


@pytest.mark.asyncio
async def test_add_artifact_initialises_and_appends() -> None:
    store = InMemoryTaskStore()
    await store.create_task(_task())
    await store.add_artifact("task-1", Artifact(name="a", parts=[TextPart(text="one")]))
    updated = await store.add_artifact("task-1", Artifact(name="b", parts=[TextPart(text="two")], index=1))
    assert [artifact.name for artifact in updated.artifacts or []] == ["a", "b"]


@pytest.mark.asyncio
async def test_append_artifact_extends_same_index() -> None:
    store = InMemoryTaskStore()
    await store.create_task(_task())
    await store.add_artifact("task-1", Artifact(name="stream", parts=[TextPart(text="one")], index=0))
    updated = await store.add_artifact(
        "task-1",
        Artifact(parts=[TextPart(text="two")], index=0, append=True, last_chunk=True),
    )
    artifacts = updated.artifacts or []
    assert len(artifacts) == 1
    assert [part.text for part in artifacts[0].parts] == ["one", "two"]
    assert artifacts[0].name == "stream"
    assert artifacts[0].last_chunk is True


@pytest.mark.asyncio
async def test_add_artifact_unknown_task() -> None:
    store = InMemoryTaskStore()
    with pytest.raises(TaskNotFoundError):
        await store.add_artifact("missing", Artifact(parts=[TextPart(text="x")]))


@pytest.mark.asyncio
@pytest.mark.parametrize("state", [TaskState.SUBMITTED, TaskState.WORKING, TaskState.INPUT_REQUIRED])
async def test_cancel_cancelable_states(state: TaskState) -> None:
    store = InMemoryTaskStore()
    message = _agent_message("need more input")
    await store.create_task(Task(id="task-1", status=TaskStatus(state=state, message=message)))
    canceled = await store.cancel_task("task-1")
    assert canceled.status.state is TaskState.CANCELED
    assert canceled.status.message == message
    fetched = await store.get_task("task-1")
    assert fetched.status.state is TaskState.CANCELED


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "state",
    [TaskState.COMPLETED, TaskState.CANCELED, TaskState.FAILED, TaskState.REJECTED, TaskState.UNKNOWN],
)
async def test_cancel_rejects_other_states_and_keeps_state(state: TaskState) -> None:
    store = InMemoryTaskStore()
    await store.create_task(_task(state=state))
    with pytest.raises(TaskNotCancelableError) as excinfo:
        await store.cancel_task("task-1")
    assert excinfo.value.state is state
    fetched = await store.get_task("task-1")
    assert fetched.status.state is state


@pytest.mark.asyncio
async def test_cancel_unknown_task() -> None:
    store = InMemoryTaskStore()
    with pytest.raises(TaskNotFoundError):
        await store.cancel_task("missing")


@pytest.mark.asyncio
async def test_subscribers_receive_one_snapshot_per_successful_mutation() -> None:
    store = InMemoryTaskStore()
    first, _ = await store.subscribe()
    second, _ = await store.subscribe()

    await store.create_task(_task())
    await store.update_status("task-1", TaskStatus(state=TaskState.WORKING))
    await store.add_artifact("task-1", Artifact(parts=[TextPart(text="x")]))
    await store.cancel_task("task-1")

    with pytest.raises(TaskNotCancelableError):
        await store.cancel_task("task-1")
    with pytest.raises(TaskNotFoundError):
        await store.update_status("missing", TaskStatus(state=TaskState.WORKING))

    for queue in (first, second):
        events = _drain(queue)
        assert [event.status.state for event in events] == [
            TaskState.SUBMITTED,
            TaskState.WORKING,
            TaskState.WORKING,
            TaskState.CANCELED,
        ]
        assert events[2].artifacts is not None
        assert events[3].artifacts is not None


@pytest.mark.asyncio
async def test_subscriber_registered_later_misses_earlier_events() -> None:
    store = InMemoryTaskStore()
    await store.create_task(_task())
    queue, _ = await store.subscribe()
    assert queue.empty()
    await store.update_status("task-1", TaskStatus(state=TaskState.WORKING))
    assert len(_drain(queue)) == 1


@pytest.mark.asyncio
async def test_full_subscriber_queue_drops_events() -> None:
    store = InMemoryTaskStore(event_buffer_size=2)
    queue, _ = await store.subscribe()
    await store.create_task(_task())
    for state in (TaskState.WORKING, TaskState.INPUT_REQUIRED, TaskState.COMPLETED):
        await store.update_status("task-1", TaskStatus(state=state))
    events = _drain(queue)
    assert [event.status.state for event in events] == [TaskState.SUBMITTED, TaskState.WORKING]
    fetched = await store.get_task("task-1")
    assert fetched.status.state is TaskState.COMPLETED


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery() -> None:
    store = InMemoryTaskStore()
    queue, unsubscribe = await store.subscribe()
    assert store.subscriber_count == 1
    await unsubscribe()
    assert store.subscriber_count == 0
    await store.create_task(_task())
    assert queue.empty()


@pytest.mark.asyncio
async def test_concurrent_writers_on_different_ids() -> None:
    store = InMemoryTaskStore()
    ids = [f"task-{index}" for index in range(25)]
    await asyncio.gather(*(store.create_task(_task(task_id)) for task_id in ids))

    async def _advance(task_id: str) -> None:
        await store.update_status(task_id, TaskStatus(state=TaskState.WORKING))
        await store.add_artifact(task_id, Artifact(name=task_id, parts=[TextPart(text=task_id)]))
        await store.update_status(task_id, TaskStatus(state=TaskState.COMPLETED))

    await asyncio.gather(*(_advance(task_id) for task_id in ids))
    for task_id in ids:
        fetched = await store.get_task(task_id)
        assert fetched.status.state is TaskState.COMPLETED
        assert [artifact.name for artifact in fetched.artifacts or []] == [task_id]


@pytest.mark.asyncio
async def test_concurrent_writers_on_same_id_are_serialised() -> None:
    store = InMemoryTaskStore()
    await store.create_task(_task())
    await asyncio.gather(
        *(store.add_artifact("task-1", Artifact(name=str(index), parts=[TextPart(text="x")])) for index in range(50))
    )
    fetched = await store.get_task("task-1")
    assert len(fetched.artifacts or []) == 50
