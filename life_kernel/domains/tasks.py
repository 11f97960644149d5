"""
Tasks Domain

Tasks move between five buckets: inbox, focus, deferred, completed and
abandoned. Focus is capped (3 by default) and blocked-by dependencies must
stay acyclic. Both rules are enforced when handling commands; the reducer
folds whatever the log says.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from life_kernel.config import KernelSettings
from life_kernel.domains.base import CommandRouter, EventReducer, make_event
from life_kernel.models.envelope import Command, Event
from life_kernel.validation import (
    UnknownEntityError,
    ValidationError,
    assert_no_dependency_cycle,
    require_capacity,
    require_text,
)

TaskStatus = Literal["inbox", "focus", "deferred", "completed", "abandoned"]
TaskPriority = Literal["low", "medium", "high"]

TERMINAL_STATUSES = frozenset({"completed", "abandoned"})


# =============================================================================
# STATE
# =============================================================================

class Subtask(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    completed: bool = False


class Task(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    status: TaskStatus = "inbox"
    note: Optional[str] = None
    due_at: Optional[int] = None
    priority: Optional[TaskPriority] = None
    blocked_by_task_id: Optional[str] = None
    subtasks: list[Subtask] = Field(default_factory=list)
    created_at: int
    focused_at: Optional[int] = None
    deferred_until: Optional[int] = None
    completed_at: Optional[int] = None
    abandoned_at: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_STATUSES


class TaskState(BaseModel):
    """tasks keeps insertion order; buckets are derived from it."""
    model_config = ConfigDict(frozen=True)

    tasks: dict[str, Task] = Field(default_factory=dict)

    def bucket(self, status: TaskStatus) -> list[Task]:
        return [task for task in self.tasks.values() if task.status == status]

    @property
    def inbox(self) -> list[Task]:
        return self.bucket("inbox")

    @property
    def focus(self) -> list[Task]:
        return self.bucket("focus")

    @property
    def deferred(self) -> list[Task]:
        return self.bucket("deferred")

    @property
    def completed(self) -> list[Task]:
        return self.bucket("completed")

    @property
    def abandoned(self) -> list[Task]:
        return self.bucket("abandoned")

    def blocked_by_of(self, task_id: str) -> Optional[str]:
        task = self.tasks.get(task_id)
        return task.blocked_by_task_id if task else None


# =============================================================================
# EVENTS
# =============================================================================

class TaskCreated(BaseModel):
    id: str
    title: str
    note: Optional[str] = None
    due_at: Optional[int] = None
    priority: Optional[TaskPriority] = None


class TaskUpdated(BaseModel):
    id: str
    title: Optional[str] = None
    note: Optional[str] = None
    due_at: Optional[int] = None
    priority: Optional[TaskPriority] = None


class TaskDependencySet(BaseModel):
    id: str
    blocked_by_task_id: Optional[str] = None


class SubtaskAdded(BaseModel):
    id: str
    subtask_id: str
    title: str


class SubtaskToggled(BaseModel):
    id: str
    subtask_id: str
    completed: bool


class TaskDeferred(BaseModel):
    id: str
    defer_until: Optional[int] = None


class TaskRef(BaseModel):
    id: str


reduce: EventReducer[TaskState] = EventReducer("tasks", TaskState)


def _put(state: TaskState, task: Task) -> TaskState:
    return state.model_copy(update={"tasks": {**state.tasks, task.id: task}})


def _patched(state: TaskState, task_id: str, **changes) -> TaskState:
    task = state.tasks.get(task_id)
    if task is None:
        return state
    return _put(state, task.model_copy(update=changes))


@reduce.on("task.created", TaskCreated)
def _task_created(state: TaskState, event: Event, payload: TaskCreated) -> TaskState:
    task = Task(created_at=event.occurred_at, **payload.model_dump())
    return _put(state, task)


@reduce.on("task.updated", TaskUpdated)
def _task_updated(state: TaskState, event: Event, payload: TaskUpdated) -> TaskState:
    changes = payload.model_dump(exclude={"id"}, exclude_unset=True)
    return _patched(state, payload.id, **changes)


@reduce.on("task.dependency_set", TaskDependencySet)
def _task_dependency_set(state: TaskState, event: Event, payload: TaskDependencySet) -> TaskState:
    return _patched(state, payload.id, blocked_by_task_id=payload.blocked_by_task_id)


@reduce.on("task.subtask_added", SubtaskAdded)
def _subtask_added(state: TaskState, event: Event, payload: SubtaskAdded) -> TaskState:
    task = state.tasks.get(payload.id)
    if task is None:
        return state
    subtask = Subtask(id=payload.subtask_id, title=payload.title)
    return _patched(state, task.id, subtasks=[*task.subtasks, subtask])


@reduce.on("task.subtask_toggled", SubtaskToggled)
def _subtask_toggled(state: TaskState, event: Event, payload: SubtaskToggled) -> TaskState:
    task = state.tasks.get(payload.id)
    if task is None:
        return state
    subtasks = [
        s.model_copy(update={"completed": payload.completed}) if s.id == payload.subtask_id else s
        for s in task.subtasks
    ]
    return _patched(state, task.id, subtasks=subtasks)


@reduce.on("task.focused", TaskRef)
def _task_focused(state: TaskState, event: Event, payload: TaskRef) -> TaskState:
    return _patched(state, payload.id, status="focus", focused_at=event.occurred_at)


@reduce.on("task.deferred", TaskDeferred)
def _task_deferred(state: TaskState, event: Event, payload: TaskDeferred) -> TaskState:
    return _patched(state, payload.id, status="deferred", deferred_until=payload.defer_until)


@reduce.on("task.completed", TaskRef)
def _task_completed(state: TaskState, event: Event, payload: TaskRef) -> TaskState:
    return _patched(state, payload.id, status="completed", completed_at=event.occurred_at)


@reduce.on("task.abandoned", TaskRef)
def _task_abandoned(state: TaskState, event: Event, payload: TaskRef) -> TaskState:
    return _patched(state, payload.id, status="abandoned", abandoned_at=event.occurred_at)


def initial_state() -> TaskState:
    return reduce.initial_state()


# =============================================================================
# COMMANDS
# =============================================================================

class CaptureTask(BaseModel):
    task_id: Optional[str] = None
    title: str
    note: Optional[str] = None
    due_at: Optional[int] = Field(default=None, ge=0)
    priority: Optional[TaskPriority] = None


class UpdateTask(BaseModel):
    task_id: str
    title: Optional[str] = None
    note: Optional[str] = None
    due_at: Optional[int] = Field(default=None, ge=0)
    priority: Optional[TaskPriority] = None


class SetDependency(BaseModel):
    task_id: str
    blocked_by_task_id: Optional[str] = None


class AddSubtask(BaseModel):
    task_id: str
    subtask_id: Optional[str] = None
    title: str


class ToggleSubtask(BaseModel):
    task_id: str
    subtask_id: str


class DeferTask(BaseModel):
    task_id: str
    defer_until: Optional[int] = Field(default=None, ge=0)


class TaskIdPayload(BaseModel):
    task_id: str


commands: CommandRouter[TaskState] = CommandRouter(reduce)


def _require_task(state: TaskState, task_id: str) -> Task:
    task = state.tasks.get(task_id)
    if task is None:
        raise UnknownEntityError("task", task_id)
    return task


def _require_open(task: Task, action: str) -> None:
    if not task.is_open:
        raise ValidationError(
            f"Cannot {action} a {task.status} task: {task.id}",
            field="task_id",
            issue_type="invalid_transition",
        )


@commands.on("task.capture", CaptureTask)
def _capture_task(
    state: TaskState,
    command: Command,
    payload: CaptureTask,
    settings: KernelSettings,
) -> list[Event]:
    task_id = payload.task_id or command.idempotency_key
    title = require_text(payload.title, "title")
    if task_id in state.tasks:
        raise ValidationError(
            f"Task already exists: {task_id}",
            field="task_id",
            issue_type="duplicate",
        )
    created = TaskCreated(
        id=task_id,
        title=title,
        note=payload.note,
        due_at=payload.due_at,
        priority=payload.priority,
    )
    return [make_event(command, "task.created", created)]


@commands.on("task.update", UpdateTask)
def _update_task(
    state: TaskState,
    command: Command,
    payload: UpdateTask,
    settings: KernelSettings,
) -> list[Event]:
    _require_open(_require_task(state, payload.task_id), "update")
    changes = payload.model_dump(exclude={"task_id"}, exclude_unset=True)
    if not changes:
        raise ValidationError("Nothing to update", issue_type="empty")
    if "title" in changes:
        changes["title"] = require_text(changes["title"], "title")
    updated = TaskUpdated(id=payload.task_id, **changes)
    event = make_event(command, "task.updated", updated)
    # make_event drops None values; keep explicit clears (e.g. note=None)
    return [event.model_copy(update={
        "payload": updated.model_dump(mode="json", exclude_unset=True),
    })]


@commands.on("task.set_dependency", SetDependency)
def _set_dependency(
    state: TaskState,
    command: Command,
    payload: SetDependency,
    settings: KernelSettings,
) -> list[Event]:
    _require_open(_require_task(state, payload.task_id), "change dependencies of")
    if payload.blocked_by_task_id is not None:
        _require_task(state, payload.blocked_by_task_id)
    assert_no_dependency_cycle(
        payload.task_id,
        payload.blocked_by_task_id,
        state.blocked_by_of,
        settings.dependency_walk_depth,
    )
    dependency = TaskDependencySet(id=payload.task_id, blocked_by_task_id=payload.blocked_by_task_id)
    return [make_event(command, "task.dependency_set", dependency)]


@commands.on("task.add_subtask", AddSubtask)
def _add_subtask(
    state: TaskState,
    command: Command,
    payload: AddSubtask,
    settings: KernelSettings,
) -> list[Event]:
    task = _require_task(state, payload.task_id)
    _require_open(task, "add a subtask to")
    subtask_id = payload.subtask_id or command.idempotency_key
    if any(s.id == subtask_id for s in task.subtasks):
        raise ValidationError(
            f"Subtask already exists: {subtask_id}",
            field="subtask_id",
            issue_type="duplicate",
        )
    added = SubtaskAdded(id=task.id, subtask_id=subtask_id, title=require_text(payload.title, "title"))
    return [make_event(command, "task.subtask_added", added)]


@commands.on("task.toggle_subtask", ToggleSubtask)
def _toggle_subtask(
    state: TaskState,
    command: Command,
    payload: ToggleSubtask,
    settings: KernelSettings,
) -> list[Event]:
    task = _require_task(state, payload.task_id)
    subtask = next((s for s in task.subtasks if s.id == payload.subtask_id), None)
    if subtask is None:
        raise UnknownEntityError("subtask", payload.subtask_id)
    toggled = SubtaskToggled(id=task.id, subtask_id=subtask.id, completed=not subtask.completed)
    return [make_event(command, "task.subtask_toggled", toggled)]


@commands.on("task.focus", TaskIdPayload)
def _focus_task(
    state: TaskState,
    command: Command,
    payload: TaskIdPayload,
    settings: KernelSettings,
) -> list[Event]:
    task = _require_task(state, payload.task_id)
    if task.status == "focus":
        return []
    _require_open(task, "focus")
    require_capacity(len(state.focus), settings.focus_capacity, "Focus")
    return [make_event(command, "task.focused", TaskRef(id=task.id))]


@commands.on("task.defer", DeferTask)
def _defer_task(
    state: TaskState,
    command: Command,
    payload: DeferTask,
    settings: KernelSettings,
) -> list[Event]:
    task = _require_task(state, payload.task_id)
    _require_open(task, "defer")
    if payload.defer_until is not None and payload.defer_until <= command.requested_at:
        raise ValidationError(
            "Defer date must be in the future",
            field="defer_until",
            issue_type="invalid_value",
        )
    deferred = TaskDeferred(id=task.id, defer_until=payload.defer_until)
    return [make_event(command, "task.deferred", deferred)]


@commands.on("task.complete", TaskIdPayload)
def _complete_task(
    state: TaskState,
    command: Command,
    payload: TaskIdPayload,
    settings: KernelSettings,
) -> list[Event]:
    task = _require_task(state, payload.task_id)
    _require_open(task, "complete")
    return [make_event(command, "task.completed", TaskRef(id=task.id))]


@commands.on("task.abandon", TaskIdPayload)
def _abandon_task(
    state: TaskState,
    command: Command,
    payload: TaskIdPayload,
    settings: KernelSettings,
) -> list[Event]:
    task = _require_task(state, payload.task_id)
    _require_open(task, "abandon")
    return [make_event(command, "task.abandoned", TaskRef(id=task.id))]
