"""Domain model: task templates, class assignments, marks and the events they raise."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

STUDENTS_GOT_MARK_EVENT_TYPE = "StudentsGotMarkEvent"
TASK_ASSIGNED_TO_CLASS_EVENT_TYPE = "TaskAssignedToClass"


class TaskNotFoundError(LookupError):
    """Raised when a task template does not exist."""

    def __init__(self, message: str = "task doesn't exist") -> None:
        super().__init__(message)


class AssignmentNotFoundError(LookupError):
    """Raised when a class assignment does not exist."""

    def __init__(self, message: str = "assignment doesn't exist") -> None:
        super().__init__(message)


class Event(ABC):
    """Something that happened and is published to the message broker."""

    @property
    @abstractmethod
    def event_type(self) -> str:
        """The key under which the event is published."""

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """The JSON-ready body of the event."""


@dataclass
class Task:
    id: UUID
    payload: str
    deadline: datetime | None = None


@dataclass
class TaskWithAssignment:
    class_name: str
    lesson_id: UUID
    task_id: UUID
    payload: str
    deadline: datetime | None = None


@dataclass
class ClassLesson:
    class_name: str
    lesson_id: UUID


@dataclass
class TaskAssignments:
    to_assign: list[ClassLesson]
    task_id: UUID


@dataclass
class Assignment:
    assignment_id: UUID
    class_name: str
    lesson_id: UUID


@dataclass
class TaskAssignment:
    assignment_id: UUID
    class_name: str
    payload: str


@dataclass
class LessonTask:
    lesson_id: UUID
    task_id: UUID
    payload: str
    deadline: datetime | None
    task_template_id: UUID


@dataclass
class UserResult:
    user_id: UUID
    mark: int


@dataclass
class TaskResult:
    users_result: list[UserResult]
    task_id: UUID
    lesson_id: UUID


@dataclass
class UsersMark:
    user_id: str
    mark: int


@dataclass
class StudentsGotMarkEvent(Event):
    users_mark: list[UsersMark] = field(default_factory=list)
    task_id: str = ""
    lesson_id: str = ""

    @property
    def event_type(self) -> str:
        return STUDENTS_GOT_MARK_EVENT_TYPE

    def to_dict(self) -> dict[str, Any]:
        return {
            "users_mark": [{"user_id": m.user_id, "mark": m.mark} for m in self.users_mark],
            "task_id": self.task_id,
            "lesson_id": self.lesson_id,
        }


@dataclass
class TaskAssignedToClassEvent(Event):
    class_name: str
    lesson_id: str
    task_id: str

    @property
    def event_type(self) -> str:
        return TASK_ASSIGNED_TO_CLASS_EVENT_TYPE

    def to_dict(self) -> dict[str, Any]:
        return {"class": self.class_name, "lesson_id": self.lesson_id, "task_id": self.task_id}


def new_students_got_mark_event(task_result: TaskResult) -> StudentsGotMarkEvent:
    """Build the event announcing the marks in a task result."""
    return StudentsGotMarkEvent(
        users_mark=[UsersMark(str(r.user_id), r.mark) for r in task_result.users_result],
        task_id=str(task_result.task_id),
        lesson_id=str(task_result.lesson_id),
    )


def new_task_assigned_to_class_events(
    assignments: Iterable[Assignment],
) -> list[TaskAssignedToClassEvent]:
    """Build one event per assignment, carrying the assignment id as task id."""
    return [
        TaskAssignedToClassEvent(
            class_name=a.class_name,
            lesson_id=str(a.lesson_id),
            task_id=str(a.assignment_id),
        )
        for a in assignments
    ]