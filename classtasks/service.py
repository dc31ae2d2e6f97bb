"""Task use cases: storage through a database port, events through a producer port."""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from classtasks.domain import (
    Assignment,
    AssignmentNotFoundError,
    Event,
    LessonTask,
    Task,
    TaskAssignment,
    TaskAssignments,
    TaskNotFoundError,
    TaskResult,
    TaskWithAssignment,
    new_students_got_mark_event,
    new_task_assigned_to_class_events,
)


class ServiceError(Exception):
    """Raised when an operation behind the service fails."""


class Database(Protocol):
    """Storage the service works against."""

    def create_task(self, task: Task) -> UUID: ...

    def get_task_by_id(self, task_id: UUID) -> Task: ...

    def get_tasks(self) -> list[Task]: ...

    def update_task(self, task: Task) -> None: ...

    def delete_task(self, task_id: UUID) -> None: ...

    def create_assignments(self, task_assignments: TaskAssignments) -> list[Assignment]: ...

    def get_tasks_by_class(self, class_name: str) -> list[LessonTask]: ...

    def set_task_results(self, task_result: TaskResult) -> None: ...

    def delete_assignment(self, assignment_id: UUID) -> None: ...

    def create_task_with_assignment(self, assignment: TaskWithAssignment) -> UUID: ...

    def update_assignment(self, assignment: TaskAssignment) -> None: ...


class Producer(Protocol):
    """Publisher of domain events."""

    def produce(self, event: Event) -> None: ...


_NOT_FOUND = (TaskNotFoundError, AssignmentNotFoundError)


def _wrap(prefix: str, err: Exception) -> Exception:
    """Prefix an error; not-found errors keep their type so callers can tell them apart."""
    message = f"{prefix}: {err}"
    if isinstance(err, _NOT_FOUND):
        return type(err)(message)
    return ServiceError(message)


class TaskService:
    """Manages task templates, class assignments and marks."""

    def __init__(self, logger: logging.Logger | None, db: Database, producer: Producer) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._db = db
        self._producer = producer

    def _publish(self, event: Event) -> Exception | None:
        try:
            self._producer.produce(event)
        except Exception as err:  # noqa: BLE001 - any publishing failure is only logged
            self._logger.error("failed to send event: %s", err)
            return err
        return None

    def create_task(self, task: Task) -> UUID:
        try:
            return self._db.create_task(task)
        except Exception as err:
            raise _wrap("failed create task", err) from err

    def get_task(self, task_id: UUID) -> Task:
        try:
            return self._db.get_task_by_id(task_id)
        except TaskNotFoundError as err:
            raise _wrap("task doesn't exist", err) from err
        except Exception as err:
            raise _wrap("failed get task", err) from err

    def get_tasks(self) -> list[Task]:
        try:
            return self._db.get_tasks()
        except Exception as err:
            raise _wrap("failed get task", err) from err

    def update_task(self, task: Task) -> UUID:
        try:
            self._db.update_task(task)
        except Exception as err:
            raise _wrap("failed update task", err) from err
        return task.id

    def delete_task(self, task_id: UUID) -> None:
        try:
            self._db.delete_task(task_id)
        except Exception as err:
            raise _wrap("failed delete task", err) from err

    def create_assignments(self, task_assignments: TaskAssignments) -> list[Assignment]:
        """Assign a template to classes and lessons, announcing each assignment.

        Publishing failures are logged; if the last one fails, it is raised.
        """
        try:
            assignments = self._db.create_assignments(task_assignments)
        except Exception as err:
            raise _wrap("failed assignment task to users task", err) from err

        last_error: Exception | None = None
        for event in new_task_assigned_to_class_events(assignments):
            last_error = self._publish(event)
        if last_error is not None:
            raise ServiceError(str(last_error)) from last_error
        return assignments

    def get_tasks_by_class(self, class_name: str) -> list[LessonTask]:
        try:
            return self._db.get_tasks_by_class(class_name)
        except Exception as err:
            raise _wrap("failed get task", err) from err

    def set_task_results(self, task_result: TaskResult) -> None:
        try:
            self._db.set_task_results(task_result)
        except Exception as err:
            raise _wrap("failed assignment task to users task", err) from err
        self._publish(new_students_got_mark_event(task_result))

    def delete_assignment(self, assignment_id: UUID) -> None:
        try:
            self._db.delete_assignment(assignment_id)
        except Exception as err:
            raise _wrap("failed assignment task to users task", err) from err

    def create_task_with_assignment(self, assignment: TaskWithAssignment) -> UUID:
        try:
            assignment_id = self._db.create_task_with_assignment(assignment)
        except Exception as err:
            raise _wrap("failed create task with assignment", err) from err

        created = Assignment(
            assignment_id=assignment_id,
            class_name=assignment.class_name,
            lesson_id=assignment.lesson_id,
        )
        self._publish(new_task_assigned_to_class_events([created])[0])
        return assignment_id

    def update_assignment(self, assignment: TaskAssignment) -> None:
        try:
            self._db.update_assignment(assignment)
        except Exception as err:
            raise _wrap("failed create task with assignment", err) from err