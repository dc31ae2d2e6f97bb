"""JSON bodies the API sends back."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable
from uuid import UUID

from classtasks.domain import Assignment, LessonTask, Task


def format_deadline(deadline: datetime | None) -> str | None:
    """Format a moment as RFC 3339 with trailing zeros of the fraction dropped."""
    if deadline is None:
        return None
    d = deadline
    text = f"{d.year:04d}-{d.month:02d}-{d.day:02d}T{d.hour:02d}:{d.minute:02d}:{d.second:02d}"
    if d.microsecond:
        text += "." + f"{d.microsecond:06d}".rstrip("0")
    offset = d.utcoffset()
    if not offset:
        return text + "Z"
    sign = "-" if offset < timedelta(0) else "+"
    minutes = int(abs(offset).total_seconds()) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def task_response(task: Task) -> dict[str, Any]:
    body: dict[str, Any] = {"id": str(task.id), "payload": task.payload}
    if task.deadline is not None:
        body["deadline"] = format_deadline(task.deadline)
    return body


def tasks_response(tasks: Iterable[Task] | None) -> dict[str, Any]:
    return {"tasks": [task_response(t) for t in tasks or []]}


def task_id_response(task_id: UUID) -> dict[str, str]:
    return {"id": str(task_id)}


def _lesson_task(task: LessonTask) -> dict[str, Any]:
    body: dict[str, Any] = {
        "lesson_id": str(task.lesson_id),
        "task_id": str(task.task_id),
        "payload": task.payload,
    }
    if task.deadline is not None:
        body["deadline"] = format_deadline(task.deadline)
    body["task_template_id"] = str(task.task_template_id)
    return body


def class_tasks_response(class_name: str, tasks: Iterable[LessonTask] | None) -> dict[str, Any]:
    return {"class": class_name, "tasks": [_lesson_task(t) for t in tasks or []]}


def assignment_id_response(assignment_id: UUID | str) -> dict[str, str]:
    return {"class_task_id": str(assignment_id)}


def assignments_response(task_id: str, assignments: Iterable[Assignment] | None) -> dict[str, Any]:
    return {
        "assignments": [
            {"class_task_id": str(a.assignment_id), "class": a.class_name, "lesson_id": str(a.lesson_id)}
            for a in assignments or []
        ],
        "task_template_id": task_id,
    }


def error_response(message: str, code: int) -> dict[str, Any]:
    return {"error": message, "error_code": code}