"""Validation and conversion of the JSON bodies and query arguments the API accepts."""

from __future__ import annotations

import re
import string
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from uuid import UUID

from classtasks.domain import (
    ClassLesson,
    Task,
    TaskAssignment,
    TaskAssignments,
    TaskResult,
    TaskWithAssignment,
    UserResult,
)


class RequestValidationError(ValueError):
    """Raised when a request cannot be decoded or fails validation.

    ``failures`` lists ``(field, tag)`` pairs for failed field rules.
    """

    def __init__(self, message: str, failures: tuple[tuple[str, str], ...] | list = ()) -> None:
        super().__init__(message)
        self.failures = tuple(failures)


_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|z|[+-]\d{2}:\d{2})"
)


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _type_error(value: Any, owner: str, key: str, expected: str) -> RequestValidationError:
    return RequestValidationError(f"cannot decode {_kind(value)} into field {owner}.{key} of type {expected}")


def _object(data: Any, owner: str) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RequestValidationError(f"cannot decode {_kind(data)} into {owner}")
    return data


def _string(obj: Mapping[str, Any], key: str, owner: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _type_error(value, owner, key, "string")
    return value


def _integer(obj: Mapping[str, Any], key: str, owner: str) -> int:
    value = obj.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise _type_error(value, owner, key, "int")
    return value


def _array(obj: Mapping[str, Any], key: str, owner: str) -> list | None:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise _type_error(value, owner, key, "array")
    return value


def _parse_time(text: str) -> datetime:
    match = _RFC3339.fullmatch(text)
    if not match:
        raise ValueError("not in RFC 3339 format")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "0")[:6].ljust(6, "0"))
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours > 23 or minutes > 59:
            raise ValueError("time zone offset out of range")
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    return datetime(int(year), int(month), int(day), int(hour), int(minute), int(second), micro, tzinfo=tz)


def _is_zero_time(moment: datetime) -> bool:
    try:
        return moment == _ZERO_TIME
    except OverflowError:
        return False


def _deadline(obj: Mapping[str, Any], key: str, owner: str) -> datetime | None:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise _type_error(value, owner, key, "time")
    try:
        moment = _parse_time(value)
    except ValueError as err:
        raise RequestValidationError(f'parsing time "{value}" as RFC 3339: {err}') from err
    return None if _is_zero_time(moment) else moment


def _require(owner: str, checks: Mapping[str, bool]) -> None:
    missing = [key for key, present in checks.items() if not present]
    if missing:
        message = "\n".join(
            f"Key: '{owner}.{key}' Error:Field validation for '{key}' failed on the 'required' tag"
            for key in missing
        )
        raise RequestValidationError(message, [(key, "required") for key in missing])


def _parse_uuid_text(text: str) -> UUID:
    length = len(text)
    if length == 45:
        if text[:9].lower() != "urn:uuid:":
            raise ValueError(f"invalid urn prefix: {text[:9]!r}")
        text = text[9:]
    elif length == 38:
        if text[0] != "{" or text[-1] != "}":
            raise ValueError("invalid bracketed UUID format")
        text = text[1:-1]
    elif length not in (32, 36):
        raise ValueError(f"invalid UUID length: {length}")
    if len(text) == 36:
        if any(text[i] != "-" for i in (8, 13, 18, 23)):
            raise ValueError("invalid UUID format")
        text = text.replace("-", "")
    if len(text) != 32 or any(c not in string.hexdigits for c in text):
        raise ValueError("invalid UUID format")
    return UUID(text)


def _parse_id(value: str, what: str) -> UUID:
    try:
        return _parse_uuid_text(value)
    except ValueError as err:
        raise RequestValidationError(f"invalid {what} id = {value} with error: {err}") from err


@dataclass
class TaskRequest:
    payload: str
    deadline: datetime | None = None

    @classmethod
    def from_json(cls, data: Any) -> TaskRequest:
        obj = _object(data, "TaskRequest")
        payload = _string(obj, "payload", "TaskRequest")
        deadline = _deadline(obj, "deadline", "TaskRequest")
        _require("TaskRequest", {"payload": payload != ""})
        return cls(payload, deadline)

    def to_domain(self) -> Task:
        """A new task template with a fresh id."""
        return Task(uuid.uuid4(), self.payload, self.deadline)

    def to_domain_with_id(self, task_id: UUID) -> Task:
        return Task(task_id, self.payload, self.deadline)


@dataclass
class TaskAssignmentRequest:
    assignment_id: str
    class_name: str
    payload: str

    @classmethod
    def from_json(cls, data: Any) -> TaskAssignmentRequest:
        owner = "TaskAssignmentRequest"
        obj = _object(data, owner)
        assignment_id = _string(obj, "class_task_id", owner)
        class_name = _string(obj, "class", owner)
        payload = _string(obj, "payload", owner)
        _require(owner, {"class_task_id": assignment_id != "", "class": class_name != "", "payload": payload != ""})
        return cls(assignment_id, class_name, payload)

    def to_domain(self) -> TaskAssignment:
        return TaskAssignment(_parse_id(self.assignment_id, "assignment"), self.class_name, self.payload)


@dataclass
class ClassLessonRequest:
    class_name: str
    lesson_id: str

    @classmethod
    def _from_json(cls, data: Any) -> ClassLessonRequest:
        owner = "ClassLessonRequest"
        obj = _object(data, owner)
        return cls(_string(obj, "class", owner), _string(obj, "lesson_id", owner))


@dataclass
class TaskAssignmentsRequest:
    to_assign: list[ClassLessonRequest]
    task_id: str

    @classmethod
    def from_json(cls, data: Any) -> TaskAssignmentsRequest:
        owner = "TaskAssignmentsRequest"
        obj = _object(data, owner)
        items = _array(obj, "assign_to", owner)
        to_assign = [ClassLessonRequest._from_json(item) for item in items or []]
        task_id = _string(obj, "template_task_id", owner)
        _require(owner, {"assign_to": items is not None, "template_task_id": task_id != ""})
        return cls(to_assign, task_id)

    def to_domain(self) -> TaskAssignments:
        task_id = _parse_id(self.task_id, "task")
        lessons = [ClassLesson(cl.class_name, _parse_id(cl.lesson_id, "lesson")) for cl in self.to_assign]
        return TaskAssignments(to_assign=lessons, task_id=task_id)


@dataclass
class TaskWithAssignmentRequest:
    class_name: str
    lesson_id: str
    payload: str
    deadline: datetime | None = None

    @classmethod
    def from_json(cls, data: Any) -> TaskWithAssignmentRequest:
        owner = "TaskWithAssignmentRequest"
        obj = _object(data, owner)
        class_name = _string(obj, "class", owner)
        lesson_id = _string(obj, "lesson_id", owner)
        payload = _string(obj, "payload", owner)
        deadline = _deadline(obj, "deadline", owner)
        _require(owner, {"class": class_name != "", "lesson_id": lesson_id != "", "payload": payload != ""})
        return cls(class_name, lesson_id, payload, deadline)

    def to_domain(self) -> TaskWithAssignment:
        """A new task template, with a fresh id, assigned to one class and lesson."""
        lesson_id = _parse_id(self.lesson_id, "lesson")
        return TaskWithAssignment(
            class_name=self.class_name,
            lesson_id=lesson_id,
            task_id=uuid.uuid4(),
            payload=self.payload,
            deadline=self.deadline,
        )


@dataclass
class UserResultRequest:
    user_id: str
    mark: int

    @classmethod
    def _from_json(cls, data: Any) -> UserResultRequest:
        owner = "UserResultRequest"
        obj = _object(data, owner)
        return cls(_string(obj, "user_id", owner), _integer(obj, "mark", owner))


@dataclass
class TaskResultRequest:
    users_result: list[UserResultRequest]
    task_id: str
    lesson_id: str

    @classmethod
    def from_json(cls, data: Any) -> TaskResultRequest:
        owner = "TaskResultRequest"
        obj = _object(data, owner)
        items = _array(obj, "users_result", owner)
        users = [UserResultRequest._from_json(item) for item in items or []]
        task_id = _string(obj, "task_id", owner)
        lesson_id = _string(obj, "lesson_id", owner)
        _require(owner, {"users_result": items is not None, "task_id": task_id != "", "lesson_id": lesson_id != ""})
        return cls(users, task_id, lesson_id)

    def to_domain(self) -> TaskResult:
        """Domain result; the lesson id is taken from the task id field."""
        task_id = _parse_id(self.task_id, "task")
        lesson_id = _parse_id(self.task_id, "lesson")
        users = [UserResult(_parse_id(ur.user_id, "user"), ur.mark) for ur in self.users_result]
        return TaskResult(users_result=users, task_id=task_id, lesson_id=lesson_id)


@dataclass
class ClassQuery:
    class_name: str = ""

    @classmethod
    def from_args(cls, args: Mapping[str, str]) -> ClassQuery:
        return cls(args.get("class", "") or "")


@dataclass
class TaskAssignmentIDRequest:
    assignment_id: str = field(default="")

    @classmethod
    def from_json(cls, data: Any) -> TaskAssignmentIDRequest:
        owner = "TaskAssignmentIDRequest"
        obj = _object(data, owner)
        assignment_id = _string(obj, "class_task_id", owner)
        _require(owner, {"class_task_id": assignment_id != ""})
        return cls(assignment_id)

    def to_uuid(self) -> UUID:
        return _parse_id(self.assignment_id, "assignment")