import json
import uuid
from datetime import datetime, timedelta, timezone

from classtasks.domain import Assignment, LessonTask, Task
from classtasks.responses import (
    assignment_id_response,
    assignments_response,
    class_tasks_response,
    error_response,
    format_deadline,
    task_id_response,
    task_response,
    tasks_response,
)

_UTC_DEADLINE = datetime(2025, 1, 1, 13, tzinfo=timezone.utc)


def _parse(text):
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def test_format_deadline_utc():
    assert format_deadline(_UTC_DEADLINE) == "2025-01-01T13:00:00Z"


def test_format_deadline_none():
    assert format_deadline(None) is None


def test_format_deadline_offset_roundtrip():
    moment = datetime(2025, 1, 1, 16, tzinfo=timezone(timedelta(hours=3)))
    text = format_deadline(moment)
    assert text.endswith("+03:00")
    assert _parse(text) == moment


def test_format_deadline_trims_fraction():
    moment = _UTC_DEADLINE.replace(microsecond=500000)
    assert format_deadline(moment) == "2025-01-01T13:00:00.5Z"
    assert _parse(format_deadline(moment.replace(microsecond=123456))) == moment.replace(microsecond=123456)


def test_task_response_omits_missing_deadline():
    task = Task(uuid.uuid4(), "p")
    assert task_response(task) == {"id": str(task.id), "payload": "p"}


def test_task_response_with_deadline():
    task = Task(uuid.uuid4(), "p", _UTC_DEADLINE)
    body = task_response(task)
    assert list(body) == ["id", "payload", "deadline"]
    assert _parse(body["deadline"]) == _UTC_DEADLINE


def test_tasks_response_empty_and_none():
    assert tasks_response([]) == {"tasks": []}
    assert tasks_response(None) == {"tasks": []}


def test_tasks_response_keeps_order():
    tasks = [Task(uuid.uuid4(), "a"), Task(uuid.uuid4(), "b")]
    assert [t["id"] for t in tasks_response(tasks)["tasks"]] == [str(t.id) for t in tasks]


def test_id_responses():
    tid = uuid.uuid4()
    assert task_id_response(tid) == {"id": str(tid)}
    assert assignment_id_response(tid) == {"class_task_id": str(tid)}
    assert assignment_id_response(str(tid)) == {"class_task_id": str(tid)}


def test_class_tasks_response():
    lt = LessonTask(uuid.uuid4(), uuid.uuid4(), "p", None, uuid.uuid4())
    body = class_tasks_response("5A", [lt])
    assert body == {
        "class": "5A",
        "tasks": [
            {
                "lesson_id": str(lt.lesson_id),
                "task_id": str(lt.task_id),
                "payload": "p",
                "task_template_id": str(lt.task_template_id),
            }
        ],
    }
    with_deadline = class_tasks_response("5A", [LessonTask(lt.lesson_id, lt.task_id, "p", _UTC_DEADLINE, lt.task_id)])
    assert list(with_deadline["tasks"][0]) == ["lesson_id", "task_id", "payload", "deadline", "task_template_id"]


def test_assignments_response():
    a = Assignment(uuid.uuid4(), "6B", uuid.uuid4())
    body = assignments_response("tmpl", [a])
    assert body == {
        "assignments": [{"class_task_id": str(a.assignment_id), "class": "6B", "lesson_id": str(a.lesson_id)}],
        "task_template_id": "tmpl",
    }
    assert json.loads(json.dumps(body)) == body


def test_error_response():
    assert error_response("boom", 400) == {"error": "boom", "error_code": 400}