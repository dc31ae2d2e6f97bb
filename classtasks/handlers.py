"""HTTP routes of the task API."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, TypeVar
from uuid import UUID

from flask import Blueprint, Flask, Response, request

from classtasks.domain import TaskNotFoundError
from classtasks.requests import (
    ClassQuery,
    RequestValidationError,
    TaskAssignmentIDRequest,
    TaskAssignmentRequest,
    TaskAssignmentsRequest,
    TaskRequest,
    TaskResultRequest,
    TaskWithAssignmentRequest,
    _parse_uuid_text,
)
from classtasks.responses import (
    assignment_id_response,
    assignments_response,
    class_tasks_response,
    error_response,
    task_id_response,
    task_response,
    tasks_response,
)
from classtasks.service import TaskService

API_PREFIX = "/api/v1"

_T = TypeVar("_T")


class _Failure(Exception):
    """A request that ends with an error body and the given status."""

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def validation_message(errors: Iterable[tuple[str, str]]) -> str:
    """Describe failed ``(field, tag)`` validation rules in one line."""
    return ", ".join(
        f"field {name} is a required field" if tag == "required" else f"field {name} is not valid"
        for name, tag in errors
    )


def process_error(message: str, code: int) -> Response:
    """A JSON ``{"message": ...}`` body with the given status."""
    return Response(json.dumps({"message": message}, ensure_ascii=False), status=code, mimetype="application/json")


def _json(body: Any, status: int) -> Response:
    return Response(
        json.dumps(body, ensure_ascii=False),
        status=status,
        content_type="application/json; charset=utf-8",
    )


def _ok() -> Response:
    return Response("OK", status=200, content_type="text/plain; charset=utf-8")


def create_app(service: TaskService, logger: logging.Logger | None = None) -> Flask:
    """Build the web application serving the task API on top of ``service``."""
    log = logger or logging.getLogger(__name__)
    app = Flask(__name__)
    api = Blueprint("tasks", __name__, url_prefix=API_PREFIX)

    def fail(what: str, err: Exception, status: int = 400) -> _Failure:
        log.error("%s: %s", what, err)
        return _Failure(str(err), status)

    def fail_lookup(what: str, err: Exception) -> _Failure:
        """A missing task is the client's fault; anything else is the server's."""
        status = 400 if isinstance(err, TaskNotFoundError) else 500
        return fail(what, err, status)

    def parse_path_id(raw: str) -> UUID:
        try:
            return _parse_uuid_text(raw)
        except ValueError as err:
            raise fail("failed to parse id", err) from err

    def bind(model: Callable[[Any], _T]) -> _T:
        raw = request.get_data(cache=True)
        try:
            if not raw.strip():
                raise ValueError("EOF")
            return model(json.loads(raw))
        except ValueError as err:
            raise fail("failed to bind body", err) from err

    def convert(make: Callable[[], _T]) -> _T:
        try:
            return make()
        except RequestValidationError as err:
            raise fail("failed assert to domain", err) from err

    @app.errorhandler(_Failure)
    def _on_failure(err: _Failure) -> Response:
        return _json(error_response(err.message, err.status), err.status)

    @api.post("/task")
    def create_task() -> Response:
        body = bind(TaskRequest.from_json)
        try:
            task_id = service.create_task(body.to_domain())
        except Exception as err:  # noqa: BLE001
            raise fail("failed to create task", err, 400) from err
        return _json(task_id_response(task_id), 201)

    @api.post("/task/create-with-assignment")
    def create_task_with_assignment() -> Response:
        body = bind(TaskWithAssignmentRequest.from_json)
        domain_assignment = convert(body.to_domain)
        try:
            assignment_id = service.create_task_with_assignment(domain_assignment)
        except Exception as err:  # noqa: BLE001
            raise fail("failed to create assignment", err, 500) from err
        return _json(assignment_id_response(assignment_id), 201)

    @api.post("/task/assignment")
    def assign_task_to_classes() -> Response:
        body = bind(TaskAssignmentsRequest.from_json)
        domain_assignments = convert(body.to_domain)
        try:
            assignments = service.create_assignments(domain_assignments)
        except Exception as err:  # noqa: BLE001
            raise fail("failed to create assignment", err, 500) from err
        return _json(assignments_response(body.task_id, assignments), 201)

    @api.put("/task/assignment-update")
    def update_task_assignment() -> Response:
        body = bind(TaskAssignmentRequest.from_json)
        domain_assignment = convert(body.to_domain)
        try:
            service.update_assignment(domain_assignment)
        except Exception as err:  # noqa: BLE001
            raise fail("failed to update assignment", err, 500) from err
        return _ok()

    @api.post("/task/result")
    def task_result() -> Response:
        body = bind(TaskResultRequest.from_json)
        results = convert(body.to_domain)
        try:
            service.set_task_results(results)
        except Exception as err:  # noqa: BLE001
            raise fail("failed to set result", err, 500) from err
        return _ok()

    @api.get("/task/all")
    def get_tasks() -> Response:
        try:
            tasks = service.get_tasks()
        except Exception as err:  # noqa: BLE001
            raise fail_lookup("failed to get tasks", err) from err
        return _json(tasks_response(tasks), 200)

    @api.get("/task/<task_id>")
    def get_task(task_id: str) -> Response:
        parsed = parse_path_id(task_id)
        try:
            task = service.get_task(parsed)
        except Exception as err:  # noqa: BLE001
            raise fail_lookup("failed to get task", err) from err
        return _json(task_response(task), 200)

    @api.get("/task/get-by-class")
    def get_tasks_by_class() -> Response:
        query = ClassQuery.from_args(request.args)
        try:
            tasks = service.get_tasks_by_class(query.class_name)
        except Exception as err:  # noqa: BLE001
            raise fail("failed to get tasks by class", err, 500) from err
        return _json(class_tasks_response(query.class_name, tasks), 200)

    @api.put("/task/<task_id>/update")
    def update_task(task_id: str) -> Response:
        parsed = parse_path_id(task_id)
        body = bind(TaskRequest.from_json)
        try:
            updated = service.update_task(body.to_domain_with_id(parsed))
        except Exception as err:  # noqa: BLE001
            raise fail("failed to update task", err, 500) from err
        return _json(task_id_response(updated), 200)

    @api.delete("/task/<task_id>/delete")
    def delete_task(task_id: str) -> Response:
        parsed = parse_path_id(task_id)
        try:
            service.delete_task(parsed)
        except Exception as err:  # noqa: BLE001
            raise fail_lookup("failed to delete task", err) from err
        return _json(task_id_response(parsed), 200)

    @api.delete("/task/assignment-delete")
    def delete_assignment() -> Response:
        body = bind(TaskAssignmentIDRequest.from_json)
        assignment_id = convert(body.to_uuid)
        try:
            service.delete_assignment(assignment_id)
        except Exception as err:  # noqa: BLE001
            raise fail_lookup("failed to delete assignment", err) from err
        return _ok()

    app.register_blueprint(api)
    return app