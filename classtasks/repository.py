"""SQL storage for task templates, assignments and marks."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    create_engine,
    delete,
    event,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.types import TypeDecorator

from classtasks.domain import (
    Assignment,
    AssignmentNotFoundError,
    LessonTask,
    Task,
    TaskAssignment,
    TaskAssignments,
    TaskNotFoundError,
    TaskResult,
    TaskWithAssignment,
)


class RepositoryError(Exception):
    """Raised when the database rejects or fails an operation."""


class _Moment(TypeDecorator):
    """Timezone-aware timestamp, kept as UTC where the database has no zones."""

    impl = DateTime
    cache_ok = True

    def __init__(self) -> None:
        super().__init__(timezone=True)

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


metadata = MetaData()

_task = Table(
    "task",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("payload", Text, nullable=False),
    Column("deadline", _Moment(), nullable=True),
)

_assignment = Table(
    "assignment",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("class", String, nullable=False),
    Column("task_id", Uuid(as_uuid=True), ForeignKey("task.id", ondelete="CASCADE"), nullable=False),
    Column("lesson_id", Uuid(as_uuid=True), nullable=False),
    Column("task_payload", Text, nullable=False),
    Column("deadline", _Moment(), nullable=True),
)

_users_mark = Table(
    "usersmark",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("user_id", Uuid(as_uuid=True), nullable=False),
    Column("task_id", Uuid(as_uuid=True), nullable=False),
    Column("lesson_id", Uuid(as_uuid=True), nullable=False),
    Column("mark", Integer, nullable=False),
    UniqueConstraint("user_id", "task_id", "lesson_id"),
)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def open_database(url: str) -> Engine:
    """Create an engine for ``url`` and check that the database answers."""
    try:
        engine = create_engine(url)
        if engine.dialect.name == "sqlite":
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as err:
        raise RepositoryError(f"cannot connect to database: {err}") from err
    return engine


def create_schema(engine: Engine) -> None:
    """Create the tables the repository uses, if they are missing."""
    try:
        metadata.create_all(engine)
    except SQLAlchemyError as err:
        raise RepositoryError(f"cannot create schema: {err}") from err


class SQLRepository:
    """Task storage on top of a SQLAlchemy engine (PostgreSQL or SQLite)."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _conflict_insert(self, table: Table) -> Any:
        name = self._engine.dialect.name
        if name == "postgresql":
            return postgresql.insert(table)
        if name == "sqlite":
            return sqlite.insert(table)
        raise RepositoryError(f"unsupported database dialect: {name}")

    def create_task(self, task: Task) -> UUID:
        try:
            with self._engine.begin() as conn:
                conn.execute(insert(_task).values(id=task.id, payload=task.payload, deadline=task.deadline))
        except SQLAlchemyError as err:
            raise RepositoryError(f"can't create new task records: {err}") from err
        return task.id

    def get_task_by_id(self, task_id: UUID) -> Task:
        query = select(_task.c.id, _task.c.payload, _task.c.deadline).where(_task.c.id == task_id)
        try:
            with self._engine.connect() as conn:
                row = conn.execute(query).first()
        except SQLAlchemyError as err:
            raise RepositoryError(str(err)) from err
        if row is None:
            raise TaskNotFoundError()
        return Task(row.id, row.payload, row.deadline)

    def get_tasks(self) -> list[Task]:
        query = select(_task.c.id, _task.c.payload, _task.c.deadline)
        try:
            with self._engine.connect() as conn:
                return [Task(row.id, row.payload, row.deadline) for row in conn.execute(query)]
        except SQLAlchemyError as err:
            raise RepositoryError(f"error executing prepared statement: {err}") from err

    def update_task(self, task: Task) -> None:
        statement = (
            update(_task).where(_task.c.id == task.id).values(payload=task.payload, deadline=task.deadline)
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(statement)
        except SQLAlchemyError as err:
            raise RepositoryError(str(err)) from err

    def delete_task(self, task_id: UUID) -> None:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(_task).where(_task.c.id == task_id))
        except SQLAlchemyError as err:
            raise RepositoryError(str(err)) from err
        if result.rowcount == 0:
            raise TaskNotFoundError()

    def create_assignments(self, task_assignments: TaskAssignments) -> list[Assignment]:
        """Copy a template into one assignment per class and lesson; conflicting rows are skipped."""
        try:
            details = self.get_task_by_id(task_assignments.task_id)
        except (TaskNotFoundError, RepositoryError) as err:
            raise RepositoryError("can't get task details") from err

        assignments = [
            Assignment(assignment_id=uuid.uuid4(), class_name=cl.class_name, lesson_id=cl.lesson_id)
            for cl in task_assignments.to_assign
        ]
        try:
            with self._engine.begin() as conn:
                for a in assignments:
                    statement = (
                        self._conflict_insert(_assignment)
                        .values(
                            {
                                "id": a.assignment_id,
                                "class": a.class_name,
                                "task_id": task_assignments.task_id,
                                "lesson_id": a.lesson_id,
                                "task_payload": details.payload,
                                "deadline": details.deadline,
                            }
                        )
                        .on_conflict_do_nothing()
                    )
                    conn.execute(statement)
        except SQLAlchemyError as err:
            raise RepositoryError(f"unable create assignment: {err}") from err
        return assignments

    def update_assignment(self, assignment: TaskAssignment) -> None:
        statement = (
            update(_assignment)
            .where(_assignment.c.id == assignment.assignment_id)
            .values({"task_payload": assignment.payload, "class": assignment.class_name})
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(statement)
        except SQLAlchemyError as err:
            raise RepositoryError(str(err)) from err

    def get_tasks_by_class(self, class_name: str) -> list[LessonTask]:
        query = select(
            _assignment.c.id,
            _assignment.c.lesson_id,
            _assignment.c.task_id,
            _assignment.c.task_payload,
            _assignment.c.deadline,
        ).where(_assignment.c["class"] == class_name)
        try:
            with self._engine.connect() as conn:
                return [
                    LessonTask(
                        lesson_id=row.lesson_id,
                        task_id=row.id,
                        payload=row.task_payload,
                        deadline=row.deadline,
                        task_template_id=row.task_id,
                    )
                    for row in conn.execute(query)
                ]
        except SQLAlchemyError as err:
            raise RepositoryError(f"error executing prepared statement: {err}") from err

    def set_task_results(self, task_result: TaskResult) -> None:
        """Store each user's mark, replacing an earlier mark for the same task and lesson."""
        try:
            with self._engine.begin() as conn:
                for result in task_result.users_result:
                    statement = self._conflict_insert(_users_mark).values(
                        id=uuid.uuid4(),
                        user_id=result.user_id,
                        task_id=task_result.task_id,
                        lesson_id=task_result.lesson_id,
                        mark=result.mark,
                    )
                    statement = statement.on_conflict_do_update(
                        index_elements=["user_id", "task_id", "lesson_id"],
                        set_={"mark": statement.excluded.mark},
                    )
                    conn.execute(statement)
        except SQLAlchemyError as err:
            raise RepositoryError(f"unable to update row: {err}") from err

    def delete_assignment(self, assignment_id: UUID) -> None:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(_assignment).where(_assignment.c.id == assignment_id))
        except SQLAlchemyError as err:
            raise RepositoryError(str(err)) from err
        if result.rowcount == 0:
            raise AssignmentNotFoundError()

    def create_task_with_assignment(self, assignment: TaskWithAssignment) -> UUID:
        """Create a template and its single assignment in one transaction; return the assignment id."""
        assignment_id = uuid.uuid4()
        try:
            transaction = self._engine.begin()
            conn = transaction.__enter__()
        except SQLAlchemyError as err:
            raise RepositoryError(f"starting transaction: {err}") from err

        try:
            conn.execute(
                insert(_task).values(
                    id=assignment.task_id, payload=assignment.payload, deadline=assignment.deadline
                )
            )
            conn.execute(
                insert(_assignment).values(
                    {
                        "id": assignment_id,
                        "class": assignment.class_name,
                        "task_id": assignment.task_id,
                        "lesson_id": assignment.lesson_id,
                        "task_payload": assignment.payload,
                        "deadline": assignment.deadline,
                    }
                )
            )
        except SQLAlchemyError as err:
            transaction.__exit__(type(err), err, err.__traceback__)
            raise RepositoryError(f"can't create new assignment records: {err}") from err

        try:
            transaction.__exit__(None, None, None)
        except SQLAlchemyError as err:
            raise RepositoryError(f"committing transaction: {err}") from err
        return assignment_id