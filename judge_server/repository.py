from typing import List, Optional

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .db import ProblemRow, SubmissionRow
from .exceptions import CatalogError, PersistenceError
from .models import ExecutionRecord, Problem


def _to_problem(row: ProblemRow) -> Problem:
    try:
        return Problem.model_validate(row)
    except ValidationError as exc:
        raise CatalogError(f"malformed problem row {row.id}: {exc}") from exc


class ProblemCatalog:
    """Read-only view of the exercise catalog."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def list_problems(self) -> List[Problem]:
        with self.session_factory() as session:
            rows = session.query(ProblemRow).order_by(ProblemRow.id).all()
            return [_to_problem(row) for row in rows]

    def get_problem(self, problem_id: int) -> Optional[Problem]:
        with self.session_factory() as session:
            row = session.get(ProblemRow, problem_id)
            if row is None:
                return None
            return _to_problem(row)


class SubmissionStore:
    """Append-only sink for execution records."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def append_execution_record(self, record: ExecutionRecord) -> None:
        row = SubmissionRow(
            problem_id=record.problem_id,
            code=record.code,
            output=record.output,
            compiled=record.compiled,
            diagnostics=record.diagnostics,
            timed_out=record.timed_out,
            stdout=record.stdout,
            stderr=record.stderr,
            duration_ms=record.duration_ms,
            exit_code=record.exit_code,
            passed=record.passed,
            created_at=record.created_at.isoformat(),
        )
        with self.session_factory() as session:
            try:
                session.add(row)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise PersistenceError(f"insert failed: {exc}") from exc
        logger.debug(f"stored execution record for problem {record.problem_id}")
