from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Protocol, Tuple

from loguru import logger

from .exceptions import PersistenceError, ProblemNotFound, WorkspaceError
from .models import BuildResult, ExecutionRecord, ExecutionResult, Problem, RunResponse, Verdict
from .settings import Settings
from .stages import Toolchain, build, execute
from .verdict import evaluate
from .workspace import WorkspaceManager

TIME_LIMIT_MESSAGE = "Time limit exceeded"


class Catalog(Protocol):
    def get_problem(self, problem_id: int) -> Optional[Problem]: ...

    def list_problems(self) -> List[Problem]: ...


class RecordSink(Protocol):
    def append_execution_record(self, record: ExecutionRecord) -> None: ...


def combined_output(build_result: BuildResult, execution: Optional[ExecutionResult]) -> str:
    if not build_result.succeeded or execution is None:
        return build_result.diagnostics
    if execution.timed_out:
        return TIME_LIMIT_MESSAGE
    return execution.stdout + execution.stderr


def make_response(
    build_result: BuildResult,
    execution: Optional[ExecutionResult],
    verdict: Verdict,
) -> RunResponse:
    if execution is None:
        return RunResponse(
            compiled=False,
            timed_out=False,
            stdout="",
            stderr=build_result.diagnostics,
            passed=verdict.passed,
            output=combined_output(build_result, execution),
        )
    return RunResponse(
        compiled=build_result.succeeded,
        timed_out=execution.timed_out,
        stdout=execution.stdout,
        stderr=execution.stderr,
        passed=verdict.passed,
        output=combined_output(build_result, execution),
    )


def make_record(
    problem_id: int,
    source_code: str,
    build_result: BuildResult,
    execution: Optional[ExecutionResult],
    response: RunResponse,
) -> ExecutionRecord:
    return ExecutionRecord(
        problem_id=problem_id,
        code=source_code,
        compiled=response.compiled,
        diagnostics=build_result.diagnostics,
        timed_out=response.timed_out,
        stdout=response.stdout,
        stderr=response.stderr,
        duration_ms=execution.duration_ms if execution else None,
        exit_code=execution.exit_code if execution else None,
        passed=response.passed,
        output=response.output,
        created_at=datetime.now(timezone.utc),
    )


class Pipeline:
    """Build, run and judge one submission at a time; safe to call from many threads."""

    def __init__(
        self,
        catalog: Catalog,
        sink: RecordSink,
        workspaces: WorkspaceManager,
        toolchain: Toolchain,
        time_limit_seconds: float = 2.0,
    ):
        self.catalog = catalog
        self.sink = sink
        self.workspaces = workspaces
        self.toolchain = toolchain
        self.time_limit_seconds = time_limit_seconds

    @classmethod
    def from_settings(cls, settings: Settings, catalog: Catalog, sink: RecordSink) -> "Pipeline":
        return cls(
            catalog=catalog,
            sink=sink,
            workspaces=WorkspaceManager(
                settings.scratch_root,
                source_filename=settings.source_filename,
                binary_filename=settings.binary_filename,
            ),
            toolchain=Toolchain.from_settings(settings),
            time_limit_seconds=settings.run_time_limit_seconds,
        )

    def run_submission(self, problem_id: int, source_code: str) -> RunResponse:
        problem = self.catalog.get_problem(problem_id)
        if problem is None:
            raise ProblemNotFound(problem_id)

        build_result, execution = self._build_and_run(source_code)
        verdict = evaluate(problem, source_code, build_result, execution)
        response = make_response(build_result, execution, verdict)
        logger.info(
            f"problem {problem_id}: compiled={response.compiled} "
            f"timed_out={response.timed_out} passed={response.passed}"
        )

        self._persist(make_record(problem_id, source_code, build_result, execution, response))
        return response

    def _build_and_run(self, source_code: str) -> Tuple[BuildResult, Optional[ExecutionResult]]:
        try:
            with self.workspaces.allocate() as workspace:
                build_result = build(workspace, source_code, self.toolchain)
                if not build_result.succeeded:
                    return build_result, None
                return build_result, execute(workspace, self.time_limit_seconds)
        except WorkspaceError as exc:
            logger.error(f"workspace unavailable: {exc}")
            return BuildResult(succeeded=False, diagnostics=f"workspace error: {exc}"), None
        except Exception as exc:
            logger.exception("unexpected failure while building or running a submission")
            return BuildResult(succeeded=False, diagnostics=f"runner error: {exc}"), None

    def _persist(self, record: ExecutionRecord) -> None:
        try:
            self.sink.append_execution_record(record)
        except PersistenceError as exc:
            logger.error(f"[save_submission] {exc.detail}")
        except Exception:
            logger.exception("[save_submission] unexpected failure while storing execution record")
