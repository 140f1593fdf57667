from __future__ import annotations

from dataclasses import dataclass
from typing import List

from loguru import logger

from .exceptions import BuildError, ExecutionError
from .models import BuildResult, ExecutionResult
from .sandbox import RunOutcome, run_command
from .settings import Settings
from .workspace import Workspace, write_text_file


@dataclass(frozen=True)
class Toolchain:
    # argv template; "{source}" and "{binary}" are substituted per workspace
    command: List[str]

    @classmethod
    def from_settings(cls, settings: Settings) -> "Toolchain":
        return cls(command=list(settings.compiler_command))

    def compile_argv(self, workspace: Workspace) -> List[str]:
        return [
            arg.replace("{source}", workspace.source_path).replace("{binary}", workspace.binary_path)
            for arg in self.command
        ]


def _run_compiler(workspace: Workspace, toolchain: Toolchain) -> RunOutcome:
    argv = toolchain.compile_argv(workspace)
    try:
        # compilation is not time-budgeted
        return run_command(argv, working_directory=workspace.root)
    except OSError as exc:
        logger.error(f"spawn failed for compiler {argv[0]!r}: {exc}")
        raise BuildError(f"spawn failed: {exc}") from exc


def build(workspace: Workspace, source_code: str, toolchain: Toolchain) -> BuildResult:
    try:
        write_text_file(workspace.source_path, source_code)
    except (OSError, UnicodeError) as exc:
        logger.error(f"could not write source to {workspace.source_path}: {exc}")
        return BuildResult(succeeded=False, diagnostics=f"write error: {exc}")

    try:
        outcome = _run_compiler(workspace, toolchain)
    except BuildError as exc:
        return BuildResult(succeeded=False, diagnostics=str(exc))

    if outcome.exit_code != 0:
        logger.info(f"compile failed with exit code {outcome.exit_code} in {outcome.duration_ms} ms")
        return BuildResult(succeeded=False, diagnostics=outcome.stderr)
    logger.debug(f"compiled {workspace.binary_path} in {outcome.duration_ms} ms")
    return BuildResult(succeeded=True, diagnostics=outcome.stderr)


def _run_binary(workspace: Workspace, budget_seconds: float) -> RunOutcome:
    try:
        return run_command([workspace.binary_path], working_directory=workspace.root, timeout=budget_seconds)
    except OSError as exc:
        raise ExecutionError(f"exec error: {exc}") from exc


def execute(workspace: Workspace, budget_seconds: float) -> ExecutionResult:
    try:
        outcome = _run_binary(workspace, budget_seconds)
    except ExecutionError as exc:
        logger.warning(f"could not run {workspace.binary_path}: {exc}")
        return ExecutionResult(timed_out=False, stdout="", stderr=str(exc))

    if outcome.was_killed_by_timeout:
        logger.info(f"time limit of {budget_seconds}s exceeded, process tree killed")
        return ExecutionResult(timed_out=True, stdout="", stderr="")
    return ExecutionResult(
        timed_out=False,
        stdout=outcome.stdout,
        stderr=outcome.stderr,
        duration_ms=outcome.duration_ms,
        exit_code=outcome.exit_code,
    )
