from __future__ import annotations

import os
import signal
import subprocess
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

import psutil
from loguru import logger

# every process spawned for one run inherits this variable with a per-run value
RUN_TOKEN_VAR = "JUDGE_RUN_TOKEN"


@dataclass
class RunOutcome:
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    was_killed_by_timeout: bool


def kill_tagged_processes(run_token: str, max_passes: int = 5) -> int:
    """SIGKILL every process whose environment carries ``run_token``.

    Finds processes that were re-parented to init and left the process group,
    e.g. daemonized grandchildren. Repeats until a pass finds nothing, since a
    tagged process may fork while the sweep is running.
    """
    marker = f"{RUN_TOKEN_VAR}={run_token}"
    own_pid = os.getpid()
    killed = 0
    for _ in range(max_passes):
        found = 0
        for candidate in psutil.process_iter(["environ"]):
            environ = candidate.info.get("environ")
            if candidate.pid == own_pid or not environ:
                continue
            if environ.get(RUN_TOKEN_VAR) != run_token:
                continue
            try:
                candidate.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
            found += 1
        killed += found
        if not found:
            break
    if killed:
        logger.debug(f"killed {killed} processes tagged {marker}")
    return killed


def kill_process_tree(proc: subprocess.Popen, run_token: Optional[str] = None) -> None:
    """SIGKILL the child, its process group and every descendant, then reap the child.

    Descendants are collected before the group is killed: once the child dies they
    are re-parented and can no longer be found through it. With ``run_token``,
    processes that escaped both are found through their environment.
    """
    descendants = []
    # an already reaped pid may belong to an unrelated process by now
    if proc.returncode is None:
        try:
            descendants = psutil.Process(proc.pid).children(recursive=True)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass
    elif proc.returncode is None:
        proc.kill()

    # catches descendants that moved to another process group or session
    for child in descendants:
        try:
            child.kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    proc.wait()
    swept = kill_tagged_processes(run_token) if run_token else 0
    logger.debug(
        f"killed process tree of pid {proc.pid} "
        f"({len(descendants)} descendants, {swept} tagged)"
    )


def run_command(
    argv: List[str],
    working_directory: Optional[str] = None,
    timeout: Optional[float] = None,
    input_data: Optional[str] = None,
    env: Optional[dict[str, str]] = None,
) -> RunOutcome:
    """Run ``argv`` to completion or until ``timeout`` seconds have elapsed.

    Output is decoded as UTF-8 with invalid bytes replaced. On timeout the whole
    process tree is killed before returning and partial output is dropped.
    Processes left behind by a command that exits normally are killed too.
    Raises ``OSError`` when the process cannot be started.
    """
    start = time.monotonic()

    # Start with current PATH for portability; normalize LANG on POSIX
    safe_env = dict(os.environ)
    if os.name == "posix":
        safe_env.update({
            "LANG": "C",
            "LC_ALL": "C",
        })
    if env:
        safe_env.update(env)
    run_token = uuid.uuid4().hex
    safe_env[RUN_TOKEN_VAR] = run_token

    logger.debug(f"spawning {argv} in {working_directory}")
    proc = subprocess.Popen(
        argv,
        stdin=subprocess.PIPE if input_data is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        cwd=working_directory,
        text=True,
        encoding="utf-8",
        errors="replace",
        env=safe_env,
        # own session, so the process group id equals the child's pid
        start_new_session=True,
    )
    try:
        stdout, stderr = proc.communicate(input=input_data, timeout=timeout)
    except subprocess.TimeoutExpired:
        kill_process_tree(proc, run_token)
        for stream in (proc.stdin, proc.stdout, proc.stderr):
            if stream is not None:
                stream.close()
        return RunOutcome(
            stdout="",
            stderr="",
            exit_code=proc.returncode if proc.returncode is not None else -1,
            duration_ms=int((time.monotonic() - start) * 1000),
            was_killed_by_timeout=True,
        )
    except BaseException:
        kill_process_tree(proc, run_token)
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    # background processes the command started must not outlive it
    kill_process_tree(proc, run_token)

    return RunOutcome(
        stdout=stdout or "",
        stderr=stderr or "",
        exit_code=proc.returncode,
        duration_ms=duration_ms,
        was_killed_by_timeout=False,
    )
