import pytest
from loguru import logger
from sqlalchemy.pool import StaticPool

from judge_server.db import ProblemRow, create_db_engine, init_db, make_session_factory
from judge_server.models import Problem, SourceRule
from judge_server.exceptions import PersistenceError
from judge_server.pipeline import Pipeline
from judge_server.settings import Settings

from tests.programs import SHELL_TOOLCHAIN


class FakeCatalog:

    def __init__(self, *problems: Problem):
        self.problems = {p.id: p for p in problems}

    def get_problem(self, problem_id):
        return self.problems.get(problem_id)

    def list_problems(self):
        return [self.problems[k] for k in sorted(self.problems)]


class RecordingSink:

    def __init__(self):
        self.records = []

    def append_execution_record(self, record):
        self.records.append(record)


class FailingSink:

    def __init__(self):
        self.calls = 0

    def append_execution_record(self, record):
        self.calls += 1
        raise PersistenceError("insert failed: database is locked")


class BrokenSink:

    def append_execution_record(self, record):
        raise RuntimeError("sink misconfigured")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "data.db"),
        scratch_root=str(tmp_path / "scratch"),
        compiler_command=SHELL_TOOLCHAIN,
        source_filename="main.sh",
        binary_filename="app-bin",
        run_time_limit_seconds=1.0,
        ui_dir=str(tmp_path / "ui"),
        log_file=None,
    )


@pytest.fixture
def hello_problem():
    return Problem(id=1, slug="hello", title="Hello", expected_stdout="Hello, world!\n")


@pytest.fixture
def safe_hello_problem():
    return Problem(
        id=2,
        slug="hello-safe",
        title="Hello without unsafe",
        expected_stdout="Hello, world!\n",
        source_rules=[SourceRule(kind="MustNotContain", pattern="unsafe")],
    )


@pytest.fixture
def catalog(hello_problem, safe_hello_problem):
    return FakeCatalog(hello_problem, safe_hello_problem)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def pipeline(settings, catalog, sink):
    return Pipeline.from_settings(settings, catalog, sink)


@pytest.fixture
def session_factory():
    engine = create_db_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    factory = make_session_factory(engine)
    with factory() as session:
        session.add_all([
            ProblemRow(
                id=1,
                slug="hello",
                title="Hello",
                description="Print a greeting",
                starter_code="#!/bin/sh\n",
                expected_stdout="Hello, world!\n",
                created_at="2024-01-01T00:00:00+00:00",
            ),
            ProblemRow(
                id=2,
                slug="hello-safe",
                title="Hello without unsafe",
                description="Print a greeting, no unsafe",
                starter_code="#!/bin/sh\n",
                expected_stdout="Hello, world!\n",
                source_rules=[{"kind": "MustNotContain", "pattern": "unsafe"}],
                created_at="2024-01-02T00:00:00+00:00",
            ),
        ])
        session.commit()
    yield factory
    engine.dispose()


def add_malformed_problem(session_factory, problem_id=3):
    with session_factory() as session:
        session.add(ProblemRow(
            id=problem_id,
            slug="broken",
            title="Broken rules",
            expected_stdout="",
            source_rules=[{"pattern": "unsafe"}],
        ))
        session.commit()


@pytest.fixture
def log_messages():
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
