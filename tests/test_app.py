import os
import shutil

import pytest
from starlette.testclient import TestClient

from judge_server.db import SubmissionRow
from judge_server.main import CSP, create_app
from judge_server.repository import ProblemCatalog, SubmissionStore

from tests.conftest import add_malformed_problem
from tests.programs import HELLO, HELLO_UNSAFE, INFINITE_LOOP, SYNTAX_ERROR


@pytest.fixture
def client(settings, session_factory):
    app = create_app(
        settings,
        catalog=ProblemCatalog(session_factory),
        store=SubmissionStore(session_factory),
    )
    with TestClient(app) as client:
        yield client


def test_list_problems(client):
    rv = client.get("/api/problems")
    assert rv.status_code == 200
    payload = rv.json()
    assert [p["id"] for p in payload] == [1, 2]
    assert payload[0]["expected_stdout"] == "Hello, world!\n"
    assert rv.headers["content-security-policy"] == CSP


def test_get_problem(client):
    rv = client.get("/api/problems/2")
    assert rv.status_code == 200
    assert rv.json()["source_rules"] == [{"kind": "MustNotContain", "pattern": "unsafe"}]


def test_get_unknown_problem(client):
    assert client.get("/api/problems/404").status_code == 404


def test_malformed_problem_is_db_error(client, session_factory):
    add_malformed_problem(session_factory)
    for url in ("/api/problems", "/api/problems/3"):
        rv = client.get(url)
        assert rv.status_code == 500
        assert rv.text.startswith("db error: ")

    rv = client.post("/api/run", json={"problem_id": 3, "code": HELLO})
    assert rv.status_code == 500
    assert rv.text.startswith("db error: ")


def test_favicon_is_empty(client):
    assert client.get("/favicon.ico").status_code == 204


def test_run_rejects_unknown_problem(client, session_factory):
    rv = client.post("/api/run", json={"problem_id": 999, "code": HELLO})
    assert rv.status_code == 400
    assert rv.text == "invalid problem_id"
    with session_factory() as session:
        assert session.query(SubmissionRow).count() == 0


def test_run_rejects_invalid_json(client):
    rv = client.post("/api/run", content=b"{not json", headers={"content-type": "application/json"})
    assert rv.status_code == 400
    assert rv.json() == {"error": "Invalid JSON"}


def test_run_rejects_missing_fields(client):
    rv = client.post("/api/run", json={"problem_id": 1})
    assert rv.status_code == 400
    assert "error" in rv.json()


@pytest.mark.skipif(os.name != "posix", reason="shell toolchain needs a POSIX sh")
def test_run_passing_submission_is_recorded(client, session_factory):
    rv = client.post("/api/run", json={"problem_id": 1, "code": HELLO})
    assert rv.status_code == 200
    assert rv.json() == {
        "compiled": True,
        "timed_out": False,
        "stdout": "Hello, world!\n",
        "stderr": "",
        "passed": True,
        "output": "Hello, world!\n",
    }
    with session_factory() as session:
        row = session.query(SubmissionRow).one()
        assert row.problem_id == 1
        assert row.code == HELLO
        assert row.passed is True


@pytest.mark.skipif(os.name != "posix", reason="shell toolchain needs a POSIX sh")
def test_run_compile_error_is_still_200(client):
    rv = client.post("/api/run", json={"problem_id": 1, "code": SYNTAX_ERROR})
    assert rv.status_code == 200
    body = rv.json()
    assert body["compiled"] is False
    assert body["passed"] is False
    assert body["output"] == body["stderr"]


@pytest.mark.skipif(os.name != "posix", reason="shell toolchain needs a POSIX sh")
def test_run_timeout(client):
    body = client.post("/api/run", json={"problem_id": 1, "code": INFINITE_LOOP}).json()
    assert body["timed_out"] is True
    assert body["output"] == "Time limit exceeded"
    assert body["passed"] is False


@pytest.mark.skipif(os.name != "posix", reason="shell toolchain needs a POSIX sh")
def test_run_source_rule(client):
    body = client.post("/api/run", json={"problem_id": 2, "code": HELLO_UNSAFE}).json()
    assert body["compiled"] is True
    assert body["passed"] is False


def test_static_ui_is_served_when_present(settings, session_factory, tmp_path):
    ui = tmp_path / "ui"
    ui.mkdir()
    (ui / "index.html").write_text("<h1>judge</h1>")
    app = create_app(settings, catalog=ProblemCatalog(session_factory), store=SubmissionStore(session_factory))
    with TestClient(app) as client:
        rv = client.get("/")
        assert rv.status_code == 200
        assert "judge" in rv.text
        assert client.get("/api/problems").status_code == 200


def test_create_app_builds_its_own_database(settings):
    app = create_app(settings)
    with TestClient(app) as client:
        assert client.get("/api/problems").json() == []
    assert os.path.exists(settings.db_path)


RUST_HELLO = 'fn main() {\n    println!("Hello, world!");\n}\n'


@pytest.mark.skipif(shutil.which("rustc") is None, reason="rustc not installed")
def test_rust_end_to_end(settings, session_factory):
    settings = settings.model_copy(update={
        "compiler_command": ["rustc", "{source}", "-O", "-o", "{binary}"],
        "source_filename": "main.rs",
        "run_time_limit_seconds": 2.0,
    })
    app = create_app(settings, catalog=ProblemCatalog(session_factory), store=SubmissionStore(session_factory))
    with TestClient(app) as client:
        body = client.post("/api/run", json={"problem_id": 1, "code": RUST_HELLO}).json()
        assert body["compiled"] is True
        assert body["passed"] is True

        body = client.post("/api/run", json={"problem_id": 1, "code": "fn main( {"}).json()
        assert body["compiled"] is False
        assert "error" in body["output"]

        body = client.post("/api/run", json={"problem_id": 1, "code": "fn main() { loop {} }"}).json()
        assert body["timed_out"] is True
