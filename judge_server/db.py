import os

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .settings import Settings

Base = declarative_base()


class ProblemRow(Base):
    __tablename__ = "problems"

    id = Column(Integer, primary_key=True)
    slug = Column(String, nullable=False, default="")
    title = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    starter_code = Column(Text, nullable=False, default="")
    expected_stdout = Column(Text, nullable=False)
    fixed_top = Column(Text, nullable=True)
    fixed_bottom = Column(Text, nullable=True)
    editable_start_marker = Column(String, nullable=True)
    editable_end_marker = Column(String, nullable=True)
    # list of {"kind": ..., "pattern": ...}
    source_rules = Column(JSON, nullable=True)
    created_at = Column(String, nullable=False, default="")


class SubmissionRow(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    problem_id = Column(Integer, ForeignKey("problems.id"), nullable=False, index=True)
    code = Column(Text, nullable=False)
    output = Column(Text, nullable=False)
    compiled = Column(Boolean, nullable=False)
    diagnostics = Column(Text, nullable=False, default="")
    timed_out = Column(Boolean, nullable=False)
    stdout = Column(Text, nullable=False, default="")
    stderr = Column(Text, nullable=False, default="")
    duration_ms = Column(Integer, nullable=True)
    exit_code = Column(Integer, nullable=True)
    passed = Column(Boolean, nullable=False)
    created_at = Column(String, nullable=False)


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_db_engine(url: str, **kwargs) -> Engine:
    engine = create_engine(url, pool_pre_ping=True, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def engine_from_settings(settings: Settings) -> Engine:
    directory = os.path.dirname(settings.db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    # request handlers run on a thread pool
    return create_db_engine(settings.get_database_url(), connect_args={"check_same_thread": False})


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)
