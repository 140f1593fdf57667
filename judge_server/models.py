from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceRule(BaseModel):
    kind: str = Field(..., description="MustContain, MustNotContain or a future rule kind")
    pattern: str


class Problem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str = ""
    title: str = ""
    description: str = ""
    starter_code: str = ""
    expected_stdout: str
    fixed_top: Optional[str] = None
    fixed_bottom: Optional[str] = None
    editable_start_marker: Optional[str] = None
    editable_end_marker: Optional[str] = None
    source_rules: List[SourceRule] = Field(default_factory=list)
    created_at: str = ""

    @field_validator("source_rules", mode="before")
    @classmethod
    def _null_rules(cls, v):
        return [] if v is None else v


class RunRequest(BaseModel):
    problem_id: int
    code: str = Field(..., description="Submitted source code")


class BuildResult(BaseModel):
    succeeded: bool
    diagnostics: str = ""


class ExecutionResult(BaseModel):
    timed_out: bool
    stdout: str = ""
    stderr: str = ""
    duration_ms: Optional[int] = None
    exit_code: Optional[int] = None


class Verdict(BaseModel):
    passed: bool


class RunResponse(BaseModel):
    compiled: bool
    timed_out: bool
    stdout: str
    stderr: str
    passed: bool
    output: str


class ExecutionRecord(BaseModel):
    problem_id: int
    code: str
    compiled: bool
    diagnostics: str
    timed_out: bool
    stdout: str
    stderr: str
    duration_ms: Optional[int] = None
    exit_code: Optional[int] = None
    passed: bool
    output: str
    created_at: datetime
