class JudgeError(Exception):
    """Base class for failures raised inside the judge."""


class WorkspaceError(JudgeError):
    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class BuildError(JudgeError):
    """Compiler could not be started or exited nonzero. Reported as diagnostics text."""


class ExecutionError(JudgeError):
    """The compiled program could not be started or waited on."""


class PersistenceError(JudgeError):
    def __init__(self, detail: str = "Failed to store execution record"):
        super().__init__(detail)
        self.detail = detail


class ProblemNotFound(JudgeError):
    def __init__(self, problem_id: int):
        super().__init__(f"problem {problem_id} not found")
        self.problem_id = problem_id


class CatalogError(JudgeError):
    """A catalog row could not be turned into a ``Problem``."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail
