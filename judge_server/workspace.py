from __future__ import annotations

import os
import shutil
import tempfile
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from loguru import logger

from .exceptions import WorkspaceError


@dataclass(frozen=True)
class Workspace:
    root: str
    source_path: str
    binary_path: str


class WorkspaceManager:
    """Hands out one private scratch directory per submission."""

    def __init__(
        self,
        scratch_root: str,
        source_filename: str = "main.rs",
        binary_filename: str = "app-bin",
        prefix: str = "run",
    ):
        self.scratch_root = scratch_root
        self.source_filename = source_filename
        self.binary_filename = binary_filename
        self.prefix = prefix

    def acquire(self) -> Workspace:
        session_id = f"{self.prefix}-{uuid.uuid4().hex[:12]}"
        try:
            os.makedirs(self.scratch_root, exist_ok=True)
            base_dir = tempfile.mkdtemp(prefix=session_id + "-", dir=self.scratch_root)
        except OSError as exc:
            raise WorkspaceError(f"cannot create workspace under {self.scratch_root}: {exc}") from exc
        return Workspace(
            root=base_dir,
            source_path=os.path.join(base_dir, self.source_filename),
            binary_path=os.path.join(base_dir, self.binary_filename),
        )

    def release(self, workspace: Workspace) -> None:
        try:
            shutil.rmtree(workspace.root)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning(f"failed to remove workspace {workspace.root}: {exc}")

    @contextmanager
    def allocate(self) -> Iterator[Workspace]:
        workspace = self.acquire()
        try:
            yield workspace
        finally:
            self.release(workspace)


def write_text_file(path: str, content: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
