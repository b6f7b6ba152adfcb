"""Minimal adapter over the repository's content-addressable object store.

Task lists are stored as a single blob per branch, pointed at by
``refs/tasks/<branch>``. Blobs are immutable and ``git update-ref`` swaps the
pointer under git's own lock file, so readers either see the old blob or the
new one, never a partial write. There is no compare-and-swap: the last writer
wins.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

TASK_REF_PREFIX = "refs/tasks/"
MAX_REF_NAME_LENGTH = 256


class ObjectStoreError(RuntimeError):
    """Blob write/read or ref update failed."""


class BranchNameTooLongError(ValueError):
    """Branch name would produce a task ref longer than the allowed maximum."""

    def __init__(self, branch: str) -> None:
        super().__init__(
            f"branch name too long for task ref ({len(TASK_REF_PREFIX) + len(branch)} > "
            f"{MAX_REF_NAME_LENGTH} characters): {branch[:40]}...",
        )
        self.branch = branch


def build_task_ref(branch: str) -> str:
    """Return the task ref for a branch; never truncates."""

    ref_name = f"{TASK_REF_PREFIX}{branch}"
    if len(ref_name) > MAX_REF_NAME_LENGTH:
        raise BranchNameTooLongError(branch)
    return ref_name


class ObjectStore(Protocol):
    """Operations the task repository needs from the backing store."""

    def task_ref(self) -> str:
        """Ref name scoped to the current branch."""

    def write_blob(self, data: bytes) -> str:
        """Store an immutable blob and return its id."""

    def read_ref(self, ref_name: str) -> bytes | None:
        """Return the blob the ref targets, or None if the ref does not exist."""

    def update_ref(self, ref_name: str, blob_id: str) -> None:
        """Create or replace the ref atomically."""


class GitObjectStore:
    """Object store backed by git plumbing commands."""

    def __init__(self, repo_path: Path, *, git_binary: str = "git") -> None:
        self.repo_path = repo_path
        self.git_binary = git_binary

    def current_branch(self) -> str:
        result = self._run("symbolic-ref", "--quiet", "--short", "HEAD")
        if result.returncode != 0:
            raise ObjectStoreError(
                "cannot resolve current branch (detached HEAD or not a git repository)",
            )
        branch = result.stdout.decode("utf-8", errors="replace").strip()
        if not branch:
            raise ObjectStoreError("cannot resolve current branch")
        return branch

    def task_ref(self) -> str:
        return build_task_ref(self.current_branch())

    def write_blob(self, data: bytes) -> str:
        result = self._run("hash-object", "-w", "--stdin", input_bytes=data)
        if result.returncode != 0:
            raise ObjectStoreError(f"failed to write blob: {_stderr(result)}")
        blob_id = result.stdout.decode("ascii", errors="replace").strip()
        logger.debug("Wrote task blob %s (%d bytes)", blob_id[:12], len(data))
        return blob_id

    def read_ref(self, ref_name: str) -> bytes | None:
        resolved = self._run("rev-parse", "--verify", "--quiet", ref_name)
        if resolved.returncode != 0:
            if resolved.returncode == 1 and not resolved.stderr.strip():
                return None
            raise ObjectStoreError(f"failed to resolve {ref_name}: {_stderr(resolved)}")
        blob_id = resolved.stdout.decode("ascii", errors="replace").strip()
        content = self._run("cat-file", "blob", blob_id)
        if content.returncode != 0:
            raise ObjectStoreError(f"failed to read blob {blob_id}: {_stderr(content)}")
        return content.stdout

    def update_ref(self, ref_name: str, blob_id: str) -> None:
        result = self._run("update-ref", ref_name, blob_id)
        if result.returncode != 0:
            raise ObjectStoreError(f"failed to update {ref_name}: {_stderr(result)}")
        logger.debug("Updated %s -> %s", ref_name, blob_id[:12])

    def _run(self, *args: str, input_bytes: bytes | None = None) -> subprocess.CompletedProcess[bytes]:
        command = [self.git_binary, *args]
        try:
            return subprocess.run(  # noqa: S603
                command,
                cwd=self.repo_path,
                input=input_bytes,
                capture_output=True,
                check=False,
            )
        except FileNotFoundError as error:
            raise ObjectStoreError(f"git executable not found: {self.git_binary}") from error
        except OSError as error:
            raise ObjectStoreError(f"failed to run git: {error}") from error


def _stderr(result: subprocess.CompletedProcess[bytes]) -> str:
    return result.stderr.decode("utf-8", errors="replace").strip() or f"exit {result.returncode}"
