"""Shared test fixtures."""

from __future__ import annotations

import hashlib
import subprocess
from pathlib import Path

import pytest

from taskloop.tasks.objectstore import build_task_ref
from taskloop.tasks.repository import TaskRepository

_TASKLOOP_ENV = (
    "TASKLOOP_AGENT",
    "TASKLOOP_AGENT_CMD",
    "TASKLOOP_AGENT_MODE",
    "TASKLOOP_WORKDIR",
    "TASKLOOP_TASKS_COMMAND",
    "TASKLOOP_POLL_INTERVAL_SECONDS",
    "TASKLOOP_TASK_TIMEOUT_SECONDS",
    "TASKLOOP_TASK_ID",
    "TASKLOOP_ECHO_EXIT_CODE",
    "TASKLOOP_ECHO_MARK_DONE",
    "TASKLOOP_ECHO_FAIL_TIMES",
    "TASKLOOP_ECHO_COUNTER_FILE",
)


class MemoryObjectStore:
    """In-memory stand-in for the git object database."""

    def __init__(self, branch: str = "main") -> None:
        self.branch = branch
        self.blobs: dict[str, bytes] = {}
        self.refs: dict[str, str] = {}
        self.ref_updates = 0

    def task_ref(self) -> str:
        return build_task_ref(self.branch)

    def write_blob(self, data: bytes) -> str:
        blob_id = hashlib.sha1(data).hexdigest()  # noqa: S324
        self.blobs[blob_id] = data
        return blob_id

    def read_ref(self, ref_name: str) -> bytes | None:
        blob_id = self.refs.get(ref_name)
        if blob_id is None:
            return None
        return self.blobs[blob_id]

    def update_ref(self, ref_name: str, blob_id: str) -> None:
        self.refs[ref_name] = blob_id
        self.ref_updates += 1

    def put_raw(self, data: bytes) -> None:
        """Point the current task ref at arbitrary bytes."""

        self.update_ref(self.task_ref(), self.write_blob(data))


@pytest.fixture(autouse=True)
def _clean_taskloop_env(monkeypatch) -> None:
    for name in _TASKLOOP_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def memory_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture()
def repository(memory_store: MemoryObjectStore) -> TaskRepository:
    return TaskRepository(memory_store)


@pytest.fixture()
def git_repo(tmp_path: Path, monkeypatch) -> Path:
    """Fresh git repository on branch `main`, used as the working directory."""

    repo = tmp_path / "repo"
    repo.mkdir()
    subprocess.run(["git", "init", "-q", "-b", "main"], cwd=repo, check=True)  # noqa: S607
    monkeypatch.chdir(repo)
    return repo
