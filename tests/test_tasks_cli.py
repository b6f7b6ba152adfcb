from __future__ import annotations

import json
from pathlib import Path

import allure
from click.testing import CliRunner

from taskloop.main import taskloop
from taskloop.tasks.controllers import format_relative_time

pytestmark = [
    allure.epic("Task Store"),
    allure.feature("Tasks CLI"),
]


def _invoke(*args: str, env: dict[str, str] | None = None):
    return CliRunner().invoke(taskloop, ["tasks", *args], env=env)


def test_add_list_show_done_flow(git_repo: Path) -> None:
    added = _invoke("add", "Write", "the", "parser")
    assert added.exit_code == 0, added.output
    assert added.output.splitlines() == ["created: task-001", "  Write the parser"]

    _invoke("add", "Wire the CLI")
    listed = _invoke("list")
    assert listed.exit_code == 0, listed.output
    assert listed.output.splitlines() == [
        "tasks: 2 total (2 pending, 0 completed)",
        "",
        "[ ] task-001",
        "  Write the parser",
        "[ ] task-002",
        "  Wire the CLI",
    ]

    done = _invoke("done", "task-001")
    assert done.output.splitlines() == ["completed: task-001", "  Write the parser"]
    again = _invoke("done", "task-001")
    assert again.exit_code == 0
    assert again.output.strip() == "task 'task-001' already completed"

    shown = _invoke("show", "task-001")
    lines = shown.output.splitlines()
    assert lines[:3] == ["task: task-001", "content: Write the parser", "status: completed"]
    assert lines[3].startswith("created: ")
    assert lines[3].endswith(" ago")
    assert lines[4].startswith("completed: ")
    assert "[✓] task-001" in _invoke("list").output


def test_json_outputs_are_structured(git_repo: Path) -> None:
    created = json.loads(_invoke("add", "first", "--json").output)
    assert created["id"] == "task-001"
    assert created["status"] == "pending"
    assert created["completed"] is None
    assert created["after"] is None
    assert isinstance(created["created"], int)

    _invoke("add", "second", "--after", "task-001")
    listed = json.loads(_invoke("list", "--json").output)
    assert [task["id"] for task in listed["tasks"]] == ["task-001", "task-002"]
    assert listed["tasks"][1]["after"] == "task-001"

    ready = json.loads(_invoke("ready", "--json").output)
    assert [task["id"] for task in ready["tasks"]] == ["task-001"]

    done = json.loads(_invoke("done", "task-001", "--json").output)
    assert done["status"] == "completed"
    assert done["already_done"] is False
    assert isinstance(done["completed"], int)

    deleted = json.loads(_invoke("delete", "task-002", "--json").output)
    assert deleted == {"deleted": "task-002"}


def test_empty_list_messages(git_repo: Path) -> None:
    assert _invoke("list").output.strip() == "no tasks found"
    assert json.loads(_invoke("list", "--json").output) == {"tasks": []}
    assert _invoke("ready").output.strip() == "no tasks found"


def test_ready_lists_only_unblocked_tasks(git_repo: Path) -> None:
    _invoke("add", "base")
    _invoke("add", "dependent", "--after", "task-001")

    assert _invoke("ready").output.splitlines() == ["ready: 1 task", "", "[ ] task-001", "  base"]

    _invoke("done", "task-001")
    assert _invoke("ready").output.splitlines()[0] == "ready: 1 task"
    _invoke("done", "task-002")
    assert _invoke("ready").output.strip() == "no ready tasks"


def test_add_with_dangling_prerequisite_warns(git_repo: Path) -> None:
    result = _invoke("add", "later", "--after", "task-404")

    assert result.exit_code == 0
    assert "warning: task-404 does not exist; task-001 stays blocked until it does" in result.output


def test_add_blank_content_fails(git_repo: Path) -> None:
    result = _invoke("add", "   ")

    assert result.exit_code == 1


def test_add_without_content_is_a_usage_error(git_repo: Path) -> None:
    assert _invoke("add").exit_code == 2


def test_unknown_flag_is_a_usage_error(git_repo: Path) -> None:
    assert _invoke("list", "--verbose-please").exit_code == 2


def test_show_unknown_task_fails(git_repo: Path) -> None:
    result = _invoke("show", "task-999")

    assert result.exit_code == 1
    assert "task 'task-999' not found" in result.output


def test_edit_and_append(git_repo: Path) -> None:
    _invoke("add", "draft")

    edited = _invoke("edit", "task-001", "final", "text")
    assert edited.output.splitlines() == ["updated: task-001", "  final text"]

    appended = _invoke("append", "task-001", "agent note")
    assert appended.output.splitlines() == ["appended: task-001", "  final text", "  agent note"]


def test_delete_refuses_task_with_dependents(git_repo: Path) -> None:
    _invoke("add", "base")
    _invoke("add", "dependent", "--after", "task-001")

    result = _invoke("delete", "task-001")

    assert result.exit_code == 1
    assert "prerequisite of task-002" in result.output
    assert "task-001" in _invoke("list").output


def test_agent_mode_blocks_edit_and_delete_but_not_append(git_repo: Path) -> None:
    _invoke("add", "task")
    agent_env = {"TASKLOOP_AGENT_MODE": "1"}

    edit = _invoke("edit", "task-001", "rewritten", env=agent_env)
    delete = _invoke("delete", "task-001", env=agent_env)
    append = _invoke("append", "task-001", "progress note", env=agent_env)

    assert edit.exit_code == 1
    assert "edit command blocked in agent mode" in edit.output
    assert "tasks append" in edit.output
    assert delete.exit_code == 1
    assert "delete command blocked in agent mode" in delete.output
    assert append.exit_code == 0
    assert json.loads(_invoke("show", "task-001", "--json").output)["content"] == (
        "task\nprogress note"
    )


def test_invalid_agent_mode_value_is_rejected(git_repo: Path) -> None:
    _invoke("add", "task")

    result = _invoke("edit", "task-001", "x", env={"TASKLOOP_AGENT_MODE": "maybe"})

    assert result.exit_code == 1
    assert "TASKLOOP_AGENT_MODE" in result.output


def test_pr_renders_checklist(git_repo: Path) -> None:
    _invoke("add", "Add login")
    _invoke("add", "Add logout")
    _invoke("done", "task-001")

    assert _invoke("pr").output.splitlines() == [
        "## Tasks",
        "",
        "### Completed",
        "",
        "- [x] Add login",
        "",
        "### Pending",
        "",
        "- [ ] Add logout",
        "",
    ]


def test_import_creates_tasks_from_markdown(git_repo: Path) -> None:
    plan = git_repo / "plan.md"
    plan.write_text("# Plan\n\n1. Add login\n2. Add logout\n- [ ] Write tests\n", encoding="utf-8")

    preview = _invoke("import", str(plan), "--dry-run")
    assert preview.exit_code == 0
    assert "preview: 3 tasks found" in preview.output
    assert "3: Write tests" in preview.output
    assert _invoke("list").output.strip() == "no tasks found"

    imported = _invoke("import", str(plan), "--json")
    assert json.loads(imported.output) == {
        "imported": 3,
        "ids": ["task-001", "task-002", "task-003"],
    }
    assert "tasks: 3 total (3 pending, 0 completed)" in _invoke("list").output


def test_import_without_list_items_fails(git_repo: Path) -> None:
    plan = git_repo / "notes.md"
    plan.write_text("Just prose, no list.\n", encoding="utf-8")

    result = _invoke("import", str(plan))

    assert result.exit_code == 1
    assert "no tasks found in" in result.output


def test_import_missing_file_fails(git_repo: Path) -> None:
    result = _invoke("import", str(git_repo / "absent.md"))

    assert result.exit_code == 1
    assert "cannot read file" in result.output


def test_tasks_outside_git_repository_fail(tmp_path: Path, monkeypatch) -> None:
    outside = tmp_path / "plain"
    outside.mkdir()
    monkeypatch.chdir(outside)
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))

    result = _invoke("list")

    assert result.exit_code == 1
    assert "cannot resolve current branch" in result.output


def test_format_relative_time_picks_largest_unit() -> None:
    assert format_relative_time(100, now=100) == "0 seconds ago"
    assert format_relative_time(99, now=100) == "1 second ago"
    assert format_relative_time(0, now=120) == "2 minutes ago"
    assert format_relative_time(0, now=3600) == "1 hour ago"
    assert format_relative_time(0, now=3 * 86400) == "3 days ago"
    assert format_relative_time(200, now=100) == "0 seconds ago"
