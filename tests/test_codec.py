from __future__ import annotations

import json
import logging

import allure

from taskloop.tasks.codec import FORMAT_NAME, FORMAT_VERSION, decode_task_list, encode_task_list
from taskloop.tasks.models import Task, TaskList, TaskStatus
from taskloop.tasks.repository import TaskRepository

pytestmark = [
    allure.epic("Task Store"),
    allure.feature("Serialization"),
]


def _record(task_id: str, content: str, **fields: object) -> str:
    return json.dumps({"id": task_id, "content": content, **fields})


def test_encoded_blob_starts_with_versioned_header() -> None:
    blob = encode_task_list(TaskList(tasks=[Task(id="task-001", content="a")], next_id=2))
    header = json.loads(blob.decode("utf-8").splitlines()[0])

    assert header == {"format": FORMAT_NAME, "next_id": 2, "version": FORMAT_VERSION}


def test_save_then_load_reproduces_list_built_through_repository(repository) -> None:
    first = repository.add("Write parser")
    repository.add("Wire CLI\nwith two lines", after=first.id)
    third = repository.add("Ship it with ünïcode")
    repository.mark_done(first.id)
    repository.append(third.id, "and release notes")
    original = repository.load()

    decoded = decode_task_list(encode_task_list(original))

    assert decoded == original


def test_garbage_lines_are_skipped_and_good_records_kept(caplog) -> None:
    lines = [
        json.dumps({"format": FORMAT_NAME, "version": FORMAT_VERSION, "next_id": 4}),
        _record("task-001", "one", status="pending", created=10),
        "this is not a record",
        "{not json",
        _record("task-002", "two", status="completed", created=11, completed=12),
        "[1, 2, 3]",
        json.dumps({"content": "no id"}),
        json.dumps({"id": "task-009"}),
        _record("task-003", "three"),
        "\x00\x01\x02",
    ]

    with caplog.at_level(logging.WARNING, logger="taskloop.tasks.codec"):
        task_list = decode_task_list("\n".join(lines).encode("utf-8"))

    assert [task.id for task in task_list.tasks] == ["task-001", "task-002", "task-003"]
    assert any("Skipping" in record.message for record in caplog.records)


def test_invalid_utf8_does_not_break_loading() -> None:
    blob = _record("task-001", "ok").encode("utf-8") + b"\n\xff\xfe garbage\n"

    task_list = decode_task_list(blob)

    assert [task.id for task in task_list.tasks] == ["task-001"]


def test_unparsable_fields_fall_back_to_safe_defaults() -> None:
    blob = "\n".join(
        [
            _record("task-001", "bad status", status="in-progress", created="yesterday"),
            _record("task-002", "completed without timestamp", status="completed"),
            _record("task-003", "pending with stray timestamp", status="pending", completed=99),
        ],
    ).encode("utf-8")

    tasks = decode_task_list(blob).tasks

    assert tasks[0].status == TaskStatus.PENDING
    assert tasks[0].created == 0
    assert tasks[1].status == TaskStatus.COMPLETED
    assert tasks[1].completed == 0
    assert tasks[2].completed is None


def test_out_of_range_numbers_never_break_loading() -> None:
    huge_integer = "9" * 5000
    blob = "\n".join(
        [
            '{"format": "taskloop/tasks", "version": 1, "next_id": 1e400}',
            '{"id": "task-001", "content": "overflow", "created": 1e400}',
            '{"id": "task-002", "content": "not a number", "created": NaN}',
            '{"id": "task-003", "content": "negative overflow", "created": -Infinity,'
            ' "status": "completed", "completed": Infinity}',
            f'{{"id": "task-004", "content": "too many digits", "created": {huge_integer}}}',
            _record("task-005", "fine", created=7),
            f"task:task-006|legacy huge|pending|{huge_integer}|",
        ],
    ).encode("utf-8")

    task_list = decode_task_list(blob)

    assert [task.id for task in task_list.tasks] == [
        "task-001",
        "task-002",
        "task-003",
        "task-005",
        "task-006",
    ]
    assert [task.created for task in task_list.tasks] == [0, 0, 0, 7, 0]
    assert task_list.tasks[2].completed == 0
    assert task_list.next_id == 7


def test_duplicate_ids_keep_first_occurrence() -> None:
    blob = "\n".join([_record("task-001", "first"), _record("task-001", "second")]).encode()

    tasks = decode_task_list(blob).tasks

    assert [task.content for task in tasks] == ["first"]


def test_counter_never_falls_behind_existing_ids() -> None:
    blob = "\n".join(
        [
            json.dumps({"format": FORMAT_NAME, "version": FORMAT_VERSION, "next_id": 2}),
            _record("task-007", "seven"),
        ],
    ).encode()

    task_list = decode_task_list(blob)

    assert task_list.next_id == 8
    assert task_list.generate_id() == "task-008"


def test_legacy_line_format_is_read() -> None:
    blob = (
        b"next_id:4\n"
        b"task:task-001|first line\\nsecond line|completed|100|200\n"
        b"task:task-002|depends|pending|150||task-001\n"
        b"task:task-003|bad numbers|weird|abc|def\n"
        b"task:|no id|pending|1|\n"
    )

    task_list = decode_task_list(blob)

    assert task_list.next_id == 4
    first, second, third = task_list.tasks
    assert first == Task(
        id="task-001",
        content="first line\nsecond line",
        status=TaskStatus.COMPLETED,
        created=100,
        completed=200,
    )
    assert second.after == "task-001"
    assert second.completed is None
    assert third.status == TaskStatus.PENDING
    assert third.created == 0


def test_legacy_ref_is_rewritten_in_current_format_on_save(memory_store) -> None:
    memory_store.put_raw(b"next_id:2\ntask:task-001|legacy|pending|5|\n")
    repository = TaskRepository(memory_store)

    repository.add("new task")

    stored = memory_store.read_ref(memory_store.task_ref()).decode("utf-8").splitlines()
    assert json.loads(stored[0])["format"] == FORMAT_NAME
    assert [json.loads(line)["id"] for line in stored[1:]] == ["task-001", "task-002"]
