"""Prompt templates handed to the external agent."""

from __future__ import annotations

TASK_PROMPT_TEMPLATE = """\
You are working on: {task_id}

Task: {content}

Instructions:
1. Read AGENTS.md for project context and build instructions
2. Complete this ONE task only
3. Verify your work (run tests, check build)
4. Commit your changes with: git commit -m "<message>"
5. Mark the task done: {tasks_command} done {task_id}
6. If you learn critical operational details, update AGENTS.md
7. To record notes on a task use: {tasks_command} append {task_id} "<note>"

Rules:
- NEVER git push (only commit)
- ONLY work on this one task
- Exit when done so the next task can start
"""

PLANNING_PROMPT_TEMPLATE = """\
You are a planning agent. Your job is to create a detailed implementation plan.

{goal_section}

INSTRUCTIONS:
1. Read AGENTS.md to understand the project context, conventions, and build commands
2. Explore the codebase to understand the current architecture
3. Create a detailed plan that an engineer can follow WITHOUT any external knowledge
4. Each task must be:
   - Fully self-contained and independently completable
   - Have clear acceptance criteria (what tests to run, what to verify)
   - Be small enough to complete in one session

CREATING TASKS:
Once your plan is ready, create tasks using:
  {tasks_command} add "<task description with acceptance criteria>"
To make a task wait for another one, add: --after <task-id>

Example task format:
  "Implement login API endpoint - add POST /api/login that validates credentials \
and returns JWT. Test: curl -X POST with valid/invalid creds"

RULES:
- Create tasks in chronological order (dependencies first)
- Each task should include how to verify it works
- Include test requirements in task descriptions
- NEVER git push (only commit)
- After creating all tasks, run: {tasks_command} list
"""

_INTERVIEW_SECTION = """\
PROJECT GOAL: not provided yet.
Start by asking the user what they want to build. Ask clarifying questions \
about scope, constraints and acceptance criteria until the goal is clear, \
then continue with the instructions below."""


def render_task_prompt(*, task_id: str, content: str, tasks_command: str) -> str:
    return TASK_PROMPT_TEMPLATE.format(
        task_id=task_id,
        content=content,
        tasks_command=tasks_command,
    )


def render_planning_prompt(*, description: str | None, tasks_command: str) -> str:
    """Planning prompt; without a description the agent interviews the user first."""

    goal = (description or "").strip()
    goal_section = f"PROJECT GOAL: {goal}" if goal else _INTERVIEW_SECTION
    return PLANNING_PROMPT_TEMPLATE.format(goal_section=goal_section, tasks_command=tasks_command)
