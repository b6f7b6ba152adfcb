"""Supervisory loop driving an external coding agent through the task list.

The loop never marks tasks done itself. Each spawned agent is told to call
``tasks done <id>`` when it finishes, and the next iteration reloads the task
list from the repository to see the result.
"""
