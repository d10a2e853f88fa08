"""
Status propagation and progress aggregation.

Architecture Decision: Pure functions over the domain models
Every API call that touches a task or milestone (status edits, session start,
session end) goes through these functions, so the rules live in one place and
can be tested without a database. They mutate the Project aggregate in place;
persisting it is the caller's job.
"""

import math
from datetime import datetime
from typing import Optional, Tuple

from blivalley.domain.errors import NotFoundError, ValidationFailed
from blivalley.domain.models import (
    Project, Milestone, Task, LastSession, Status, STATUSES,
)


def _check_status(status: str) -> None:
    if status not in STATUSES:
        raise ValidationFailed("Invalid status value")


def find_milestone(project: Project, milestone_id: str) -> Milestone:
    for milestone in project.milestones:
        if milestone.id == milestone_id:
            return milestone
    raise NotFoundError("Milestone not found")


def find_task(project: Project, milestone_id: str, task_id: str) -> Tuple[Milestone, Task]:
    milestone = find_milestone(project, milestone_id)
    for task in milestone.tasks:
        if task.id == task_id:
            return milestone, task
    raise NotFoundError("Task not found")


def calculate_progress(project: Project) -> int:
    """
    Percentage of completed tasks across all milestones, 0 when there are none.

    Halves round up (49.5 -> 50) rather than to even.
    """
    total = sum(len(m.tasks) for m in project.milestones)
    if total == 0:
        return 0
    completed = sum(
        1 for m in project.milestones for t in m.tasks if t.status == "completed"
    )
    return int(math.floor(completed * 100 / total + 0.5))


def refresh_progress(project: Project) -> int:
    project.progress = calculate_progress(project)
    return project.progress


def derive_milestone_status(milestone: Milestone) -> Status:
    """
    Milestone status implied by its tasks.

    - all completed        -> completed
    - any in progress      -> in_progress
    - all not started      -> not_started
    - completed + not started mix -> in_progress (partly done)

    A milestone without tasks keeps its current status.
    """
    statuses = [t.status for t in milestone.tasks]
    if not statuses:
        return milestone.status
    if all(s == "completed" for s in statuses):
        return "completed"
    if all(s == "not_started" for s in statuses):
        return "not_started"
    return "in_progress"


def record_last_session(task: Task, note: str, now: Optional[datetime] = None) -> None:
    task.last_session = LastSession(timestamp=now or datetime.now(), note=note)


def set_task_status(project: Project, milestone_id: str, task_id: str, status: str,
                    note: Optional[str] = None,
                    now: Optional[datetime] = None) -> Tuple[Milestone, Task]:
    """
    Change a task's status and propagate it to the milestone and project.

    A note given while moving the task to in_progress is recorded as the
    task's last session summary.
    """
    _check_status(status)
    milestone, task = find_task(project, milestone_id, task_id)

    task.status = status
    if status == "in_progress" and note:
        record_last_session(task, note, now)

    milestone.status = derive_milestone_status(milestone)
    refresh_progress(project)
    return milestone, task


def set_milestone_status(project: Project, milestone_id: str, status: str) -> Milestone:
    """
    Change a milestone's status and push it down to its tasks.

    Completing a milestone completes every task. Moving it to in_progress
    starts the first task that has not been started yet.
    """
    _check_status(status)
    milestone = find_milestone(project, milestone_id)
    milestone.status = status

    if status == "completed":
        for task in milestone.tasks:
            task.status = "completed"
    elif status == "in_progress":
        for task in milestone.tasks:
            if task.status == "not_started":
                task.status = "in_progress"
                break

    refresh_progress(project)
    return milestone


def begin_task_work(project: Project, milestone_id: str, task_id: str) -> bool:
    """
    Mark a task as being worked on because a session started against it.

    Returns True if anything changed (the project then needs saving).
    """
    milestone, task = find_task(project, milestone_id, task_id)
    if task.status == "in_progress":
        return False

    task.status = "in_progress"
    milestone.status = derive_milestone_status(milestone)
    refresh_progress(project)
    return True
