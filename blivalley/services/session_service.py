"""
Work Session Service - Core time tracking logic.

A user works on one task at a time. Starting a session ends whichever
session was still running, marks the task (and its milestone) as in
progress, and opens a new session. Ending a session fixes its duration,
optionally stores an environment snapshot, and can push a new status or
note onto the task.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from blivalley.domain import progress
from blivalley.domain.errors import (
    NotFoundError, InvalidStateError, ValidationFailed,
)
from blivalley.domain.models import (
    Activity, SessionCapture, Snapshot, WorkSession, STATUSES,
)
from blivalley.infra.config import get_settings
from blivalley.infra.repository import (
    ProjectRepository, UserRepository, WorkSessionRepository, unit_of_work,
)

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100


def filter_snapshot(snapshot: Snapshot, capture: SessionCapture) -> Optional[Snapshot]:
    """
    Keep only the parts of a snapshot the user agreed to capture.

    Returns None when nothing should be stored.
    """
    if not capture.enabled or capture.save_location == "none":
        return None

    filtered = Snapshot(
        applications=snapshot.applications if capture.capture_apps else [],
        browsers=snapshot.browsers if capture.capture_browsers else [],
    )
    if not filtered.applications and not filtered.browsers:
        return None
    return filtered


class WorkSessionService:
    """
    The time tracking engine. Owns the session lifecycle:

        start -> (pause -> resume)* -> end

    and the invariant that a user has at most one active session.
    """

    def __init__(self, session: Optional[AsyncSession] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.session = session
        self.session_repo = WorkSessionRepository(session)
        self.project_repo = ProjectRepository(session)
        self.user_repo = UserRepository(session)
        self.clock = clock

    async def list_sessions(self, user_id: str, project_id: Optional[str] = None,
                            active: Optional[bool] = None,
                            limit: Optional[int] = None) -> List[WorkSession]:
        if limit is None:
            limit = get_settings().session_list_limit
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        return await self.session_repo.list_for_user(
            user_id, project_id=project_id, active=active, limit=limit
        )

    async def get_session(self, user_id: str, session_id: str) -> WorkSession:
        work_session = await self.session_repo.get(user_id, session_id)
        if work_session is None:
            raise NotFoundError("Session not found")
        return work_session

    async def get_active_session(self, user_id: str) -> Optional[WorkSession]:
        """Get the currently active session, if any"""
        active = await self.session_repo.get_active(user_id)
        return active[0] if active else None

    async def start_session(self, user_id: str, project_id: Optional[str],
                            milestone_id: Optional[str], task_id: Optional[str],
                            note: Optional[str] = None) -> WorkSession:
        """
        Start working on a task.
        """
        if not project_id or not milestone_id or not task_id:
            raise ValidationFailed("Project, milestone, and task IDs are required")

        project = await self.project_repo.get(user_id, project_id)
        if project is None:
            raise NotFoundError("Project not found")
        # Validate the target before touching any running session
        progress.find_task(project, milestone_id, task_id)

        now = self.clock()

        # Ending the running session, starting the task and opening the new
        # session succeed or fail together
        async with unit_of_work(self.session):
            for running in await self.session_repo.get_active(user_id):
                await self._finish(running, now, {"reason": "auto_ended_for_new_session"})
                logger.info(f"Session {running.id} auto-ended after {running.duration}s for new session")

            if progress.begin_task_work(project, milestone_id, task_id):
                await self.project_repo.save(project)

            work_session = WorkSession(
                user_id=user_id,
                project_id=project_id,
                milestone_id=milestone_id,
                task_id=task_id,
                start_time=now,
                note=note or "",
                is_active=True,
                activities=[Activity(timestamp=now, action="start")],
            )
            work_session = await self.session_repo.create(work_session)
        logger.info(f"Session started: {work_session.id} on task {task_id} (project {project_id})")
        return work_session

    async def pause_session(self, user_id: str, session_id: str) -> WorkSession:
        """
        Pause the session. It stays active but paused time is not counted.
        """
        work_session = await self._get_active(user_id, session_id)
        if work_session.is_paused:
            raise InvalidStateError("Session is already paused")

        work_session.activities.append(Activity(timestamp=self.clock(), action="pause"))
        async with unit_of_work(self.session):
            return await self.session_repo.update(work_session)

    async def resume_session(self, user_id: str, session_id: str) -> WorkSession:
        work_session = await self._get_active(user_id, session_id)
        if not work_session.is_paused:
            raise InvalidStateError("Session is not paused")

        work_session.activities.append(Activity(timestamp=self.clock(), action="resume"))
        async with unit_of_work(self.session):
            return await self.session_repo.update(work_session)

    async def end_session(self, user_id: str, session_id: str,
                          note: Optional[str] = None,
                          metadata: Optional[Dict[str, Any]] = None,
                          snapshot: Optional[Snapshot] = None,
                          task_status: Optional[str] = None,
                          task_note: Optional[str] = None) -> WorkSession:
        """
        End the session.

        Args:
            note: Replaces the session note when given
            metadata: Stored on the `end` activity
            snapshot: Environment capture, filtered by the user's settings
            task_status: New status for the session's task (propagated to
                the milestone and project progress)
            task_note: Recorded as the task's last session summary
        """
        if task_status is not None and task_status not in STATUSES:
            raise ValidationFailed("Invalid status value")

        work_session = await self._get_active(user_id, session_id)
        now = self.clock()

        if note:
            work_session.note = note

        if snapshot is not None:
            user = await self.user_repo.get_by_id(user_id)
            capture = user.settings.session_capture if user else SessionCapture()
            captured = filter_snapshot(snapshot, capture)
            if captured is not None:
                work_session.snapshot = captured
                work_session.activities.append(Activity(
                    timestamp=now,
                    action="snapshot_created",
                    metadata={
                        "applications": len(captured.applications),
                        "browsers": len(captured.browsers),
                    },
                ))

        # A failed task update keeps the session running so the call can be retried
        async with unit_of_work(self.session):
            work_session = await self._finish(work_session, now, metadata or {})
            if task_status or task_note:
                await self._update_task(work_session, task_status, task_note, now)

        logger.info(f"Session ended: {work_session.id} after {work_session.duration}s")
        return work_session

    async def _get_active(self, user_id: str, session_id: str) -> WorkSession:
        work_session = await self.get_session(user_id, session_id)
        if not work_session.is_active:
            raise InvalidStateError("Session has already ended")
        return work_session

    async def _finish(self, work_session: WorkSession, now: datetime,
                      metadata: Dict[str, Any]) -> WorkSession:
        work_session.activities.append(Activity(timestamp=now, action="end", metadata=metadata))
        work_session.is_active = False
        work_session.end_time = now
        work_session.duration = work_session.worked_seconds(now)
        return await self.session_repo.update(work_session)

    async def _update_task(self, work_session: WorkSession, task_status: Optional[str],
                           task_note: Optional[str], now: datetime) -> None:
        """Push the outcome of a session onto its task"""
        project = await self.project_repo.get(work_session.user_id, work_session.project_id)
        if project is None:
            logger.warning(f"Project {work_session.project_id} no longer exists, task not updated")
            return

        try:
            if task_status:
                progress.set_task_status(
                    project, work_session.milestone_id, work_session.task_id, task_status, now=now
                )
            if task_note:
                _, task = progress.find_task(project, work_session.milestone_id, work_session.task_id)
                progress.record_last_session(task, task_note, now)
        except NotFoundError as e:
            logger.warning(f"Task for session {work_session.id} not updated: {e.message}")
            return

        await self.project_repo.save(project)
