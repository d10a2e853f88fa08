"""
Tests for the work session lifecycle.

Covers the single-active-session rule, task/milestone propagation on start
and end, pause accounting, and snapshot capture settings.
"""

import pytest

from blivalley.domain.errors import ConflictError, InvalidStateError, NotFoundError, ValidationFailed
from blivalley.domain.models import Application, Browser, BrowserTab, Snapshot, SessionCapture
from blivalley.infra.repository import UserRepository
from blivalley.services.project_service import ProjectUpdate
from blivalley.services.session_service import filter_snapshot

SNAPSHOT = Snapshot(
    applications=[Application(name="VS Code", open_files=["main.py"])],
    browsers=[Browser(name="Firefox", tabs=[BrowserTab(url="https://docs.python.org", title="Docs")])],
)


def ids(project, milestone_index=0, task_index=0):
    milestone = project.milestones[milestone_index]
    return project.id, milestone.id, milestone.tasks[task_index].id


@pytest.mark.asyncio
async def test_start_marks_task_and_milestone_in_progress(session_service, project_service, project, user, clock):
    work_session = await session_service.start_session(user.id, *ids(project), note="Sketching")

    assert work_session.is_active
    assert work_session.start_time == clock.now
    assert work_session.note == "Sketching"
    assert [a.action for a in work_session.activities] == ["start"]

    reloaded = await project_service.get_project(user.id, project.id)
    assert reloaded.milestones[0].status == "in_progress"
    assert reloaded.milestones[0].tasks[0].status == "in_progress"
    assert reloaded.milestones[0].tasks[1].status == "not_started"


@pytest.mark.asyncio
async def test_starting_a_second_session_ends_the_first(session_service, project, user, clock):
    first = await session_service.start_session(user.id, *ids(project))
    clock.advance(120)
    second = await session_service.start_session(user.id, *ids(project, 1, 0))

    ended = await session_service.get_session(user.id, first.id)
    assert not ended.is_active
    assert ended.end_time == clock.now
    assert ended.duration == 120
    assert ended.activities[-1].action == "end"
    assert ended.activities[-1].metadata == {"reason": "auto_ended_for_new_session"}

    active = await session_service.list_sessions(user.id, active=True)
    assert [s.id for s in active] == [second.id]
    assert (await session_service.get_active_session(user.id)).id == second.id


@pytest.mark.asyncio
async def test_active_sessions_are_per_user(session_service, project_service, project, user, other_user):
    from blivalley.services.project_service import ProjectCreate

    theirs = await project_service.create_project(other_user.id, ProjectCreate(
        name="Theirs", category="other", milestones=[{"name": "M", "tasks": ["T"]}],
    ))
    mine = await session_service.start_session(user.id, *ids(project))
    await session_service.start_session(other_user.id, *ids(theirs))

    assert (await session_service.get_session(user.id, mine.id)).is_active


@pytest.mark.asyncio
async def test_start_requires_all_ids(session_service, project, user):
    with pytest.raises(ValidationFailed):
        await session_service.start_session(user.id, project.id, None, "t")


@pytest.mark.asyncio
async def test_start_with_unknown_task_keeps_running_session(session_service, project, user):
    running = await session_service.start_session(user.id, *ids(project))

    with pytest.raises(NotFoundError):
        await session_service.start_session(user.id, project.id, project.milestones[0].id, "missing")
    with pytest.raises(NotFoundError):
        await session_service.start_session(user.id, "missing", "m", "t")

    assert (await session_service.get_session(user.id, running.id)).is_active


@pytest.mark.asyncio
async def test_pause_and_resume_are_excluded_from_duration(session_service, project, user, clock):
    work_session = await session_service.start_session(user.id, *ids(project))
    clock.advance(600)
    paused = await session_service.pause_session(user.id, work_session.id)
    assert paused.is_paused

    with pytest.raises(InvalidStateError):
        await session_service.pause_session(user.id, work_session.id)

    clock.advance(300)
    resumed = await session_service.resume_session(user.id, work_session.id)
    assert not resumed.is_paused

    with pytest.raises(InvalidStateError):
        await session_service.resume_session(user.id, work_session.id)

    clock.advance(60)
    ended = await session_service.end_session(user.id, work_session.id)
    assert ended.duration == 660
    assert [a.action for a in ended.activities] == ["start", "pause", "resume", "end"]


@pytest.mark.asyncio
async def test_end_session_updates_task_and_progress(session_service, project_service, project, user, clock):
    work_session = await session_service.start_session(user.id, *ids(project))
    clock.advance(1800)

    ended = await session_service.end_session(
        user.id, work_session.id,
        note="Wireframes done",
        metadata={"source": "timer"},
        task_status="completed",
        task_note="Ready for review",
    )
    assert ended.note == "Wireframes done"
    assert ended.duration == 1800
    assert ended.activities[-1].metadata == {"source": "timer"}

    reloaded = await project_service.get_project(user.id, project.id)
    task = reloaded.milestones[0].tasks[0]
    assert task.status == "completed"
    assert task.last_session.note == "Ready for review"
    assert task.last_session.timestamp == clock.now
    # One remaining task in Design is not started: mixed -> in progress
    assert reloaded.milestones[0].status == "in_progress"
    assert reloaded.progress == 25


@pytest.mark.asyncio
async def test_end_session_twice_is_rejected(session_service, project, user):
    work_session = await session_service.start_session(user.id, *ids(project))
    await session_service.end_session(user.id, work_session.id)

    with pytest.raises(InvalidStateError):
        await session_service.end_session(user.id, work_session.id)
    with pytest.raises(InvalidStateError):
        await session_service.pause_session(user.id, work_session.id)


@pytest.mark.asyncio
async def test_end_session_with_invalid_task_status(session_service, project, user):
    work_session = await session_service.start_session(user.id, *ids(project))
    with pytest.raises(ValidationFailed):
        await session_service.end_session(user.id, work_session.id, task_status="done")
    assert (await session_service.get_session(user.id, work_session.id)).is_active


@pytest.mark.asyncio
async def test_end_session_when_task_was_removed(session_service, project_service, project, user):
    work_session = await session_service.start_session(user.id, *ids(project))
    await project_service.update_project(user.id, project.id, ProjectUpdate(milestones=[]))

    ended = await session_service.end_session(user.id, work_session.id, task_status="completed")
    assert not ended.is_active


@pytest.mark.asyncio
async def test_end_session_stores_snapshot(session_service, project, user):
    work_session = await session_service.start_session(user.id, *ids(project))
    ended = await session_service.end_session(user.id, work_session.id, snapshot=SNAPSHOT)

    assert ended.snapshot == SNAPSHOT
    assert [a.action for a in ended.activities] == ["start", "snapshot_created", "end"]


@pytest.mark.asyncio
async def test_end_session_respects_capture_settings(db_session, session_service, project, user):
    user.settings.session_capture.capture_browsers = False
    await UserRepository(session=db_session).update(user)

    work_session = await session_service.start_session(user.id, *ids(project))
    ended = await session_service.end_session(user.id, work_session.id, snapshot=SNAPSHOT)

    assert ended.snapshot.browsers == []
    assert ended.snapshot.applications[0].name == "VS Code"


@pytest.mark.asyncio
async def test_list_sessions_filters_and_limits(session_service, project, user, clock):
    for _ in range(3):
        await session_service.start_session(user.id, *ids(project))
        clock.advance(60)

    newest_first = await session_service.list_sessions(user.id)
    assert len(newest_first) == 3
    assert newest_first[0].start_time > newest_first[-1].start_time
    assert len(await session_service.list_sessions(user.id, limit=2)) == 2
    assert len(await session_service.list_sessions(user.id, active=False)) == 2
    assert await session_service.list_sessions(user.id, project_id="other") == []


@pytest.mark.asyncio
async def test_list_sessions_limit_is_clamped(session_service, project, user, clock):
    for _ in range(3):
        await session_service.start_session(user.id, *ids(project))
        clock.advance(60)

    assert len(await session_service.list_sessions(user.id, limit=0)) == 1
    assert len(await session_service.list_sessions(user.id, limit=1000)) == 3


async def concurrent_edit(project):
    raise ConflictError("Project was modified by another request")


@pytest.mark.asyncio
async def test_failed_start_keeps_running_session(session_service, project, user, monkeypatch):
    running = await session_service.start_session(user.id, *ids(project))
    monkeypatch.setattr(session_service.project_repo, "save", concurrent_edit)

    with pytest.raises(ConflictError):
        await session_service.start_session(user.id, *ids(project, 1, 0))

    assert (await session_service.get_session(user.id, running.id)).is_active
    assert (await session_service.get_active_session(user.id)).id == running.id
    assert len(await session_service.list_sessions(user.id)) == 1


@pytest.mark.asyncio
async def test_failed_task_update_keeps_session_running(session_service, project_service,
                                                        project, user, monkeypatch):
    work_session = await session_service.start_session(user.id, *ids(project))
    monkeypatch.setattr(session_service.project_repo, "save", concurrent_edit)

    with pytest.raises(ConflictError):
        await session_service.end_session(user.id, work_session.id, task_status="completed")
    assert (await session_service.get_session(user.id, work_session.id)).is_active

    # Retrying once the conflict is gone applies both changes
    monkeypatch.undo()
    ended = await session_service.end_session(user.id, work_session.id, task_status="completed")
    assert not ended.is_active
    assert [a.action for a in ended.activities] == ["start", "end"]

    reloaded = await project_service.get_project(user.id, project.id)
    assert reloaded.milestones[0].tasks[0].status == "completed"


@pytest.mark.parametrize("capture, expected_apps, expected_browsers", [
    (SessionCapture(), 1, 1),
    (SessionCapture(capture_apps=False), 0, 1),
    (SessionCapture(capture_browsers=False), 1, 0),
])
def test_filter_snapshot(capture, expected_apps, expected_browsers):
    filtered = filter_snapshot(SNAPSHOT, capture)
    assert len(filtered.applications) == expected_apps
    assert len(filtered.browsers) == expected_browsers


@pytest.mark.parametrize("capture", [
    SessionCapture(enabled=False),
    SessionCapture(save_location="none"),
    SessionCapture(capture_apps=False, capture_browsers=False),
])
def test_filter_snapshot_drops_everything(capture):
    assert filter_snapshot(SNAPSHOT, capture) is None
