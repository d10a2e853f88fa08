"""
Tests for the repositories and the unit of work they share.
"""

import datetime
import pytest

from blivalley.domain.errors import ConflictError
from blivalley.domain.models import WorkSession
from blivalley.infra.repository import UserRepository, WorkSessionRepository, unit_of_work

T0 = datetime.datetime(2026, 3, 2, 9, 0, 0)


def active_session(user_id, project):
    milestone = project.milestones[0]
    return WorkSession(
        user_id=user_id,
        project_id=project.id,
        milestone_id=milestone.id,
        task_id=milestone.tasks[0].id,
        start_time=T0,
        is_active=True,
    )


@pytest.mark.asyncio
async def test_ended_sessions_do_not_count_as_active(db_session, project, user):
    repo = WorkSessionRepository(session=db_session)

    ended = active_session(user.id, project)
    ended.is_active = False
    ended.end_time = T0 + datetime.timedelta(minutes=5)
    await repo.create(ended)
    await repo.create(active_session(user.id, project))

    assert len(await repo.get_active(user.id)) == 1


@pytest.mark.asyncio
async def test_database_rejects_second_active_session(db_session, project, user):
    repo = WorkSessionRepository(session=db_session)
    await repo.create(active_session(user.id, project))

    with pytest.raises(ConflictError):
        await repo.create(active_session(user.id, project))


@pytest.mark.asyncio
async def test_unit_of_work_commits(db_session, user):
    repo = UserRepository(session=db_session)
    user.display_name = "Countess"

    async with unit_of_work(db_session):
        await repo.update(user)

    assert (await repo.get_by_id(user.id)).display_name == "Countess"


@pytest.mark.asyncio
async def test_unit_of_work_rolls_back_on_error(db_session, project, user):
    # project fixture went through a service, so the user row is committed
    repo = UserRepository(session=db_session)
    user.display_name = "Countess"

    with pytest.raises(ConflictError):
        async with unit_of_work(db_session):
            await repo.update(user)
            raise ConflictError("Project was modified by another request")

    assert (await repo.get_by_id(user.id)).display_name == "Ada"
