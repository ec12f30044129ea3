import datetime
import uuid

import pytest
from pydantic import ValidationError

from opsdesk.core.errors import InvalidStateTransition, NotFound, PreconditionFailed
from opsdesk.models.work_task import TaskSource, TaskStatus, TimeBlock, WorkTask
from opsdesk.schemas.work_task import (
    CompletionSubmission,
    ContentTaskPayload,
    DraftUpdate,
    ManualTaskCreate,
    OpsTaskPayload,
    WorkTaskUpdate,
)
from opsdesk.services.runbook_generator import RunbookGenerator
from opsdesk.services.task_lifecycle import TaskLifecycleManager

RUN_DATE = datetime.date(2025, 6, 10)


@pytest.fixture
async def owner(seed):
    staff = await seed.staff()
    persona = await seed.persona()
    await seed.own(staff, persona)
    return staff, persona


async def generate_one(db, seed, owner, task_kind: str = "ops_reply"):
    staff, _ = owner
    await seed.template("Inbox sweep", time_slot="13:00", task_kind=task_kind)
    result = await RunbookGenerator(db).generate(staff.id, RUN_DATE)
    return result.tasks[0].id


async def test_ops_completion_writes_a_log(db, seed, owner):
    task_id = await generate_one(db, seed, owner)
    lifecycle = TaskLifecycleManager(db)

    task = await lifecycle.submit_completion(
        task_id,
        CompletionSubmission(notes="42 DMs answered", evidence_url="https://example.com/s.png", counts={"inbound_count": 42}),
    )

    assert task.status is TaskStatus.COMPLETED
    assert task.notes == "42 DMs answered"
    [log] = await lifecycle.list_logs(task_id)
    assert log.result_status == "done"
    assert log.counts == {"inbound_count": 42}
    assert log.evidence_url == "https://example.com/s.png"
    assert log.staff_id == owner[0].id


async def test_terminal_task_and_logs_are_left_untouched(db, seed, owner):
    task_id = await generate_one(db, seed, owner)
    lifecycle = TaskLifecycleManager(db)
    await lifecycle.submit_completion(task_id, CompletionSubmission(notes="first", counts={"inbound_count": 3}))
    first = await lifecycle.get_task(task_id)
    completed_at = first.completed_at

    with pytest.raises(InvalidStateTransition):
        await lifecycle.submit_completion(task_id, CompletionSubmission(notes="second", counts={"inbound_count": 9}))
    with pytest.raises(InvalidStateTransition):
        await lifecycle.skip(task_id, reason="too late")

    task = await lifecycle.get_task(task_id)
    assert task.notes == "first"
    assert task.completed_at == completed_at
    logs = await lifecycle.list_logs(task_id)
    assert [log.counts for log in logs] == [{"inbound_count": 3}]


async def test_skipped_task_cannot_be_completed(db, seed, owner):
    task_id = await generate_one(db, seed, owner)
    lifecycle = TaskLifecycleManager(db)

    task = await lifecycle.skip(task_id, reason="account locked")
    assert task.status is TaskStatus.SKIPPED
    assert [log.result_status for log in await lifecycle.list_logs(task_id)] == ["skipped"]

    with pytest.raises(InvalidStateTransition) as exc_info:
        await lifecycle.submit_completion(task_id, CompletionSubmission())
    assert exc_info.value.to_dict()["current_state"] == "skipped"


async def test_content_completion_records_on_the_task(db, seed, owner):
    task_id = await generate_one(db, seed, owner, task_kind="content_post")
    lifecycle = TaskLifecycleManager(db)

    task = await lifecycle.submit_completion(task_id, CompletionSubmission(post_url="https://example.com/p/1"))

    assert task.status is TaskStatus.COMPLETED
    assert task.post_url == "https://example.com/p/1"
    assert await lifecycle.list_logs(task_id) == []


async def test_drafts_keep_the_task_pending(db, seed, owner):
    task_id = await generate_one(db, seed, owner, task_kind="content_post")
    lifecycle = TaskLifecycleManager(db)

    await lifecycle.save_draft(task_id, DraftUpdate(notes="caption v1"))
    task = await lifecycle.save_draft(task_id, DraftUpdate(notes="caption v2"))

    assert task.status is TaskStatus.PENDING_PUBLISH
    assert task.notes == "caption v2"
    assert task.completed_at is None


async def test_draft_on_completed_task_is_rejected(db, seed, owner):
    task_id = await generate_one(db, seed, owner)
    lifecycle = TaskLifecycleManager(db)
    await lifecycle.submit_completion(task_id, CompletionSubmission())

    with pytest.raises(InvalidStateTransition):
        await lifecycle.save_draft(task_id, DraftUpdate(notes="edit"))


async def test_apply_update_dispatches_on_status(db, seed, owner):
    task_id = await generate_one(db, seed, owner, task_kind="content_post")
    lifecycle = TaskLifecycleManager(db)

    draft = await lifecycle.apply_update(task_id, WorkTaskUpdate(post_url="  ", notes="wip"))
    assert draft.status is TaskStatus.PENDING_PUBLISH
    assert draft.post_url is None
    assert draft.notes == "wip"

    done = await lifecycle.apply_update(
        task_id, WorkTaskUpdate(status=TaskStatus.COMPLETED, post_url="https://example.com/p/2")
    )
    assert done.status is TaskStatus.COMPLETED
    assert done.post_url == "https://example.com/p/2"
    assert done.notes == "wip"


async def test_unknown_task_is_not_found(db):
    lifecycle = TaskLifecycleManager(db)

    with pytest.raises(NotFound):
        await lifecycle.submit_completion(uuid.uuid4(), CompletionSubmission())
    with pytest.raises(NotFound):
        await lifecycle.list_logs(uuid.uuid4())


async def test_manual_task_derives_its_block(db, owner):
    staff, persona = owner

    task = await TaskLifecycleManager(db).create_manual_task(
        ManualTaskCreate(
            staff_id=staff.id,
            persona_id=persona.id,
            task_date=RUN_DATE,
            scheduled_time="21:15",
            payload=ContentTaskPayload(instruction="Post the recap reel"),
        )
    )

    assert task.source is TaskSource.MANUAL
    assert task.time_block is TimeBlock.WAR
    assert task.status is TaskStatus.PENDING_PUBLISH
    assert task.payload["kind"] == "content"


async def test_manual_task_requires_known_references(db, owner):
    staff, _ = owner

    with pytest.raises(NotFound) as exc_info:
        await TaskLifecycleManager(db).create_manual_task(
            ManualTaskCreate(
                staff_id=staff.id,
                persona_id=uuid.uuid4(),
                task_date=RUN_DATE,
                payload=ContentTaskPayload(instruction="Post"),
            )
        )
    assert exc_info.value.entity == "persona"


async def test_manual_task_kind_defaults_from_payload(db, owner):
    staff, persona = owner
    lifecycle = TaskLifecycleManager(db)

    task = await lifecycle.create_manual_task(
        ManualTaskCreate(
            staff_id=staff.id,
            persona_id=persona.id,
            task_date=RUN_DATE,
            payload=OpsTaskPayload(title="Extra replies", instruction="Clear the DM backlog", counters=["inbound_count"]),
        )
    )
    assert task.task_kind == "ops"

    await lifecycle.submit_completion(
        task.id, CompletionSubmission(evidence_url="https://example.com/ev.png", counts={"inbound_count": 7})
    )

    [log] = await lifecycle.list_logs(task.id)
    assert log.counts == {"inbound_count": 7}
    assert log.evidence_url == "https://example.com/ev.png"


def test_manual_task_kind_must_match_payload():
    with pytest.raises(ValidationError):
        ManualTaskCreate(
            staff_id=uuid.uuid4(),
            persona_id=uuid.uuid4(),
            task_kind="content_post",
            task_date=RUN_DATE,
            payload=OpsTaskPayload(title="Replies", instruction="Reply"),
        )

    matched = ManualTaskCreate(
        staff_id=uuid.uuid4(),
        persona_id=uuid.uuid4(),
        task_kind="ops_report",
        task_date=RUN_DATE,
        payload=OpsTaskPayload(title="Report", instruction="File the daily report"),
    )
    assert matched.task_kind == "ops_report"


async def test_logging_follows_the_stored_payload_kind(db, owner):
    staff, persona = owner
    # Row written before kinds were checked: the payload says ops
    task = WorkTask(
        persona_id=persona.id,
        staff_id=staff.id,
        source=TaskSource.MANUAL,
        task_kind="content_post",
        task_date=RUN_DATE,
        payload={"kind": "ops", "title": "Replies", "instruction": "Reply"},
    )
    db.add(task)
    await db.commit()
    lifecycle = TaskLifecycleManager(db)

    await lifecycle.submit_completion(task.id, CompletionSubmission(counts={"inbound_count": 3}))

    assert [log.counts for log in await lifecycle.list_logs(task.id)] == [{"inbound_count": 3}]


async def test_content_completion_rejects_evidence_and_counts(db, seed, owner):
    task_id = await generate_one(db, seed, owner, task_kind="content_post")
    lifecycle = TaskLifecycleManager(db)

    with pytest.raises(PreconditionFailed):
        await lifecycle.submit_completion(task_id, CompletionSubmission(counts={"inbound_count": 4}))
    with pytest.raises(PreconditionFailed):
        await lifecycle.submit_completion(task_id, CompletionSubmission(evidence_url="https://example.com/ev.png"))

    task = await lifecycle.get_task(task_id)
    assert task.status is TaskStatus.PENDING_PUBLISH
    assert await lifecycle.list_logs(task_id) == []
