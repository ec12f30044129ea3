import datetime

from opsdesk.models.work_task import TimeBlock
from opsdesk.schemas.work_task import CompletionSubmission, ContentTaskPayload, ManualTaskCreate
from opsdesk.services.runbook_generator import RunbookGenerator
from opsdesk.services.runbook_view import RunbookViewService
from opsdesk.services.schedule_rules import TIME_BLOCK_ORDER
from opsdesk.services.task_lifecycle import TaskLifecycleManager

RUN_DATE = datetime.date(2025, 6, 10)


async def test_today_lists_tasks_with_account_map(db, seed):
    staff = await seed.staff()
    p1 = await seed.persona("Luna")
    p2 = await seed.persona("Kai")
    await seed.own(staff, p1, p2)
    account = await seed.account(p1, staff, account_name="luna.daily")
    await seed.template("Reply", time_slot="13:00")
    await RunbookGenerator(db).generate(staff.id, RUN_DATE)

    today = await RunbookViewService(db).today(staff.id, RUN_DATE)

    assert len(today.tasks) == 2
    entries = {e.persona_id: e for e in today.accounts_map}
    assert entries[p1.id].account_id == account.id
    assert entries[p1.id].account.account_name == "luna.daily"
    assert entries[p1.id].persona.name == "Luna"
    assert entries[p2.id].account is None
    assert entries[p2.id].persona.name == "Kai"


async def test_today_includes_personas_seen_only_through_tasks(db, seed):
    staff = await seed.staff()
    guest = await seed.persona("Guest")
    await TaskLifecycleManager(db).create_manual_task(
        ManualTaskCreate(
            staff_id=staff.id,
            persona_id=guest.id,
            task_date=RUN_DATE,
            payload=ContentTaskPayload(instruction="Cover the shift"),
        )
    )

    today = await RunbookViewService(db).today(staff.id, RUN_DATE)

    assert [e.persona_id for e in today.accounts_map] == [guest.id]


async def test_matrix_lays_out_blocks_by_persona(db, seed):
    staff = await seed.staff()
    p1 = await seed.persona("P1")
    p2 = await seed.persona("P2")
    await seed.own(staff, p1, p2)
    await seed.account(p1, staff, account_name="ig")
    await seed.account(p1, staff, account_name="threads", platform="threads")
    await seed.template("Wake up", time_slot="12:00")
    await seed.template("War", time_slot="20:00", persona_id=p2.id)
    await RunbookGenerator(db).generate(staff.id, RUN_DATE)

    matrix = await RunbookViewService(db).matrix(staff.id, RUN_DATE)

    column = {c.persona_id: i for i, c in enumerate(matrix.columns)}
    assert sorted(column) == sorted([p1.id, p2.id])
    assert [r.time_block for r in matrix.rows] == list(TIME_BLOCK_ORDER)
    rows = {r.time_block: r.cells for r in matrix.rows}
    assert [c.payload.title for c in rows[TimeBlock.WAKE_UP]] == ["Wake up", "Wake up"]
    assert rows[TimeBlock.WAR][column[p1.id]] is None
    assert rows[TimeBlock.WAR][column[p2.id]].payload.title == "War"
    assert rows[TimeBlock.CLOSING] == [None, None]
    assert matrix.overdue_persona_ids == []


async def test_matrix_flags_pending_work_in_past_blocks(db, seed):
    staff = await seed.staff()
    p1 = await seed.persona("P1")
    p2 = await seed.persona("P2")
    await seed.own(staff, p1, p2)
    await seed.template("Wake up", time_slot="12:00")
    await seed.template("Closing", time_slot="22:30")
    result = await RunbookGenerator(db).generate(staff.id, RUN_DATE)
    done = next(t for t in result.tasks if t.persona_id == p1.id and t.time_block is TimeBlock.WAKE_UP)
    await TaskLifecycleManager(db).submit_completion(done.id, CompletionSubmission(notes="ok"))

    matrix = await RunbookViewService(db).matrix(staff.id, RUN_DATE, current_block=TimeBlock.PRODUCTION)

    assert matrix.current_block is TimeBlock.PRODUCTION
    assert matrix.overdue_persona_ids == [p2.id]
