import datetime
import uuid

import pytest

from opsdesk.core.errors import NotFound
from opsdesk.models.account import OnboardingStatus
from opsdesk.models.work_task import TaskStatus, TimeBlock
from opsdesk.schemas.work_task import CompletionSubmission
from opsdesk.services.assignment_resolver import AssignmentResolver
from opsdesk.services.runbook_generator import RunbookGenerator, list_tasks_for_day
from opsdesk.services.task_lifecycle import TaskLifecycleManager

RUN_DATE = datetime.date(2025, 6, 10)


async def test_unknown_staff_resolves_to_nothing(db):
    assert await AssignmentResolver(db).resolve(uuid.uuid4()) == []


async def test_resolves_owned_personas_with_completed_accounts(db, seed):
    staff = await seed.staff()
    p1 = await seed.persona("P1")
    p2 = await seed.persona("P2")
    await seed.own(staff, p1, p2)
    a1 = await seed.account(p1, staff)

    resolved = await AssignmentResolver(db).resolve(staff.id)

    assert {(r.persona_id, r.account_id) for r in resolved} == {(p1.id, a1.id), (p2.id, None)}


async def test_accounts_still_onboarding_are_invisible(db, seed):
    staff = await seed.staff()
    persona = await seed.persona()
    await seed.own(staff, persona)
    for status in (OnboardingStatus.NOTIFIED, OnboardingStatus.BINDING, OnboardingStatus.SETTING_PERSONA):
        await seed.account(persona, staff, status=status, account_name=status.value)

    resolved = await AssignmentResolver(db).resolve(staff.id)

    assert [(r.persona_id, r.account_id) for r in resolved] == [(persona.id, None)]


async def test_persona_with_several_accounts_yields_one_entry_each(db, seed):
    staff = await seed.staff()
    persona = await seed.persona()
    await seed.own(staff, persona)
    first = await seed.account(persona, staff, account_name="ig")
    second = await seed.account(persona, staff, account_name="threads", platform="threads")

    resolved = await AssignmentResolver(db).resolve(staff.id)

    assert {r.account_id for r in resolved} == {first.id, second.id}


async def test_direct_assignment_alone_does_not_own_a_persona(db, seed):
    owner = await seed.staff("Owner")
    other = await seed.staff("Other")
    persona = await seed.persona()
    await seed.own(owner, persona)
    await seed.account(persona, assigned_to=other)

    assert await AssignmentResolver(db).resolve(other.id) == []


async def test_effective_owner_prefers_persona_owner(db, seed):
    owner = await seed.staff("Owner")
    other = await seed.staff("Other")
    persona = await seed.persona()
    await seed.own(owner, persona)
    resolver = AssignmentResolver(db)

    bound = await seed.account(persona, assigned_to=other)
    unbound = await seed.account(None, assigned_to=other, status=OnboardingStatus.NOTIFIED)

    assert await resolver.effective_owner(bound) == owner.id
    assert await resolver.effective_owner(unbound) == other.id


async def test_assign_personas_moves_personas_and_accounts(db, seed):
    alice = await seed.staff("Alice")
    bob = await seed.staff("Bob")
    p1 = await seed.persona("P1")
    p2 = await seed.persona("P2")
    await seed.own(alice, p1, p2)
    a1 = await seed.account(p1, alice)
    a2 = await seed.account(p2, alice, account_name="second")
    resolver = AssignmentResolver(db)

    removed = await resolver.assign_personas(bob.id, [p1.id])

    assert removed == []
    assert await resolver.owned_persona_ids(bob.id) == [p1.id]
    assert await resolver.owned_persona_ids(alice.id) == [p2.id]
    await db.refresh(a1)
    await db.refresh(a2)
    assert a1.assigned_to == bob.id
    assert a2.assigned_to == alice.id


async def test_assign_personas_unassigns_accounts_of_removed_personas(db, seed):
    staff = await seed.staff()
    p1 = await seed.persona("P1")
    p2 = await seed.persona("P2")
    await seed.own(staff, p1, p2)
    a1 = await seed.account(p1, staff)
    resolver = AssignmentResolver(db)

    removed = await resolver.assign_personas(staff.id, [p2.id])

    assert removed == [p1.id]
    await db.refresh(a1)
    assert a1.assigned_to is None


async def test_assign_personas_validates_ids(db, seed):
    staff = await seed.staff()
    resolver = AssignmentResolver(db)

    with pytest.raises(NotFound):
        await resolver.assign_personas(uuid.uuid4(), [])
    with pytest.raises(NotFound):
        await resolver.assign_personas(staff.id, [uuid.uuid4()])


async def test_pending_runbook_tasks_follow_a_moved_persona(db, seed):
    alice = await seed.staff("Alice")
    bob = await seed.staff("Bob")
    persona = await seed.persona()
    await seed.own(alice, persona)
    await seed.template("Reply", time_slot="13:00")
    await seed.template("Hype", time_slot="20:00")
    generated = await RunbookGenerator(db).generate(alice.id, RUN_DATE)
    done_id = next(t.id for t in generated.tasks if t.time_block is TimeBlock.WAKE_UP)
    await TaskLifecycleManager(db).submit_completion(done_id, CompletionSubmission(notes="ok"))

    await AssignmentResolver(db).assign_personas(bob.id, [persona.id])

    result = await RunbookGenerator(db).generate(bob.id, RUN_DATE)
    assert result.created == 0
    assert [(t.time_block, t.status) for t in result.tasks] == [(TimeBlock.WAR, TaskStatus.PENDING_PUBLISH)]
    alice_tasks = await list_tasks_for_day(db, alice.id, RUN_DATE)
    assert [t.id for t in alice_tasks] == [done_id]
