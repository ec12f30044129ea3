import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./opsdesk-test.db")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient

from opsdesk.core.database import Base, build_engine, build_sessionmaker, get_db
from opsdesk.main import app
from opsdesk.models.account import Account, OnboardingStatus
from opsdesk.models.persona import Persona
from opsdesk.models.sop_template import Frequency, SopTemplate
from opsdesk.models.staff import Staff, StaffPersonaAssignment


class Seed:
    """Writes data-store records the engine only reads (staff, personas, accounts, templates)."""

    def __init__(self, db):
        self.db = db

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def staff(self, full_name: str = "Ops Staff") -> Staff:
        return await self._save(Staff(full_name=full_name))

    async def persona(self, name: str = "Persona") -> Persona:
        return await self._save(Persona(name=name))

    async def own(self, staff: Staff, *personas: Persona):
        for persona in personas:
            self.db.add(StaffPersonaAssignment(staff_id=staff.id, persona_id=persona.id))
        await self.db.commit()

    async def account(
        self,
        persona: Optional[Persona] = None,
        assigned_to: Optional[Staff] = None,
        status: OnboardingStatus = OnboardingStatus.COMPLETED,
        account_name: str = "main",
        platform: str = "instagram",
    ) -> Account:
        return await self._save(
            Account(
                platform=platform,
                account_name=account_name,
                persona_id=persona.id if persona else None,
                assigned_to=assigned_to.id if assigned_to else None,
                onboarding_status=status,
            )
        )

    async def template(self, task_label: str = "Daily Reply Check", **fields) -> SopTemplate:
        fields.setdefault("time_slot", "09:00")
        fields.setdefault("priority", 5)
        fields.setdefault("frequency", Frequency.DAILY)
        return await self._save(SopTemplate(task_label=task_label, **fields))


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'opsdesk.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(db):
    return Seed(db)


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()
