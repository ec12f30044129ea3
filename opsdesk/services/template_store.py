# opsdesk/services/template_store.py
import uuid
from typing import Iterable, List
from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.core.errors import NotFound
from opsdesk.models.persona import Persona
from opsdesk.models.sop_template import Frequency, SopTemplate
from opsdesk.schemas.template import SopTemplateCreate, SopTemplateUpdate


class TemplateStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_templates(self) -> List[SopTemplate]:
        result = await self.db.execute(select(SopTemplate).order_by(SopTemplate.time_slot, SopTemplate.task_label))
        return list(result.scalars().all())

    async def get(self, template_id: uuid.UUID) -> SopTemplate:
        template = await self.db.get(SopTemplate, template_id)
        if template is None:
            raise NotFound("template", template_id)
        return template

    async def list_enabled_for_personas(self, persona_ids: Iterable[uuid.UUID]) -> List[SopTemplate]:
        """Enabled templates that are generic or scoped to one of the given personas."""
        persona_ids = list(persona_ids)
        scope = SopTemplate.persona_id.is_(None)
        if persona_ids:
            scope = or_(scope, SopTemplate.persona_id.in_(persona_ids))
        result = await self.db.execute(
            select(SopTemplate)
            .where(SopTemplate.enabled.is_(True), scope)
            .order_by(SopTemplate.time_slot, SopTemplate.created_at)
        )
        return list(result.scalars().all())

    async def create(self, data: SopTemplateCreate) -> SopTemplate:
        if data.persona_id is not None and await self.db.get(Persona, data.persona_id) is None:
            raise NotFound("persona", data.persona_id)

        template = SopTemplate(**data.model_dump())
        self.db.add(template)
        await self.db.commit()
        await self.db.refresh(template)
        logger.info(f"Created template '{template.task_label}' ({template.id}), frequency={template.frequency.value}")
        return template

    async def update(self, template_id: uuid.UUID, data: SopTemplateUpdate) -> SopTemplate:
        template = await self.get(template_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("persona_id") is not None and await self.db.get(Persona, changes["persona_id"]) is None:
            raise NotFound("persona", changes["persona_id"])

        # Re-validate the merged record so a partial update cannot break the frequency rule
        merged = SopTemplateCreate(
            task_label=changes.get("task_label", template.task_label),
            task_kind=changes.get("task_kind", template.task_kind),
            time_slot=changes.get("time_slot", template.time_slot),
            priority=changes.get("priority", template.priority),
            persona_id=changes["persona_id"] if "persona_id" in changes else template.persona_id,
            frequency=changes.get("frequency", template.frequency),
            weekly_days=changes["weekly_days"] if changes.get("weekly_days") is not None else template.weekly_days,
            steps=changes["steps"] if changes.get("steps") is not None else template.steps,
            enabled=changes["enabled"] if changes.get("enabled") is not None else template.enabled,
        )
        for key, value in merged.model_dump().items():
            setattr(template, key, value)

        await self.db.commit()
        await self.db.refresh(template)
        logger.info(f"Updated template {template_id}: {sorted(changes)}")
        return template

    async def delete(self, template_id: uuid.UUID):
        template = await self.get(template_id)
        await self.db.delete(template)
        await self.db.commit()
        logger.info(f"Deleted template {template_id}")

    async def migrate_legacy_weekly(self, anchor_day: int) -> List[SopTemplate]:
        """Pins every 'weekly' template lacking a single anchor day to anchor_day as weekly_custom."""
        result = await self.db.execute(select(SopTemplate).where(SopTemplate.frequency == Frequency.WEEKLY))
        migrated = []
        for template in result.scalars().all():
            if len(set(template.weekly_days or [])) == 1:
                continue
            template.frequency = Frequency.WEEKLY_CUSTOM
            template.weekly_days = [anchor_day]
            migrated.append(template)

        if migrated:
            await self.db.commit()
            for template in migrated:
                await self.db.refresh(template)
        logger.info(f"Migrated {len(migrated)} legacy weekly templates to anchor day {anchor_day}")
        return migrated
