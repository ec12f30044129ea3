# opsdesk/api/v1/endpoints/templates.py
from fastapi import APIRouter, HTTPException, status, Depends
from loguru import logger
from pydantic import ValidationError
from typing import List
import uuid

from opsdesk.schemas.template import SopTemplateCreate, SopTemplateInDB, SopTemplateUpdate, WeeklyMigrationRequest
from opsdesk.services.template_store import TemplateStore
from opsdesk.core.database import get_db, AsyncSession

router = APIRouter()


@router.get(
    "/",
    response_model=List[SopTemplateInDB],
    summary="List SOP Templates"
)
async def list_templates(db: AsyncSession = Depends(get_db)):
    """Lists every template, enabled or not, ordered by time slot."""
    templates = await TemplateStore(db).list_templates()
    return [SopTemplateInDB.model_validate(t) for t in templates]


@router.post(
    "/",
    response_model=SopTemplateInDB,
    status_code=status.HTTP_201_CREATED,
    summary="Create SOP Template"
)
async def create_template(
    template_data: SopTemplateCreate,
    db: AsyncSession = Depends(get_db)
):
    template = await TemplateStore(db).create(template_data)
    return SopTemplateInDB.model_validate(template)


@router.get(
    "/{template_id}",
    response_model=SopTemplateInDB,
    summary="Retrieve SOP Template by ID"
)
async def get_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db)
):
    template = await TemplateStore(db).get(template_id)
    return SopTemplateInDB.model_validate(template)


@router.put(
    "/{template_id}",
    response_model=SopTemplateInDB,
    summary="Update SOP Template by ID"
)
async def update_template(
    template_id: uuid.UUID,
    template_update: SopTemplateUpdate,
    db: AsyncSession = Depends(get_db)
):
    """
    Applies a partial update. The merged template is re-validated, so e.g.
    switching to weekly_custom without weekly_days is rejected with 422.
    """
    try:
        template = await TemplateStore(db).update(template_id, template_update)
    except ValidationError as e:
        logger.warning(f"Rejected update of template {template_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[err["msg"] for err in e.errors()],
        )
    return SopTemplateInDB.model_validate(template)


@router.delete(
    "/{template_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete SOP Template by ID"
)
async def delete_template(
    template_id: uuid.UUID,
    db: AsyncSession = Depends(get_db)
):
    """Deletes a template. Tasks already generated from it are kept as history."""
    await TemplateStore(db).delete(template_id)
    return


@router.post(
    "/migrate-weekly",
    response_model=List[SopTemplateInDB],
    summary="Pin legacy weekly templates to an anchor day"
)
async def migrate_weekly_templates(
    request: WeeklyMigrationRequest,
    db: AsyncSession = Depends(get_db)
):
    migrated = await TemplateStore(db).migrate_legacy_weekly(request.anchor_day)
    return [SopTemplateInDB.model_validate(t) for t in migrated]
