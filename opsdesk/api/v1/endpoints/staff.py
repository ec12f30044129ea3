# opsdesk/api/v1/endpoints/staff.py
import uuid

from fastapi import APIRouter, Depends

from opsdesk.core.database import get_db, AsyncSession
from opsdesk.schemas.account import StaffPersonasRequest, StaffPersonasResponse
from opsdesk.services.assignment_resolver import AssignmentResolver

router = APIRouter()


@router.put("/{staff_id}/personas", response_model=StaffPersonasResponse)
async def set_staff_personas(
    staff_id: uuid.UUID,
    request: StaffPersonasRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Replaces the personas a staff member owns. Personas owned by someone else
    are moved over, and their accounts follow.
    """
    resolver = AssignmentResolver(db)
    removed = await resolver.assign_personas(staff_id, request.persona_ids)
    return StaffPersonasResponse(
        staff_id=staff_id,
        persona_ids=await resolver.owned_persona_ids(staff_id),
        removed_persona_ids=removed,
    )
