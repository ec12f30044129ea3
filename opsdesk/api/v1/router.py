# opsdesk/api/v1/router.py
from fastapi import APIRouter
from opsdesk.api.v1.endpoints import accounts, runbook, staff, templates, work_tasks
from opsdesk.api.v1.endpoints import health as health_endpoint


api_router = APIRouter()

api_router.include_router(runbook.router, prefix="/runbook", tags=["Runbook"])
api_router.include_router(work_tasks.router, prefix="/work_tasks", tags=["Work Tasks"])
api_router.include_router(accounts.router, prefix="/accounts", tags=["Account Onboarding"])
api_router.include_router(staff.router, prefix="/staff", tags=["Staff"])

# Admin surface the generator reads from
api_router.include_router(templates.router, prefix="/admin/templates", tags=["SOP Templates"])

api_router.include_router(health_endpoint.router, prefix="/health", tags=["Health"])
