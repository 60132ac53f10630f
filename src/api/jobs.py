"""
Generation Jobs API
Clients poll GET /jobs/{id} for server-side progress of a generation
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import Principal, get_current_principal
from src.database import crud
from src.database.engine import get_session

# Create router
router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("")
async def list_jobs(
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    jobs = await crud.list_user_jobs(session, principal.user_id, limit)
    return {"success": True, "jobs": [crud.serialize_job(job) for job in jobs]}


@router.get("/{job_id}")
async def get_job(
    job_id: str,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Job status

    Returns:
        {
            "success": true,
            "job": {
                "id": "...",
                "status": "running",
                "progress": 43,
                "images": [],
                "error": null,
                ...
            }
        }
    """
    job = await crud.get_job(session, job_id)
    if job is None or (job.user_id != principal.user_id and not principal.is_admin):
        raise HTTPException(status_code=404, detail="Job not found")
    return {"success": True, "job": crud.serialize_job(job)}
