# marketplace/routers/milestone_router.py
from fastapi import APIRouter, Depends

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user
from marketplace.services.milestone_service import MilestoneService
from marketplace.utils.response import send_success

router = APIRouter(
    prefix="/api/milestones",
    tags=["Milestones"],
)


def get_milestone_service(db=Depends(get_db)) -> MilestoneService:
    return MilestoneService(db)


@router.put("/{milestone_id}/submit")
async def api_submit_milestone(
    milestone_id: str,
    service: MilestoneService = Depends(get_milestone_service),
    current_user: dict = Depends(get_current_user),
):
    """(工作者) 提交里程碑成果"""
    return send_success(await service.submit_milestone(milestone_id, current_user))


@router.put("/{milestone_id}/approve")
async def api_approve_milestone(
    milestone_id: str,
    service: MilestoneService = Depends(get_milestone_service),
    current_user: dict = Depends(get_current_user),
):
    """(雇主) 核准里程碑；最後一個核准後合約完成"""
    return send_success(await service.approve_milestone(milestone_id, current_user))
