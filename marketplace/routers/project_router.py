# marketplace/routers/project_router.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user, require_role
from marketplace.schemas.project_schema import ProjectCreate
from marketplace.schemas.proposal_schema import ProposalCreate
from marketplace.services.project_service import ProjectService
from marketplace.services.proposal_service import ProposalService
from marketplace.utils.response import send_success

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/projects",
    tags=["Projects"],
)


@router.post("", status_code=status.HTTP_201_CREATED)
async def api_create_project(
    project_data: ProjectCreate,
    db=Depends(get_db),
    current_user: dict = Depends(require_role("client")),
):
    """(雇主) 刊登案件，deadline 必須是未來的時間"""
    project = await ProjectService(db).create_project(project_data, current_user)
    return send_success(project, status.HTTP_201_CREATED)


@router.get("")
async def api_list_projects(
    category: Optional[str] = None,
    status: Optional[str] = None,
    min_budget: Optional[float] = None,
    skills: Optional[str] = None,
    db=Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """
    瀏覽案件

    - min_budget: 預算上限至少為此金額
    - skills: 逗號分隔 (e.g., `python,react`)，依技能匹配分數排序
    """
    projects = await ProjectService(db).list_projects(category, status, min_budget, skills)
    return send_success(projects)


@router.post("/{project_id}/proposals", status_code=status.HTTP_201_CREATED)
async def api_create_proposal(
    project_id: str,
    proposal_data: ProposalCreate,
    db=Depends(get_db),
    current_user: dict = Depends(require_role("freelancer")),
):
    """(工作者) 對案件提案，每個案件只能提案一次"""
    proposal = await ProposalService(db).create_proposal(project_id, proposal_data, current_user)
    return send_success(proposal, status.HTTP_201_CREATED)


@router.get("/{project_id}/proposals")
async def api_list_proposals(
    project_id: str,
    db=Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """(雇主) 檢視自己案件收到的提案"""
    return send_success(await ProposalService(db).list_proposals(project_id, current_user))
