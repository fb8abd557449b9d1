# marketplace/routers/proposal_router.py
import logging

from fastapi import APIRouter, Depends

from marketplace.core.database import get_db
from marketplace.core.security import require_role
from marketplace.schemas.proposal_schema import ProposalAccept
from marketplace.services.proposal_service import ProposalService
from marketplace.utils.response import send_success

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/proposals",
    tags=["Proposals"],
)


@router.put("/{proposal_id}/accept")
async def api_accept_proposal(
    proposal_id: str,
    accept_data: ProposalAccept,
    db=Depends(get_db),
    current_user: dict = Depends(require_role("client")),
):
    """
    (雇主) 接受提案並建立合約與里程碑。

    同案件的其他提案會一併被拒絕，全部在同一個交易中完成。
    """
    result = await ProposalService(db).accept_proposal(proposal_id, accept_data, current_user)
    return send_success(result)
