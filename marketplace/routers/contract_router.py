# marketplace/routers/contract_router.py
from typing import Optional

from fastapi import APIRouter, Depends

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user
from marketplace.services.contract_service import ContractService
from marketplace.utils.response import send_success

router = APIRouter(
    prefix="/api/contracts",
    tags=["Contracts"],  # API 文件分組
)


@router.get("")
async def api_get_my_contracts(
    status: Optional[str] = None,
    role: Optional[str] = None,
    db=Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """
    (雇主 / 工作者) 與我相關的合約列表，包含里程碑

    - role=client / freelancer：只看我在該角色的合約
    """
    return send_success(await ContractService(db).get_my_contracts(current_user, status, role))
