# marketplace/services/contract_service.py
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class ContractService:
    def __init__(self, db):
        self.db = db

    async def get_my_contracts(
        self,
        current_user: Dict[str, Any],
        contract_status: Optional[str] = None,
        role: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        (雇主 / 工作者) 與我相關的合約，包含里程碑。

        role=client / freelancer 時只看我在該角色的合約。
        """
        user_id = current_user["id"]
        if role == "client":
            where: Dict[str, Any] = {"client_id": user_id}
        elif role == "freelancer":
            where = {"freelancer_id": user_id}
        elif role is None:
            where = {"OR": [{"client_id": user_id}, {"freelancer_id": user_id}]}
        else:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="INVALID_REQUEST")

        if contract_status:
            where["status"] = contract_status

        return await self.db.contract.find_many(
            where=where,
            include={"milestones": {"order_by": {"order_index": "asc"}}},
            order_by={"created_at": "desc"},
        )
