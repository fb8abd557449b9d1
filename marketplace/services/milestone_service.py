# marketplace/services/milestone_service.py
import logging
from typing import Any, Dict

from fastapi import HTTPException, status

from marketplace.models.contract import ContractStatus
from marketplace.models.milestone import MilestoneStatus
from marketplace.models.project import ProjectStatus

logger = logging.getLogger(__name__)


class MilestoneService:
    def __init__(self, db):
        self.db = db

    async def _get_milestone(self, milestone_id: str) -> Dict[str, Any]:
        milestone = await self.db.milestone.find_unique(
            where={"id": milestone_id},
            include={"contract": {"select": {"id": True, "client_id": True, "freelancer_id": True, "project_id": True}}},
        )
        if not milestone:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="MILESTONE_NOT_FOUND")
        return milestone

    async def submit_milestone(self, milestone_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
        """(工作者) 提交里程碑；前一個里程碑 (order_index - 1) 必須已核准"""
        milestone = await self._get_milestone(milestone_id)
        contract = milestone.pop("contract")

        if contract["freelancer_id"] != current_user["id"]:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN")
        if milestone["status"] in (MilestoneStatus.submitted, MilestoneStatus.approved):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="MILESTONE_ALREADY_SUBMITTED")

        if milestone["order_index"] > 0:
            previous = await self.db.milestone.find_first(
                where={"contract_id": contract["id"], "order_index": milestone["order_index"] - 1},
                select={"status": True},
            )
            if not previous or previous["status"] != MilestoneStatus.approved:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="PREVIOUS_MILESTONE_INCOMPLETE")

        updated = await self.db.milestone.update(
            where={"id": milestone_id},
            data={"status": MilestoneStatus.submitted},
        )
        logger.info(f"Milestone {milestone_id} submitted")
        return updated

    async def approve_milestone(self, milestone_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
        """(雇主) 核准里程碑；全部核准後合約與案件一起變成 completed"""
        milestone = await self._get_milestone(milestone_id)
        contract = milestone.pop("contract")

        if contract["client_id"] != current_user["id"]:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN")
        if milestone["status"] == MilestoneStatus.approved:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="MILESTONE_ALREADY_APPROVED")

        async def approve(tx):
            updated = await tx.milestone.update(
                where={"id": milestone_id},
                data={"status": MilestoneStatus.approved},
            )
            remaining = await tx.milestone.count(
                where={"contract_id": contract["id"], "status": {"not": MilestoneStatus.approved}},
            )
            if remaining == 0:
                await tx.contract.update(
                    where={"id": contract["id"]},
                    data={"status": ContractStatus.completed},
                )
                await tx.project.update(
                    where={"id": contract["project_id"]},
                    data={"status": ProjectStatus.completed},
                )
                logger.info(f"Contract {contract['id']} completed")
            return updated

        return await self.db.transaction(approve)
