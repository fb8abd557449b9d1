# marketplace/services/proposal_service.py
import logging
from typing import Any, Dict, List

from fastapi import HTTPException, status

from marketplace.models.contract import ContractStatus
from marketplace.models.milestone import MilestoneStatus
from marketplace.models.project import ProjectStatus
from marketplace.models.proposal import ProposalStatus
from marketplace.schemas.proposal_schema import ProposalAccept, ProposalCreate

logger = logging.getLogger(__name__)


class ProposalService:
    def __init__(self, db):
        self.db = db

    async def _get_project(self, project_id: str) -> Dict[str, Any]:
        project = await self.db.project.find_unique(where={"id": project_id})
        if not project:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="PROJECT_NOT_FOUND")
        return project

    async def create_proposal(
        self, project_id: str, data: ProposalCreate, freelancer: Dict[str, Any]
    ) -> Dict[str, Any]:
        await self._get_project(project_id)

        # 同一個工作者對同一個案件只能提案一次
        existing = await self.db.proposal.find_unique(
            where={"project_id_freelancer_id": {"project_id": project_id, "freelancer_id": freelancer["id"]}},
            select={"id": True},
        )
        if existing:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="PROPOSAL_ALREADY_EXISTS")

        proposal = await self.db.proposal.create(
            data={
                "project_id": project_id,
                "freelancer_id": freelancer["id"],
                "cover_letter": data.cover_letter,
                "proposed_price": data.proposed_price,
                "estimated_duration": data.estimated_duration,
                "status": ProposalStatus.pending,
            }
        )
        logger.info(f"Proposal {proposal['id']} submitted to project {project_id}")
        return proposal

    async def list_proposals(self, project_id: str, current_user: Dict[str, Any]) -> List[Dict[str, Any]]:
        """只有案件的雇主可以檢視提案"""
        project = await self._get_project(project_id)
        if project["client_id"] != current_user["id"]:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN")

        return await self.db.proposal.find_many(
            where={"project_id": project_id},
            order_by={"created_at": "asc"},
        )

    async def accept_proposal(
        self, proposal_id: str, data: ProposalAccept, client: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        (雇主) 接受提案，在同一個交易中：

        1. 提案 -> accepted，同案件的其他提案 -> rejected
        2. 案件 -> in_progress
        3. 建立合約 (金額 = 報價) 與依序編號 (order_index 從 0 起算) 的里程碑
        """
        proposal = await self.db.proposal.find_unique(
            where={"id": proposal_id},
            include={"project": {"select": {"id": True, "client_id": True}}},
        )
        if not proposal:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="PROPOSAL_NOT_FOUND")
        if proposal["status"] != ProposalStatus.pending:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="PROPOSAL_ALREADY_PROCESSED")
        if proposal["project"]["client_id"] != client["id"]:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN")

        project_id = proposal["project_id"]

        async def accept(tx):
            accepted = await tx.proposal.update(
                where={"id": proposal_id},
                data={"status": ProposalStatus.accepted},
            )
            await tx.proposal.update_many(
                where={"project_id": project_id, "id": {"not": proposal_id}},
                data={"status": ProposalStatus.rejected},
            )
            await tx.project.update(
                where={"id": project_id},
                data={"status": ProjectStatus.in_progress},
            )
            contract = await tx.contract.create(
                data={
                    "project_id": project_id,
                    "freelancer_id": proposal["freelancer_id"],
                    "client_id": client["id"],
                    "total_amount": proposal["proposed_price"],
                    "status": ContractStatus.active,
                    "milestones": {
                        "create": [
                            {
                                "title": milestone.title,
                                "description": milestone.description,
                                "amount": milestone.amount,
                                "due_date": milestone.due_date,
                                "order_index": index,
                                "status": MilestoneStatus.pending,
                            }
                            for index, milestone in enumerate(data.milestones)
                        ]
                    },
                },
                include={"milestones": {"order_by": {"order_index": "asc"}}},
            )
            milestones = contract.pop("milestones")
            return {"proposal": accepted, "contract": contract, "milestones": milestones}

        result = await self.db.transaction(accept)
        logger.info(f"Proposal {proposal_id} accepted, contract {result['contract']['id']} created")
        return result
