# marketplace/schemas/proposal_schema.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# 工作者提案的 Request Body
class ProposalCreate(BaseModel):
    cover_letter: str = Field(..., min_length=1)
    proposed_price: float = Field(..., gt=0)
    # 預估工期 (天)
    estimated_duration: int = Field(..., gt=0)


class MilestoneCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    amount: float = Field(..., gt=0)
    due_date: datetime


# 雇主接受提案時一併建立合約的里程碑 (依列表順序，至少一個)
class ProposalAccept(BaseModel):
    milestones: List[MilestoneCreate] = Field(..., min_length=1)
