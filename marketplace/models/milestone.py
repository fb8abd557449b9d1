# marketplace/models/milestone.py
import enum

from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from marketplace.core.database import Base
from marketplace.models.user import new_id


class MilestoneStatus(str, enum.Enum):
    pending = "pending"
    submitted = "submitted"
    approved = "approved"


class Milestone(Base):
    __tablename__ = "milestones"

    id = Column(String(36), primary_key=True, default=new_id)
    contract_id = Column(String(36), ForeignKey("contracts.id", ondelete="RESTRICT"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Float, nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False)
    # 里程碑順序 (0 起算)，前一個核准後才能提交下一個
    order_index = Column(Integer, nullable=False)
    status = Column(
        Enum(MilestoneStatus, name="milestone_status", values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=MilestoneStatus.pending,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    contract = relationship("Contract", back_populates="milestones")
