# marketplace/models/proposal.py
import enum

from sqlalchemy import (
    Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func
)
from sqlalchemy.orm import relationship

from marketplace.core.database import Base
from marketplace.models.user import new_id


class ProposalStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class Proposal(Base):
    __tablename__ = "proposals"
    # 同一個工作者對同一個案件只能提案一次
    __table_args__ = (
        UniqueConstraint("project_id", "freelancer_id", name="uq_proposals_project_freelancer"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False, index=True)
    freelancer_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    cover_letter = Column(Text, nullable=False)
    proposed_price = Column(Float, nullable=False)
    # 預估工期 (天)
    estimated_duration = Column(Integer, nullable=False)
    status = Column(
        Enum(ProposalStatus, name="proposal_status", values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=ProposalStatus.pending,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    project = relationship("Project", back_populates="proposals")
    freelancer = relationship("User", back_populates="proposals")
