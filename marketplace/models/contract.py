# marketplace/models/contract.py
import enum

from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, String, func
from sqlalchemy.orm import relationship

from marketplace.core.database import Base
from marketplace.models.user import new_id


class ContractStatus(str, enum.Enum):
    active = "active"
    completed = "completed"


class Contract(Base):
    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=new_id)

    # --- 關聯 ---
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False, index=True)
    freelancer_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    # 合約總金額 (= 被接受提案的報價)
    total_amount = Column(Float, nullable=False)
    status = Column(
        Enum(ContractStatus, name="contract_status", values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=ContractStatus.active,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    project = relationship("Project", back_populates="contracts")

    # 關聯回 User (工作者)
    freelancer = relationship(
        "User",
        foreign_keys=[freelancer_id],
        back_populates="freelancer_contracts",
    )

    # 關聯回 User (雇主)
    client = relationship(
        "User",
        foreign_keys=[client_id],
        back_populates="client_contracts",
    )

    milestones = relationship("Milestone", back_populates="contract")
    reviews = relationship("Review", back_populates="contract")
