# marketplace/models/project.py
import enum

from sqlalchemy import JSON, Column, DateTime, Enum, Float, ForeignKey, String, Text, func
from sqlalchemy.orm import relationship

from marketplace.core.database import Base
from marketplace.models.user import new_id


class ProjectStatus(str, enum.Enum):
    open = "open"
    in_progress = "in_progress"
    completed = "completed"


class Project(Base):
    # 告訴 SQLAlchemy，這個類別對應到資料庫中名為 projects 的表格 (table)
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=new_id)
    client_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False)
    budget_min = Column(Float, nullable=False)
    budget_max = Column(Float, nullable=False)
    deadline = Column(DateTime(timezone=True), nullable=False)
    status = Column(
        Enum(ProjectStatus, name="project_status", values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=ProjectStatus.open,
    )
    required_skills = Column(JSON, nullable=False, default=lambda: [])
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # 建立與 User (雇主) 的 '一' 關聯
    client = relationship("User", back_populates="projects")

    # 建立與 Proposal 的 '多' 關聯
    proposals = relationship("Proposal", back_populates="project")

    # 此案件下所有的合約 (接受提案後產生)
    contracts = relationship("Contract", back_populates="project")
