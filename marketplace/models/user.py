# marketplace/models/user.py
import enum
import uuid

from sqlalchemy import JSON, Column, DateTime, Enum, Float, String, Text, func
from sqlalchemy.orm import relationship

from marketplace.core.database import Base


def new_id() -> str:
    """所有實體共用的主鍵產生器 (UUID 字串)"""
    return str(uuid.uuid4())


# 對應 SQL 中的 ENUM 型別
class UserRole(str, enum.Enum):
    client = "client"
    freelancer = "freelancer"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)
    role = Column(
        Enum(UserRole, name="user_role", values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=UserRole.client,
    )
    bio = Column(Text, nullable=True)
    skills = Column(JSON, nullable=False, default=lambda: [])
    hourly_rate = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # 關聯設定
    services = relationship("Service", back_populates="freelancer")

    # 作為雇主 (client) 刊登的案件
    projects = relationship("Project", back_populates="client")

    # 作為工作者提出的提案
    proposals = relationship("Proposal", back_populates="freelancer")

    # 作為雇主 / 工作者的合約
    client_contracts = relationship(
        "Contract",
        foreign_keys="[Contract.client_id]",
        back_populates="client",
    )
    freelancer_contracts = relationship(
        "Contract",
        foreign_keys="[Contract.freelancer_id]",
        back_populates="freelancer",
    )

    # 給出 / 收到的評價
    reviews_given = relationship(
        "Review",
        foreign_keys="[Review.reviewer_id]",
        back_populates="reviewer",
    )
    reviews_received = relationship(
        "Review",
        foreign_keys="[Review.reviewee_id]",
        back_populates="reviewee",
    )
