# marketplace/models/service.py
import enum

from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from marketplace.core.database import Base
from marketplace.models.user import new_id


class PricingType(str, enum.Enum):
    fixed = "fixed"
    hourly = "hourly"


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=new_id)
    freelancer_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False)
    pricing_type = Column(
        Enum(PricingType, name="pricing_type", values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
    )
    price = Column(Float, nullable=False)
    delivery_days = Column(Integer, nullable=False)
    # 評價的滾動平均 (由 Review 建立時更新)
    rating = Column(Float, nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    freelancer = relationship("User", back_populates="services")
