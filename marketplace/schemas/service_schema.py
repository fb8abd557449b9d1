# marketplace/schemas/service_schema.py
from pydantic import BaseModel, Field

from marketplace.models.service import PricingType


# 工作者上架服務時的 Request Body
class ServiceCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    pricing_type: PricingType
    price: float = Field(..., gt=0)
    delivery_days: int = Field(..., gt=0)
