# marketplace/schemas/review_schema.py
from typing import Optional

from pydantic import BaseModel, Field


class ReviewCreate(BaseModel):
    contract_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
