# marketplace/schemas/project_schema.py
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


# 雇主刊登案件時的 Request Body
class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    budget_min: float
    budget_max: float
    # 必須是未來的時間 (在 Service 層檢查)
    deadline: datetime
    required_skills: List[str] = []
