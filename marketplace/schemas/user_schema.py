# marketplace/schemas/user_schema.py
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from marketplace.models.user import UserRole


# 註冊請求 Body
class UserSignup(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: Optional[UserRole] = None  # 未提供時為 client
    bio: Optional[str] = None
    skills: Optional[List[str]] = None
    hourly_rate: Optional[float] = None


# 登入請求的格式
class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


# Token 內的資料
class TokenData(BaseModel):
    user_id: str
    role: UserRole
