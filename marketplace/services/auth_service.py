# marketplace/services/auth_service.py
import logging
from typing import Any, Dict

from fastapi import HTTPException, status

from marketplace.core.security import create_access_token, get_password_hash, verify_password
from marketplace.models.user import UserRole
from marketplace.schemas.user_schema import UserLogin, UserSignup

logger = logging.getLogger(__name__)

# 回傳給前端時不包含密碼
PUBLIC_USER_FIELDS = ("id", "name", "email", "role", "bio", "skills", "hourly_rate")


class AuthService:
    def __init__(self, db):
        self.db = db

    async def signup(self, data: UserSignup) -> Dict[str, Any]:
        """註冊新使用者 (雇主 / 工作者)，email 不可重複"""
        existing = await self.db.user.find_unique(where={"email": data.email}, select={"id": True})
        if existing:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="EMAIL_ALREADY_EXISTS")

        user = await self.db.user.create(
            data={
                "name": data.name,
                "email": data.email,
                "password": get_password_hash(data.password),
                "role": data.role or UserRole.client,
                "bio": data.bio,
                "skills": data.skills or [],
                "hourly_rate": data.hourly_rate,
            },
            select={field: True for field in PUBLIC_USER_FIELDS},
        )
        logger.info(f"User signed up: {user['id']} ({user['role']})")
        return user

    async def login(self, data: UserLogin) -> Dict[str, Any]:
        """驗證帳密，回傳 token 與基本的使用者資料"""
        user = await self.db.user.find_unique(where={"email": data.email})
        if not user or not verify_password(data.password, user["password"]):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="INVALID_CREDENTIALS")

        role = UserRole(user["role"]).value
        token = create_access_token({"user_id": user["id"], "role": role})
        logger.info(f"User logged in: {user['id']}")
        return {
            "token": token,
            "user": {
                "id": user["id"],
                "name": user["name"],
                "email": user["email"],
                "role": role,
            },
        }
