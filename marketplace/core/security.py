# marketplace/core/security.py
# 負責密碼雜湊與 JWT 權杖的產生與驗證，以及 API 的身分 / 角色檢查
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from marketplace.core.config import settings
from marketplace.core.database import get_db
from marketplace.schemas.user_schema import TokenData

logger = logging.getLogger(__name__)

# 1. 密碼雜湊設定 (Bcrypt)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# 2. Token 從 Authorization: Bearer <jwt> 取得；缺少時自行回傳 UNAUTHORIZED
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """驗證明文密碼是否與雜湊值相符"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """產生密碼的雜湊值"""
    return pwd_context.hash(password)


def create_access_token(data: dict) -> str:
    """
    根據傳入的 data (user_id, role) 產生 JWT access token
    """
    to_encode = data.copy()  # 避免修改原始資料
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_access_token(token: str) -> Optional[TokenData]:
    """
    驗證 JWT，回傳 TokenData 或 None
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        return None

    user_id = payload.get("user_id")
    role = payload.get("role")
    if user_id is None or role is None:
        return None

    try:
        return TokenData(user_id=user_id, role=role)
    except ValueError:
        return None


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db=Depends(get_db),
) -> Dict[str, Any]:
    """
    FastAPI 依賴項：驗證 Token 並回傳使用者資料 (不含密碼)
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="UNAUTHORIZED",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception

    token_data = verify_access_token(token)
    if token_data is None:
        raise credentials_exception

    user = await db.user.find_unique(where={"id": token_data.user_id}, omit={"password": True})
    if user is None:
        logger.warning(f"Token refers to a missing user: {token_data.user_id}")
        raise credentials_exception

    return user


def require_role(*roles: str):
    """產生一個依賴項：目前使用者的角色必須在 roles 之中，否則 FORBIDDEN"""

    async def checker(current_user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if current_user["role"] not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN")
        return current_user

    return checker
