# marketplace/routers/auth_router.py
import logging

from fastapi import APIRouter, Depends, status

from marketplace.core.database import get_db
from marketplace.schemas.user_schema import UserLogin, UserSignup
from marketplace.services.auth_service import AuthService
from marketplace.utils.response import send_success

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",  # 路由前綴
    tags=["Auth"],  # API 文件分類標籤
)


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(user_data: UserSignup, db=Depends(get_db)):
    """
    註冊新使用者 (雇主 / 工作者)

    - 未指定 role 時為 client
    - 回傳的資料不含密碼
    """
    user = await AuthService(db).signup(user_data)
    return send_success(user, status.HTTP_201_CREATED)


@router.post("/login")
async def login(credentials: UserLogin, db=Depends(get_db)):
    """以 email / 密碼登入，取得 JWT (24 小時有效)"""
    return send_success(await AuthService(db).login(credentials))
