# marketplace/routers/review_router.py
import logging

from fastapi import APIRouter, Depends, status

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user
from marketplace.schemas.review_schema import ReviewCreate
from marketplace.services.review_service import ReviewService
from marketplace.utils.response import send_success

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/reviews",
    tags=["Reviews"],
)


@router.post("", status_code=status.HTTP_201_CREATED)
async def api_create_review(
    review_data: ReviewCreate,
    db=Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """(合約雙方) 合約完成後評價對方"""
    review = await ReviewService(db).create_review(review_data, current_user)
    return send_success(review, status.HTTP_201_CREATED)


@router.get("/users/{user_id}")
async def api_get_user_reviews(
    user_id: str,
    db=Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """使用者收到的評價與平均分數"""
    return send_success(await ReviewService(db).get_user_reviews(user_id))
