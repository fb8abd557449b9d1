# marketplace/services/review_service.py
import logging
from typing import Any, Dict

from fastapi import HTTPException, status

from marketplace.models.contract import ContractStatus
from marketplace.schemas.review_schema import ReviewCreate

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(self, db):
        self.db = db

    async def create_review(self, data: ReviewCreate, current_user: Dict[str, Any]) -> Dict[str, Any]:
        """
        合約雙方在合約完成後互相評價 (每人每份合約一次)。

        雇主評價工作者時，工作者所有服務的評分以滾動平均更新：
        (rating * total + new) / (total + 1)
        """
        contract = await self.db.contract.find_unique(where={"id": data.contract_id})
        if not contract:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="CONTRACT_NOT_FOUND")
        if contract["status"] != ContractStatus.completed:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CONTRACT_NOT_COMPLETED")

        is_client = contract["client_id"] == current_user["id"]
        is_freelancer = contract["freelancer_id"] == current_user["id"]
        if not is_client and not is_freelancer:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="FORBIDDEN")

        # 被評價者 = 合約的另一方
        reviewee_id = contract["freelancer_id"] if is_client else contract["client_id"]

        existing = await self.db.review.find_unique(
            where={"contract_id_reviewer_id": {"contract_id": contract["id"], "reviewer_id": current_user["id"]}},
            select={"id": True},
        )
        if existing:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="ALREADY_REVIEWED")

        async def write(tx):
            review = await tx.review.create(
                data={
                    "contract_id": contract["id"],
                    "reviewer_id": current_user["id"],
                    "reviewee_id": reviewee_id,
                    "rating": data.rating,
                    "comment": data.comment,
                }
            )
            if is_client:
                services = await tx.service.find_many(
                    where={"freelancer_id": reviewee_id},
                    select={"id": True, "rating": True, "total_reviews": True},
                )
                for service in services:
                    total = service["total_reviews"]
                    await tx.service.update(
                        where={"id": service["id"]},
                        data={
                            "rating": (service["rating"] * total + data.rating) / (total + 1),
                            "total_reviews": {"increment": 1},
                        },
                    )
                logger.debug(f"Updated rating of {len(services)} services of {reviewee_id}")
            return review

        return await self.db.transaction(write)

    async def get_user_reviews(self, user_id: str) -> Dict[str, Any]:
        """使用者收到的評價，以及平均分數與數量"""
        user = await self.db.user.find_unique(where={"id": user_id}, select={"id": True})
        if not user:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="USER_NOT_FOUND")

        reviews = await self.db.review.find_many(
            where={"reviewee_id": user_id},
            include={"reviewer": {"select": {"id": True, "name": True, "role": True}}},
            order_by={"created_at": "desc"},
        )
        summary = await self.db.review.aggregate(
            where={"reviewee_id": user_id},
            _avg={"rating": True},
            _count=True,
        )
        return {
            "user_id": user_id,
            "average_rating": summary["_avg"]["rating"],
            "total_reviews": summary["_count"],
            "reviews": reviews,
        }
