# marketplace/services/catalog_service.py
# 工作者上架的服務 (Service 實體)
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status

from marketplace.schemas.service_schema import ServiceCreate

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, db):
        self.db = db

    async def create_service(self, data: ServiceCreate, freelancer: Dict[str, Any]) -> Dict[str, Any]:
        service = await self.db.service.create(
            data={
                "freelancer_id": freelancer["id"],
                **data.model_dump(),
            }
        )
        logger.info(f"Service {service['id']} created by {freelancer['id']}")
        return service

    async def list_services(
        self,
        category: Optional[str] = None,
        pricing_type: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """依分類 / 計價方式 / 價格區間篩選，評價高的在前"""
        if min_price is not None and max_price is not None and min_price > max_price:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="INVALID_REQUEST")

        where: Dict[str, Any] = {}
        if category:
            where["category"] = category
        if pricing_type:
            where["pricing_type"] = pricing_type

        price: Dict[str, float] = {}
        if min_price is not None:
            price["gte"] = min_price
        if max_price is not None:
            price["lte"] = max_price
        if price:
            where["price"] = price

        return await self.db.service.find_many(
            where=where,
            order_by=[{"rating": "desc"}, {"created_at": "desc"}],
        )
