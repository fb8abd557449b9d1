# marketplace/routers/service_router.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status

from marketplace.core.database import get_db
from marketplace.core.security import get_current_user, require_role
from marketplace.models.service import PricingType
from marketplace.schemas.service_schema import ServiceCreate
from marketplace.services.catalog_service import CatalogService
from marketplace.utils.response import send_success

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/services",
    tags=["Services"],
)


# 輔助函式：在路由中快速實例化 Service
def get_catalog_service(db=Depends(get_db)) -> CatalogService:
    return CatalogService(db)


@router.post("", status_code=status.HTTP_201_CREATED)
async def api_create_service(
    service_data: ServiceCreate,
    service: CatalogService = Depends(get_catalog_service),
    current_user: dict = Depends(require_role("freelancer")),
):
    """(工作者) 上架一個服務"""
    created = await service.create_service(service_data, current_user)
    return send_success(created, status.HTTP_201_CREATED)


@router.get("")
async def api_list_services(
    category: Optional[str] = None,
    pricing_type: Optional[PricingType] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    service: CatalogService = Depends(get_catalog_service),
    current_user: dict = Depends(get_current_user),
):
    """瀏覽服務，可依分類、計價方式與價格區間篩選"""
    return send_success(await service.list_services(category, pricing_type, min_price, max_price))
