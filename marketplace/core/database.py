# marketplace/core/database.py
from sqlalchemy.orm import declarative_base

# 建立 ORM Model 基底類別 (所有 7 個實體都註冊在這個 registry 上)
Base = declarative_base()

# 全域 client (對應整個應用程式的連線池)，第一次被取用時才建立
_client = None


def get_client():
    """取得全域的 MarketplaceClient (延遲建立，避免循環匯入)"""
    global _client
    if _client is None:
        # 注意：marketplace.client 會匯入所有 Model，而 Model 需要這裡的 Base
        from marketplace.client import MarketplaceClient
        from marketplace.core.config import settings

        _client = MarketplaceClient(
            settings.DATABASE_URL,
            log=settings.database_log_levels,
            transaction_options={
                "max_wait": settings.TRANSACTION_MAX_WAIT_MS,
                "timeout": settings.TRANSACTION_TIMEOUT_MS,
            },
        )
    return _client


# (重要) FastAPI Dependency
async def get_db():
    """FastAPI Dependency: 取得 MarketplaceClient (每個 delegate 自行管理 session)"""
    return get_client()
