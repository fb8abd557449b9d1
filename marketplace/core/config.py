# marketplace/core/config.py
# 應用程式設定 (資料庫連線字串、JWT 秘鑰、ORM client 日誌等)
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # 資料庫設定 (e.g., postgresql+asyncpg://... 或 sqlite+aiosqlite:///./dev.db)
    DATABASE_URL: str
    # JWT 設定
    JWT_SECRET_KEY: str
    # JWT 演算法
    JWT_ALGORITHM: str = "HS256"
    # 存取令牌過期時間（分鐘），預設 24 小時
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # ORM client 日誌等級，逗號分隔 (query, info, warn, error)
    DATABASE_LOG: str = "warn,error"
    # 互動式交易：等待取得連線 / 整體執行的上限 (毫秒)
    TRANSACTION_MAX_WAIT_MS: int = 2000
    TRANSACTION_TIMEOUT_MS: int = 5000

    # 環境變數檔案
    class Config:
        env_file = ".env"

    @property
    def database_log_levels(self) -> List[str]:
        return [level.strip() for level in self.DATABASE_LOG.split(",") if level.strip()]


# 建立設定實例
settings = Settings()
