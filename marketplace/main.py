# marketplace/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace.core.database import get_client
from marketplace.orm.errors import ClientError, RecordNotFoundError, UniqueConstraintError, ValidationError
from marketplace.routers import (
    auth_router, contract_router, milestone_router,
    project_router, proposal_router, review_router, service_router,
)
from marketplace.utils.response import send_error

# 設定基礎日誌
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    client = get_client()
    await client.connect()
    yield
    await client.disconnect()


app = FastAPI(lifespan=lifespan)

# --- 設定 CORS (跨來源資源共用) ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- 錯誤處理：全部轉成 {"success": false, "data": null, "error": CODE} ---
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return send_error(str(exc.detail), exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.debug(f"Invalid request to {request.url.path}: {exc.errors()}")
    return send_error("INVALID_REQUEST", status.HTTP_400_BAD_REQUEST)


@app.exception_handler(ClientError)
async def client_error_handler(request: Request, exc: ClientError):
    if isinstance(exc, ValidationError):
        return send_error("INVALID_REQUEST", status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, RecordNotFoundError):
        return send_error("NOT_FOUND", status.HTTP_404_NOT_FOUND)
    if isinstance(exc, UniqueConstraintError):
        return send_error("CONFLICT", status.HTTP_409_CONFLICT)
    logger.error(f"Database error on {request.url.path}: {exc}")
    return send_error("INTERNAL_SERVER_ERROR", status.HTTP_500_INTERNAL_SERVER_ERROR)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}")
    return send_error("INTERNAL_SERVER_ERROR", status.HTTP_500_INTERNAL_SERVER_ERROR)


# --- 根路徑 ---
@app.get("/")
def read_root():
    return {"status": "success", "message": "Backend is running!"}


# --- 載入 API 路由 ---
app.include_router(auth_router.router)
app.include_router(service_router.router)
app.include_router(project_router.router)
app.include_router(proposal_router.router)
app.include_router(contract_router.router)
app.include_router(milestone_router.router)
app.include_router(review_router.router)
