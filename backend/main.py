import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# 在应用启动前加载环境变量
load_dotenv()

logger = logging.getLogger("chickenscratch")

_SENTRY_ENABLED = False
try:
    from chickenscratch.core.sentry_init import init_sentry

    _SENTRY_ENABLED = init_sentry()
    if _SENTRY_ENABLED:
        logger.info("[sentry] enabled")
except Exception as e:
    # 中文注释: 零崩溃原则：Sentry 任何异常不得阻塞启动
    logger.warning(f"[sentry] init failed (ignored): {e}")

from chickenscratch.api.v1 import admin, internal, officers, submissions, workflow
from chickenscratch.core.config import app_config
from chickenscratch.core.mail import get_email_service
from chickenscratch.core.middleware import ExceptionHandlerMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 中文注释: 未配置邮件 provider 时进入 dry 模式（只记录日志），启动时提示一次即可。
    if not get_email_service().is_configured():
        logger.info("[Mail] no email provider configured; notifications will be logged only")
    yield


app = FastAPI(
    title="Chicken Scratch Committee API",
    description="Committee workflow, audit trail and reminder backend",
    version="1.0.0",
    lifespan=lifespan,
)

if _SENTRY_ENABLED:
    try:
        from sentry_sdk.integrations.asgi import SentryAsgiMiddleware

        app.add_middleware(SentryAsgiMiddleware)
    except Exception as e:
        logger.warning(f"[sentry] middleware attach failed (ignored): {e}")


def _parse_frontend_origins() -> list[str]:
    """
    解析允许跨域的前端 Origins（FRONTEND_ORIGINS 逗号分隔，缺省为 SITE_URL）。
    """
    origins: list[str] = []
    many = (os.environ.get("FRONTEND_ORIGINS") or "").strip()
    for part in many.split(","):
        o = (part or "").strip().rstrip("/")
        if o and o not in origins:
            origins.append(o)
    if not origins:
        origins = [app_config.site_url]
    return origins


# === 中间件配置 ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_frontend_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ExceptionHandlerMiddleware)


# === 统一错误体：{"error": ..., "detail": ...} ===
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    message = "Invalid request data."
    if request.url.path.endswith("/committee-workflow"):
        message = "Invalid workflow action data."
    return JSONResponse(
        status_code=400,
        content={"error": message, "detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# === 路由注册 ===
app.include_router(workflow.router, prefix="/api/v1")
app.include_router(submissions.router, prefix="/api/v1")
app.include_router(submissions.notifications_router, prefix="/api/v1")
app.include_router(officers.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")
app.include_router(internal.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "Chicken Scratch API is running", "docs": "/docs"}
