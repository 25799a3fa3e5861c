import logging
import time

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

# === 结构化日志配置 ===
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("chickenscratch")


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    统一异常捕获中间件：记录每个请求的耗时，并把未处理异常转换为 500。
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(
                f"Method: {request.method} Path: {request.url.path} "
                f"Status: {response.status_code} Time: {process_time:.4f}s"
            )
            return response
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.detail, "detail": exc.detail, "type": "http_exception"},
            )
        except Exception as e:
            logger.error(f"Unhandled Exception: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "detail": "Internal server error", "type": "server_error"},
            )
