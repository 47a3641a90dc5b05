import time
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from peertrack.core.errors import WorkflowError
from peertrack.schemas.envelope import fail

# === 结构化日志配置 ===
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("peertrack")


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    统一异常捕获中间件：记录每个请求的耗时，兜底未处理异常。

    中文注释: 生产环境不向客户端泄露堆栈，只返回通用信封。
    """

    def __init__(self, app, *, expose_errors: bool = False):
        super().__init__(app)
        self.expose_errors = expose_errors

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(f"Method: {request.method} Path: {request.url.path} Status: {response.status_code} Time: {process_time:.4f}s")
            return response
        except Exception as e:
            logger.error(f"Unhandled Exception: {str(e)}", exc_info=True)
            extra = {"error": type(e).__name__} if self.expose_errors else {}
            return JSONResponse(
                status_code=500,
                content=fail("Internal server error. Please contact the administrator.", **extra),
            )


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors() or []
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = ".".join(str(p) for p in (first.get("loc") or []) if p not in ("body", "query", "path"))
    msg = str(first.get("msg") or "Invalid value")
    return f"{loc}: {msg}" if loc else msg


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WorkflowError)
    async def _workflow_error(_request: Request, exc: WorkflowError):
        return JSONResponse(status_code=exc.status_code, content=fail(exc.message))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=fail(str(exc.detail)))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError):
        # 中文注释: 输入校验失败统一按 400 返回（与 ValidationError 一致）
        return JSONResponse(status_code=400, content=fail(_first_validation_message(exc)))
