"""
全局异常处理模块 (Global Exception Handling Module)

定义业务异常类和 FastAPI 全局异常处理器，提供统一的错误响应格式
{error, message, detail, status_code}。

Defines business exception classes and FastAPI exception handlers that render
a uniform JSON error body.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================================
# 业务异常类 (Business Exception Classes)
# ============================================================

class BusinessError(Exception):
    """业务异常基类 (Base Business Exception)"""
    status_code: int = 400
    error: str = "business_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class AuthError(BusinessError):
    """共享密钥缺失或错误 (Missing or Wrong Shared Secret)"""
    status_code = 401
    error = "unauthorized"


class ValidationError(BusinessError):
    """数据校验失败，例如引用了不存在的检查 (Validation Error)"""
    status_code = 422
    error = "validation_error"


class UnknownEndpointError(ValidationError):
    """端点未注册 (Endpoint Not Registered)"""
    status_code = 404
    error = "unknown_endpoint"


class PersistenceError(BusinessError):
    """数据库操作失败，事务已回滚 (Persistence Failure, Transaction Rolled Back)"""
    status_code = 500
    error = "persistence_error"


# ============================================================
# 全局异常处理器注册 (Global Exception Handler Registration)
# ============================================================

def _error_body(error: str, message: str, detail: Optional[str], status_code: int) -> dict:
    return {"error": error, "message": message, "detail": detail, "status_code": status_code}


def register_exception_handlers(app: FastAPI) -> None:
    """
    注册全局异常处理器到 FastAPI 应用 (Register global exception handlers to FastAPI app)

    处理优先级：
    1. BusinessError 子类 → 对应 HTTP 状态码 + 结构化响应
    2. RequestValidationError → 422 validation_error
    3. HTTPException → 保持原状态码，包装为统一格式
    4. Exception → 500 + 完整 traceback 日志
    """

    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.error, request.method, request.url.path, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error, exc.message, exc.detail, exc.status_code),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # 请求体或查询参数不合法，与业务校验错误使用同一格式
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(
            status_code=422,
            content=_error_body(ValidationError.error, "Invalid request", detail, 422),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("http_error", str(exc.detail), None, exc.status_code),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_body("internal_server_error", "Internal server error", None, 500),
        )
