"""
예외 핸들러

모든 오류 응답은 {"success": false, "error": {"code", "message", "details"}} 형식입니다.
비즈니스 거절(decline)은 예외가 아니라 200 응답의 결과 값이므로 여기를 거치지 않습니다.
"""

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .exceptions import BaseAPIException, InternalServerError

logger = logging.getLogger("squadapi")


def _where(request: Request) -> str:
    client = request.client.host if request.client else "-"
    return f"{request.method} {request.url.path} from {client}"


def _error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details or {}},
    }


def _log_by_status(status_code: int, message: str, exc: Exception) -> None:
    if status_code >= 500:
        tb_str = "".join(traceback.format_tb(exc.__traceback__))
        logger.error(f"{message}\n{tb_str}" if tb_str else message)
    else:
        logger.warning(message)


async def handle_base_api_exception(request: Request, exc: BaseAPIException):
    _log_by_status(
        exc.status_code,
        f"[{exc.error_code}] {_where(request)} -> {exc.status_code}: {exc.message}",
        exc,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.detail)


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    _log_by_status(
        exc.status_code,
        f"[HTTP {exc.status_code}] {_where(request)}: {exc.detail}",
        exc,
    )
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = exc.detail
    else:
        content = _error_body("HTTP_ERROR", str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning(f"[VALIDATION_001] {_where(request)}: {errors}")
    content = _error_body("VALIDATION_001", "Validation failed", {"errors": errors})
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder(content, custom_encoder={Exception: str}),
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(
        f"[Unhandled Error] {_where(request)}: {type(exc).__name__}: {exc}\n"
        + "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    internal = InternalServerError()
    return JSONResponse(status_code=internal.status_code, content=internal.detail)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseAPIException, handle_base_api_exception)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
