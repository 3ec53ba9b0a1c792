"""错误响应 -- 领域异常与请求校验错误统一映射为 {"error": {"code", "message"}}"""

import structlog
from britepulse.core.exceptions import BritePulseError
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

log = structlog.get_logger()

# 错误码 -> HTTP 状态码
STATUS_BY_CODE: dict[str, int] = {
    "ISSUE_NOT_FOUND": 404,
    "APP_NOT_FOUND": 404,
    "EVENT_NOT_FOUND": 404,
    "ATTACHMENT_NOT_FOUND": 404,
    "MERGE_FAILED": 400,
    "INVALID_STATUS_TRANSITION": 400,
    "ISSUE_CONFLICT": 409,
}


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


async def britepulse_error_handler(request: Request, exc: BritePulseError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.code, 500)
    log_method = log.error if status_code >= 500 else log.info
    log_method("request_domain_error", code=exc.code, error=exc.message, status_code=status_code)
    return error_response(status_code, exc.code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for item in exc.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        messages.append(f"{location}: {item.get('msg', 'invalid')}")
    return error_response(422, "VALIDATION_ERROR", "; ".join(messages))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BritePulseError, britepulse_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
