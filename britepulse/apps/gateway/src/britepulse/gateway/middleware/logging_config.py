"""structlog 配置模块

dev 模式：pretty print 可读输出
json 模式：结构化 JSON 输出
Logfire APM：LOGFIRE_SEND_TO_LOGFIRE 环境变量控制，false 时降级为纯本地日志。
"""

import logging
import os

import structlog
from fastapi import FastAPI

# 第三方库日志默认压到 WARNING，避免淹没业务日志
_NOISY_LOGGERS = ("aiosqlite", "httpx", "httpcore", "LiteLLM", "litellm")

SERVICE_NAME = "britepulse-gateway"


def _add_service_name(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging() -> None:
    """初始化 structlog 配置

    环境变量：
    - BRITEPULSE_LOG_FORMAT: "json"（生产）或 "dev"（默认）
    - BRITEPULSE_LOG_LEVEL: 根 logger 级别，默认 INFO
    """
    log_format = os.environ.get("BRITEPULSE_LOG_FORMAT", "dev")
    log_level = os.environ.get("BRITEPULSE_LOG_LEVEL", "INFO")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_service_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logfire(app: FastAPI) -> None:
    """Logfire 可选初始化

    LOGFIRE_SEND_TO_LOGFIRE=true 时启用（需要 LOGFIRE_TOKEN），否则不做任何事。
    初始化失败只记录 warning，不影响服务启动。
    """
    send_to_logfire = os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower()
    if send_to_logfire != "true":
        return
    try:
        import logfire

        logfire.configure(service_name=SERVICE_NAME)
        logfire.instrument_fastapi(app)
    except Exception as e:
        structlog.get_logger().warning(
            "logfire_init_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
