"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、附件目录、脱敏深度、Triage 冷却期等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("BRITEPULSE_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "BRITEPULSE_DB_PATH",
        str(_get_base_dir() / "sqlite" / "britepulse.db"),
    )


def get_attachments_dir() -> Path:
    """获取附件文件存储目录"""
    return Path(
        os.environ.get(
            "BRITEPULSE_ATTACHMENTS_DIR",
            str(_get_base_dir() / "attachments"),
        )
    )


# 脱敏遍历最大深度（超过此深度的值原样透传，不做脱敏）
REDACTION_MAX_DEPTH: int = int(
    os.environ.get("BRITEPULSE_REDACTION_MAX_DEPTH", "10")
)

# 指纹取栈顶帧数
FINGERPRINT_TOP_FRAMES: int = 5

# 指纹十六进制前缀长度
FINGERPRINT_LENGTH: int = 16

# AI Triage 冷却期（分钟）
TRIAGE_COOLDOWN_MINUTES: int = int(
    os.environ.get("BRITEPULSE_TRIAGE_COOLDOWN_MINUTES", "60")
)

# 后台 Triage 调用超时（秒）
TRIAGE_TIMEOUT_S: float = float(
    os.environ.get("BRITEPULSE_TRIAGE_TIMEOUT_S", "60")
)

# 单个附件最大字节数
ATTACHMENT_MAX_BYTES: int = int(
    os.environ.get("BRITEPULSE_ATTACHMENT_MAX_BYTES", str(10 * 1024 * 1024))
)

# 附件保留天数
ATTACHMENT_RETENTION_DAYS: int = int(
    os.environ.get("BRITEPULSE_ATTACHMENT_RETENTION_DAYS", "30")
)

# 单次批量上报最大事件数
INGEST_BATCH_MAX_EVENTS: int = 100

# Issue 标题截断长度
FEEDBACK_TITLE_MAX_LENGTH: int = 50
ERROR_TITLE_MAX_LENGTH: int = 60

# Issue 描述中保留的 stack 行数
DESCRIPTION_STACK_LINES: int = 10
