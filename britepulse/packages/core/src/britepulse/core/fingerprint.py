"""Fingerprinter -- 错误事件指纹

fingerprint = sha256(error_type::message::frames::route)[:16]，各分量先做归一化：
- message：UUID / ISO-8601 时间戳 / 6 位以上数字 / 32 位以上十六进制串 / 文件路径替换为占位符
- frames：只取调用帧行（JS/Java 的 "at ..."、Python 的 'File "..."'），取栈顶 N 帧，
  去掉行列号和查询串，路径同上归一化
- route：去掉查询串和 fragment，数字段 -> <id>，UUID 段 -> <uuid>，去掉末尾斜杠

error_type 缺省为 UnknownError：未声明类型、消息相同的两个错误会得到相同指纹，这是已接受的取舍。

compute_similarity 是独立的加权相似度（0.3 类型 + 0.4 消息 + 0.2 调用帧 + 0.1 路由），
只用于"相关 Issue"提示，去重只看指纹是否相等。
"""

import hashlib
import re

from pydantic import BaseModel, Field

from .config import FINGERPRINT_LENGTH, FINGERPRINT_TOP_FRAMES
from .models.event import Event

UNKNOWN_ERROR_TYPE = "UnknownError"

_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"

_UUID_RE = re.compile(_UUID)
_TIMESTAMP_RE = re.compile(
    r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?"
)
_NUMERIC_ID_RE = re.compile(r"\b\d{6,}\b")
_HEX_HASH_RE = re.compile(r"\b[0-9a-fA-F]{32,}\b")
# 至少一级目录 + 带扩展名的文件名；占位符后的 /basename 不会再次命中
_POSIX_PATH_RE = re.compile(r"(?<![\w.<>/-])(?:\.{1,2}/|/)?(?:[\w.-]+/)+([\w.-]+\.\w+)")
_WINDOWS_PATH_RE = re.compile(r"(?<![\w.<>/\\-])[A-Za-z]:\\(?:[\w .-]+\\)*([\w.-]+\.\w+)")
_WHITESPACE_RE = re.compile(r"\s+")

_FRAME_POSITION_RE = re.compile(r"(?::\d+){1,2}(?=\)?$)")
_PY_FRAME_LINE_RE = re.compile(r",\s*line \d+")
_QUERY_RE = re.compile(r"\?[^\s)\"]+")

_ROUTE_NUMERIC_RE = re.compile(r"/\d+(?=/|$)")
_ROUTE_UUID_RE = re.compile(rf"/{_UUID}(?=/|$)")

_JS_FRAME_PREFIX = "at "
_PY_FRAME_PREFIX = 'File "'


class FingerprintInput(BaseModel):
    """指纹输入，由事件 payload 派生，不单独持久化"""

    error_type: str = Field(default=UNKNOWN_ERROR_TYPE)
    message: str = ""
    stack: str | None = None
    route_or_url: str | None = None


def _normalize_paths(text: str) -> str:
    text = _POSIX_PATH_RE.sub(r"<PATH>/\1", text)
    return _WINDOWS_PATH_RE.sub(r"<PATH>/\1", text)


def normalize_message(message: str | None) -> str:
    """归一化错误消息，幂等"""
    if not message:
        return ""
    normalized = _UUID_RE.sub("<UUID>", message)
    normalized = _TIMESTAMP_RE.sub("<TIMESTAMP>", normalized)
    normalized = _NUMERIC_ID_RE.sub("<ID>", normalized)
    normalized = _HEX_HASH_RE.sub("<HASH>", normalized)
    normalized = _normalize_paths(normalized)
    return _WHITESPACE_RE.sub(" ", normalized).strip()


def _normalize_frame(frame: str) -> str:
    frame = _PY_FRAME_LINE_RE.sub("", frame)
    frame = _FRAME_POSITION_RE.sub("", frame)
    frame = _QUERY_RE.sub("", frame)
    frame = _normalize_paths(frame)
    return _WHITESPACE_RE.sub(" ", frame).strip()


def extract_top_frames(stack: str | None, top_n: int = FINGERPRINT_TOP_FRAMES) -> str:
    """提取并归一化栈顶帧

    JS/Java 栈最内层帧在最前，Python traceback 最内层帧在最后，
    因此 Python 帧取最后 top_n 个。
    """
    if not stack:
        return ""
    lines = [line.strip() for line in stack.splitlines()]
    js_frames = [line for line in lines if line.startswith(_JS_FRAME_PREFIX)]
    if js_frames:
        frames = js_frames[:top_n]
    else:
        py_frames = [line for line in lines if line.startswith(_PY_FRAME_PREFIX)]
        frames = py_frames[-top_n:] if top_n > 0 else []
    return "\n".join(_normalize_frame(frame) for frame in frames)


def normalize_route(route_or_url: str | None) -> str:
    """归一化路由，/orders/123?x=1 -> /orders/<id>"""
    if not route_or_url:
        return ""
    normalized = route_or_url.split("?", 1)[0].split("#", 1)[0]
    normalized = _ROUTE_NUMERIC_RE.sub("/<id>", normalized)
    normalized = _ROUTE_UUID_RE.sub("/<uuid>", normalized)
    if len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def generate_fingerprint(data: FingerprintInput) -> str:
    """生成稳定指纹（sha256 十六进制前 16 位）"""
    components = [
        data.error_type or UNKNOWN_ERROR_TYPE,
        normalize_message(data.message),
        extract_top_frames(data.stack),
        normalize_route(data.route_or_url),
    ]
    digest = hashlib.sha256("::".join(components).encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]


def extract_fingerprint_input(event: Event) -> FingerprintInput | None:
    """从错误事件派生指纹输入；反馈事件返回 None"""
    if not event.is_error:
        return None
    payload = event.payload
    return FingerprintInput(
        error_type=getattr(payload, "error_type", None) or UNKNOWN_ERROR_TYPE,
        message=getattr(payload, "message", "") or "",
        stack=getattr(payload, "stack", None),
        route_or_url=event.route_or_url,
    )


def _jaccard(a: str, b: str) -> float:
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def compute_similarity(a: FingerprintInput, b: FingerprintInput) -> float:
    """加权相似度，返回 [0, 1]"""
    score = 0.0
    if (a.error_type or UNKNOWN_ERROR_TYPE) == (b.error_type or UNKNOWN_ERROR_TYPE):
        score += 0.3

    message_a = normalize_message(a.message)
    message_b = normalize_message(b.message)
    if message_a == message_b:
        score += 0.4
    elif message_a and message_b:
        score += 0.4 * _jaccard(message_a, message_b)

    # 栈和路由只在双方都有时计分
    if a.stack and b.stack and extract_top_frames(a.stack) == extract_top_frames(b.stack):
        score += 0.2
    if (
        a.route_or_url
        and b.route_or_url
        and normalize_route(a.route_or_url) == normalize_route(b.route_or_url)
    ):
        score += 0.1

    return round(min(score, 1.0), 6)
