"""滚动计数重算 -- 从 issue_events 重建 24 小时窗口计数

追加事件时 occurrences_24h 只增不减，需要定期按时间窗口重算。
occurrences_total 是累计值，不参与重算。
"""

import time
from datetime import UTC, datetime, timedelta

import aiosqlite
import structlog

from .store import StoreGroup, write_transaction

log = structlog.get_logger()

ROLLING_WINDOW = timedelta(hours=24)

_RECOMPUTE_SQL = """
UPDATE issues SET
    occurrences_24h = (
        SELECT COUNT(*) FROM issue_events ie
        WHERE ie.issue_id = issues.issue_id AND ie.seen_at >= ?
    ),
    unique_users_24h_est = (
        SELECT COUNT(DISTINCT ie.user_key) FROM issue_events ie
        WHERE ie.issue_id = issues.issue_id AND ie.seen_at >= ?
    )
WHERE status NOT IN ('resolved', 'wont_fix')
"""


async def recompute_rolling_counts(
    stores: StoreGroup,
    now: datetime | None = None,
) -> int:
    """重算所有非终态 Issue 的 24 小时计数

    Returns:
        更新的 Issue 数
    """
    start_time = time.monotonic()
    cutoff = ((now or datetime.now(UTC)) - ROLLING_WINDOW).isoformat()

    async with write_transaction(stores) as conn:
        cursor: aiosqlite.Cursor = await conn.execute(_RECOMPUTE_SQL, (cutoff, cutoff))
        updated = cursor.rowcount

    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    log.info(
        "rolling_counts_recomputed",
        issue_count=updated,
        elapsed_ms=elapsed_ms,
    )
    return updated
