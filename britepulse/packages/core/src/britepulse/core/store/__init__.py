"""BritePulse Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from pathlib import Path

import aiosqlite

from .app_store import SqliteAppStore
from .attachment_store import SqliteAttachmentStore
from .event_store import SqliteEventStore
from .issue_store import SqliteIssueStore
from .sqlite_init import init_db
from .transaction import merge_issues, record_event_and_aggregate, write_transaction


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接

    write_lock 串行化该连接上的写事务。
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        attachments_dir: Path,
    ) -> None:
        self.conn = conn
        self.attachments_dir = attachments_dir
        self.write_lock = asyncio.Lock()
        self.app_store = SqliteAppStore(conn)
        self.event_store = SqliteEventStore(conn)
        self.issue_store = SqliteIssueStore(conn)
        self.attachment_store = SqliteAttachmentStore(conn, attachments_dir)


async def create_store_group(
    db_path: str,
    attachments_dir: str | Path,
) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径
        attachments_dir: 附件文件存储目录

    Returns:
        StoreGroup 实例
    """
    attachments_path = Path(attachments_dir)
    attachments_path.mkdir(parents=True, exist_ok=True)

    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn, attachments_dir=attachments_path)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteAppStore",
    "SqliteEventStore",
    "SqliteIssueStore",
    "SqliteAttachmentStore",
    "init_db",
    "write_transaction",
    "record_event_and_aggregate",
    "merge_issues",
]
