"""AttachmentStore SQLite + 文件系统实现

文件写入 attachments_dir/app_id/attachment_id，元数据写 SQLite。
"""

import hashlib
from datetime import datetime
from pathlib import Path

import aiosqlite

from ..models.attachment import Attachment

_ATTACHMENT_COLUMNS = (
    "attachment_id, event_id, app_id, environment, filename, content_type, "
    "size_bytes, storage_path, sha256, uploaded_at, expires_at, user_opted_in"
)


def compute_hash_and_size(content: bytes) -> tuple[str, int]:
    """计算 SHA-256 hash 和内容大小

    Args:
        content: 原始内容字节

    Returns:
        (sha256_hex, size_bytes) 元组
    """
    return hashlib.sha256(content).hexdigest(), len(content)


class SqliteAttachmentStore:
    """AttachmentStore 的 SQLite + 文件系统实现"""

    def __init__(self, conn: aiosqlite.Connection, attachments_dir: Path) -> None:
        self._conn = conn
        self._attachments_dir = attachments_dir

    def get_attachment_path(self, app_id: str, attachment_id: str) -> Path:
        """获取附件文件存储路径"""
        return self._attachments_dir / app_id / attachment_id

    def write_content(self, app_id: str, attachment_id: str, content: bytes) -> Path:
        """写入附件文件"""
        file_path = self.get_attachment_path(app_id, attachment_id)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)
        return file_path

    async def put_attachment(self, attachment: Attachment) -> None:
        """写入附件元数据（不自动提交）"""
        await self._conn.execute(
            f"""
            INSERT INTO attachments ({_ATTACHMENT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                attachment.attachment_id,
                attachment.event_id,
                attachment.app_id,
                attachment.environment.value,
                attachment.filename,
                attachment.content_type,
                attachment.size_bytes,
                attachment.storage_path,
                attachment.sha256,
                attachment.uploaded_at.isoformat(),
                attachment.expires_at.isoformat(),
                int(attachment.user_opted_in),
            ),
        )

    async def get_attachment(self, attachment_id: str) -> Attachment | None:
        """根据 attachment_id 查询附件元数据"""
        cursor = await self._conn.execute(
            f"SELECT {_ATTACHMENT_COLUMNS} FROM attachments WHERE attachment_id = ?",
            (attachment_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_attachment(row)

    async def list_attachments_for_event(self, event_id: str) -> list[Attachment]:
        """查询事件的所有附件"""
        cursor = await self._conn.execute(
            f"SELECT {_ATTACHMENT_COLUMNS} FROM attachments WHERE event_id = ? "
            "ORDER BY uploaded_at ASC",
            (event_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_attachment(row) for row in rows]

    async def get_attachment_content(self, attachment_id: str) -> bytes | None:
        """读取附件内容"""
        attachment = await self.get_attachment(attachment_id)
        if attachment is None:
            return None
        file_path = Path(attachment.storage_path)
        if not file_path.exists():
            return None
        return file_path.read_bytes()

    @staticmethod
    def _row_to_attachment(row: aiosqlite.Row) -> Attachment:
        """将数据库行转换为 Attachment 模型"""
        return Attachment(
            attachment_id=row[0],
            event_id=row[1],
            app_id=row[2],
            environment=row[3],
            filename=row[4],
            content_type=row[5],
            size_bytes=row[6],
            storage_path=row[7],
            sha256=row[8],
            uploaded_at=datetime.fromisoformat(row[9]),
            expires_at=datetime.fromisoformat(row[10]),
            user_opted_in=bool(row[11]),
        )
