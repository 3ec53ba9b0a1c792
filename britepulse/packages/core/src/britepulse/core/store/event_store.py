"""EventStore SQLite 实现

事件只允许插入；唯一的更新是事后补充 attachment_refs。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.event import Event, EventUser, RequestMetadata

_EVENT_COLUMNS = (
    "event_id, app_id, environment, event_type, ts, session_id, route_or_url, "
    "version, user, payload, fingerprint, trace_id, attachment_refs, request_metadata"
)
_JOINED_EVENT_COLUMNS = ", ".join("e." + c.strip() for c in _EVENT_COLUMNS.split(","))


class SqliteEventStore:
    """EventStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_event(self, event: Event) -> Event:
        """写入事件

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            f"""
            INSERT INTO events ({_EVENT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.event_id,
                event.app_id,
                event.environment.value,
                event.event_type.value,
                event.timestamp.isoformat(),
                event.session_id,
                event.route_or_url,
                event.version,
                event.user.model_dump_json(),
                event.payload.model_dump_json(),
                event.fingerprint,
                event.trace_id,
                json.dumps(event.attachment_refs, ensure_ascii=False),
                event.request_metadata.model_dump_json() if event.request_metadata else None,
            ),
        )
        return event

    async def get_event(self, event_id: str) -> Event | None:
        """根据 event_id 查询事件"""
        cursor = await self._conn.execute(
            f"SELECT {_EVENT_COLUMNS} FROM events WHERE event_id = ?",
            (event_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    async def list_events_for_issue(self, issue_id: str, limit: int = 20) -> list[Event]:
        """查询 Issue 关联的事件，最近的在前"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_JOINED_EVENT_COLUMNS}
            FROM issue_events ie
            JOIN events e ON e.event_id = ie.event_id
            WHERE ie.issue_id = ?
            ORDER BY ie.seen_at DESC, e.event_id DESC
            LIMIT ?
            """,
            (issue_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def update_attachment_refs(self, event_id: str, attachment_refs: list[str]) -> None:
        """补充事件的附件引用（事件唯一允许的更新）"""
        await self._conn.execute(
            "UPDATE events SET attachment_refs = ? WHERE event_id = ?",
            (json.dumps(attachment_refs, ensure_ascii=False), event_id),
        )

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> Event:
        """将数据库行转换为 Event 模型"""
        return Event(
            event_id=row[0],
            app_id=row[1],
            environment=row[2],
            event_type=row[3],
            timestamp=datetime.fromisoformat(row[4]),
            session_id=row[5],
            route_or_url=row[6],
            version=row[7],
            user=EventUser.model_validate_json(row[8]),
            payload=json.loads(row[9]),
            fingerprint=row[10],
            trace_id=row[11],
            attachment_refs=json.loads(row[12]) if row[12] else [],
            request_metadata=(
                RequestMetadata.model_validate_json(row[13]) if row[13] else None
            ),
        )
