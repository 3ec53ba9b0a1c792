"""IssueStore SQLite 实现

计数列独立存储，追加事件时使用 SET x = x + 1 原子自增，不做读改写。
event_refs 存在 issue_events 关联表中，(issue_id, event_id) 主键保证集合语义。
所有写方法都不提交事务，由 transaction 模块统一管理。
"""

import json
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import aiosqlite
from pydantic import BaseModel

from ..exceptions import IssueNotFoundError
from ..models.analysis import AIAnalysis
from ..models.enums import IssueStatus, Severity
from ..models.issue import (
    Issue,
    IssueCounts,
    IssueRouting,
    IssueSeed,
    IssueTimestamps,
    ReporterInfo,
)

_ISSUE_COLUMNS = (
    "issue_id, app_id, environment, status, severity, title, description, issue_type, "
    "primary_fingerprint, occurrences_total, occurrences_24h, unique_users_24h_est, "
    "created_at, last_seen_at, resolved_at, wont_fix_at, reported_by, assigned_to, "
    "resolution_note, merged_into, ai_analysis, tags"
)

# update_issue 允许更新的列
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "status",
        "severity",
        "title",
        "description",
        "assigned_to",
        "resolution_note",
        "merged_into",
        "resolved_at",
        "wont_fix_at",
        "ai_analysis",
        "tags",
    }
)

_TERMINAL_SQL = "('resolved', 'wont_fix')"


def _to_column(value: Any) -> Any:
    """Python 值 -> SQLite 列值"""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list | dict):
        return json.dumps(value, ensure_ascii=False)
    return value


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


class SqliteIssueStore:
    """IssueStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def find_non_terminal_issue_by_fingerprint(
        self,
        app_id: str,
        environment: str,
        fingerprint: str,
    ) -> Issue | None:
        """查询同一 (app, env) 下指纹相同的非终态 Issue"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_ISSUE_COLUMNS} FROM issues
            WHERE app_id = ? AND environment = ? AND primary_fingerprint = ?
              AND status NOT IN {_TERMINAL_SQL}
            LIMIT 1
            """,
            (app_id, environment, fingerprint),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return (await self._with_event_refs([row]))[0]

    async def create_issue(self, seed: IssueSeed, issue_id: str, user_key: str) -> Issue:
        """创建 Issue 并记录首个事件引用

        指纹冲突时抛出 aiosqlite.IntegrityError（idx_issues_open_fingerprint）。
        """
        seen_at = seed.seen_at.isoformat()
        await self._conn.execute(
            f"""
            INSERT INTO issues ({_ISSUE_COLUMNS})
            VALUES ({_placeholders(22)})
            """,
            (
                issue_id,
                seed.app_id,
                seed.environment.value,
                IssueStatus.NEW.value,
                seed.severity.value,
                seed.title,
                seed.description,
                seed.issue_type.value,
                seed.primary_fingerprint,
                1,
                1,
                1,
                seen_at,
                seen_at,
                None,
                None,
                seed.reported_by.model_dump_json() if seed.reported_by else None,
                seed.assigned_to,
                None,
                None,
                None,
                json.dumps(seed.tags, ensure_ascii=False),
            ),
        )
        await self._conn.execute(
            "INSERT INTO issue_events (issue_id, event_id, user_key, seen_at) VALUES (?, ?, ?, ?)",
            (issue_id, seed.initial_event_id, user_key, seen_at),
        )
        issue = await self.get_issue(issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        return issue

    async def append_event_and_increment(
        self,
        issue_id: str,
        event_id: str,
        user_key: str,
        seen_at: datetime,
    ) -> bool:
        """原子追加事件引用并自增计数

        同一事件重复追加时不重复计数。

        Returns:
            True 如果本次追加生效
        """
        seen = seen_at.isoformat()
        cutoff = (seen_at - timedelta(days=1)).isoformat()
        cursor = await self._conn.execute(
            "INSERT OR IGNORE INTO issue_events (issue_id, event_id, user_key, seen_at) "
            "VALUES (?, ?, ?, ?)",
            (issue_id, event_id, user_key, seen),
        )
        if cursor.rowcount == 0:
            return False

        # 24h 内未出现过的 user_key 才计入影响用户数
        await self._conn.execute(
            """
            UPDATE issues
            SET occurrences_total = occurrences_total + 1,
                occurrences_24h = occurrences_24h + 1,
                unique_users_24h_est = unique_users_24h_est + CASE
                    WHEN EXISTS (
                        SELECT 1 FROM issue_events
                        WHERE issue_id = ? AND user_key = ? AND event_id != ?
                          AND seen_at >= ?
                    ) THEN 0 ELSE 1 END,
                last_seen_at = MAX(last_seen_at, ?)
            WHERE issue_id = ?
            """,
            (issue_id, user_key, event_id, cutoff, seen, issue_id),
        )
        return True

    async def get_issue(self, issue_id: str) -> Issue | None:
        """根据 issue_id 查询 Issue"""
        cursor = await self._conn.execute(
            f"SELECT {_ISSUE_COLUMNS} FROM issues WHERE issue_id = ?",
            (issue_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return (await self._with_event_refs([row]))[0]

    async def update_issue(self, issue_id: str, **fields: Any) -> Issue | None:
        """部分更新 Issue 字段

        Raises:
            ValueError: 包含不允许更新的字段
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        if fields:
            assignments = ", ".join(f"{name} = ?" for name in fields)
            await self._conn.execute(
                f"UPDATE issues SET {assignments} WHERE issue_id = ?",
                (*(_to_column(v) for v in fields.values()), issue_id),
            )
        return await self.get_issue(issue_id)

    async def list_issues(
        self,
        app_id: str | None = None,
        environment: str | None = None,
        statuses: list[IssueStatus] | None = None,
        severity: Severity | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Issue]:
        """查询 Issue 列表，按 last_seen_at 倒序"""
        clauses: list[str] = []
        params: list[Any] = []
        if app_id:
            clauses.append("app_id = ?")
            params.append(app_id)
        if environment:
            clauses.append("environment = ?")
            params.append(environment)
        if statuses:
            clauses.append(f"status IN ({_placeholders(len(statuses))})")
            params.extend(s.value for s in statuses)
        if severity:
            clauses.append("severity = ?")
            params.append(severity.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = await self._conn.execute(
            f"""
            SELECT {_ISSUE_COLUMNS} FROM issues {where}
            ORDER BY last_seen_at DESC, issue_id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, limit, offset),
        )
        rows = await cursor.fetchall()
        return await self._with_event_refs(list(rows))

    async def get_last_analysis_at(self, issue_id: str) -> datetime | None:
        """读取最近一次 AI 分析时间（triage 冷却期判断用）"""
        cursor = await self._conn.execute(
            "SELECT json_extract(ai_analysis, '$.generated_at') FROM issues WHERE issue_id = ?",
            (issue_id,),
        )
        row = await cursor.fetchone()
        if row is None or row[0] is None:
            return None
        return datetime.fromisoformat(row[0])

    async def merge_into(
        self,
        target_id: str,
        source_ids: list[str],
        merged_at: datetime,
    ) -> None:
        """把源 Issue 合并进目标 Issue（不提交事务）

        - event_refs 取并集
        - occurrences_total / occurrences_24h 求和
        - last_seen_at 取所有 Issue 的最大值
        - 源 Issue 标记为 resolved + merged_into
        """
        marks = _placeholders(len(source_ids))
        merged = merged_at.isoformat()
        cutoff = (merged_at - timedelta(days=1)).isoformat()
        await self._conn.execute(
            f"""
            INSERT OR IGNORE INTO issue_events (issue_id, event_id, user_key, seen_at)
            SELECT ?, event_id, user_key, seen_at FROM issue_events
            WHERE issue_id IN ({marks})
            """,
            (target_id, *source_ids),
        )
        await self._conn.execute(
            f"""
            UPDATE issues
            SET occurrences_total = occurrences_total + (
                    SELECT COALESCE(SUM(occurrences_total), 0) FROM issues
                    WHERE issue_id IN ({marks})),
                occurrences_24h = occurrences_24h + (
                    SELECT COALESCE(SUM(occurrences_24h), 0) FROM issues
                    WHERE issue_id IN ({marks})),
                unique_users_24h_est = MAX(unique_users_24h_est, (
                    SELECT COUNT(DISTINCT user_key) FROM issue_events
                    WHERE issue_id = ? AND seen_at >= ?)),
                last_seen_at = MAX(last_seen_at, COALESCE((
                    SELECT MAX(last_seen_at) FROM issues
                    WHERE issue_id IN ({marks})), last_seen_at))
            WHERE issue_id = ?
            """,
            (*source_ids, *source_ids, target_id, cutoff, *source_ids, target_id),
        )
        await self._conn.execute(
            f"""
            UPDATE issues
            SET status = ?, merged_into = ?, resolved_at = ?
            WHERE issue_id IN ({marks})
            """,
            (IssueStatus.RESOLVED.value, target_id, merged, *source_ids),
        )

    async def _with_event_refs(self, rows: list[aiosqlite.Row]) -> list[Issue]:
        """批量加载 event_refs 并转换为 Issue"""
        if not rows:
            return []
        issue_ids = [row[0] for row in rows]
        cursor = await self._conn.execute(
            f"""
            SELECT issue_id, event_id FROM issue_events
            WHERE issue_id IN ({_placeholders(len(issue_ids))})
            ORDER BY seen_at ASC, event_id ASC
            """,
            issue_ids,
        )
        refs: dict[str, list[str]] = {issue_id: [] for issue_id in issue_ids}
        for ref_row in await cursor.fetchall():
            refs[ref_row[0]].append(ref_row[1])
        return [self._row_to_issue(row, refs[row[0]]) for row in rows]

    @staticmethod
    def _row_to_issue(row: aiosqlite.Row, event_refs: list[str]) -> Issue:
        """将数据库行转换为 Issue 模型"""
        return Issue(
            issue_id=row[0],
            app_id=row[1],
            environment=row[2],
            status=row[3],
            severity=row[4],
            title=row[5],
            description=row[6],
            issue_type=row[7],
            primary_fingerprint=row[8],
            event_refs=event_refs,
            counts=IssueCounts(
                occurrences_total=row[9],
                occurrences_24h=row[10],
                unique_users_24h_est=row[11],
            ),
            timestamps=IssueTimestamps(
                created_at=datetime.fromisoformat(row[12]),
                last_seen_at=datetime.fromisoformat(row[13]),
                resolved_at=datetime.fromisoformat(row[14]) if row[14] else None,
                wont_fix_at=datetime.fromisoformat(row[15]) if row[15] else None,
            ),
            reported_by=ReporterInfo.model_validate_json(row[16]) if row[16] else None,
            routing=IssueRouting(assigned_to=row[17]),
            resolution_note=row[18],
            merged_into=row[19],
            ai_analysis=AIAnalysis.model_validate_json(row[20]) if row[20] else None,
            tags=json.loads(row[21]) if row[21] else [],
        )
