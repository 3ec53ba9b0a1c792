"""写事务封装

所有写操作通过 write_transaction 执行：
- 进程内：StoreGroup.write_lock 串行化共享连接上的写事务
- 进程间：BEGIN IMMEDIATE 取得 SQLite 写锁（配合 busy_timeout 等待）
事务内任何异常都会回滚后原样抛出。
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING

import aiosqlite

from ..exceptions import IssueMergeError, IssueNotFoundError
from ..models.event import Event
from ..models.issue import Issue, IssueSeed

if TYPE_CHECKING:
    from . import StoreGroup


@asynccontextmanager
async def write_transaction(stores: "StoreGroup") -> AsyncIterator[aiosqlite.Connection]:
    """在写锁内开启 IMMEDIATE 事务，正常退出提交，异常回滚"""
    async with stores.write_lock:
        await stores.conn.execute("BEGIN IMMEDIATE")
        try:
            yield stores.conn
            await stores.conn.commit()
        except BaseException:
            await stores.conn.rollback()
            raise


async def record_event_and_aggregate(
    stores: "StoreGroup",
    event: Event,
    seed: IssueSeed,
    issue_id: str,
    user_key: str,
    seen_at: datetime,
) -> tuple[Issue, bool]:
    """同一事务内写入事件并完成 find-or-create

    有指纹时先查非终态 Issue，命中则原子追加；否则按 seed 新建。
    无指纹（反馈）总是新建。

    Returns:
        (issue, is_new_issue)

    Raises:
        aiosqlite.IntegrityError: 指纹唯一索引冲突（调用方重试）
    """
    async with write_transaction(stores):
        await stores.event_store.create_event(event)

        if event.fingerprint:
            existing = await stores.issue_store.find_non_terminal_issue_by_fingerprint(
                event.app_id,
                event.environment.value,
                event.fingerprint,
            )
            if existing is not None:
                await stores.issue_store.append_event_and_increment(
                    existing.issue_id,
                    event.event_id,
                    user_key,
                    seen_at,
                )
                issue = await stores.issue_store.get_issue(existing.issue_id)
                if issue is None:
                    raise IssueNotFoundError(existing.issue_id)
                return issue, False

        issue = await stores.issue_store.create_issue(seed, issue_id, user_key)
        return issue, True


async def merge_issues(
    stores: "StoreGroup",
    target_id: str,
    source_ids: list[str],
    merged_at: datetime,
) -> Issue:
    """多 Issue 合并事务：全部提交或全部回滚

    Raises:
        IssueNotFoundError: 目标或源 Issue 不存在
        IssueMergeError: 校验失败
    """
    async with write_transaction(stores):
        target = await stores.issue_store.get_issue(target_id)
        if target is None:
            raise IssueNotFoundError(target_id)
        if target.merged_into:
            raise IssueMergeError(
                f"Target issue {target_id} was already merged into {target.merged_into}"
            )

        for source_id in source_ids:
            source = await stores.issue_store.get_issue(source_id)
            if source is None:
                raise IssueNotFoundError(source_id)
            if source.app_id != target.app_id:
                raise IssueMergeError("All issues must belong to the same app")
            if source.merged_into:
                raise IssueMergeError(
                    f"Source issue {source_id} was already merged into {source.merged_into}"
                )

        await stores.issue_store.merge_into(target_id, source_ids, merged_at)
        merged = await stores.issue_store.get_issue(target_id)
        if merged is None:
            raise IssueNotFoundError(target_id)
        return merged
