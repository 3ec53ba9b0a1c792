"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from britepulse.core.aggregator import IssueAggregator
from britepulse.core.store import StoreGroup, create_store_group


@pytest_asyncio.fixture
async def second_store_group(
    store_group: StoreGroup,
    tmp_path: Path,
) -> AsyncGenerator[StoreGroup, None]:
    """同一数据库文件上的第二个连接（模拟另一个进程）"""
    group = await create_store_group(
        str(tmp_path / "sqlite" / "test.db"),
        tmp_path / "attachments",
    )
    yield group
    await group.conn.close()


@pytest_asyncio.fixture
async def aggregator(store_group: StoreGroup) -> IssueAggregator:
    return IssueAggregator(store_group)
