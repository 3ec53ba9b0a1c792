"""CLI 入口模块 -- python -m britepulse.core <command>

支持的命令：
  recompute-counts  按 24 小时窗口重算 Issue 计数
"""

import asyncio
import sys

from .config import get_attachments_dir, get_db_path


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m britepulse.core <command>")
        print("命令:")
        print("  recompute-counts  按 24 小时窗口重算 Issue 计数")
        sys.exit(1)

    command = sys.argv[1]

    if command == "recompute-counts":
        asyncio.run(recompute_counts())
    else:
        print(f"未知命令: {command}")
        print("可用命令: recompute-counts")
        sys.exit(1)


async def recompute_counts() -> None:
    """执行计数重算"""
    from .rollup import recompute_rolling_counts
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print("开始重算 24 小时计数...")

    store_group = await create_store_group(db_path, get_attachments_dir())

    try:
        updated = await recompute_rolling_counts(store_group)
        print(f"重算完成，更新 {updated} 个 Issue")
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
