"""AppStore SQLite 实现"""

from datetime import datetime

import aiosqlite

from ..models.app import App, AppOwners, AppPolicies, AppSchedules

_APP_COLUMNS = "app_id, name, owners, policies, schedules, created_at, updated_at"


class SqliteAppStore:
    """AppStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def save_app(self, app: App) -> None:
        """创建或覆盖应用配置（不自动提交）"""
        await self._conn.execute(
            f"""
            INSERT INTO apps ({_APP_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(app_id) DO UPDATE SET
                name = excluded.name,
                owners = excluded.owners,
                policies = excluded.policies,
                schedules = excluded.schedules,
                updated_at = excluded.updated_at
            """,
            (
                app.app_id,
                app.name,
                app.owners.model_dump_json(),
                app.policies.model_dump_json(),
                app.schedules.model_dump_json(),
                app.created_at.isoformat(),
                app.updated_at.isoformat(),
            ),
        )

    async def get_app(self, app_id: str) -> App | None:
        """根据 app_id 查询应用"""
        cursor = await self._conn.execute(
            f"SELECT {_APP_COLUMNS} FROM apps WHERE app_id = ?",
            (app_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_app(row)

    @staticmethod
    def _row_to_app(row: aiosqlite.Row) -> App:
        return App(
            app_id=row[0],
            name=row[1],
            owners=AppOwners.model_validate_json(row[2]),
            policies=AppPolicies.model_validate_json(row[3]),
            schedules=AppSchedules.model_validate_json(row[4]),
            created_at=datetime.fromisoformat(row[5]),
            updated_at=datetime.fromisoformat(row[6]),
        )
