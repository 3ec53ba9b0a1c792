"""SQLite 数据库初始化

PRAGMA 配置 + 五张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# apps 表 DDL
_APPS_DDL = """
CREATE TABLE IF NOT EXISTS apps (
    app_id      TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    owners      TEXT NOT NULL DEFAULT '{}',
    policies    TEXT NOT NULL DEFAULT '{}',
    schedules   TEXT NOT NULL DEFAULT '{}',
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

# events 表 DDL
_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS events (
    event_id          TEXT PRIMARY KEY,
    app_id            TEXT NOT NULL,
    environment       TEXT NOT NULL,
    event_type        TEXT NOT NULL,
    ts                TEXT NOT NULL,
    session_id        TEXT NOT NULL,
    route_or_url      TEXT NOT NULL,
    version           TEXT NOT NULL DEFAULT 'unknown',
    user              TEXT NOT NULL DEFAULT '{}',
    payload           TEXT NOT NULL DEFAULT '{}',
    fingerprint       TEXT,
    trace_id          TEXT,
    attachment_refs   TEXT NOT NULL DEFAULT '[]',
    request_metadata  TEXT
);
"""

_EVENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_events_app_ts ON events(app_id, ts DESC);",
    "CREATE INDEX IF NOT EXISTS idx_events_fingerprint ON events(fingerprint);",
]

# issues 表 DDL（计数拆成独立列，支持 SET x = x + 1 原子自增）
_ISSUES_DDL = """
CREATE TABLE IF NOT EXISTS issues (
    issue_id               TEXT PRIMARY KEY,
    app_id                 TEXT NOT NULL,
    environment            TEXT NOT NULL,
    status                 TEXT NOT NULL DEFAULT 'new',
    severity               TEXT NOT NULL DEFAULT 'P2',
    title                  TEXT NOT NULL,
    description            TEXT NOT NULL DEFAULT '',
    issue_type             TEXT NOT NULL,
    primary_fingerprint    TEXT,
    occurrences_total      INTEGER NOT NULL DEFAULT 1,
    occurrences_24h        INTEGER NOT NULL DEFAULT 1,
    unique_users_24h_est   INTEGER NOT NULL DEFAULT 1,
    created_at             TEXT NOT NULL,
    last_seen_at           TEXT NOT NULL,
    resolved_at            TEXT,
    wont_fix_at            TEXT,
    reported_by            TEXT,
    assigned_to            TEXT,
    resolution_note        TEXT,
    merged_into            TEXT,
    ai_analysis            TEXT,
    tags                   TEXT NOT NULL DEFAULT '[]',

    FOREIGN KEY (app_id) REFERENCES apps(app_id)
);
"""

_ISSUES_INDEXES = [
    # 去重约束：同一 (app, env) 下非终态 Issue 的指纹唯一
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_issues_open_fingerprint "
        "ON issues(app_id, environment, primary_fingerprint) "
        "WHERE primary_fingerprint IS NOT NULL "
        "AND status NOT IN ('resolved', 'wont_fix');"
    ),
    "CREATE INDEX IF NOT EXISTS idx_issues_app_status ON issues(app_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_issues_last_seen ON issues(last_seen_at DESC);",
]

# issue_events 关联表：event_refs 的集合语义由主键保证
_ISSUE_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS issue_events (
    issue_id   TEXT NOT NULL,
    event_id   TEXT NOT NULL,
    user_key   TEXT NOT NULL,
    seen_at    TEXT NOT NULL,

    PRIMARY KEY (issue_id, event_id),
    FOREIGN KEY (issue_id) REFERENCES issues(issue_id)
);
"""

_ISSUE_EVENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_issue_events_seen ON issue_events(issue_id, seen_at);",
    "CREATE INDEX IF NOT EXISTS idx_issue_events_event ON issue_events(event_id);",
]

# attachments 表 DDL
_ATTACHMENTS_DDL = """
CREATE TABLE IF NOT EXISTS attachments (
    attachment_id  TEXT PRIMARY KEY,
    event_id       TEXT NOT NULL,
    app_id         TEXT NOT NULL,
    environment    TEXT NOT NULL,
    filename       TEXT NOT NULL,
    content_type   TEXT NOT NULL,
    size_bytes     INTEGER NOT NULL,
    storage_path   TEXT NOT NULL,
    sha256         TEXT NOT NULL,
    uploaded_at    TEXT NOT NULL,
    expires_at     TEXT NOT NULL,
    user_opted_in  INTEGER NOT NULL DEFAULT 1,

    FOREIGN KEY (event_id) REFERENCES events(event_id)
);
"""

_ATTACHMENTS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_attachments_event_id ON attachments(event_id);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_APPS_DDL)
    await conn.execute(_EVENTS_DDL)
    await conn.execute(_ISSUES_DDL)
    await conn.execute(_ISSUE_EVENTS_DDL)
    await conn.execute(_ATTACHMENTS_DDL)

    # 创建索引
    for idx_sql in (
        _EVENTS_INDEXES + _ISSUES_INDEXES + _ISSUE_EVENTS_INDEXES + _ATTACHMENTS_INDEXES
    ):
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
