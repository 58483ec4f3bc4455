"""
数据存储模块（SQLite + 内存聚合体）

定位：
- 独占持有归档聚合体 CrawlAggregate，通过一把 asyncio 锁对外提供读/写/作用域修改。
- 聚合体持久化（collections 表，每个字段一行 JSON）。
- 进度持久化（checkpoints 表，以及续传用的累计状态 partials 表），供 CheckpointManager 使用。
- 每页提交（commit_page）：聚合体与检查点在同一事务中写入。
- 媒体文件路径解析（media 目录）。
"""
from typing import Dict, Any, Callable, Optional, TypeVar
from contextlib import asynccontextmanager
import asyncio
import sqlite3
import json
from pathlib import Path
from datetime import datetime
from loguru import logger

from config import config
from core.models import CrawlAggregate

T = TypeVar("T")

# 聚合体字段 -> collections 表中的行名
COLLECTIONS = tuple(CrawlAggregate.model_fields)


def _serialize(obj: Any) -> str:
    """序列化为 JSON 字符串"""
    return json.dumps(obj, ensure_ascii=False)


def _deserialize_json(s: Optional[str]) -> Any:
    """从 JSON 字符串反序列化"""
    if s is None or s == "null":
        return None
    try:
        return json.loads(s)
    except (TypeError, json.JSONDecodeError):
        return None


class Storage:
    """
    归档存储管理器

    聚合体只能在锁内修改；任何访问器都不会在持锁期间 await 网络操作。

    Example:
        storage = Storage()
        storage.connect()
        storage.load()
        async with storage.mutate() as data:
            data.followers = ids
        await storage.save()
    """

    def __init__(self, sqlite_path: Optional[Path] = None, media_dir: Optional[Path] = None):
        self.sqlite_path = Path(sqlite_path or config.database.sqlite_path)
        self.media_dir = Path(media_dir or config.media.media_dir)
        self._conn: Optional[sqlite3.Connection] = None
        self._data = CrawlAggregate()
        self._lock = asyncio.Lock()

    def connect(self):
        """连接数据库（创建 SQLite 文件及表结构）"""
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(str(self.sqlite_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._init_schema()
            logger.success("Connected to SQLite: {}", self.sqlite_path)
        except sqlite3.Error as e:
            logger.error("Failed to connect to SQLite: {}", e)
            self._conn = None

    def _init_schema(self):
        """初始化表结构"""
        if self._conn is None:
            return
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS collections (
                name TEXT PRIMARY KEY,
                payload TEXT,
                updated_at TEXT
            );

            CREATE TABLE IF NOT EXISTS checkpoints (
                key TEXT PRIMARY KEY,
                position TEXT,
                updated_at TEXT
            );

            CREATE TABLE IF NOT EXISTS partials (
                key TEXT PRIMARY KEY,
                payload TEXT,
                updated_at TEXT
            );
        """)
        self._conn.commit()

    def close(self):
        """关闭数据库连接"""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("SQLite connection closed")

    @property
    def connected(self) -> bool:
        return self._conn is not None

    # ==================== 聚合体访问 ====================

    @property
    def data(self) -> CrawlAggregate:
        """只读视图（调用方不应修改；需要修改请使用 mutate / with_data）"""
        return self._data

    @asynccontextmanager
    async def mutate(self):
        """独占可变访问：在 async with 块内持有锁"""
        async with self._lock:
            yield self._data

    async def with_data(self, fn: Callable[[CrawlAggregate], T]) -> T:
        """作用域修改：持锁调用同步函数 fn(data) 并返回其结果"""
        async with self._lock:
            return fn(self._data)

    async def snapshot(self) -> CrawlAggregate:
        """聚合体的深拷贝（用于完成消息）"""
        async with self._lock:
            return self._data.model_copy(deep=True)

    def media_path(self, filename: str) -> Path:
        """解析媒体根目录下的文件路径"""
        self.media_dir.mkdir(parents=True, exist_ok=True)
        return self.media_dir / filename

    # ==================== SQLite 持久化（聚合体） ====================

    def load(self) -> bool:
        """从 collections 表恢复聚合体；没有任何记录时保持空聚合体"""
        if self._conn is None:
            logger.warning("SQLite not connected")
            return False
        try:
            rows = self._conn.execute("SELECT name, payload FROM collections").fetchall()
        except sqlite3.Error as e:
            logger.error("Failed to load archive: {}", e)
            return False
        stored = {row["name"]: _deserialize_json(row["payload"]) for row in rows}
        payload = {name: value for name, value in stored.items() if name in COLLECTIONS and value is not None}
        self._data = CrawlAggregate.model_validate(payload)
        logger.info("Archive loaded: {} collections", len(payload))
        return True

    async def save(self) -> bool:
        """持久化当前聚合体（失败只记录日志，返回 False）"""
        if self._conn is None:
            logger.warning("SQLite not connected")
            return False
        async with self._lock:
            dumped = self._data.model_dump(mode="json")
        try:
            self._write_collections(dumped, datetime.now().isoformat())
            self._conn.commit()
            logger.debug("Archive saved")
            return True
        except sqlite3.Error as e:
            self._conn.rollback()
            logger.error("Failed to save archive: {}", e)
            return False

    def _write_collections(self, dumped: Dict[str, Any], now: str):
        self._conn.executemany(
            """
            INSERT INTO collections (name, payload, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
                payload=excluded.payload, updated_at=excluded.updated_at
            """,
            [(name, _serialize(dumped[name]), now) for name in COLLECTIONS],
        )

    async def commit_page(self, key: str, position: Any, partial: Any = None) -> bool:
        """
        一页处理完成后的提交：聚合体 + 检查点（+ 续传用的累计状态）在同一个事务中写入

        position 为 None 时删除该检查点及其累计状态（资源已完成）。
        崩溃时检查点不会超前于已保存的聚合体。
        """
        if self._conn is None:
            logger.warning("SQLite not connected")
            return False
        async with self._lock:
            dumped = self._data.model_dump(mode="json")
        now = datetime.now().isoformat()
        try:
            self._write_collections(dumped, now)
            if position is None:
                self._conn.execute("DELETE FROM checkpoints WHERE key = ?", (key,))
                self._conn.execute("DELETE FROM partials WHERE key = ?", (key,))
            else:
                self._conn.execute(
                    """
                    INSERT INTO checkpoints (key, position, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        position=excluded.position, updated_at=excluded.updated_at
                    """,
                    (key, _serialize(position), now),
                )
                if partial is not None:
                    self._conn.execute(
                        """
                        INSERT INTO partials (key, payload, updated_at)
                        VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            payload=excluded.payload, updated_at=excluded.updated_at
                        """,
                        (key, _serialize(partial), now),
                    )
            self._conn.commit()
            logger.debug("Page committed: {} -> {}", key, position)
            return True
        except sqlite3.Error as e:
            self._conn.rollback()
            logger.error("Failed to commit page for {}: {}", key, e)
            return False

    def get_statistics(self) -> Dict[str, Any]:
        """获取统计信息"""
        data = self._data
        return {
            "tweets": len(data.tweets),
            "mentions": len(data.mentions),
            "followers": len(data.followers),
            "follows": len(data.follows),
            "lists": len(data.lists),
            "profiles": len(data.profiles),
            "media": len(data.media),
            "responses": sum(len(replies) for replies in data.responses.values()),
        }

    # ==================== 检查点（供 CheckpointManager 薄封装） ====================

    def save_checkpoint(self, key: str, position: Any) -> bool:
        """保存检查点"""
        if self._conn is None:
            return False
        try:
            self._conn.execute(
                """
                INSERT INTO checkpoints (key, position, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    position=excluded.position, updated_at=excluded.updated_at
                """,
                (key, _serialize(position), datetime.now().isoformat()),
            )
            self._conn.commit()
            logger.debug("Checkpoint saved: {} -> {}", key, position)
            return True
        except sqlite3.Error as e:
            logger.error("Failed to save checkpoint: {}", e)
            return False

    def load_checkpoint(self, key: str) -> Optional[Any]:
        """加载检查点位置，不存在返回 None"""
        if self._conn is None:
            return None
        try:
            row = self._conn.execute("SELECT position FROM checkpoints WHERE key = ?", (key,)).fetchone()
            return _deserialize_json(row["position"]) if row else None
        except sqlite3.Error as e:
            logger.error("Failed to load checkpoint: {}", e)
            return None

    def delete_checkpoint(self, key: str) -> bool:
        """删除检查点"""
        if self._conn is None:
            return False
        try:
            self._conn.execute("DELETE FROM checkpoints WHERE key = ?", (key,))
            self._conn.execute("DELETE FROM partials WHERE key = ?", (key,))
            self._conn.commit()
            logger.debug("Checkpoint deleted: {}", key)
            return True
        except sqlite3.Error as e:
            logger.error("Failed to delete checkpoint: {}", e)
            return False

    def load_partial(self, key: str) -> Optional[Any]:
        """加载与检查点一起保存的累计状态，不存在返回 None"""
        if self._conn is None:
            return None
        try:
            row = self._conn.execute("SELECT payload FROM partials WHERE key = ?", (key,)).fetchone()
            return _deserialize_json(row["payload"]) if row else None
        except sqlite3.Error as e:
            logger.error("Failed to load partial state: {}", e)
            return None

    def checkpoint_exists(self, key: str) -> bool:
        """检查点是否存在"""
        if self._conn is None:
            return False
        try:
            row = self._conn.execute("SELECT 1 FROM checkpoints WHERE key = ? LIMIT 1", (key,)).fetchone()
            return row is not None
        except sqlite3.Error as e:
            logger.error("Failed to check checkpoint existence: {}", e)
            return False

    def list_checkpoints(self) -> Dict[str, Any]:
        """所有检查点 {key: position}"""
        if self._conn is None:
            return {}
        try:
            rows = self._conn.execute("SELECT key, position FROM checkpoints ORDER BY key").fetchall()
            return {row["key"]: _deserialize_json(row["position"]) for row in rows}
        except sqlite3.Error as e:
            logger.error("Failed to list checkpoints: {}", e)
            return {}
