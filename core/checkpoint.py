"""
检查点管理器 - 基于 Storage 实现

每个资源一个分页游标，进程重启后从游标处继续。
游标存在 = 从这里继续；不存在 = 未开始或已完成。
"""
from enum import Enum
from typing import Any, Dict, Optional, Union
from loguru import logger

from core.storage import Storage


class ResourceKind(str, Enum):
    """分页资源类型"""
    USER_TWEETS = "user_tweets"
    USER_MENTIONS = "user_mentions"
    FOLLOWERS = "followers"
    FOLLOWS = "follows"
    LISTS = "lists"
    LIST_MEMBERS = "list"


class CheckpointKey:
    """
    结构化检查点键（资源类型 + 可选子 id）

    持久化时仍使用原有字符串格式（如 "user_tweets"、"list-<id>"），
    保证已有检查点可以继续使用。
    """

    __slots__ = ("kind", "sub_id")

    def __init__(self, kind: ResourceKind, sub_id: Optional[int] = None):
        if kind is ResourceKind.LIST_MEMBERS and sub_id is None:
            raise ValueError("list member checkpoints need a list id")
        self.kind = kind
        self.sub_id = sub_id

    @classmethod
    def list_members(cls, list_id: int) -> "CheckpointKey":
        return cls(ResourceKind.LIST_MEMBERS, list_id)

    @property
    def storage_key(self) -> str:
        if self.sub_id is None:
            return self.kind.value
        return f"{self.kind.value}-{self.sub_id}"

    def __eq__(self, other) -> bool:
        return isinstance(other, CheckpointKey) and (self.kind, self.sub_id) == (other.kind, other.sub_id)

    def __hash__(self) -> int:
        return hash((self.kind, self.sub_id))

    def __repr__(self) -> str:
        return f"CheckpointKey({self.storage_key!r})"


KeyLike = Union[CheckpointKey, ResourceKind, str]


def _storage_key(key: KeyLike) -> str:
    if isinstance(key, CheckpointKey):
        return key.storage_key
    if isinstance(key, ResourceKind):
        return key.value
    return key


class CheckpointManager:
    """
    检查点管理器（基于 Storage 实现）

    使用前需确保已调用 storage.connect()。
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def paging_position(self, key: KeyLike) -> Optional[Any]:
        """读取分页游标，不存在返回 None"""
        position = self.storage.load_checkpoint(_storage_key(key))
        if position is not None:
            logger.debug("Checkpoint loaded: {} -> {}", _storage_key(key), position)
        return position

    def set_paging_position(self, key: KeyLike, position: Optional[Any]) -> bool:
        """写入分页游标；position 为 None 时清除（标记该资源已完成）"""
        if position is None:
            return self.clear(key)
        return self.storage.save_checkpoint(_storage_key(key), position)

    async def commit_page(self, key: KeyLike, position: Optional[Any], partial: Optional[Any] = None) -> bool:
        """
        保存聚合体并推进游标（同一事务）；position 为 None 时清除检查点

        Args:
            partial: 续传时需要恢复的累计状态（如已获取的 id），随检查点一起保存
        """
        return await self.storage.commit_page(_storage_key(key), position, partial)

    def partial_state(self, key: KeyLike) -> Optional[Any]:
        """读取随检查点保存的累计状态"""
        return self.storage.load_partial(_storage_key(key))

    def clear(self, key: KeyLike) -> bool:
        """清除检查点"""
        ok = self.storage.delete_checkpoint(_storage_key(key))
        if ok:
            logger.info("Checkpoint cleared: {}", _storage_key(key))
        return ok

    def exists(self, key: KeyLike) -> bool:
        """检查点是否存在"""
        return self.storage.checkpoint_exists(_storage_key(key))

    def positions(self) -> Dict[str, Any]:
        """全部检查点"""
        return self.storage.list_checkpoints()

    def clear_all(self) -> int:
        """清除全部检查点，返回清除数量"""
        keys = list(self.positions())
        for key in keys:
            self.storage.delete_checkpoint(key)
        if keys:
            logger.info("Cleared {} checkpoints", len(keys))
        return len(keys)
