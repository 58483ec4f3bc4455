"""
用户资料缓存

按 id 获取并缓存用户资料；每个 id 在归档中最多存一次。
新资料会为其头像、横幅、背景图投递 ProfileMedia 下载指令。
"""
from typing import Awaitable, Callable, Iterable, List

from loguru import logger

from core.downloader import DownloadInstruction, ProfileMedia
from core.models import Profile
from core.storage import Storage
from core.twitter_api import TwitterClient


class ProfileCache:
    """用户资料缓存（以 Storage 中的 profiles 映射为准）"""

    def __init__(
        self,
        client: TwitterClient,
        storage: Storage,
        send: Callable[[DownloadInstruction], Awaitable[None]],
    ):
        self.client = client
        self.storage = storage
        self.send = send
        self.stats = {
            "fetched": 0,
            "lookups": 0,
            "cached_hits": 0,
        }

    async def is_cached(self, user_id: int) -> bool:
        return await self.storage.with_data(lambda data: user_id in data.profiles)

    async def emit_media(self, profile: Profile):
        """
        投递资料图片下载指令

        Raises:
            DownloadQueueClosed: 下载 worker 已退出
        """
        for url in profile.media_urls():
            await self.send(ProfileMedia(url=url))

    async def _store(self, profiles: Iterable[Profile]) -> List[Profile]:
        """写入缓存，已存在的 id 不覆盖；返回新写入的资料"""
        def insert(data):
            added = []
            for profile in profiles:
                if profile.id not in data.profiles:
                    data.profiles[profile.id] = profile
                    added.append(profile)
            return added

        return await self.storage.with_data(insert)

    async def fetch(self, user_id: int):
        """单个获取：已缓存则直接返回"""
        if await self.is_cached(user_id):
            self.stats["cached_hits"] += 1
            return

        profile = await self.client.users_show(user_id)
        self.stats["fetched"] += 1
        try:
            await self.emit_media(profile)
        except Exception as e:
            logger.warning("Inspect profile error {}: {}", user_id, e)
        await self._store([profile])

    async def fetch_many(self, user_ids: Iterable[int]) -> List[Profile]:
        """
        批量获取：过滤已缓存的 id，剩余的用一次 lookup 调用获取

        媒体投递失败（接收方已退出）会向上抛出。

        Returns:
            本次获取到的资料
        """
        known = await self.storage.with_data(lambda data: set(data.profiles))
        pending = []
        for user_id in user_ids:
            if user_id not in known and user_id not in pending:
                pending.append(user_id)
        if not pending:
            return []

        logger.info("Downloading {} profiles", len(pending))
        profiles = await self.client.users_lookup(pending)
        self.stats["lookups"] += 1
        self.stats["fetched"] += len(profiles)
        for profile in profiles:
            await self.emit_media(profile)
        await self._store(profiles)
        return profiles

    async def add(self, profile: Profile) -> bool:
        """
        缓存一个已获取的资料（列表成员）

        Returns:
            是否为新资料
        """
        added = await self._store([profile])
        if not added:
            return False
        try:
            await self.emit_media(profile)
        except Exception as e:
            logger.warning("Could not inspect profile {}: {}", profile.id, e)
        return True
