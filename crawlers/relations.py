"""
关系爬虫：粉丝 / 关注

分页获取 id，每页批量获取未缓存的资料；完成后用累计的 id 列表覆盖聚合体中的对应集合。
已获取的 id 随检查点保存，续传时从中恢复，结果始终是完整集合。
"""
from typing import List

from core.checkpoint import CheckpointKey, ResourceKind
from core.models import Page
from crawlers.base import BasePaginatedCrawler


class ProfileIdsCrawler(BasePaginatedCrawler):
    """id 列表爬虫基类"""

    page_size = 50
    collection: str = "followers"

    def __init__(self, ctx):
        super().__init__(ctx)
        self.ids: List[int] = []

    async def process_page(self, page: Page):
        await self.ctx.profiles.fetch_many(page.items)
        self.ids.extend(page.items)

    def partial_state(self) -> List[int]:
        return list(self.ids)

    def restore_partial_state(self, state):
        self.ids = [int(i) for i in state]

    async def on_complete(self):
        ids = list(self.ids)
        async with self.storage.mutate() as data:
            setattr(data, self.collection, ids)


class FollowersCrawler(ProfileIdsCrawler):
    name = "Followers"
    collection = "followers"

    @property
    def checkpoint_key(self) -> CheckpointKey:
        return CheckpointKey(ResourceKind.FOLLOWERS)

    async def fetch_page(self, cursor: int) -> Page:
        return await self.client.followers_ids(self.ctx.owner_id, cursor=cursor, count=self.page_size)


class FollowsCrawler(ProfileIdsCrawler):
    name = "Follows"
    collection = "follows"

    @property
    def checkpoint_key(self) -> CheckpointKey:
        return CheckpointKey(ResourceKind.FOLLOWS)

    async def fetch_page(self, cursor: int) -> Page:
        return await self.client.friends_ids(self.ctx.owner_id, cursor=cursor, count=self.page_size)
